"""Narrative analysis of aggregated spending via a text-completion provider.

The adapter renders an aggregation snapshot into a prompt, asks the provider
for a JSON answer and parses it. Whenever the call, the extraction or the
parse fails it returns a deterministic fallback computed from the numbers
alone, so callers always get a result back.
"""

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog

from budget_reports.analytics import CategoryTotal, DepartmentSpending, TrendPoint
from budget_reports.clients.base import TextCompletionClient
from budget_reports.errors import UpstreamError, ValidationError
from budget_reports.models import DepartmentRisk, Period, RiskLevel

logger = structlog.get_logger(__name__)

HIGH_RISK_THRESHOLD = 90.0
MEDIUM_RISK_THRESHOLD = 75.0
PREDICTED_GROWTH = Decimal("1.05")

FALLBACK_RECOMMENDATIONS = [
    "Monitor spending closely to stay within budget",
    "Review expense categories for optimization opportunities",
    "Plan ahead for upcoming expenses",
]
FALLBACK_GLOBAL_RECOMMENDATIONS = [
    "Review high-spending departments",
    "Optimize budget allocation",
]
FALLBACK_INSIGHTS = ["Review department spending manually."]
FALLBACK_OPTIMIZATION_TIPS = ["Analyze recurring expenses", "Negotiate vendor contracts"]

_CODE_FENCE = re.compile(r"```[a-zA-Z]*")


def risk_level_for(percentage: float) -> RiskLevel:
    """Classify utilization: High above 90 %, Medium above 75 %, else Low."""
    if percentage > HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    if percentage > MEDIUM_RISK_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def extract_json(text: str) -> dict[str, Any]:
    """Return the first well-formed JSON object embedded in ``text``.

    Markdown code fences are stripped first; surrounding commentary is
    skipped.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    cleaned = _CODE_FENCE.sub("", text)
    decoder = json.JSONDecoder()
    index = cleaned.find("{")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(cleaned, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        index = cleaned.find("{", index + 1)
    raise ValueError("No JSON object found in response")


def _money(amount: Decimal | float) -> str:
    return f"${float(amount):,.2f}"


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def _as_risk_level(value: Any) -> RiskLevel | None:
    try:
        return RiskLevel(str(value).strip().capitalize())
    except ValueError:
        return None


@dataclass
class DepartmentAnalysisInput:
    """Figures for one department in one period."""

    department_name: str
    month: int
    year: int
    allocated_budget: Decimal
    total_spent: Decimal
    remaining_budget: Decimal
    percentage_used: float
    previous_month_spent: Decimal = Decimal("0")
    month_over_month_change: float = 0.0
    expense_breakdown: list[CategoryTotal] = field(default_factory=list)


@dataclass
class GlobalAnalysisInput:
    """Company-wide figures for one period."""

    month: int
    year: int
    total_budget: Decimal
    total_spent: Decimal
    percentage_used: float
    departments: list[DepartmentSpending] = field(default_factory=list)
    monthly_trend: list[TrendPoint] = field(default_factory=list)


@dataclass
class AnalysisResult:
    """Outcome of an analysis request.

    ``success`` is False only when the provider call itself failed.
    ``fallback`` is True whenever the deterministic fallback was used.
    """

    summary: str
    risk_level: RiskLevel
    recommendations: list[str] = field(default_factory=list)
    success: bool = True
    fallback: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "risk_level": self.risk_level.value,
            "recommendations": list(self.recommendations),
        }


@dataclass
class GlobalAnalysisResult(AnalysisResult):
    """Company-wide analysis with per-department risks and a forecast."""

    insights: list[str] = field(default_factory=list)
    risks: list[DepartmentRisk] = field(default_factory=list)
    predicted_next_month_spend: float = 0.0
    optimization_tips: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            insights=list(self.insights),
            risks=[r.to_dict() for r in self.risks],
            predicted_next_month_spend=self.predicted_next_month_spend,
            optimization_tips=list(self.optimization_tips),
        )
        return data


def build_department_prompt(data: DepartmentAnalysisInput) -> str:
    breakdown = "\n".join(
        f"- {c.category.value}: {_money(c.total)} ({c.count} expenses)"
        for c in data.expense_breakdown
    ) or "- No expenses recorded"
    sign = "+" if data.month_over_month_change >= 0 else ""

    return f"""You are a financial analysis assistant for an enterprise budget management system.

Analyze the following department financial data and provide a comprehensive report:

**Department:** {data.department_name}
**Period:** {data.month}/{data.year}

**Budget Information:**
- Allocated Budget: {_money(data.allocated_budget)}
- Total Spent: {_money(data.total_spent)}
- Remaining Budget: {_money(data.remaining_budget)}
- Percentage Used: {data.percentage_used:.2f}%

**Trend Analysis:**
- Previous Month Spent: {_money(data.previous_month_spent)}
- Month-over-Month Change: {sign}{data.month_over_month_change:.2f}%

**Expense Breakdown by Category:**
{breakdown}

Please provide your analysis in the following JSON format:
{{
  "summary": "A comprehensive 2-3 sentence summary of the department's financial status",
  "riskLevel": "Low, Medium, or High based on spending patterns",
  "recommendations": ["recommendation 1", "recommendation 2", "recommendation 3"]
}}

**Guidelines:**
- Risk Level: Low (<75% spent), Medium (75-90% spent), High (>90% spent or overspending)
- Provide 3-5 actionable recommendations
- Focus on spending trends, budget utilization, and potential risks
- Be professional and concise

Return ONLY the JSON object, no additional text."""


def build_global_prompt(data: GlobalAnalysisInput) -> str:
    departments = "\n".join(
        f"- {d.department_name}: Spent {_money(d.total_spent)} / "
        f"Budget {_money(d.allocated_budget)} ({d.percentage_used:.1f}%)"
        for d in data.departments
    ) or "- No active departments"

    trend = ""
    if data.monthly_trend:
        lines = "\n".join(f"- {t.month_name} {t.year}: {_money(t.spent)}" for t in data.monthly_trend)
        trend = f"\n**Monthly Spending Trend:**\n{lines}\n"

    return f"""You are a Chief Financial Officer (CFO) assistant for an enterprise.

Generate a structured enterprise-level financial report for {data.month}/{data.year}.

**Financial Data:**
- Total Allocated Budget: {_money(data.total_budget)}
- Total Spent: {_money(data.total_spent)}
- Budget Utilization: {data.percentage_used:.2f}%

**Department Breakdown:**
{departments}
{trend}
**Requirements (JSON Output Only):**
1. summary: Expert executive overview (max 120 words).
2. insights: Key observations (max 3 items, max 15 words each).
3. recommendations: Strategic actions (max 3 items, max 15 words each).
4. riskLevel: "Low", "Medium", or "High" (Low < 75%, Medium 75-90%, High > 90%).
5. risks: Departments above 75% utilization with their risk level and reason.
6. predictedNextMonthSpend: Expected company-wide spend next month.
7. optimizationTips: Executive-level optimization tips (max 3 items).

**Output Format:**
{{
  "summary": "string",
  "insights": ["string"],
  "recommendations": ["string"],
  "riskLevel": "Low/Medium/High",
  "risks": [{{"department": "string", "riskLevel": "High/Medium/Low", "reason": "string"}}],
  "predictedNextMonthSpend": 12345.67,
  "optimizationTips": ["string"]
}}

Return ONLY valid JSON."""


def department_fallback(data: DepartmentAnalysisInput) -> AnalysisResult:
    return AnalysisResult(
        summary=(
            f"The {data.department_name} department has spent "
            f"{data.percentage_used:.2f}% of its allocated budget of "
            f"{_money(data.allocated_budget)}."
        ),
        risk_level=risk_level_for(data.percentage_used),
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        fallback=True,
    )


def global_fallback(data: GlobalAnalysisInput) -> GlobalAnalysisResult:
    risks = [
        DepartmentRisk(
            department=d.department_name,
            risk_level=risk_level_for(d.percentage_used),
            reason=f"Utilization at {d.percentage_used:.1f}%",
        )
        for d in data.departments
        if d.percentage_used > MEDIUM_RISK_THRESHOLD
    ]
    return GlobalAnalysisResult(
        summary=(
            f"The company has spent {data.percentage_used:.2f}% of the total "
            f"budget of {_money(data.total_budget)} ({_money(data.total_spent)} spent)."
        ),
        risk_level=risk_level_for(data.percentage_used),
        recommendations=list(FALLBACK_GLOBAL_RECOMMENDATIONS),
        fallback=True,
        insights=list(FALLBACK_INSIGHTS),
        risks=risks,
        predicted_next_month_spend=round(float(data.total_spent * PREDICTED_GROWTH), 2),
        optimization_tips=list(FALLBACK_OPTIMIZATION_TIPS),
    )


def _validate_period(month: int, year: int) -> None:
    Period.of(month, year)


def _validate_department_input(data: DepartmentAnalysisInput) -> None:
    _validate_period(data.month, data.year)
    if data.allocated_budget < 0:
        raise ValidationError("Allocated budget cannot be negative")
    if data.total_spent < 0 or data.previous_month_spent < 0:
        raise ValidationError("Spending cannot be negative")


def _validate_global_input(data: GlobalAnalysisInput) -> None:
    _validate_period(data.month, data.year)
    if data.total_budget < 0:
        raise ValidationError("Total budget cannot be negative")
    if data.total_spent < 0:
        raise ValidationError("Spending cannot be negative")
    for department in data.departments:
        if department.allocated_budget < 0 or department.total_spent < 0:
            raise ValidationError(
                "Department figures cannot be negative",
                details={"department": department.department_name},
            )


class AnalysisService:
    """Analysis adapter over a text-completion client."""

    def __init__(self, client: TextCompletionClient):
        self._client = client
        self._logger = logger.bind(component="analysis")

    async def _request(self, prompt: str) -> tuple[dict[str, Any] | None, str | None, bool]:
        """Call the provider once.

        Returns the parsed payload (or None), an error message, and whether
        the call itself succeeded.
        """
        try:
            text = await self._client.complete(prompt)
        except UpstreamError as e:
            return None, str(e), False
        except Exception as e:
            self._logger.error("provider_call_failed", error=str(e))
            return None, str(e), False

        try:
            return extract_json(text), None, True
        except ValueError as e:
            self._logger.warning("analysis_parse_failed", error=str(e), response_chars=len(text))
            return None, str(e), True

    async def analyze_department(self, data: DepartmentAnalysisInput) -> AnalysisResult:
        """Analyze one department's period figures."""
        _validate_department_input(data)

        payload, error, called = await self._request(build_department_prompt(data))
        if payload is not None and isinstance(payload.get("summary"), str):
            return AnalysisResult(
                summary=payload["summary"],
                risk_level=_as_risk_level(payload.get("riskLevel"))
                or risk_level_for(data.percentage_used),
                recommendations=_as_str_list(payload.get("recommendations")),
            )

        result = department_fallback(data)
        result.success = called
        result.error = error or "Response did not contain a summary"
        self._logger.warning(
            "analysis_fallback_used",
            scope="department",
            department=data.department_name,
            provider_ok=called,
            error=result.error,
        )
        return result

    async def analyze_global(self, data: GlobalAnalysisInput) -> GlobalAnalysisResult:
        """Analyze company-wide period figures."""
        _validate_global_input(data)

        payload, error, called = await self._request(build_global_prompt(data))
        if payload is not None and isinstance(payload.get("summary"), str):
            return self._parse_global(payload, data)

        result = global_fallback(data)
        result.success = called
        result.error = error or "Response did not contain a summary"
        self._logger.warning(
            "analysis_fallback_used",
            scope="global",
            period=f"{data.month}/{data.year}",
            provider_ok=called,
            error=result.error,
        )
        return result

    def _parse_global(
        self, payload: dict[str, Any], data: GlobalAnalysisInput
    ) -> GlobalAnalysisResult:
        risks_raw = payload.get("risks")
        if not isinstance(risks_raw, list):
            risks_raw = []

        risks = []
        for item in risks_raw:
            if not isinstance(item, dict) or "department" not in item:
                continue
            level = _as_risk_level(item.get("riskLevel"))
            if level is None:
                continue
            risks.append(
                DepartmentRisk(
                    department=str(item["department"]),
                    risk_level=level,
                    reason=str(item.get("reason", "")),
                )
            )

        try:
            predicted = float(payload["predictedNextMonthSpend"])
        except (KeyError, TypeError, ValueError):
            predicted = round(float(data.total_spent * PREDICTED_GROWTH), 2)

        recommendations = payload.get("recommendations", payload.get("suggestions"))
        return GlobalAnalysisResult(
            summary=payload["summary"],
            risk_level=_as_risk_level(payload.get("riskLevel"))
            or risk_level_for(data.percentage_used),
            recommendations=_as_str_list(recommendations),
            insights=_as_str_list(payload.get("insights")),
            risks=risks,
            predicted_next_month_spend=predicted,
            optimization_tips=_as_str_list(payload.get("optimizationTips")),
        )

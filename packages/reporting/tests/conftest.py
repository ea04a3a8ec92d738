"""Pytest configuration and fixtures."""

import os
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-test")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

from budget_reports.analysis import AnalysisService  # noqa: E402
from budget_reports.analytics import AnalyticsService  # noqa: E402
from budget_reports.models import (  # noqa: E402
    Department,
    DepartmentStatus,
    Expense,
    ExpenseCategory,
)
from budget_reports.reports import ReportService  # noqa: E402
from budget_reports.store import InMemoryDataStore  # noqa: E402

USER_ID = uuid4()

VALID_DEPARTMENT_RESPONSE = """Here is the analysis you asked for:
```json
{
  "summary": "Engineering is close to its budget limit.",
  "riskLevel": "High",
  "recommendations": ["Freeze discretionary spend", "Review software licences"]
}
```
Let me know if you need anything else."""

VALID_GLOBAL_RESPONSE = """```json
{
  "summary": "Company spending is under control.",
  "insights": ["Engineering drives most of the spend"],
  "recommendations": ["Rebalance marketing budget"],
  "riskLevel": "Medium",
  "risks": [{"department": "Engineering", "riskLevel": "High", "reason": "95% used"}],
  "predictedNextMonthSpend": 1234.5,
  "optimizationTips": ["Consolidate vendors"]
}
```"""


class FakeCompletionClient:
    """Completion client returning a canned response or raising."""

    def __init__(self, response: str = "", error: Exception | None = None):
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fixed_clock():
    """Clock frozen in mid-March 2024."""
    return lambda: datetime(2024, 3, 15, 12, 0, 0)


@pytest.fixture
def store():
    return InMemoryDataStore()


@pytest.fixture
def add_expense(store):
    """Factory recording an expense in the store."""

    def _add(
        department: Department,
        amount: str | int,
        when: datetime,
        category: ExpenseCategory = ExpenseCategory.SOFTWARE,
    ) -> Expense:
        return store.add_expense(
            Expense(
                department_id=department.id,
                amount=Decimal(str(amount)),
                category=category,
                date=when,
                created_by=USER_ID,
            )
        )

    return _add


@pytest.fixture
def engineering(store):
    return store.add_department(Department(name="Engineering", allocated_budget=Decimal("1000")))


@pytest.fixture
def marketing(store):
    return store.add_department(Department(name="Marketing", allocated_budget=Decimal("2000")))


@pytest.fixture
def legacy(store):
    return store.add_department(
        Department(
            name="Legacy",
            allocated_budget=Decimal("500"),
            status=DepartmentStatus.INACTIVE,
        )
    )


@pytest.fixture
def march_expenses(engineering, marketing, legacy, add_expense):
    """Engineering spends 950 in March 2024, Marketing 500, Legacy 100."""
    add_expense(engineering, "600", datetime(2024, 3, 3), ExpenseCategory.SALARIES)
    add_expense(engineering, "350", datetime(2024, 3, 20), ExpenseCategory.SOFTWARE)
    add_expense(marketing, "500", datetime(2024, 3, 10), ExpenseCategory.MARKETING)
    add_expense(legacy, "100", datetime(2024, 3, 11), ExpenseCategory.OTHER)
    # February spend for month-over-month figures
    add_expense(engineering, "500", datetime(2024, 2, 14), ExpenseCategory.SALARIES)


@pytest.fixture
def analytics(store, fixed_clock):
    return AnalyticsService(store, clock=fixed_clock, max_concurrency=4)


@pytest.fixture
def fake_client():
    return FakeCompletionClient(response="not json at all")


@pytest.fixture
def report_service(store, analytics, fake_client):
    return ReportService(store, analytics, AnalysisService(fake_client), trend_months=3)

"""Domain types for departments, expenses and financial reports."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from budget_reports.errors import ValidationError

MIN_YEAR = 2020
MAX_YEAR = 2100
MAX_DESCRIPTION_LENGTH = 500


class DepartmentStatus(str, Enum):
    """Lifecycle status of a department."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ExpenseCategory(str, Enum):
    """Fixed set of expense categories."""

    SALARIES = "Salaries"
    OFFICE_SUPPLIES = "Office Supplies"
    MARKETING = "Marketing"
    TRAVEL = "Travel"
    EQUIPMENT = "Equipment"
    SOFTWARE = "Software"
    UTILITIES = "Utilities"
    TRAINING = "Training"
    CONSULTING = "Consulting"
    OTHER = "Other"


class ReportType(str, Enum):
    """Discriminator for stored reports."""

    DEPARTMENT = "Department"
    GLOBAL = "Global"


class RiskLevel(str, Enum):
    """Budget risk classification."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


def month_window(month: int, year: int) -> tuple[datetime, datetime]:
    """Return the first and last instant of a calendar month.

    No range check on ``year``; trend walks may step before ``MIN_YEAR``.
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    start = datetime(year, month, 1)
    if month == 12:
        next_start = datetime(year + 1, 1, 1)
    else:
        next_start = datetime(year, month + 1, 1)
    return start, next_start - timedelta(microseconds=1)


def step_back(month: int, year: int, months: int = 1) -> tuple[int, int]:
    """Walk ``months`` calendar months backward, rolling over year boundaries."""
    index = year * 12 + (month - 1) - months
    return index % 12 + 1, index // 12


@dataclass(frozen=True, order=True)
class Period:
    """A (month, year) reporting window."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not isinstance(self.month, int) or not 1 <= self.month <= 12:
            raise ValidationError(
                "Month must be between 1 and 12", details={"month": self.month}
            )
        if not isinstance(self.year, int) or not MIN_YEAR <= self.year <= MAX_YEAR:
            raise ValidationError(
                f"Year must be between {MIN_YEAR} and {MAX_YEAR}",
                details={"year": self.year},
            )

    @classmethod
    def of(cls, month: int, year: int) -> Period:
        """Build a period from the (month, year) argument order used by callers."""
        return cls(year=year, month=month)

    @classmethod
    def containing(cls, moment: date) -> Period:
        """Return the period a date or datetime falls in."""
        return cls(year=moment.year, month=moment.month)

    @property
    def start(self) -> datetime:
        return month_window(self.month, self.year)[0]

    @property
    def end(self) -> datetime:
        return month_window(self.month, self.year)[1]

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"

    def previous(self) -> tuple[int, int]:
        """Return the (month, year) of the prior calendar month."""
        return step_back(self.month, self.year)


@dataclass
class Department:
    """A department holding an allocated budget.

    Departments without a (month, year) binding apply to every period.
    """

    name: str
    allocated_budget: Decimal
    status: DepartmentStatus = DepartmentStatus.ACTIVE
    month: int | None = None
    year: int | None = None
    description: str = ""
    head: str = ""
    created_by: UUID | None = None
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        self.allocated_budget = Decimal(str(self.allocated_budget))
        if self.allocated_budget < 0:
            raise ValidationError(
                "Budget cannot be negative", details={"allocated_budget": str(self.allocated_budget)}
            )
        self.status = DepartmentStatus(self.status)
        if (self.month is None) != (self.year is None):
            raise ValidationError("Department period binding needs both month and year")
        if self.month is not None and self.year is not None:
            Period.of(self.month, self.year)

    @property
    def is_period_bound(self) -> bool:
        return self.month is not None


@dataclass
class Expense:
    """A single expense recorded against a department."""

    department_id: UUID
    amount: Decimal
    category: ExpenseCategory
    date: datetime
    created_by: UUID
    description: str = ""
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        self.amount = Decimal(str(self.amount))
        if self.amount < 0:
            raise ValidationError(
                "Amount cannot be negative", details={"amount": str(self.amount)}
            )
        try:
            self.category = ExpenseCategory(self.category)
        except ValueError as e:
            raise ValidationError(
                f"Unknown expense category: {self.category}",
                details={"allowed": [c.value for c in ExpenseCategory]},
            ) from e
        if not isinstance(self.date, datetime):
            self.date = datetime(self.date.year, self.date.month, self.date.day)
        elif self.date.tzinfo is not None:
            # Period windows are naive UTC
            self.date = self.date.astimezone(timezone.utc).replace(tzinfo=None)
        if len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
            )


@dataclass(frozen=True)
class ReportKey:
    """Natural key of a stored report."""

    type: ReportType
    department_id: UUID | None
    month: int
    year: int

    def __post_init__(self) -> None:
        if self.type == ReportType.DEPARTMENT and self.department_id is None:
            raise ValidationError("Department reports require a department reference")
        if self.type == ReportType.GLOBAL and self.department_id is not None:
            raise ValidationError("Global reports cannot reference a department")
        Period.of(self.month, self.year)

    @classmethod
    def global_(cls, month: int, year: int) -> ReportKey:
        return cls(ReportType.GLOBAL, None, month, year)

    @classmethod
    def department(cls, department_id: UUID, month: int, year: int) -> ReportKey:
        return cls(ReportType.DEPARTMENT, department_id, month, year)


@dataclass
class DataSnapshot:
    """Numeric figures captured when a report was generated."""

    allocated_budget: Decimal
    total_spent: Decimal
    remaining_budget: Decimal
    percentage_used: float
    previous_month_spent: Decimal = Decimal("0")
    month_over_month_change: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocated_budget": float(self.allocated_budget),
            "total_spent": float(self.total_spent),
            "remaining_budget": float(self.remaining_budget),
            "percentage_used": self.percentage_used,
            "previous_month_spent": float(self.previous_month_spent),
            "month_over_month_change": self.month_over_month_change,
        }


@dataclass
class DepartmentSnapshot:
    """Per-department figures stored with a Global report."""

    department_name: str
    allocated_budget: Decimal
    total_spent: Decimal
    percentage_used: float
    status: DepartmentStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "department_name": self.department_name,
            "allocated_budget": float(self.allocated_budget),
            "total_spent": float(self.total_spent),
            "percentage_used": self.percentage_used,
            "status": self.status.value,
        }


@dataclass
class DepartmentRisk:
    """A department flagged by the global analysis."""

    department: str
    risk_level: RiskLevel
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "department": self.department,
            "risk_level": self.risk_level.value,
            "reason": self.reason,
        }


@dataclass
class Report:
    """A generated financial report.

    Reports are only ever created or fully replaced by the report writer.
    """

    type: ReportType
    month: int
    year: int
    summary: str
    risk_level: RiskLevel
    data_snapshot: DataSnapshot
    department_id: UUID | None = None
    recommendations: list[str] = field(default_factory=list)
    departments_snapshot: list[DepartmentSnapshot] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    risks: list[DepartmentRisk] = field(default_factory=list)
    predicted_next_month_spend: float | None = None
    optimization_tips: list[str] = field(default_factory=list)
    report_text: str = ""
    analysis_fallback: bool = False
    generated_by: UUID | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> ReportKey:
        return ReportKey(self.type, self.department_id, self.month, self.year)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report for JSON transmission."""
        return {
            "id": str(self.id),
            "type": self.type.value,
            "department_id": str(self.department_id) if self.department_id else None,
            "month": self.month,
            "year": self.year,
            "summary": self.summary,
            "risk_level": self.risk_level.value,
            "recommendations": list(self.recommendations),
            "data_snapshot": self.data_snapshot.to_dict(),
            "departments_snapshot": [d.to_dict() for d in self.departments_snapshot],
            "insights": list(self.insights),
            "risks": [r.to_dict() for r in self.risks],
            "predicted_next_month_spend": self.predicted_next_month_spend,
            "optimization_tips": list(self.optimization_tips),
            "analysis_fallback": self.analysis_fallback,
            "generated_by": str(self.generated_by) if self.generated_by else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def month_name(month: int) -> str:
    """Short English month label, e.g. ``Mar``."""
    return calendar.month_abbr[month]

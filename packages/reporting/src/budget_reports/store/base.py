"""Abstract data store consumed by the report pipeline."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from budget_reports.models import (
    Department,
    DepartmentStatus,
    Expense,
    Report,
    ReportKey,
    ReportType,
)


@dataclass(frozen=True)
class DepartmentFilter:
    """Equality filter over departments. ``None`` fields match anything."""

    status: DepartmentStatus | None = None
    month: int | None = None
    year: int | None = None

    def matches(self, department: Department) -> bool:
        if self.status is not None and department.status != self.status:
            return False
        if self.month is not None and department.month != self.month:
            return False
        if self.year is not None and department.year != self.year:
            return False
        return True


@dataclass(frozen=True)
class ExpenseFilter:
    """Department equality plus an inclusive date range."""

    department_id: UUID | None = None
    start: datetime | None = None
    end: datetime | None = None

    def matches(self, expense: Expense) -> bool:
        if self.department_id is not None and expense.department_id != self.department_id:
            return False
        if self.start is not None and expense.date < self.start:
            return False
        if self.end is not None and expense.date > self.end:
            return False
        return True


@dataclass(frozen=True)
class ReportFilter:
    """Equality filter over stored reports."""

    type: ReportType | None = None
    department_id: UUID | None = None
    month: int | None = None
    year: int | None = None

    def matches(self, report: Report) -> bool:
        if self.type is not None and report.type != self.type:
            return False
        if self.department_id is not None and report.department_id != self.department_id:
            return False
        if self.month is not None and report.month != self.month:
            return False
        if self.year is not None and report.year != self.year:
            return False
        return True


class DataStore(Protocol):
    """Queryable persistence backend for departments, expenses and reports."""

    async def find_departments(self, filter: DepartmentFilter) -> list[Department]: ...

    async def get_department(self, department_id: UUID) -> Department | None: ...

    async def find_expenses(self, filter: ExpenseFilter) -> list[Expense]: ...

    async def count_expenses(self, filter: ExpenseFilter) -> int: ...

    async def find_report(self, key: ReportKey) -> Report | None: ...

    async def get_report(self, report_id: UUID) -> Report | None: ...

    async def find_reports(self, filter: ReportFilter) -> list[Report]: ...

    async def insert_report(self, report: Report) -> Report:
        """Insert a report, raising ``ConflictError`` if its key exists."""
        ...

    async def upsert_report(self, key: ReportKey, report: Report) -> Report:
        """Atomically insert or fully replace the report stored under ``key``."""
        ...

    async def delete_report(self, report_id: UUID) -> bool: ...

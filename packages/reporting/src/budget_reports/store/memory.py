"""In-memory data store backend.

Objects are deep-copied on the way in and out so callers never hold
references into the store's state.
"""

import asyncio
import copy
from datetime import datetime, timezone
from uuid import UUID

import structlog

from budget_reports.errors import ConflictError, NotFoundError, ValidationError
from budget_reports.models import Department, Expense, Report, ReportKey
from budget_reports.store.base import DepartmentFilter, ExpenseFilter, ReportFilter

logger = structlog.get_logger(__name__)


class InMemoryDataStore:
    """Process-local store implementing the ``DataStore`` protocol."""

    def __init__(self) -> None:
        self._departments: dict[UUID, Department] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._reports: dict[ReportKey, Report] = {}
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="memory_store")

    # === Seeding ===

    def add_department(self, department: Department) -> Department:
        self._departments[department.id] = copy.deepcopy(department)
        return department

    def add_expense(self, expense: Expense) -> Expense:
        """Record an expense; the owning department must already exist."""
        if expense.department_id not in self._departments:
            raise NotFoundError(
                "Department not found", details={"department_id": str(expense.department_id)}
            )
        self._expenses[expense.id] = copy.deepcopy(expense)
        return expense

    # === Departments ===

    async def find_departments(self, filter: DepartmentFilter) -> list[Department]:
        return [copy.deepcopy(d) for d in self._departments.values() if filter.matches(d)]

    async def get_department(self, department_id: UUID) -> Department | None:
        department = self._departments.get(department_id)
        return copy.deepcopy(department) if department else None

    # === Expenses ===

    async def find_expenses(self, filter: ExpenseFilter) -> list[Expense]:
        return [copy.deepcopy(e) for e in self._expenses.values() if filter.matches(e)]

    async def count_expenses(self, filter: ExpenseFilter) -> int:
        return sum(1 for e in self._expenses.values() if filter.matches(e))

    # === Reports ===

    async def find_report(self, key: ReportKey) -> Report | None:
        report = self._reports.get(key)
        return copy.deepcopy(report) if report else None

    async def get_report(self, report_id: UUID) -> Report | None:
        for report in self._reports.values():
            if report.id == report_id:
                return copy.deepcopy(report)
        return None

    async def find_reports(self, filter: ReportFilter) -> list[Report]:
        return [copy.deepcopy(r) for r in self._reports.values() if filter.matches(r)]

    async def insert_report(self, report: Report) -> Report:
        async with self._lock:
            key = report.key
            if key in self._reports:
                raise ConflictError(
                    "Report already exists for this key",
                    details={"type": key.type.value, "month": key.month, "year": key.year},
                )
            self._reports[key] = copy.deepcopy(report)
            self._logger.debug("report_inserted", report_id=str(report.id))
            return copy.deepcopy(report)

    async def upsert_report(self, key: ReportKey, report: Report) -> Report:
        """Replace the whole document stored under ``key``.

        An existing report keeps its identity and creation time.
        """
        if report.key != key:
            raise ValidationError("Report does not belong to the given key")
        async with self._lock:
            stored = copy.deepcopy(report)
            existing = self._reports.get(key)
            if existing is not None:
                stored.id = existing.id
                stored.created_at = existing.created_at
            stored.updated_at = datetime.now(timezone.utc)
            self._reports[key] = stored
            self._logger.debug(
                "report_upserted", report_id=str(stored.id), replaced=existing is not None
            )
            return copy.deepcopy(stored)

    async def delete_report(self, report_id: UUID) -> bool:
        async with self._lock:
            for key, report in self._reports.items():
                if report.id == report_id:
                    del self._reports[key]
                    return True
            return False

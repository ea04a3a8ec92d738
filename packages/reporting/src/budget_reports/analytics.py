"""Read-only aggregation over department and expense data.

Every operation only reads from the data store, so calls may be issued
concurrently with each other. Percentages keep full precision here; they
are rounded only when written into a stored snapshot.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

import structlog

from budget_reports.config import get_settings
from budget_reports.errors import ValidationError
from budget_reports.models import (
    Department,
    DepartmentStatus,
    ExpenseCategory,
    month_name,
    month_window,
    step_back,
)
from budget_reports.store.base import DataStore, DepartmentFilter, ExpenseFilter

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def percentage_used(spent: Decimal, allocated: Decimal) -> float:
    """Return spent / allocated * 100, defined as 0 when nothing is allocated."""
    if allocated <= 0:
        return 0.0
    return float(spent / allocated * 100)


async def gather_bounded(aws: Iterable[Awaitable[T]], limit: int) -> list[T]:
    """Await all awaitables with at most ``limit`` in flight.

    Results keep input order. The first failure cancels the remaining work
    and propagates, so callers never see a partial result.
    """
    semaphore = asyncio.Semaphore(limit)

    async def _run(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    tasks = [asyncio.ensure_future(_run(aw)) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


@dataclass
class CategoryTotal:
    """Spending for one expense category."""

    category: ExpenseCategory
    total: Decimal
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category.value, "total": float(self.total), "count": self.count}


@dataclass
class DepartmentSpending:
    """Spending figures for one department in a period."""

    department_id: UUID
    department_name: str
    allocated_budget: Decimal
    total_spent: Decimal
    remaining: Decimal
    percentage_used: float
    status: DepartmentStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "department_id": str(self.department_id),
            "department_name": self.department_name,
            "allocated_budget": float(self.allocated_budget),
            "total_spent": float(self.total_spent),
            "remaining": float(self.remaining),
            "percentage_used": self.percentage_used,
            "status": self.status.value,
        }


@dataclass
class TrendPoint:
    """Spending for one month of a trend."""

    month: int
    year: int
    month_name: str
    spent: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "year": self.year,
            "month_name": self.month_name,
            "spent": float(self.spent),
        }


class AnalyticsService:
    """Aggregation engine over the data store."""

    def __init__(
        self,
        store: DataStore,
        clock: Callable[[], datetime] | None = None,
        max_concurrency: int | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._clock = clock or datetime.now
        self._max_concurrency = max_concurrency or settings.aggregation_max_concurrency
        self._logger = logger.bind(component="analytics")

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def period_departments(self, month: int, year: int) -> list[Department]:
        """Departments bound to (month, year), or every department if none are."""
        departments = await self._store.find_departments(DepartmentFilter(month=month, year=year))
        if not departments:
            departments = await self._store.find_departments(DepartmentFilter())
        return departments

    async def total_budget(self, month: int, year: int) -> Decimal:
        departments = await self.period_departments(month, year)
        return sum((d.allocated_budget for d in departments), Decimal("0"))

    async def total_spent(self, month: int, year: int) -> Decimal:
        start, end = month_window(month, year)
        expenses = await self._store.find_expenses(ExpenseFilter(start=start, end=end))
        return sum((e.amount for e in expenses), Decimal("0"))

    async def department_spending(
        self,
        department_id: UUID,
        month: int | None = None,
        year: int | None = None,
    ) -> Decimal:
        """Sum a department's expenses in a period, or all of them when no period is given."""
        if (month is None) != (year is None):
            raise ValidationError("Month and year must be given together")

        if month is not None and year is not None:
            start, end = month_window(month, year)
            expense_filter = ExpenseFilter(department_id=department_id, start=start, end=end)
        else:
            expense_filter = ExpenseFilter(department_id=department_id)

        expenses = await self._store.find_expenses(expense_filter)
        return sum((e.amount for e in expenses), Decimal("0"))

    async def expense_breakdown(
        self, department_id: UUID, month: int, year: int
    ) -> list[CategoryTotal]:
        start, end = month_window(month, year)
        expenses = await self._store.find_expenses(
            ExpenseFilter(department_id=department_id, start=start, end=end)
        )

        totals: dict[ExpenseCategory, CategoryTotal] = {}
        for expense in expenses:
            entry = totals.get(expense.category)
            if entry is None:
                entry = totals[expense.category] = CategoryTotal(
                    category=expense.category, total=Decimal("0"), count=0
                )
            entry.total += expense.amount
            entry.count += 1

        return sorted(totals.values(), key=lambda c: c.total, reverse=True)

    async def department_breakdown(self, month: int, year: int) -> list[DepartmentSpending]:
        departments = await self.period_departments(month, year)

        async def _spending(department: Department) -> DepartmentSpending:
            spent = await self.department_spending(department.id, month, year)
            return DepartmentSpending(
                department_id=department.id,
                department_name=department.name,
                allocated_budget=department.allocated_budget,
                total_spent=spent,
                remaining=department.allocated_budget - spent,
                percentage_used=percentage_used(spent, department.allocated_budget),
                status=department.status,
            )

        return await gather_bounded(
            (_spending(d) for d in departments), self._max_concurrency
        )

    async def monthly_trend(
        self,
        department_id: UUID | None,
        year: int,
        number_of_months: int = 6,
    ) -> list[TrendPoint]:
        """Spending for the last ``number_of_months`` months, oldest first.

        The walk starts at the clock's current month; ``year`` is the year
        that month is taken to be in.
        """
        if number_of_months < 1:
            raise ValidationError("number_of_months must be at least 1")

        current_month = self._clock().month
        periods = [
            step_back(current_month, year, offset)
            for offset in range(number_of_months - 1, -1, -1)
        ]

        async def _spent(month: int, period_year: int) -> Decimal:
            if department_id is not None:
                return await self.department_spending(department_id, month, period_year)
            return await self.total_spent(month, period_year)

        spent = await gather_bounded(
            (_spent(m, y) for m, y in periods), self._max_concurrency
        )

        return [
            TrendPoint(month=m, year=y, month_name=month_name(m), spent=amount)
            for (m, y), amount in zip(periods, spent)
        ]

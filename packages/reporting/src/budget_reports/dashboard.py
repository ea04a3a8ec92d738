"""Read-only dashboard views composed from aggregates and stored reports."""

import asyncio
from typing import Any
from uuid import UUID

import structlog

from budget_reports.analysis import HIGH_RISK_THRESHOLD, MEDIUM_RISK_THRESHOLD
from budget_reports.analytics import AnalyticsService, percentage_used
from budget_reports.config import get_settings
from budget_reports.errors import NotFoundError
from budget_reports.models import Period, ReportKey
from budget_reports.store.base import DataStore, ReportFilter

logger = structlog.get_logger(__name__)

RECENT_REPORTS_LIMIT = 5


def warning_level(percentage: float) -> str:
    if percentage > 100:
        return "danger"
    if percentage > HIGH_RISK_THRESHOLD:
        return "warning"
    return "normal"


class DashboardService:
    """Builds the admin and department dashboards."""

    def __init__(
        self,
        store: DataStore,
        analytics: AnalyticsService,
        trend_months: int | None = None,
    ):
        self._store = store
        self._analytics = analytics
        self._trend_months = trend_months or get_settings().trend_months
        self._logger = logger.bind(component="dashboard")

    async def get_aggregated_dashboard(self, month: int, year: int) -> dict[str, Any]:
        """Company-wide view for a period.

        ``latest_report`` is None while no Global report has been stored.
        """
        Period.of(month, year)
        total_budget, total_spent, breakdown, trend, latest, period_reports = await asyncio.gather(
            self._analytics.total_budget(month, year),
            self._analytics.total_spent(month, year),
            self._analytics.department_breakdown(month, year),
            self._analytics.monthly_trend(None, year, self._trend_months),
            self._store.find_report(ReportKey.global_(month, year)),
            self._store.find_reports(ReportFilter(month=month, year=year)),
        )

        recent = sorted(period_reports, key=lambda r: r.updated_at, reverse=True)
        high = sum(1 for d in breakdown if d.percentage_used > HIGH_RISK_THRESHOLD)
        medium = sum(
            1
            for d in breakdown
            if MEDIUM_RISK_THRESHOLD < d.percentage_used <= HIGH_RISK_THRESHOLD
        )

        return {
            "summary": {
                "total_budget": float(total_budget),
                "total_spent": float(total_spent),
                "remaining_budget": float(total_budget - total_spent),
                "percentage_used": round(percentage_used(total_spent, total_budget), 2),
            },
            "risk_summary": {
                "high": high,
                "medium": medium,
                "low": len(breakdown) - high - medium,
            },
            "department_breakdown": [d.to_dict() for d in breakdown],
            "monthly_trend": [t.to_dict() for t in trend],
            "latest_report": latest.to_dict() if latest else None,
            "recent_reports": [r.to_dict() for r in recent[:RECENT_REPORTS_LIMIT]],
            "period": {"month": month, "year": year},
        }

    async def get_department_dashboard(
        self, department_id: UUID, month: int, year: int
    ) -> dict[str, Any]:
        """Single-department view for a period.

        Raises:
            NotFoundError: The department does not exist.
        """
        Period.of(month, year)
        department = await self._store.get_department(department_id)
        if department is None:
            raise NotFoundError(
                "Department not found", details={"department_id": str(department_id)}
            )

        spent, trend, latest = await asyncio.gather(
            self._analytics.department_spending(department_id, month, year),
            self._analytics.monthly_trend(department_id, year, self._trend_months),
            self._store.find_report(ReportKey.department(department_id, month, year)),
        )
        used = percentage_used(spent, department.allocated_budget)

        return {
            "department": {
                "id": str(department.id),
                "name": department.name,
                "allocated_budget": float(department.allocated_budget),
                "total_spent": float(spent),
                "remaining_budget": float(department.allocated_budget - spent),
                "percentage_used": round(used, 2),
                "warning_level": warning_level(used),
            },
            "monthly_trend": [t.to_dict() for t in trend],
            "latest_report": latest.to_dict() if latest else None,
            "period": {"month": month, "year": year},
        }

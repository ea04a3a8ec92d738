"""Report generation: aggregation, analysis and persistence in one pipeline."""

import asyncio
import json
from decimal import Decimal
from uuid import UUID

import structlog

from budget_reports.analysis import (
    AnalysisService,
    DepartmentAnalysisInput,
    GlobalAnalysisInput,
    GlobalAnalysisResult,
)
from budget_reports.analytics import (
    AnalyticsService,
    DepartmentSpending,
    gather_bounded,
    percentage_used,
)
from budget_reports.config import get_settings
from budget_reports.errors import ConflictError, NotFoundError, UpstreamError
from budget_reports.models import (
    DataSnapshot,
    Department,
    DepartmentSnapshot,
    DepartmentStatus,
    Period,
    Report,
    ReportKey,
    ReportType,
)
from budget_reports.store.base import DataStore, DepartmentFilter, ReportFilter
from budget_reports.writer import ReportWriter, WritePolicy

logger = structlog.get_logger(__name__)


def month_over_month_change(spent: Decimal, previous: Decimal) -> float:
    """Percent change against the previous month, 0 when there was no prior spend."""
    if previous <= 0:
        return 0.0
    return float((spent - previous) / previous * 100)


def build_data_snapshot(
    allocated: Decimal, spent: Decimal, previous: Decimal
) -> DataSnapshot:
    """Numeric snapshot with percentages rounded for storage."""
    return DataSnapshot(
        allocated_budget=allocated,
        total_spent=spent,
        remaining_budget=allocated - spent,
        percentage_used=round(percentage_used(spent, allocated), 2),
        previous_month_spent=previous,
        month_over_month_change=round(month_over_month_change(spent, previous), 2),
    )


class ReportService:
    """Generates, stores and looks up financial reports."""

    def __init__(
        self,
        store: DataStore,
        analytics: AnalyticsService,
        analysis: AnalysisService,
        writer: ReportWriter | None = None,
        trend_months: int | None = None,
    ):
        self._store = store
        self._analytics = analytics
        self._analysis = analysis
        self._writer = writer or ReportWriter(store)
        self._trend_months = trend_months or get_settings().trend_months
        self._logger = logger.bind(component="report_service")

    # === Scheduled global reports ===

    async def generate_global_report(
        self, month: int, year: int, generated_by: UUID | None = None
    ) -> Report:
        """Recompute and replace the Global report for a period.

        Provider failures are absorbed by the analysis fallback, so a report
        is always written once aggregation succeeds.
        """
        period = Period.of(month, year)
        prev_month, prev_year = period.previous()
        log = self._logger.bind(period=period.label)
        log.info("global_report_starting")

        departments = await self._store.find_departments(
            DepartmentFilter(status=DepartmentStatus.ACTIVE)
        )

        async def _figures(department: Department) -> tuple[DepartmentSpending, Decimal]:
            spent = await self._analytics.department_spending(department.id, month, year)
            previous = await self._analytics.department_spending(
                department.id, prev_month, prev_year
            )
            spending = DepartmentSpending(
                department_id=department.id,
                department_name=department.name,
                allocated_budget=department.allocated_budget,
                total_spent=spent,
                remaining=department.allocated_budget - spent,
                percentage_used=percentage_used(spent, department.allocated_budget),
                status=department.status,
            )
            return spending, previous

        figures = await gather_bounded(
            (_figures(d) for d in departments), self._analytics.max_concurrency
        )

        total_budget = sum((s.allocated_budget for s, _ in figures), Decimal("0"))
        total_spent = sum((s.total_spent for s, _ in figures), Decimal("0"))
        previous_spent = sum((p for _, p in figures), Decimal("0"))
        spending = [s for s, _ in figures]

        analysis = await self._analysis.analyze_global(
            GlobalAnalysisInput(
                month=month,
                year=year,
                total_budget=total_budget,
                total_spent=total_spent,
                percentage_used=percentage_used(total_spent, total_budget),
                departments=spending,
            )
        )

        report = Report(
            type=ReportType.GLOBAL,
            month=month,
            year=year,
            summary=analysis.summary,
            risk_level=analysis.risk_level,
            recommendations=analysis.recommendations,
            data_snapshot=build_data_snapshot(total_budget, total_spent, previous_spent),
            departments_snapshot=[
                DepartmentSnapshot(
                    department_name=s.department_name,
                    allocated_budget=s.allocated_budget,
                    total_spent=s.total_spent,
                    percentage_used=round(s.percentage_used, 2),
                    status=s.status,
                )
                for s in spending
            ],
            insights=analysis.insights,
            risks=analysis.risks,
            predicted_next_month_spend=analysis.predicted_next_month_spend,
            optimization_tips=analysis.optimization_tips,
            report_text=json.dumps(analysis.to_dict()),
            analysis_fallback=analysis.fallback,
            generated_by=generated_by,
        )

        stored = await self._writer.write(report, WritePolicy.REPLACE)
        log.info(
            "global_report_completed",
            departments=len(spending),
            total_spent=float(total_spent),
            risk_level=stored.risk_level.value,
            fallback=analysis.fallback,
        )
        return stored

    # === On-demand reports ===

    async def generate_department_report(
        self,
        department_id: UUID,
        month: int,
        year: int,
        generated_by: UUID | None = None,
    ) -> Report:
        """Generate a Department report, refusing to overwrite an existing one.

        Raises:
            NotFoundError: The department does not exist.
            ConflictError: A report already exists for the period.
            UpstreamError: The analysis provider call failed; nothing is stored.
        """
        period = Period.of(month, year)
        department = await self._store.get_department(department_id)
        if department is None:
            raise NotFoundError(
                "Department not found", details={"department_id": str(department_id)}
            )

        key = ReportKey.department(department_id, month, year)
        if await self._store.find_report(key) is not None:
            raise ConflictError(
                "Report already exists for this department and period. "
                "Delete the existing report first.",
                details={"department_id": str(department_id), "period": period.label},
            )

        prev_month, prev_year = period.previous()
        spent, previous, breakdown = await asyncio.gather(
            self._analytics.department_spending(department_id, month, year),
            self._analytics.department_spending(department_id, prev_month, prev_year),
            self._analytics.expense_breakdown(department_id, month, year),
        )
        snapshot = build_data_snapshot(department.allocated_budget, spent, previous)

        analysis = await self._analysis.analyze_department(
            DepartmentAnalysisInput(
                department_name=department.name,
                month=month,
                year=year,
                allocated_budget=department.allocated_budget,
                total_spent=spent,
                remaining_budget=snapshot.remaining_budget,
                percentage_used=percentage_used(spent, department.allocated_budget),
                previous_month_spent=previous,
                month_over_month_change=month_over_month_change(spent, previous),
                expense_breakdown=breakdown,
            )
        )
        if not analysis.success:
            self._logger.error(
                "department_report_failed",
                department_id=str(department_id),
                period=period.label,
                error=analysis.error,
            )
            raise UpstreamError("Failed to generate AI analysis", details=analysis.error)

        report = Report(
            type=ReportType.DEPARTMENT,
            department_id=department_id,
            month=month,
            year=year,
            summary=analysis.summary,
            risk_level=analysis.risk_level,
            recommendations=analysis.recommendations,
            data_snapshot=snapshot,
            report_text=json.dumps(analysis.to_dict()),
            analysis_fallback=analysis.fallback,
            generated_by=generated_by,
        )
        return await self._writer.write(report, WritePolicy.REJECT_EXISTING)

    async def analyze_global(self, month: int, year: int) -> GlobalAnalysisResult:
        """Run a company-wide analysis with trend data without storing it."""
        Period.of(month, year)
        total_budget, total_spent, breakdown, trend = await asyncio.gather(
            self._analytics.total_budget(month, year),
            self._analytics.total_spent(month, year),
            self._analytics.department_breakdown(month, year),
            self._analytics.monthly_trend(None, year, self._trend_months),
        )

        result = await self._analysis.analyze_global(
            GlobalAnalysisInput(
                month=month,
                year=year,
                total_budget=total_budget,
                total_spent=total_spent,
                percentage_used=percentage_used(total_spent, total_budget),
                departments=breakdown,
                monthly_trend=trend,
            )
        )
        if not result.success:
            raise UpstreamError("Failed to generate AI analysis", details=result.error)
        return result

    # === Lookup ===

    async def list_reports(
        self,
        department_id: UUID | None = None,
        month: int | None = None,
        year: int | None = None,
        type: ReportType | None = None,
    ) -> list[Report]:
        """List reports, newest period first.

        A department filter implies Department reports; otherwise Global
        reports are listed unless another type is requested.
        """
        if department_id is not None:
            report_filter = ReportFilter(
                type=ReportType.DEPARTMENT, department_id=department_id, month=month, year=year
            )
        else:
            report_filter = ReportFilter(type=type or ReportType.GLOBAL, month=month, year=year)

        reports = await self._store.find_reports(report_filter)
        return sorted(reports, key=lambda r: (r.year, r.month, r.created_at), reverse=True)

    async def get_report(self, report_id: UUID) -> Report:
        report = await self._store.get_report(report_id)
        if report is None:
            raise NotFoundError("Report not found", details={"report_id": str(report_id)})
        return report

    async def delete_report(self, report_id: UUID) -> None:
        if not await self._store.delete_report(report_id):
            raise NotFoundError("Report not found", details={"report_id": str(report_id)})
        self._logger.info("report_deleted", report_id=str(report_id))

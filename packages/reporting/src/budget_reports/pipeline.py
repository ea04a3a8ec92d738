"""Wiring of the report pipeline components."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from budget_reports.analysis import AnalysisService
from budget_reports.analytics import AnalyticsService
from budget_reports.clients import TextCompletionClient, create_completion_client
from budget_reports.dashboard import DashboardService
from budget_reports.reports import ReportService
from budget_reports.scheduler import ReportScheduler
from budget_reports.store.base import DataStore
from budget_reports.writer import ReportWriter


@dataclass
class ReportPipeline:
    """All services sharing one store and one completion client."""

    analytics: AnalyticsService
    analysis: AnalysisService
    reports: ReportService
    dashboards: DashboardService
    scheduler: ReportScheduler

    async def close(self) -> None:
        await self.scheduler.shutdown()


def create_pipeline(
    store: DataStore,
    client: TextCompletionClient | None = None,
    clock: Callable[[], datetime] | None = None,
    debounce_seconds: float | None = None,
) -> ReportPipeline:
    """Build a pipeline; the client defaults to the configured provider."""
    analytics = AnalyticsService(store, clock=clock)
    analysis = AnalysisService(client or create_completion_client())
    reports = ReportService(store, analytics, analysis, writer=ReportWriter(store))
    return ReportPipeline(
        analytics=analytics,
        analysis=analysis,
        reports=reports,
        dashboards=DashboardService(store, analytics),
        scheduler=ReportScheduler.for_service(reports, delay=debounce_seconds),
    )

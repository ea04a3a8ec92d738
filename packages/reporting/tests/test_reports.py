"""Tests for report generation and lookup."""

import json
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from budget_reports.analysis import AnalysisService
from budget_reports.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from budget_reports.models import Department, ReportKey, ReportType, RiskLevel
from budget_reports.reports import ReportService, build_data_snapshot, month_over_month_change
from conftest import USER_ID, VALID_DEPARTMENT_RESPONSE, VALID_GLOBAL_RESPONSE, FakeCompletionClient


class TestSnapshotHelpers:
    """Tests for numeric snapshot helpers."""

    def test_month_over_month_change(self):
        assert month_over_month_change(Decimal("950"), Decimal("500")) == 90.0
        assert month_over_month_change(Decimal("100"), Decimal("0")) == 0.0

    def test_snapshot_rounds_percentages(self):
        snapshot = build_data_snapshot(Decimal("3"), Decimal("1"), Decimal("3"))

        assert snapshot.percentage_used == 33.33
        assert snapshot.month_over_month_change == -66.67
        assert snapshot.remaining_budget == Decimal("2")


class TestGlobalReport:
    """Tests for the scheduled Global report run."""

    @pytest.mark.asyncio
    async def test_aggregates_active_departments_only(self, report_service, march_expenses):
        report = await report_service.generate_global_report(3, 2024)

        assert report.type == ReportType.GLOBAL
        assert report.department_id is None
        assert report.data_snapshot.allocated_budget == Decimal("3000")
        assert report.data_snapshot.total_spent == Decimal("1450")
        assert report.data_snapshot.remaining_budget == Decimal("1550")
        assert report.data_snapshot.percentage_used == 48.33
        assert report.data_snapshot.previous_month_spent == Decimal("500")
        assert sorted(d.department_name for d in report.departments_snapshot) == [
            "Engineering",
            "Marketing",
        ]

    @pytest.mark.asyncio
    async def test_ninety_five_percent_is_high_risk(
        self, store, report_service, engineering, add_expense
    ):
        add_expense(engineering, "600", datetime(2024, 3, 3))
        add_expense(engineering, "350", datetime(2024, 3, 20))

        report = await report_service.generate_global_report(3, 2024)

        assert report.data_snapshot.percentage_used == 95.0
        assert report.data_snapshot.remaining_budget == Decimal("50")
        assert report.risk_level == RiskLevel.HIGH
        assert report.analysis_fallback is True
        assert report.departments_snapshot[0].percentage_used == 95.0

    @pytest.mark.asyncio
    async def test_uses_provider_analysis(self, store, analytics, march_expenses):
        service = ReportService(
            store, analytics, AnalysisService(FakeCompletionClient(response=VALID_GLOBAL_RESPONSE))
        )

        report = await service.generate_global_report(3, 2024)

        assert report.summary == "Company spending is under control."
        assert report.risk_level == RiskLevel.MEDIUM
        assert report.insights == ["Engineering drives most of the spend"]
        assert report.predicted_next_month_spend == 1234.5
        assert report.analysis_fallback is False
        assert json.loads(report.report_text)["summary"] == report.summary

    @pytest.mark.asyncio
    async def test_provider_failure_still_stores_fallback(self, store, analytics, march_expenses):
        client = FakeCompletionClient(error=UpstreamError("invalid credentials"))
        service = ReportService(store, analytics, AnalysisService(client))

        await service.generate_global_report(3, 2024)

        stored = await store.find_report(ReportKey.global_(3, 2024))
        assert stored is not None
        assert stored.analysis_fallback is True
        assert stored.generated_by is None

    @pytest.mark.asyncio
    async def test_malformed_risks_still_store_report(self, store, analytics, march_expenses):
        client = FakeCompletionClient(response='{"summary": "ok", "risks": true}')
        service = ReportService(store, analytics, AnalysisService(client))

        await service.generate_global_report(3, 2024)

        stored = await store.find_report(ReportKey.global_(3, 2024))
        assert stored.summary == "ok"
        assert stored.risks == []

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store, report_service, march_expenses):
        first = await report_service.generate_global_report(3, 2024)
        second = await report_service.generate_global_report(3, 2024)

        assert second.id == first.id
        assert second.data_snapshot == first.data_snapshot
        assert second.departments_snapshot == first.departments_snapshot
        assert second.risk_level == first.risk_level
        assert len(await report_service.list_reports(month=3, year=2024)) == 1

    @pytest.mark.asyncio
    async def test_rerun_replaces_with_new_figures(
        self, store, report_service, engineering, add_expense
    ):
        add_expense(engineering, "100", datetime(2024, 3, 3))
        await report_service.generate_global_report(3, 2024)

        add_expense(engineering, "850", datetime(2024, 3, 4))
        report = await report_service.generate_global_report(3, 2024)

        stored = await store.find_report(ReportKey.global_(3, 2024))
        assert stored.data_snapshot.total_spent == Decimal("950")
        assert stored.id == report.id

    @pytest.mark.asyncio
    async def test_failed_run_keeps_previous_report(self, store, report_service, march_expenses):
        previous = await report_service.generate_global_report(3, 2024)

        with patch.object(
            store, "find_departments", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            with pytest.raises(RuntimeError):
                await report_service.generate_global_report(3, 2024)

        stored = await store.find_report(ReportKey.global_(3, 2024))
        assert stored.id == previous.id
        assert stored.data_snapshot == previous.data_snapshot

    @pytest.mark.asyncio
    async def test_one_department_failure_fails_whole_run(
        self, store, analytics, report_service, engineering, marketing
    ):
        real = analytics.department_spending

        async def flaky(department_id, month=None, year=None):
            if department_id == marketing.id:
                raise RuntimeError("read timeout")
            return await real(department_id, month, year)

        with patch.object(analytics, "department_spending", side_effect=flaky):
            with pytest.raises(RuntimeError, match="read timeout"):
                await report_service.generate_global_report(3, 2024)

        assert await store.find_report(ReportKey.global_(3, 2024)) is None

    @pytest.mark.asyncio
    async def test_rejects_invalid_period(self, report_service):
        with pytest.raises(ValidationError):
            await report_service.generate_global_report(0, 2024)


class TestDepartmentReport:
    """Tests for on-demand Department reports."""

    @pytest.mark.asyncio
    async def test_generates_report(self, store, analytics, engineering, march_expenses):
        client = FakeCompletionClient(response=VALID_DEPARTMENT_RESPONSE)
        service = ReportService(store, analytics, AnalysisService(client))

        report = await service.generate_department_report(
            engineering.id, 3, 2024, generated_by=USER_ID
        )

        assert report.type == ReportType.DEPARTMENT
        assert report.department_id == engineering.id
        assert report.generated_by == USER_ID
        assert report.risk_level == RiskLevel.HIGH
        assert report.data_snapshot.percentage_used == 95.0
        assert report.data_snapshot.previous_month_spent == Decimal("500")
        assert report.data_snapshot.month_over_month_change == 90.0
        assert "- Salaries: $600.00" in client.prompts[0]

    @pytest.mark.asyncio
    async def test_unparseable_output_still_stores_fallback(
        self, report_service, engineering, march_expenses
    ):
        report = await report_service.generate_department_report(engineering.id, 3, 2024)

        assert report.analysis_fallback is True
        assert report.risk_level == RiskLevel.HIGH

    @pytest.mark.asyncio
    async def test_unknown_department(self, report_service):
        with pytest.raises(NotFoundError):
            await report_service.generate_department_report(uuid4(), 3, 2024)

    @pytest.mark.asyncio
    async def test_existing_report_conflicts_and_is_untouched(
        self, store, report_service, fake_client, engineering, march_expenses, add_expense
    ):
        existing = await report_service.generate_department_report(engineering.id, 3, 2024)
        add_expense(engineering, "400", datetime(2024, 3, 25))
        prompts_before = len(fake_client.prompts)

        with pytest.raises(ConflictError):
            await report_service.generate_department_report(engineering.id, 3, 2024)

        stored = await store.find_report(ReportKey.department(engineering.id, 3, 2024))
        assert stored.id == existing.id
        assert stored.data_snapshot == existing.data_snapshot
        assert len(fake_client.prompts) == prompts_before

    @pytest.mark.asyncio
    async def test_provider_failure_stores_nothing(
        self, store, analytics, engineering, march_expenses
    ):
        client = FakeCompletionClient(error=UpstreamError("rate limited"))
        service = ReportService(store, analytics, AnalysisService(client))

        with pytest.raises(UpstreamError):
            await service.generate_department_report(engineering.id, 3, 2024)

        assert await store.find_report(ReportKey.department(engineering.id, 3, 2024)) is None

    @pytest.mark.asyncio
    async def test_zero_budget_department(self, store, report_service, add_expense):
        free = store.add_department(Department(name="Volunteers", allocated_budget=Decimal("0")))
        add_expense(free, "10", datetime(2024, 3, 2))

        report = await report_service.generate_department_report(free.id, 3, 2024)

        assert report.data_snapshot.percentage_used == 0.0

    @pytest.mark.asyncio
    async def test_delete_then_regenerate(self, report_service, engineering, march_expenses):
        first = await report_service.generate_department_report(engineering.id, 3, 2024)

        await report_service.delete_report(first.id)
        second = await report_service.generate_department_report(engineering.id, 3, 2024)

        assert second.id != first.id


class TestGlobalAnalysis:
    """Tests for the unstored company-wide analysis."""

    @pytest.mark.asyncio
    async def test_includes_trend_in_prompt(self, store, analytics, march_expenses):
        client = FakeCompletionClient(response=VALID_GLOBAL_RESPONSE)
        service = ReportService(store, analytics, AnalysisService(client), trend_months=3)

        result = await service.analyze_global(3, 2024)

        assert result.summary == "Company spending is under control."
        assert "- Jan 2024: $0.00" in client.prompts[0]
        assert "- Mar 2024: $1,550.00" in client.prompts[0]
        assert await store.find_report(ReportKey.global_(3, 2024)) is None

    @pytest.mark.asyncio
    async def test_provider_failure_raises(self, store, analytics, march_expenses):
        client = FakeCompletionClient(error=UpstreamError("offline"))
        service = ReportService(store, analytics, AnalysisService(client))

        with pytest.raises(UpstreamError):
            await service.analyze_global(3, 2024)


class TestReportLookup:
    """Tests for listing, fetching and deleting reports."""

    @pytest.mark.asyncio
    async def test_list_defaults_to_global_newest_first(
        self, report_service, engineering, march_expenses
    ):
        await report_service.generate_global_report(2, 2024)
        await report_service.generate_global_report(3, 2024)
        await report_service.generate_department_report(engineering.id, 3, 2024)

        reports = await report_service.list_reports()

        assert [(r.month, r.year) for r in reports] == [(3, 2024), (2, 2024)]
        assert all(r.type == ReportType.GLOBAL for r in reports)

    @pytest.mark.asyncio
    async def test_list_by_department(self, report_service, engineering, march_expenses):
        await report_service.generate_global_report(3, 2024)
        report = await report_service.generate_department_report(engineering.id, 3, 2024)

        reports = await report_service.list_reports(department_id=engineering.id)

        assert [r.id for r in reports] == [report.id]

    @pytest.mark.asyncio
    async def test_get_and_delete(self, report_service, march_expenses):
        report = await report_service.generate_global_report(3, 2024)

        assert (await report_service.get_report(report.id)).id == report.id
        await report_service.delete_report(report.id)

        with pytest.raises(NotFoundError):
            await report_service.get_report(report.id)
        with pytest.raises(NotFoundError):
            await report_service.delete_report(report.id)

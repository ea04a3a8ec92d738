"""Tests for the in-memory store and the report writer."""

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from budget_reports.errors import ConflictError, NotFoundError, StoreError, ValidationError
from budget_reports.models import (
    DataSnapshot,
    DepartmentStatus,
    Expense,
    ExpenseCategory,
    Report,
    ReportKey,
    ReportType,
    RiskLevel,
)
from budget_reports.store import DepartmentFilter, ExpenseFilter, ReportFilter
from budget_reports.writer import ReportWriter, WritePolicy


def global_report(summary="ok", spent="100", month=3, year=2024):
    return Report(
        type=ReportType.GLOBAL,
        month=month,
        year=year,
        summary=summary,
        risk_level=RiskLevel.LOW,
        data_snapshot=DataSnapshot(
            allocated_budget=Decimal("1000"),
            total_spent=Decimal(spent),
            remaining_budget=Decimal("1000") - Decimal(spent),
            percentage_used=float(Decimal(spent) / 10),
        ),
    )


class TestInMemoryDataStore:
    """Tests for InMemoryDataStore queries."""

    @pytest.mark.asyncio
    async def test_department_filters(self, store, engineering, legacy):
        active = await store.find_departments(DepartmentFilter(status=DepartmentStatus.ACTIVE))

        assert [d.name for d in active] == ["Engineering"]
        assert await store.find_departments(DepartmentFilter(month=3, year=2024)) == []

    @pytest.mark.asyncio
    async def test_expense_date_range_is_inclusive(self, store, engineering, add_expense):
        add_expense(engineering, "5", datetime(2024, 3, 1))
        add_expense(engineering, "7", datetime(2024, 3, 31))

        expense_filter = ExpenseFilter(
            department_id=engineering.id,
            start=datetime(2024, 3, 1),
            end=datetime(2024, 3, 31),
        )

        assert await store.count_expenses(expense_filter) == 2

    def test_expense_requires_existing_department(self, store):
        with pytest.raises(NotFoundError):
            store.add_expense(
                Expense(
                    department_id=uuid4(),
                    amount=Decimal("1"),
                    category=ExpenseCategory.OTHER,
                    date=datetime(2024, 3, 1),
                    created_by=uuid4(),
                )
            )

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self, store, engineering):
        department = await store.get_department(engineering.id)
        department.name = "Changed"

        assert (await store.get_department(engineering.id)).name == "Engineering"

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_document(self, store):
        first = await store.upsert_report(
            ReportKey.global_(3, 2024), global_report(summary="first", spent="100")
        )
        replacement = global_report(summary="second", spent="200")
        replacement.recommendations = ["only this"]

        second = await store.upsert_report(ReportKey.global_(3, 2024), replacement)

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.summary == "second"
        assert second.data_snapshot.total_spent == Decimal("200")
        assert second.recommendations == ["only this"]
        assert len(await store.find_reports(ReportFilter())) == 1

    @pytest.mark.asyncio
    async def test_upsert_key_must_match_report(self, store):
        with pytest.raises(ValidationError):
            await store.upsert_report(ReportKey.global_(4, 2024), global_report(month=3))

    @pytest.mark.asyncio
    async def test_insert_conflict(self, store):
        await store.insert_report(global_report())

        with pytest.raises(ConflictError):
            await store.insert_report(global_report(summary="duplicate"))


class TestReportWriter:
    """Tests for the shared write routine and its policies."""

    @pytest.mark.asyncio
    async def test_replace_policy_upserts(self, store):
        writer = ReportWriter(store)

        first = await writer.write(global_report(summary="a"), WritePolicy.REPLACE)
        second = await writer.write(global_report(summary="b"), WritePolicy.REPLACE)

        assert second.id == first.id
        assert (await store.find_report(ReportKey.global_(3, 2024))).summary == "b"

    @pytest.mark.asyncio
    async def test_reject_policy_leaves_existing(self, store):
        writer = ReportWriter(store)
        await writer.write(global_report(summary="original"), WritePolicy.REJECT_EXISTING)

        with pytest.raises(ConflictError):
            await writer.write(global_report(summary="new"), WritePolicy.REJECT_EXISTING)

        assert (await store.find_report(ReportKey.global_(3, 2024))).summary == "original"

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_store_error(self, store):
        writer = ReportWriter(store)

        with patch.object(store, "upsert_report", AsyncMock(side_effect=OSError("disk full"))):
            with pytest.raises(StoreError):
                await writer.write(global_report(), WritePolicy.REPLACE)

        assert await store.find_report(ReportKey.global_(3, 2024)) is None

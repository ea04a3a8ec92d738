"""Keyed report persistence with explicit write policies."""

from enum import Enum

import structlog

from budget_reports.errors import ConflictError, ReportingError, StoreError
from budget_reports.models import Report
from budget_reports.store.base import DataStore

logger = structlog.get_logger(__name__)


class WritePolicy(str, Enum):
    """How a write treats an existing report under the same key."""

    REPLACE = "replace"  # scheduled recomputation
    REJECT_EXISTING = "reject_existing"  # on-demand generation


class ReportWriter:
    """Writes finished reports under their natural key."""

    def __init__(self, store: DataStore):
        self._store = store
        self._logger = logger.bind(component="report_writer")

    async def write(self, report: Report, policy: WritePolicy) -> Report:
        """Persist ``report`` according to ``policy``.

        REPLACE atomically inserts or fully replaces the stored document.
        REJECT_EXISTING raises ``ConflictError`` and leaves the stored
        report untouched when the key is taken.
        """
        key = report.key
        try:
            if policy == WritePolicy.REPLACE:
                stored = await self._store.upsert_report(key, report)
            else:
                if await self._store.find_report(key) is not None:
                    raise ConflictError(
                        "Report already exists for this department and period. "
                        "Delete the existing report first.",
                        details={"month": key.month, "year": key.year},
                    )
                stored = await self._store.insert_report(report)
        except ReportingError:
            raise
        except Exception as e:
            self._logger.error("report_write_failed", policy=policy.value, error=str(e))
            raise StoreError("Failed to persist report", details=str(e)) from e

        self._logger.info(
            "report_written",
            report_id=str(stored.id),
            type=key.type.value,
            department_id=str(key.department_id) if key.department_id else None,
            period=f"{key.month}/{key.year}",
            policy=policy.value,
        )
        return stored

"""Data store interface and the in-memory backend."""

from budget_reports.store.base import DataStore, DepartmentFilter, ExpenseFilter, ReportFilter
from budget_reports.store.memory import InMemoryDataStore

__all__ = [
    "DataStore",
    "DepartmentFilter",
    "ExpenseFilter",
    "ReportFilter",
    "InMemoryDataStore",
]

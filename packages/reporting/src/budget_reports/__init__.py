"""Budget Reports - report scheduling and financial aggregation pipeline."""

__version__ = "0.1.0"

from budget_reports.analysis import AnalysisResult, AnalysisService, GlobalAnalysisResult
from budget_reports.analytics import AnalyticsService
from budget_reports.clients import ClaudeClient, GeminiClient, OpenAIClient
from budget_reports.config import configure_logging, get_settings
from budget_reports.dashboard import DashboardService
from budget_reports.errors import (
    ConflictError,
    NotFoundError,
    ReportingError,
    StoreError,
    UpstreamError,
    ValidationError,
)
from budget_reports.models import (
    Department,
    DepartmentStatus,
    Expense,
    ExpenseCategory,
    Period,
    Report,
    ReportKey,
    ReportType,
    RiskLevel,
)
from budget_reports.pipeline import ReportPipeline, create_pipeline
from budget_reports.reports import ReportService
from budget_reports.scheduler import KeyState, ReportScheduler
from budget_reports.store import DataStore, InMemoryDataStore
from budget_reports.writer import ReportWriter, WritePolicy

__all__ = [
    # Version
    "__version__",
    # Domain
    "Department",
    "DepartmentStatus",
    "Expense",
    "ExpenseCategory",
    "Period",
    "Report",
    "ReportKey",
    "ReportType",
    "RiskLevel",
    # Errors
    "ReportingError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "UpstreamError",
    "StoreError",
    # Pipeline
    "AnalyticsService",
    "AnalysisService",
    "AnalysisResult",
    "GlobalAnalysisResult",
    "ReportService",
    "ReportWriter",
    "WritePolicy",
    "ReportScheduler",
    "KeyState",
    "DashboardService",
    "ReportPipeline",
    "create_pipeline",
    # Storage
    "DataStore",
    "InMemoryDataStore",
    # LLM Clients
    "GeminiClient",
    "ClaudeClient",
    "OpenAIClient",
    # Config
    "get_settings",
    "configure_logging",
]

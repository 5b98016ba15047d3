"""Report building over a time entry store."""

from .dashboard import DashboardService
from .service import DetailedReport, ReportService

__all__ = ["DashboardService", "DetailedReport", "ReportService"]

"""Event aggregation: report service, bridge and reporter."""

from scanrunner.reporting.event_bridge import EventBridge
from scanrunner.reporting.report_service import ReportService
from scanrunner.reporting.reporter import Reporter

__all__ = ["EventBridge", "ReportService", "Reporter"]

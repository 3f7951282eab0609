"""
Analysis package: statistics, layer/filter state, focus lookup, reports and the
session that ties them together.
"""

from .layer_state import LayerStateManager, VisibilityState
from .report import ReportSummary, assemble_report
from .session import BroadbandSession
from .statistics import AggregateStatistics, StatisticsEngine, compute_statistics

__all__ = [
    "AggregateStatistics",
    "BroadbandSession",
    "LayerStateManager",
    "ReportSummary",
    "StatisticsEngine",
    "VisibilityState",
    "assemble_report",
    "compute_statistics",
]

"""
Metrics component - Listing rollups, funnel and top search filters.
"""

from ._rollup import (
    MetricsConfig,
    WindowRollupReader,
    aggregate_top_filters,
    compute_funnel,
    in_trailing_window,
    sum_window,
    window_start,
)
from .component import authorize_owner, run, run_get_metrics, run_get_summary
from .models import (
    ConversionRates,
    EntityNotFoundError,
    EntityRollup,
    FilterUsageItem,
    Funnel,
    GetMetricsInput,
    GetSummaryInput,
    InvalidArgumentError,
    ListingMetricsOutput,
    ListingSnapshot,
    ListingSummaryOutput,
    MetricsAccessError,
    PermissionDeniedError,
    UnauthenticatedError,
    WindowTotals,
)
from .ports import CounterStorePort, ListingDirectoryPort, TimePort

__all__ = [
    # Entry points
    "authorize_owner",
    "run",
    "run_get_metrics",
    "run_get_summary",
    # Rollups
    "MetricsConfig",
    "WindowRollupReader",
    "aggregate_top_filters",
    "compute_funnel",
    "in_trailing_window",
    "sum_window",
    "window_start",
    # Models
    "ConversionRates",
    "EntityRollup",
    "FilterUsageItem",
    "Funnel",
    "GetMetricsInput",
    "GetSummaryInput",
    "ListingMetricsOutput",
    "ListingSnapshot",
    "ListingSummaryOutput",
    "WindowTotals",
    # Errors
    "EntityNotFoundError",
    "InvalidArgumentError",
    "MetricsAccessError",
    "PermissionDeniedError",
    "UnauthenticatedError",
    # Ports
    "CounterStorePort",
    "ListingDirectoryPort",
    "TimePort",
]

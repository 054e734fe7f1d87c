"""
Aggregation component - Event ingestion, dedup and day-bucket counters.
"""

from ._engine import (
    HANDLERS,
    AggregationEngine,
    apply_message,
    apply_save,
    apply_view,
    create_aggregation_engine,
)
from ._impl import (
    FIELD_ALIASES,
    AggregationConfig,
    assign_timestamp,
    backoff_delay,
    build_event_record,
    normalize_fields,
    parse_event_type,
    validate_required_fields,
)
from .component import on_event_created, run, run_ingest
from .models import (
    ApplyResult,
    EventRecord,
    IngestEventInput,
    IngestionError,
    IngestOutcome,
    IngestOutput,
)
from .ports import CounterStorePort, CounterTransactionPort, SleepPort, TimePort

__all__ = [
    # Entry points
    "on_event_created",
    "run",
    "run_ingest",
    # Engine
    "AggregationEngine",
    "HANDLERS",
    "apply_message",
    "apply_save",
    "apply_view",
    "create_aggregation_engine",
    # Pure functions
    "FIELD_ALIASES",
    "AggregationConfig",
    "assign_timestamp",
    "backoff_delay",
    "build_event_record",
    "normalize_fields",
    "parse_event_type",
    "validate_required_fields",
    # Models
    "ApplyResult",
    "EventRecord",
    "IngestEventInput",
    "IngestionError",
    "IngestOutcome",
    "IngestOutput",
    # Ports
    "CounterStorePort",
    "CounterTransactionPort",
    "SleepPort",
    "TimePort",
]

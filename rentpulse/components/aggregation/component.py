"""
Aggregation component - event ingestion into deduplicated day counters.

Validates, normalizes and aggregates listing events with at-least-once safety.

Invariants:
- I1: Invalid events are dropped (logged), never raised to the caller
- I2: A logical event increments its counters at most once
- I3: Marker creation and counter increment commit atomically
- I4: Search filter keys outside the whitelist never reach storage
- I5: Counters are monotonic; there is no "unsee"
"""

from __future__ import annotations

import logging
from typing import Any

from rentpulse.adapters.clock import SystemClock

from ._engine import AggregationEngine
from ._impl import DEFAULT_CONFIG, AggregationConfig, build_event_record
from .models import IngestEventInput, IngestOutcome, IngestOutput
from .ports import CounterStorePort, SleepPort, TimePort

logger = logging.getLogger(__name__)


# --- Component Entry Points ---


def run_ingest(
    inp: IngestEventInput,
    *,
    store: CounterStorePort,
    time_port: TimePort | None = None,
    config: AggregationConfig | None = None,
    sleep: SleepPort | None = None,
) -> IngestOutput:
    """
    Validate one raw event and apply it to the counter store.

    Args:
        inp: Input containing raw event data.
        store: Counter store port.
        time_port: Optional time port (defaults to the system clock).
        config: Optional aggregation configuration.
        sleep: Optional sleep used between conflict retries.

    Returns:
        IngestOutput describing what happened; dropped events carry errors.
    """
    config = config or DEFAULT_CONFIG
    clock = time_port or SystemClock()

    if not config.enabled:
        return IngestOutput(outcome=IngestOutcome.DROPPED_INVALID)

    event, errors = build_event_record(inp.data, clock.now_utc(), config)
    if event is None:
        logger.warning(
            "Dropping invalid event %r: %s",
            inp.data.get("eventType") if isinstance(inp.data, dict) else None,
            "; ".join(e.message for e in errors),
        )
        return IngestOutput(outcome=IngestOutcome.DROPPED_INVALID, errors=errors)

    engine = AggregationEngine(store=store, config=config, sleep=sleep)
    try:
        result = engine.apply(event)
    except Exception:
        logger.exception(
            "Failed to aggregate %s for %s; dropped", event.event_type.value, event.entity_id
        )
        return IngestOutput(outcome=IngestOutcome.DROPPED_ERROR, event=event)

    return IngestOutput(
        outcome=result.outcome,
        event=event,
        attempts=result.attempts,
        markers_created=result.markers_created,
    )


def on_event_created(
    data: dict[str, Any],
    *,
    store: CounterStorePort,
    time_port: TimePort | None = None,
    config: AggregationConfig | None = None,
    sleep: SleepPort | None = None,
) -> None:
    """
    Ingress trigger, invoked once per newly stored event.

    Fire-and-forget: returns nothing and never raises.
    """
    try:
        run_ingest(
            IngestEventInput(data=data),
            store=store,
            time_port=time_port,
            config=config,
            sleep=sleep,
        )
    except Exception:
        logger.exception("Unexpected failure aggregating event; dropped")


def run(
    inp: IngestEventInput,
    *,
    store: CounterStorePort | None = None,
    time_port: TimePort | None = None,
    config: AggregationConfig | None = None,
    sleep: SleepPort | None = None,
) -> IngestOutput:
    """
    Main entry point for the aggregation component.

    Dispatches to the appropriate handler based on input type.
    """
    if isinstance(inp, IngestEventInput):
        if store is None:
            raise ValueError("CounterStorePort is required for ingest operations")
        return run_ingest(inp, store=store, time_port=time_port, config=config, sleep=sleep)
    raise ValueError(f"Unknown input type: {type(inp)}")

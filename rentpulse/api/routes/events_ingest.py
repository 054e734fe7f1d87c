"""
Event ingestion routes.

Each stored event is handed to the aggregation trigger. Ingestion is
fire-and-forget: invalid or duplicate events are dropped server-side and the
response never says which, so clients can safely redeliver.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from rentpulse.api.deps import get_aggregation_config, get_clock, get_counter_store
from rentpulse.api.schemas import EventAcceptedResponse
from rentpulse.components.aggregation import AggregationConfig, on_event_created
from rentpulse.core.ports.db import CounterStorePort
from rentpulse.core.ports.time import TimePort

router = APIRouter()


@router.post("/event", response_model=EventAcceptedResponse)
def ingest_event(
    event: dict[str, Any] = Body(...),
    store: CounterStorePort = Depends(get_counter_store),
    clock: TimePort = Depends(get_clock),
    config: AggregationConfig = Depends(get_aggregation_config),
) -> EventAcceptedResponse:
    """Ingest one raw event (camelCase keys)."""
    on_event_created(event, store=store, time_port=clock, config=config)
    return EventAcceptedResponse(received=1)


@router.post("/batch", response_model=EventAcceptedResponse)
def ingest_batch(
    events: list[dict[str, Any]] = Body(...),
    store: CounterStorePort = Depends(get_counter_store),
    clock: TimePort = Depends(get_clock),
    config: AggregationConfig = Depends(get_aggregation_config),
) -> EventAcceptedResponse:
    """Ingest several raw events; each is processed independently."""
    for event in events:
        on_event_created(event, store=store, time_port=clock, config=config)
    return EventAcceptedResponse(received=len(events))

"""
Metrics component - owner-only listing metrics and funnel summaries.

Checks run in a fixed order and stop at the first failure:
UNAUTHENTICATED -> INVALID_ARGUMENT -> NOT_FOUND -> PERMISSION_DENIED.
The counter store is never read before the caller is authorized.
"""

from __future__ import annotations

import logging
from typing import Any

from rentpulse.adapters.clock import SystemClock
from rentpulse.core.entities import ListingRecord

from ._rollup import DEFAULT_CONFIG, MetricsConfig, WindowRollupReader, compute_funnel
from .models import (
    EntityNotFoundError,
    GetMetricsInput,
    GetSummaryInput,
    InvalidArgumentError,
    ListingMetricsOutput,
    ListingSnapshot,
    ListingSummaryOutput,
    PermissionDeniedError,
    UnauthenticatedError,
)
from .ports import CounterStorePort, ListingDirectoryPort, TimePort

logger = logging.getLogger(__name__)


def authorize_owner(
    caller_id: str | None, entity_id: Any, listings: ListingDirectoryPort
) -> tuple[str, ListingRecord]:
    """
    Resolve the listing and check that the caller owns it.

    Returns the normalized entity id and the listing.
    """
    if not caller_id:
        raise UnauthenticatedError("Authentication required.")

    if not isinstance(entity_id, str) or not entity_id.strip():
        raise InvalidArgumentError("entityId is required.")
    entity_id = entity_id.strip()

    listing = listings.get_listing(entity_id)
    if listing is None:
        raise EntityNotFoundError("Listing not found.")

    if not listing.owner_id or listing.owner_id != caller_id:
        logger.info("Denied metrics for %s to caller %s", entity_id, caller_id)
        raise PermissionDeniedError("Not allowed to view metrics for this listing.")

    return entity_id, listing


def run_get_metrics(
    inp: GetMetricsInput,
    *,
    store: CounterStorePort,
    listings: ListingDirectoryPort,
    time_port: TimePort | None = None,
    config: MetricsConfig | None = None,
) -> ListingMetricsOutput:
    """
    7d/30d rollups plus the 30-day funnel for one listing.

    Raises:
        MetricsAccessError subclass when the request is rejected.
    """
    entity_id, listing = authorize_owner(inp.caller_id, inp.entity_id, listings)
    assert listing.owner_id is not None

    clock = time_port or SystemClock()
    rollup = WindowRollupReader(store, config).read(entity_id, clock.today_utc())

    return ListingMetricsOutput(
        entity_id=entity_id,
        owner_id=listing.owner_id,
        metrics_7d=rollup.metrics_7d,
        metrics_30d=rollup.metrics_30d,
        funnel_30d=compute_funnel(rollup.metrics_30d),
    )


def run_get_summary(
    inp: GetSummaryInput,
    *,
    store: CounterStorePort,
    listings: ListingDirectoryPort,
    time_port: TimePort | None = None,
    config: MetricsConfig | None = None,
) -> ListingSummaryOutput:
    """Metrics plus global top search filters and the listing's current fields."""
    config = config or DEFAULT_CONFIG
    entity_id, listing = authorize_owner(inp.caller_id, inp.entity_id, listings)
    assert listing.owner_id is not None

    today = (time_port or SystemClock()).today_utc()
    reader = WindowRollupReader(store, config)
    rollup = reader.read(entity_id, today)

    return ListingSummaryOutput(
        entity_id=entity_id,
        owner_id=listing.owner_id,
        window_days=config.long_window_days,
        metrics_7d=rollup.metrics_7d,
        metrics_30d=rollup.metrics_30d,
        funnel_30d=compute_funnel(rollup.metrics_30d),
        top_filters=reader.top_filters(today),
        listing_snapshot=ListingSnapshot(
            price=listing.price,
            deposit=listing.deposit,
            location=listing.location,
            title=listing.title,
        ),
    )


def run(
    inp: GetMetricsInput | GetSummaryInput,
    *,
    store: CounterStorePort,
    listings: ListingDirectoryPort,
    time_port: TimePort | None = None,
    config: MetricsConfig | None = None,
) -> ListingMetricsOutput | ListingSummaryOutput:
    """
    Main entry point for the metrics component.

    Dispatches to the appropriate handler based on input type.
    """
    if isinstance(inp, GetSummaryInput):
        return run_get_summary(
            inp, store=store, listings=listings, time_port=time_port, config=config
        )
    if isinstance(inp, GetMetricsInput):
        return run_get_metrics(
            inp, store=store, listings=listings, time_port=time_port, config=config
        )
    raise ValueError(f"Unknown input type: {type(inp)}")

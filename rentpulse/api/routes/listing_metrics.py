"""
Listing metrics routes (owner only).

Errors are returned as {"detail": {"code": ..., "message": ...}}.
An optional timeoutMs query parameter bounds the read; on expiry the request
fails with DEADLINE_EXCEEDED and nothing is written.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool

from rentpulse.api.deps import (
    get_clock,
    get_counter_store,
    get_listing_directory,
    get_metrics_config,
    get_optional_caller,
)
from rentpulse.api.schemas import ListingMetricsResponse, ListingSummaryResponse, MetricsRequest
from rentpulse.components.metrics import (
    EntityNotFoundError,
    GetMetricsInput,
    GetSummaryInput,
    InvalidArgumentError,
    MetricsAccessError,
    MetricsConfig,
    PermissionDeniedError,
    UnauthenticatedError,
    run_get_metrics,
    run_get_summary,
)
from rentpulse.core.ports.db import CounterStorePort, ListingDirectoryPort, StoreUnavailableError
from rentpulse.core.ports.time import TimePort

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

ERROR_STATUS: dict[type[MetricsAccessError], int] = {
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    EntityNotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
}


def _error(status_code: int, code: str, message: str) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message},
        headers=headers,
    )


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


async def _run_bounded(work: Callable[[], T], timeout_ms: int | None) -> T:
    """Run a blocking read in the threadpool, translating errors to HTTP."""
    try:
        if timeout_ms is None:
            return await run_in_threadpool(work)

        task = asyncio.ensure_future(run_in_threadpool(work))
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if not done:
            # Abandon the read; the worker thread finishes on its own
            task.add_done_callback(_discard_result)
            task.cancel()
            raise TimeoutError
        return task.result()
    except MetricsAccessError as e:
        raise _error(ERROR_STATUS.get(type(e), 500), e.code, e.message) from e
    except StoreUnavailableError as e:
        logger.error("Metrics read failed: %s", e)
        raise _error(
            status.HTTP_503_SERVICE_UNAVAILABLE, "UNAVAILABLE", "Metrics are unavailable."
        ) from e
    except TimeoutError as e:
        raise _error(
            status.HTTP_504_GATEWAY_TIMEOUT, "DEADLINE_EXCEEDED", "Metrics read timed out."
        ) from e


@router.post("/metrics", response_model=ListingMetricsResponse)
async def get_listing_metrics(
    body: MetricsRequest,
    timeout_ms: int | None = Query(None, alias="timeoutMs", gt=0),
    caller_id: str | None = Depends(get_optional_caller),
    store: CounterStorePort = Depends(get_counter_store),
    listings: ListingDirectoryPort = Depends(get_listing_directory),
    clock: TimePort = Depends(get_clock),
    config: MetricsConfig = Depends(get_metrics_config),
) -> ListingMetricsResponse:
    """7d/30d rollups and the 30-day funnel for a listing the caller owns."""
    inp = GetMetricsInput(caller_id=caller_id, entity_id=body.resolved_entity_id())
    out = await _run_bounded(
        lambda: run_get_metrics(
            inp, store=store, listings=listings, time_port=clock, config=config
        ),
        timeout_ms,
    )
    return ListingMetricsResponse.from_output(out)


@router.post("/summary", response_model=ListingSummaryResponse)
async def get_listing_summary(
    body: MetricsRequest,
    timeout_ms: int | None = Query(None, alias="timeoutMs", gt=0),
    caller_id: str | None = Depends(get_optional_caller),
    store: CounterStorePort = Depends(get_counter_store),
    listings: ListingDirectoryPort = Depends(get_listing_directory),
    clock: TimePort = Depends(get_clock),
    config: MetricsConfig = Depends(get_metrics_config),
) -> ListingSummaryResponse:
    """Metrics plus the top search filters and the listing's current fields."""
    inp = GetSummaryInput(caller_id=caller_id, entity_id=body.resolved_entity_id())
    out = await _run_bounded(
        lambda: run_get_summary(
            inp, store=store, listings=listings, time_port=clock, config=config
        ),
        timeout_ms,
    )
    return ListingSummaryResponse.from_summary(out)

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rentpulse.components.metrics import (
    Funnel,
    ListingMetricsOutput,
    ListingSummaryOutput,
    WindowTotals,
)


class CamelModel(BaseModel):
    """Wire models use camelCase; Python code uses field names."""

    model_config = ConfigDict(populate_by_name=True)


# --- Requests ---
class MetricsRequest(CamelModel):
    # Left untyped so a non-string id reaches the component as INVALID_ARGUMENT
    entity_id: Any = Field(None, alias="entityId")
    listing_id: Any = Field(None, alias="listingId")

    def resolved_entity_id(self) -> Any:
        return self.entity_id if self.entity_id is not None else self.listing_id


# --- Responses ---
class EventAcceptedResponse(BaseModel):
    ok: bool = True
    received: int = 1


class WindowTotalsModel(CamelModel):
    views: int
    unique_sessions: int = Field(alias="uniqueSessions")
    saves: int
    messages: int

    @classmethod
    def from_totals(cls, totals: WindowTotals) -> "WindowTotalsModel":
        return cls(
            views=totals.views,
            unique_sessions=totals.unique_sessions,
            saves=totals.saves,
            messages=totals.messages,
        )


class ConversionRatesModel(CamelModel):
    save_per_view: float = Field(alias="savePerView")
    message_per_view: float = Field(alias="messagePerView")
    message_per_save: float = Field(alias="messagePerSave")


class FunnelModel(CamelModel):
    views: int
    saves: int
    messages: int
    conversion_rates: ConversionRatesModel = Field(alias="conversionRates")

    @classmethod
    def from_funnel(cls, funnel: Funnel) -> "FunnelModel":
        rates = funnel.conversion_rates
        return cls(
            views=funnel.views,
            saves=funnel.saves,
            messages=funnel.messages,
            conversion_rates=ConversionRatesModel(
                save_per_view=rates.save_per_view,
                message_per_view=rates.message_per_view,
                message_per_save=rates.message_per_save,
            ),
        )


class FilterUsageModel(BaseModel):
    key: str
    count: int


class ListingSnapshotModel(BaseModel):
    price: float | None = None
    deposit: float | None = None
    location: str | None = None
    title: str | None = None


class ListingMetricsResponse(CamelModel):
    entity_id: str = Field(alias="entityId")
    owner_id: str = Field(alias="ownerId")
    metrics_7d: WindowTotalsModel = Field(alias="metrics7d")
    metrics_30d: WindowTotalsModel = Field(alias="metrics30d")
    funnel_30d: FunnelModel = Field(alias="funnel30d")

    @classmethod
    def from_output(cls, out: ListingMetricsOutput) -> "ListingMetricsResponse":
        return cls(
            entity_id=out.entity_id,
            owner_id=out.owner_id,
            metrics_7d=WindowTotalsModel.from_totals(out.metrics_7d),
            metrics_30d=WindowTotalsModel.from_totals(out.metrics_30d),
            funnel_30d=FunnelModel.from_funnel(out.funnel_30d),
        )


class ListingSummaryResponse(ListingMetricsResponse):
    window_days: int = Field(alias="windowDays")
    top_filters: list[FilterUsageModel] = Field(default_factory=list, alias="topFilters")
    listing_snapshot: ListingSnapshotModel = Field(alias="listingSnapshot")

    @classmethod
    def from_summary(cls, out: ListingSummaryOutput) -> "ListingSummaryResponse":
        snapshot = out.listing_snapshot
        return cls(
            entity_id=out.entity_id,
            owner_id=out.owner_id,
            window_days=out.window_days,
            metrics_7d=WindowTotalsModel.from_totals(out.metrics_7d),
            metrics_30d=WindowTotalsModel.from_totals(out.metrics_30d),
            funnel_30d=FunnelModel.from_funnel(out.funnel_30d),
            top_filters=[FilterUsageModel(key=f.key, count=f.count) for f in out.top_filters],
            listing_snapshot=ListingSnapshotModel(
                price=snapshot.price,
                deposit=snapshot.deposit,
                location=snapshot.location,
                title=snapshot.title,
            ),
        )

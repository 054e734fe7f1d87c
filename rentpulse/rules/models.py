from pydantic import BaseModel, Field, model_validator


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class AnalyticsRules(BaseModel):
    allowed_amenities: list[str]
    structural_filter_keys: list[str] = Field(
        default_factory=lambda: ["query", "minPrice", "maxPrice"]
    )
    amenity_prefix: str = "amenity:"


class RetryRules(BaseModel):
    max_attempts: int = Field(5, ge=1)
    backoff_seconds: list[float] = Field(default_factory=lambda: [0.05, 0.1, 0.2, 0.4])


class AggregationRules(BaseModel):
    enabled: bool = True
    retry: RetryRules = Field(default_factory=RetryRules)


class RollupRules(BaseModel):
    short_window_days: int = Field(7, ge=1)
    long_window_days: int = Field(30, ge=1)
    top_filters_limit: int = Field(10, ge=0)

    @model_validator(mode="after")
    def _windows_ordered(self) -> "RollupRules":
        if self.short_window_days > self.long_window_days:
            raise ValueError("short_window_days must not exceed long_window_days")
        return self


class StorageRules(BaseModel):
    busy_timeout_seconds: float = Field(5.0, gt=0)


class Rules(BaseModel):
    project: ProjectRules
    analytics: AnalyticsRules
    aggregation: AggregationRules = Field(default_factory=AggregationRules)
    rollups: RollupRules = Field(default_factory=RollupRules)
    storage: StorageRules = Field(default_factory=StorageRules)

"""
Filter whitelist - bounds the cardinality of search aggregates.

Key behaviors:
- Amenity labels are kept only if they are in the closed allow-list
- Filter keys are kept if structural (query/minPrice/maxPrice) or
  "amenity:<label>" with a whitelisted label
- Everything else is dropped before it reaches storage
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

# --- Defaults ---


DEFAULT_ALLOWED_AMENITIES: frozenset[str] = frozenset(
    {
        "Free Parking",
        "WiFi",
        "Air Conditioning",
        "Pets Allowed",
        "Kitchen Access",
        "Laundry",
        "Security",
        "CCTV",
        "Furnished",
        "Near Public Transport",
        "Gym Access",
        "Swimming Pool",
    }
)

STRUCTURAL_FILTER_KEYS: frozenset[str] = frozenset({"query", "minPrice", "maxPrice"})

AMENITY_PREFIX = "amenity:"


# --- Configuration ---


@dataclass(frozen=True)
class FilterWhitelist:
    """Closed allow-list for search filter keys and amenity labels."""

    allowed_amenities: frozenset[str] = field(default_factory=lambda: DEFAULT_ALLOWED_AMENITIES)
    structural_keys: frozenset[str] = field(default_factory=lambda: STRUCTURAL_FILTER_KEYS)
    amenity_prefix: str = AMENITY_PREFIX

    def is_allowed_amenity(self, label: object) -> bool:
        return isinstance(label, str) and label in self.allowed_amenities

    def is_allowed_key(self, key: object) -> bool:
        """Check a single filter key against the whitelist."""
        if not isinstance(key, str):
            return False
        if key in self.structural_keys:
            return True
        if key.startswith(self.amenity_prefix):
            return self.is_allowed_amenity(key[len(self.amenity_prefix) :])
        return False

    def amenity_key(self, label: str) -> str:
        """Encode an amenity label as a filter key."""
        return f"{self.amenity_prefix}{label}"


DEFAULT_WHITELIST = FilterWhitelist()


# --- Filtering ---


def filter_amenities(
    amenities: Iterable[object] | None,
    whitelist: FilterWhitelist = DEFAULT_WHITELIST,
) -> frozenset[str]:
    """Keep only whitelisted amenity labels."""
    if not amenities:
        return frozenset()
    return frozenset(a for a in amenities if whitelist.is_allowed_amenity(a))  # type: ignore[misc]


def filter_filter_keys(
    keys: Iterable[object] | None,
    whitelist: FilterWhitelist = DEFAULT_WHITELIST,
) -> tuple[str, ...]:
    """
    Keep only whitelisted filter keys.

    Order is preserved; a key repeated within one event is kept once.
    """
    if not keys:
        return ()

    seen: set[str] = set()
    safe: list[str] = []
    for key in keys:
        if not whitelist.is_allowed_key(key) or key in seen:
            continue
        seen.add(key)  # type: ignore[arg-type]
        safe.append(key)  # type: ignore[arg-type]
    return tuple(safe)


def create_whitelist(
    allowed_amenities: Iterable[str] | None = None,
    structural_keys: Iterable[str] | None = None,
    amenity_prefix: str = AMENITY_PREFIX,
) -> FilterWhitelist:
    """Create a FilterWhitelist, falling back to the defaults."""
    return FilterWhitelist(
        allowed_amenities=(
            frozenset(allowed_amenities)
            if allowed_amenities is not None
            else DEFAULT_ALLOWED_AMENITIES
        ),
        structural_keys=(
            frozenset(structural_keys) if structural_keys is not None else STRUCTURAL_FILTER_KEYS
        ),
        amenity_prefix=amenity_prefix,
    )

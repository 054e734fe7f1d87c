"""
Tests for the search filter whitelist.
"""

from __future__ import annotations

from rentpulse.core.services.analytics_whitelist import (
    DEFAULT_ALLOWED_AMENITIES,
    DEFAULT_WHITELIST,
    create_whitelist,
    filter_amenities,
    filter_filter_keys,
)


class TestFilterKeys:
    """Filter keys are restricted to structural and amenity keys."""

    def test_mixed_keys_keep_only_whitelisted(self) -> None:
        """Unknown keys and unknown amenities are dropped."""
        keys = ["query", "minPrice", "amenity:WiFi", "INVALID_KEY", "amenity:NotWhitelisted"]
        assert filter_filter_keys(keys) == ("query", "minPrice", "amenity:WiFi")

    def test_structural_keys_all_allowed(self) -> None:
        assert filter_filter_keys(["maxPrice", "query", "minPrice"]) == (
            "maxPrice",
            "query",
            "minPrice",
        )

    def test_duplicates_counted_once(self) -> None:
        assert filter_filter_keys(["query", "query", "amenity:CCTV", "amenity:CCTV"]) == (
            "query",
            "amenity:CCTV",
        )

    def test_amenity_label_is_case_sensitive(self) -> None:
        assert filter_filter_keys(["amenity:wifi"]) == ()

    def test_bare_prefix_rejected(self) -> None:
        assert filter_filter_keys(["amenity:"]) == ()

    def test_non_strings_ignored(self) -> None:
        assert filter_filter_keys([1, None, "query"]) == ("query",)  # type: ignore[list-item]

    def test_empty_or_none(self) -> None:
        assert filter_filter_keys(None) == ()
        assert filter_filter_keys([]) == ()


class TestAmenities:
    """Amenity labels are filtered against the closed set."""

    def test_default_set_has_twelve_labels(self) -> None:
        assert len(DEFAULT_ALLOWED_AMENITIES) == 12
        assert "Near Public Transport" in DEFAULT_ALLOWED_AMENITIES

    def test_unknown_labels_dropped(self) -> None:
        result = filter_amenities(["WiFi", "Helipad", "Gym Access"])
        assert result == frozenset({"WiFi", "Gym Access"})

    def test_none_is_empty(self) -> None:
        assert filter_amenities(None) == frozenset()


class TestCustomWhitelist:
    """Whitelist built from configuration."""

    def test_custom_amenities(self) -> None:
        whitelist = create_whitelist(allowed_amenities=["Rooftop"])
        assert whitelist.is_allowed_key("amenity:Rooftop")
        assert not whitelist.is_allowed_key("amenity:WiFi")

    def test_custom_prefix(self) -> None:
        whitelist = create_whitelist(amenity_prefix="a.")
        assert whitelist.is_allowed_key("a.WiFi")
        assert not whitelist.is_allowed_key("amenity:WiFi")

    def test_defaults_when_unset(self) -> None:
        assert create_whitelist() == DEFAULT_WHITELIST

    def test_amenity_key(self) -> None:
        assert DEFAULT_WHITELIST.amenity_key("Laundry") == "amenity:Laundry"

"""
tests/test_scrape_preset.py

Unit tests for ScrapePreset parsing.
"""

from __future__ import annotations

import pytest

from app.scraping.config.models import BackendId, Depth, ScrapePreset


class TestScrapePreset:
    def test_defaults(self) -> None:
        preset = ScrapePreset.from_mapping(None)

        assert preset == ScrapePreset()
        assert preset.as_dict() == {
            "backend": "static",
            "depth": "standard",
            "extract_schema": False,
            "premium": False,
        }

    def test_parses_loose_strings(self) -> None:
        preset = ScrapePreset.from_mapping({"backend": " Render ", "depth": "DEEP", "premium": True})

        assert preset.backend == BackendId.RENDER
        assert preset.depth == Depth.DEEP
        assert preset.premium is True
        assert preset.depth.page_limit == 50

    def test_unknown_option_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown scrape preset option"):
            ScrapePreset.from_mapping({"turbo": True})

    def test_invalid_enum_value_lists_allowed_values(self) -> None:
        with pytest.raises(ValueError, match="Allowed values: quick, standard, deep"):
            ScrapePreset.from_mapping({"depth": "bottomless"})

    @pytest.mark.parametrize("value", ["yes", 1, None])
    def test_flags_must_be_booleans(self, value) -> None:
        with pytest.raises(ValueError, match="must be a boolean"):
            ScrapePreset.from_mapping({"extract_schema": value})

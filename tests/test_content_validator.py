"""
tests/test_content_validator.py

Unit tests for ContentValidator scoring and escalation flags.

Coverage
--------
- Rich pages score 1.0 with no issues
- Thin client-rendered shells are invalid and flagged for enhancement
- Placeholders flag enhancement even when the page is still valid
- Empty framework roots, unpriced products, lazy images, contact pages
- Batch partitioning, stats and the failed verdict for a broken page
"""

from __future__ import annotations

import pytest

from app.acquisition.validator import ContentValidator, IssueType, Severity
from tests.fakes import RICH_TEXT, rich_page, thin_page


def _issue_types(result) -> list[str]:
    return [issue.type for issue in result.issues]


# ---------------------------------------------------------------------------
# Single page
# ---------------------------------------------------------------------------


class TestValidatePage:
    def test_rich_page_is_clean(self) -> None:
        result = ContentValidator().validate(rich_page("https://acme.com/about"))

        assert result.issues == []
        assert result.score == 1.0
        assert result.is_valid is True
        assert result.needs_enhancement is False
        assert result.enhancement_reason is None
        assert result.metrics.has_main_content is True

    def test_thin_shell_needs_rendering(self) -> None:
        result = ContentValidator().validate(thin_page("https://acme.com/"))

        assert _issue_types(result) == [
            IssueType.LOW_CONTENT,
            IssueType.JS_PLACEHOLDERS,
            IssueType.EMPTY_DIVS,
        ]
        assert result.score == pytest.approx(0.1)
        assert result.is_valid is False
        assert result.needs_enhancement is True
        assert result.enhancement_reason == "Content too short or empty - needs JavaScript rendering"

    def test_empty_content_is_low_content(self) -> None:
        result = ContentValidator().validate(rich_page("https://acme.com/", content="", html=None))

        assert result.issues[0].type == IssueType.LOW_CONTENT
        assert result.issues[0].severity == Severity.FATAL

    def test_placeholders_flag_enhancement_on_a_valid_page(self) -> None:
        page = rich_page(
            "https://acme.com/pricing",
            content=RICH_TEXT + " {{plan.price}}",
            images=[],
            navigation_items=[],
            contact_info={},
        )

        result = ContentValidator().validate(page)

        assert _issue_types(result) == [IssueType.JS_PLACEHOLDERS]
        assert result.metrics.placeholder_count == 1
        assert result.score == pytest.approx(0.8)
        assert result.is_valid is True
        assert result.needs_enhancement is True
        assert result.enhancement_reason == "JavaScript placeholders detected - content not fully rendered"

    def test_empty_framework_root(self) -> None:
        page = rich_page(
            "https://acme.com/",
            html=f'<html><body><div id="__next"></div><p>{RICH_TEXT}</p></body></html>',
        )

        result = ContentValidator().validate(page)

        assert _issue_types(result) == [IssueType.EMPTY_DIVS]
        assert result.issues[0].selector == "div#__next"
        assert result.needs_enhancement is True

    def test_populated_framework_root_is_fine(self) -> None:
        page = rich_page(
            "https://acme.com/",
            html=f'<html><body><div id="root"><p>{RICH_TEXT}</p></div></body></html>',
        )

        assert ContentValidator().validate(page).issues == []

    def test_products_without_prices(self) -> None:
        page = rich_page(
            "https://acme.com/products",
            products=[{"name": "Widget", "price": "$10"}, {"name": "Gadget", "price": None}],
        )

        result = ContentValidator().validate(page)

        assert _issue_types(result) == [IssueType.NO_PRICES]
        assert result.issues[0].description == "1 products missing prices"
        assert result.enhancement_reason == "Product prices missing - likely loaded dynamically"

    def test_lazy_images_are_only_a_warning(self) -> None:
        page = rich_page("https://acme.com/", images=["data-src:https://cdn.acme.com/hero.jpg"])

        result = ContentValidator().validate(page)

        assert _issue_types(result) == [IssueType.MISSING_IMAGES]
        assert result.issues[0].severity == Severity.WARNING
        assert result.needs_enhancement is False

    def test_contact_page_without_contact_details(self) -> None:
        page = rich_page("https://acme.com/contact", contact_info={})

        result = ContentValidator().validate(page)

        assert _issue_types(result) == [IssueType.NO_CONTACT]
        assert result.needs_enhancement is False

    def test_custom_minimum_length(self) -> None:
        validator = ContentValidator(min_content_length=5000)

        result = validator.validate(rich_page("https://acme.com/"))

        assert IssueType.LOW_CONTENT in _issue_types(result)
        assert result.metrics.has_main_content is False


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


class TestValidateBatch:
    def test_partitions_pages_and_reports_stats(self) -> None:
        pages = [
            rich_page("https://acme.com/"),
            thin_page("https://acme.com/pricing"),
            rich_page("https://acme.com/about"),
        ]

        batch = ContentValidator().validate_batch(pages)

        assert [page.url for page in batch.valid_pages] == ["https://acme.com/", "https://acme.com/about"]
        assert [candidate.page.url for candidate in batch.needs_enhancement] == ["https://acme.com/pricing"]
        assert batch.stats["total_pages"] == 3
        assert batch.stats["valid_count"] == 2
        assert batch.stats["enhancement_count"] == 1
        assert batch.stats["average_score"] == pytest.approx(2.1 / 3)

    def test_broken_page_gets_a_failed_verdict(self) -> None:
        broken = rich_page("https://acme.com/shop", products=["oops"])

        batch = ContentValidator().validate_batch([broken, rich_page("https://acme.com/")])

        verdict = batch.results["https://acme.com/shop"]
        assert verdict.score == 0.0
        assert verdict.is_valid is False
        assert verdict.needs_enhancement is True
        assert verdict.issues[0].description.startswith("Validation failed:")
        assert batch.needs_enhancement[0].page is broken
        assert len(batch.valid_pages) == 1

    def test_empty_batch(self) -> None:
        batch = ContentValidator().validate_batch([])

        assert batch.stats == {
            "total_pages": 0,
            "valid_count": 0,
            "enhancement_count": 0,
            "average_score": 0.0,
        }

"""
app/acquisition/validator.py

Content quality scoring for extracted pages.

The validator is a pure function of one PageResult: it measures the page,
records typed issues, scores it on [0, 1] and decides whether the page
should be re-extracted with a heavier rendering backend. Escalation uses
the union rule: a low score OR any fatal issue that typically comes from
content rendered client-side.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

from bs4 import BeautifulSoup

from app.scraping.logging_utils import log_event
from app.scraping.types import PageResult

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 500
VALID_SCORE_THRESHOLD = 0.7
ENHANCEMENT_SCORE_THRESHOLD = 0.5

FATAL_PENALTY = 0.3
WARNING_PENALTY = 0.1
MAIN_CONTENT_BONUS = 0.1
NAVIGATION_BONUS = 0.05
CONTACT_INFO_BONUS = 0.05
IMAGES_BONUS = 0.05

PLACEHOLDER_PATTERNS = [
    re.compile(r"\{\{.*?\}\}"),
    re.compile(r"\[.*?\]"),
    re.compile(r"__.*?__"),
    re.compile(r"loading\.\.\.", re.IGNORECASE),
    re.compile(r"placeholder", re.IGNORECASE),
    re.compile(r"skeleton", re.IGNORECASE),
]

FRAMEWORK_ROOT_SELECTORS = [
    "div#root",
    "div#__next",
    "div#app",
    "app-root",
    "div[data-reactroot]",
    "div.ng-scope",
]

LAZY_IMAGE_MARKERS = ("data-src", "lazy", "placeholder")


class IssueType:
    LOW_CONTENT = "LOW_CONTENT"
    JS_PLACEHOLDERS = "JS_PLACEHOLDERS"
    EMPTY_DIVS = "EMPTY_DIVS"
    NO_PRICES = "NO_PRICES"
    MISSING_IMAGES = "MISSING_IMAGES"
    NO_CONTACT = "NO_CONTACT"


class Severity:
    FATAL = "fatal"
    WARNING = "warning"
    INFO = "info"


RENDERING_ISSUE_TYPES = frozenset(
    {
        IssueType.LOW_CONTENT,
        IssueType.JS_PLACEHOLDERS,
        IssueType.NO_PRICES,
        IssueType.EMPTY_DIVS,
    }
)

_ENHANCEMENT_REASONS = {
    IssueType.LOW_CONTENT: "Content too short or empty - needs JavaScript rendering",
    IssueType.JS_PLACEHOLDERS: "JavaScript placeholders detected - content not fully rendered",
    IssueType.EMPTY_DIVS: "Empty framework root divs - requires client-side rendering",
    IssueType.NO_PRICES: "Product prices missing - likely loaded dynamically",
}
LOW_SCORE_REASON = "Low validation score - enhancement recommended"


@dataclass(frozen=True)
class ValidationIssue:
    type: str
    severity: str
    description: str
    selector: str | None = None


@dataclass(frozen=True)
class ValidationMetrics:
    content_length: int = 0
    image_count: int = 0
    link_count: int = 0
    has_main_content: bool = False
    has_navigation: bool = False
    has_contact_info: bool = False
    has_products: bool = False
    placeholder_count: int = 0


@dataclass(frozen=True)
class ValidationResult:
    score: float
    is_valid: bool
    issues: list[ValidationIssue]
    needs_enhancement: bool
    enhancement_reason: str | None
    metrics: ValidationMetrics

    @property
    def fatal_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.FATAL]


@dataclass(frozen=True)
class EnhancementCandidate:
    page: PageResult
    reason: str
    result: ValidationResult


@dataclass(frozen=True)
class BatchValidation:
    valid_pages: list[PageResult]
    needs_enhancement: list[EnhancementCandidate]
    results: dict[str, ValidationResult]
    stats: dict[str, Any] = field(default_factory=dict)


class ContentValidator:
    """
    Scores extracted pages and flags the ones worth escalating.
    """

    def __init__(self, *, min_content_length: int = MIN_CONTENT_LENGTH) -> None:
        self.min_content_length = min_content_length

    def validate(self, page: PageResult) -> ValidationResult:
        content = page.content or ""
        placeholder_count = self._count_placeholders(content)
        metrics = self._measure(page, placeholder_count)
        issues: list[ValidationIssue] = []

        if not content or metrics.content_length < self.min_content_length:
            issues.append(
                ValidationIssue(
                    type=IssueType.LOW_CONTENT,
                    severity=Severity.FATAL,
                    description=(
                        f"Content too short: {metrics.content_length} chars "
                        f"(min: {self.min_content_length})"
                    ),
                )
            )

        if placeholder_count > 0:
            issues.append(
                ValidationIssue(
                    type=IssueType.JS_PLACEHOLDERS,
                    severity=Severity.FATAL,
                    description=(
                        f"Found {placeholder_count} JavaScript placeholders - "
                        "content not fully rendered"
                    ),
                )
            )

        empty_roots = self._find_empty_framework_roots(page.html)
        if empty_roots:
            issues.append(
                ValidationIssue(
                    type=IssueType.EMPTY_DIVS,
                    severity=Severity.FATAL,
                    description=f"Empty framework root divs detected: {', '.join(empty_roots)}",
                    selector=empty_roots[0],
                )
            )

        unpriced = [item for item in page.products if not item.get("price")]
        if unpriced:
            issues.append(
                ValidationIssue(
                    type=IssueType.NO_PRICES,
                    severity=Severity.FATAL,
                    description=f"{len(unpriced)} products missing prices",
                )
            )

        lazy_images = [
            image for image in page.images
            if any(marker in image for marker in LAZY_IMAGE_MARKERS)
        ]
        if lazy_images:
            issues.append(
                ValidationIssue(
                    type=IssueType.MISSING_IMAGES,
                    severity=Severity.WARNING,
                    description=f"{len(lazy_images)} images not loaded (lazy loading detected)",
                )
            )

        if not metrics.has_contact_info and "contact" in page.url.lower():
            issues.append(
                ValidationIssue(
                    type=IssueType.NO_CONTACT,
                    severity=Severity.WARNING,
                    description="Contact page missing contact information",
                )
            )

        score = self._score(metrics, issues)
        needs_enhancement = self._should_enhance(score, issues)
        reason = self._enhancement_reason(issues) if needs_enhancement else None

        result = ValidationResult(
            score=score,
            is_valid=score > VALID_SCORE_THRESHOLD,
            issues=issues,
            needs_enhancement=needs_enhancement,
            enhancement_reason=reason,
            metrics=metrics,
        )
        log_event(
            logger,
            logging.DEBUG,
            "page_validated",
            url=page.url,
            score=round(score, 2),
            is_valid=result.is_valid,
            needs_enhancement=needs_enhancement,
            issue_types=[issue.type for issue in issues],
        )
        return result

    def validate_batch(self, pages: Sequence[PageResult]) -> BatchValidation:
        valid_pages: list[PageResult] = []
        candidates: list[EnhancementCandidate] = []
        results: dict[str, ValidationResult] = {}
        total_score = 0.0

        for page in pages:
            try:
                result = self.validate(page)
            except Exception as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "page_validation_failed",
                    url=getattr(page, "url", None),
                    error=str(exc),
                )
                result = self._failed_verdict(exc)

            results[page.url] = result
            total_score += result.score
            if result.needs_enhancement:
                candidates.append(
                    EnhancementCandidate(
                        page=page,
                        reason=result.enhancement_reason or LOW_SCORE_REASON,
                        result=result,
                    )
                )
            else:
                valid_pages.append(page)

        total = len(pages)
        stats = {
            "total_pages": total,
            "valid_count": len(valid_pages),
            "enhancement_count": len(candidates),
            "average_score": (total_score / total) if total else 0.0,
        }
        log_event(logger, logging.INFO, "batch_validated", **stats)
        return BatchValidation(
            valid_pages=valid_pages,
            needs_enhancement=candidates,
            results=results,
            stats=stats,
        )

    def _measure(self, page: PageResult, placeholder_count: int) -> ValidationMetrics:
        content_length = len(page.content or "")
        return ValidationMetrics(
            content_length=content_length,
            image_count=len(page.images),
            link_count=len(page.links),
            has_main_content=content_length > self.min_content_length,
            has_navigation=bool(page.navigation_items),
            has_contact_info=any(page.contact_info.get(key) for key in ("emails", "phones", "addresses")),
            has_products=bool(page.products),
            placeholder_count=placeholder_count,
        )

    @staticmethod
    def _count_placeholders(content: str) -> int:
        return sum(len(pattern.findall(content)) for pattern in PLACEHOLDER_PATTERNS)

    @staticmethod
    def _find_empty_framework_roots(html: str | None) -> list[str]:
        if not html:
            return []
        soup = BeautifulSoup(html, "html.parser")
        empty: list[str] = []
        for selector in FRAMEWORK_ROOT_SELECTORS:
            for node in soup.select(selector):
                if node.find(True) is None and not node.get_text(strip=True):
                    empty.append(selector)
                    break
        return empty

    @staticmethod
    def _score(metrics: ValidationMetrics, issues: list[ValidationIssue]) -> float:
        score = 1.0
        score -= FATAL_PENALTY * sum(1 for issue in issues if issue.severity == Severity.FATAL)
        score -= WARNING_PENALTY * sum(1 for issue in issues if issue.severity == Severity.WARNING)
        if metrics.has_main_content:
            score += MAIN_CONTENT_BONUS
        if metrics.has_navigation:
            score += NAVIGATION_BONUS
        if metrics.has_contact_info:
            score += CONTACT_INFO_BONUS
        if metrics.image_count > 0:
            score += IMAGES_BONUS
        return max(0.0, min(1.0, score))

    @staticmethod
    def _should_enhance(score: float, issues: list[ValidationIssue]) -> bool:
        if score < ENHANCEMENT_SCORE_THRESHOLD:
            return True
        return any(
            issue.severity == Severity.FATAL and issue.type in RENDERING_ISSUE_TYPES
            for issue in issues
        )

    @staticmethod
    def _enhancement_reason(issues: list[ValidationIssue]) -> str:
        first_fatal = next((issue for issue in issues if issue.severity == Severity.FATAL), None)
        if first_fatal is None:
            return LOW_SCORE_REASON
        return _ENHANCEMENT_REASONS.get(first_fatal.type, first_fatal.description)

    @staticmethod
    def _failed_verdict(exc: Exception) -> ValidationResult:
        issue = ValidationIssue(
            type=IssueType.LOW_CONTENT,
            severity=Severity.FATAL,
            description=f"Validation failed: {exc}",
        )
        return ValidationResult(
            score=0.0,
            is_valid=False,
            issues=[issue],
            needs_enhancement=True,
            enhancement_reason=_ENHANCEMENT_REASONS[IssueType.LOW_CONTENT],
            metrics=ValidationMetrics(),
        )

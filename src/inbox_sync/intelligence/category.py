"""Rule-based and LLM-backed classification of inbound messages."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Sequence

from inbox_sync.core.config import LlmSettings
from inbox_sync.core.interfaces import Classifier
from inbox_sync.core.models import Category

from .llm import LLMClient, LLMError, OllamaClient

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CategoryRule:
    category: Category
    keywords: tuple[str, ...] = ()
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        alternatives = "|".join(re.escape(keyword) for keyword in self.keywords)
        object.__setattr__(
            self, "pattern", re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)
        )

    def matches(self, haystack: str) -> bool:
        return bool(self.keywords) and self.pattern.search(haystack) is not None


# Order matters: the first matching rule wins.
DEFAULT_RULES: tuple[_CategoryRule, ...] = (
    _CategoryRule(
        category=Category.OUT_OF_OFFICE,
        keywords=(
            "out of office",
            "out-of-office",
            "on vacation",
            "ooo",
            "out for the day",
        ),
    ),
    _CategoryRule(
        category=Category.MEETING_BOOKED,
        keywords=(
            "meeting",
            "calendar",
            "booked",
            "scheduled",
            "schedule",
            "call",
            "interview",
            "slot",
            "time available",
        ),
    ),
    _CategoryRule(
        category=Category.NOT_INTERESTED,
        keywords=(
            "not interested",
            "no thanks",
            "no thank you",
            "no longer interested",
            "unsubscribe",
        ),
    ),
    _CategoryRule(
        category=Category.SPAM,
        keywords=(
            "free money",
            "claim prize",
            "click here",
            "buy now",
            "hot deal",
            "lottery",
            "winner",
            "unsubscribe here",
        ),
    ),
    _CategoryRule(
        category=Category.INTERESTED,
        keywords=(
            "interested",
            "keen",
            "would love",
            "i am interested",
            "sounds good",
            "count me in",
            "open to",
        ),
    ),
)


class KeywordClassifier(Classifier):
    """Assign a category from keyword heuristics over subject and body."""

    def __init__(
        self,
        rules: Sequence[_CategoryRule] | None = None,
        *,
        default_category: Category = Category.UNCATEGORIZED,
    ) -> None:
        self._rules: tuple[_CategoryRule, ...] = (
            tuple(rules) if rules is not None else DEFAULT_RULES
        )
        self._default_category = default_category

    def classify(self, subject: str, body: str) -> Category:
        """Return the category of the first matching rule, else the default."""
        haystack = _build_haystack(subject, body)
        for rule in self._rules:
            if rule.matches(haystack):
                return rule.category
        return self._default_category


class LLMClassifier(Classifier):
    """Classify emails with an LLM, falling back to keyword rules."""

    def __init__(
        self,
        llm_client: LLMClient,
        fallback: Classifier | None = None,
        *,
        max_chars: int = 2000,
    ) -> None:
        self._llm_client = llm_client
        self._fallback = fallback or KeywordClassifier()
        self._max_chars = max_chars

    def classify(self, subject: str, body: str) -> Category:
        """Ask the model for one label; any failure defers to the fallback."""
        labels = "\n".join(f"- {category.value}" for category in Category)
        prompt = f"""
Classify this sales email reply into exactly one of the categories below.
Return only the category name, nothing else.

Categories:
{labels}

Email content:
{_build_haystack(subject, body)[: self._max_chars]}
"""
        try:
            response = self._llm_client.generate(prompt)
        except LLMError as exc:
            LOGGER.warning("LLM classification failed, using keyword rules: %s", exc)
            return self._fallback.classify(subject, body)

        category = _match_label(response)
        if category is None:
            LOGGER.debug("LLM returned unknown label %r", response[:80])
            return self._fallback.classify(subject, body)
        return category


def build_classifier(settings: LlmSettings) -> Classifier:
    """Return the classifier selected by configuration."""
    if settings.enabled and settings.base_url and settings.model:
        return LLMClassifier(OllamaClient(settings))
    return KeywordClassifier()


def _build_haystack(subject: str | None, body: str | None) -> str:
    parts = [part for part in (subject, body) if part]
    return " ".join(parts).lower()


def _match_label(response: str) -> Category | None:
    cleaned = response.strip().strip(".\"'`").lower()
    for category in Category:
        if cleaned == category.value.lower():
            return category
    return None


__all__ = [
    "DEFAULT_RULES",
    "KeywordClassifier",
    "LLMClassifier",
    "build_classifier",
]

"""
GameTime Page Classifier - decides what a booking form navigation produced
Layered check: page address first, then page wording, then form readiness
"""

from __future__ import annotations
from tracking import t

import logging
import re
from enum import Enum
from typing import Any, Iterable, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeout

from infrastructure.constants import (
    BOOK_ERROR_URL_PATTERN,
    BOOKING_FORM_URL_PATTERN,
    BrowserTimeouts,
    CONTENDED_PATTERNS,
    FORM_FIELD_SELECTORS,
    GENERIC_ERROR_URL_PATTERN,
    PAGE_BODY_SELECTOR,
    SERVER_ERROR_PATTERNS,
    TOO_EARLY_PATTERNS,
)


class PageType(Enum):
    """Fixed outcome taxonomy for a loaded booking page."""

    READY = "ready"
    TOO_EARLY = "too_early"
    CONTENDED = "contended"
    SLOW_LOADING = "slow_loading"
    TRANSIENT_ERROR = "transient_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether the same court should be navigated again."""
        return self in _RETRYABLE


_RETRYABLE = frozenset({PageType.TOO_EARLY, PageType.SLOW_LOADING, PageType.UNKNOWN})


def _matches_any(text: str, patterns: Iterable[str]) -> bool:
    return any(re.search(pattern, text, re.IGNORECASE) for pattern in patterns)


class PageClassifier:
    """
    Classifies the page a court navigation landed on

    Only inspects the already-loaded page; the one wait it performs is for the
    hidden ``temp`` field of a booking form, bounded by ``form_ready_timeout_ms``.
    Never raises: anything unreadable is reported as ``PageType.UNKNOWN``.
    """

    def __init__(
        self,
        form_ready_timeout_ms: int = BrowserTimeouts.FORM_READY,
        text_timeout_ms: int = BrowserTimeouts.TEXT_READ,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.forms.page_classifier.PageClassifier.__init__')
        self.form_ready_timeout_ms = form_ready_timeout_ms
        self.text_timeout_ms = text_timeout_ms
        self.logger = logger or logging.getLogger("PageClassifier")

    async def classify(self, page: Any) -> PageType:
        """
        Classify the current page

        Args:
            page: Playwright page (or anything exposing ``url``,
                ``text_content`` and ``wait_for_selector``)

        Returns:
            The matching PageType
        """
        t('automation.forms.page_classifier.PageClassifier.classify')
        url = self._read_url(page)
        if url is None:
            return PageType.UNKNOWN

        lowered = url.lower()

        # /bookerror must be checked before the generic /book/ form pattern
        if BOOK_ERROR_URL_PATTERN in lowered:
            result = await self._classify_booking_error(page)
        elif GENERIC_ERROR_URL_PATTERN in lowered:
            result = PageType.TRANSIENT_ERROR
        elif BOOKING_FORM_URL_PATTERN in lowered:
            result = await self._classify_booking_form(page)
        else:
            result = await self._classify_unrecognized(page)

        self.logger.debug("Classified %s as %s", url, result.value)
        return result

    def _read_url(self, page: Any) -> Optional[str]:
        try:
            url = page.url
            if callable(url):
                url = url()
            return str(url or "")
        except Exception as exc:
            self.logger.debug("Could not read page URL: %s", exc)
            return None

    async def _read_text(self, page: Any) -> Optional[str]:
        try:
            text = await page.text_content(PAGE_BODY_SELECTOR, timeout=self.text_timeout_ms)
        except Exception as exc:
            self.logger.debug("Could not read page text: %s", exc)
            return None
        return text

    async def _classify_booking_error(self, page: Any) -> PageType:
        text = await self._read_text(page)
        if not text:
            return PageType.UNKNOWN
        if _matches_any(text, CONTENDED_PATTERNS):
            return PageType.CONTENDED
        if _matches_any(text, TOO_EARLY_PATTERNS):
            return PageType.TOO_EARLY
        return PageType.UNKNOWN

    async def _classify_booking_form(self, page: Any) -> PageType:
        try:
            handle = await page.wait_for_selector(
                FORM_FIELD_SELECTORS['temp'],
                state="attached",
                timeout=self.form_ready_timeout_ms,
            )
        except PlaywrightTimeout:
            return PageType.SLOW_LOADING
        except Exception as exc:
            self.logger.debug("Form readiness check failed: %s", exc)
            return PageType.UNKNOWN
        return PageType.READY if handle is not None else PageType.SLOW_LOADING

    async def _classify_unrecognized(self, page: Any) -> PageType:
        text = await self._read_text(page)
        if text and _matches_any(text, SERVER_ERROR_PATTERNS):
            return PageType.TRANSIENT_ERROR
        return PageType.UNKNOWN


__all__ = ["PageClassifier", "PageType"]

"""Shared fakes and utilities for unit tests."""

from __future__ import annotations
from tracking import t

from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout


class DummyLogger:
    """Lightweight stand-in for ``logging.Logger`` that records calls."""

    def __init__(self) -> None:
        t('tests.helpers.DummyLogger.__init__')
        self.records: List[Tuple[str, Tuple[Any, ...], Dict[str, Any]]] = []

    def _record(self, level: str, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger._record')
        self.records.append((level, args, kwargs))

    def debug(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.debug')
        self._record("debug", *args, **kwargs)

    def info(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.info')
        self._record("info", *args, **kwargs)

    def warning(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.warning')
        self._record("warning", *args, **kwargs)

    def error(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.error')
        self._record("error", *args, **kwargs)

    def critical(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.critical')
        self._record("critical", *args, **kwargs)

    def exception(self, *args: Any, **kwargs: Any) -> None:
        t('tests.helpers.DummyLogger.exception')
        self._record("exception", *args, **kwargs)

    @property
    def messages(self) -> List[Tuple[str, Any]]:
        """Return formatted messages for quick assertions."""
        t('tests.helpers.DummyLogger.messages')

        formatted: List[Tuple[str, Any]] = []
        for level, args, kwargs in self.records:
            message: Any = kwargs.get("msg")
            if args:
                template = args[0]
                if isinstance(template, str) and len(args) > 1:
                    try:
                        message = template % args[1:]
                    except (TypeError, ValueError):
                        message = template
                else:
                    message = template
            formatted.append((level, message))
        return formatted

    def clear(self) -> None:
        t('tests.helpers.DummyLogger.clear')
        self.records.clear()

    def last(self, level: str | None = None) -> Tuple[str, Tuple[Any, ...], Dict[str, Any]] | None:
        """Return the most recent record, optionally filtered by level."""
        t('tests.helpers.DummyLogger.last')

        if not self.records:
            return None
        if level is None:
            return self.records[-1]
        for entry in reversed(self.records):
            if entry[0] == level:
                return entry
        return None


class FakePage:
    """Scriptable stand-in for a Playwright ``Page`` on a GameTime view."""

    def __init__(
        self,
        url: str = "",
        *,
        text: Optional[str] = None,
        form_ready: bool = True,
        fields: Optional[Dict[str, str]] = None,
        token: Any = "recaptcha-token",
        grecaptcha_ready: bool = True,
        challenge_error: Optional[Exception] = None,
        text_error: Optional[Exception] = None,
        url_error: Optional[Exception] = None,
    ) -> None:
        t('tests.helpers.FakePage.__init__')
        self._url = url
        self.text = text
        self.form_ready = form_ready
        self.fields = dict(fields or {})
        self.token = token
        self.grecaptcha_ready = grecaptcha_ready
        self.challenge_error = challenge_error
        self.text_error = text_error
        self.url_error = url_error
        self.evaluations: List[Tuple[str, Any]] = []
        self.waited_ms: List[int] = []

    @property
    def url(self) -> str:
        if self.url_error is not None:
            raise self.url_error
        return self._url

    async def text_content(self, selector: str, timeout: Optional[int] = None) -> Optional[str]:
        t('tests.helpers.FakePage.text_content')
        if self.text_error is not None:
            raise self.text_error
        return self.text

    async def wait_for_selector(self, selector: str, state: str = "visible", timeout: Optional[int] = None) -> Any:
        t('tests.helpers.FakePage.wait_for_selector')
        if self.form_ready:
            return object()
        raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def eval_on_selector(self, selector: str, script: str) -> Any:
        t('tests.helpers.FakePage.eval_on_selector')
        if selector not in self.fields:
            raise PlaywrightError(f"No element matches {selector}")
        return self.fields[selector]

    async def wait_for_function(self, script: str, timeout: Optional[int] = None) -> None:
        t('tests.helpers.FakePage.wait_for_function')
        if self.challenge_error is not None:
            raise self.challenge_error
        if not self.grecaptcha_ready:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded")

    async def wait_for_timeout(self, timeout_ms: int) -> None:
        self.waited_ms.append(timeout_ms)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        t('tests.helpers.FakePage.evaluate')
        self.evaluations.append((script, arg))
        if isinstance(self.token, Exception):
            raise self.token
        return self.token


BOOKING_FORM_FIELDS = {
    'input[name="temp"]': "temp-123",
    'input[name="players[1][user_id]"]': "4242",
    'input[name="players[1][name]"]': "Ada Lovelace",
}


def form_page(court_id: str = "50", **overrides: Any) -> FakePage:
    """A booking form page whose hidden fields are all present."""
    t('tests.helpers.form_page')
    overrides.setdefault("fields", BOOKING_FORM_FIELDS)
    return FakePage(
        f"https://jct.gametime.net/scheduling/index/book/sport/1/court/{court_id}/date/2025-11-5/time/540",
        **overrides,
    )


def contended_page() -> FakePage:
    t('tests.helpers.contended_page')
    return FakePage(
        "https://jct.gametime.net/scheduling/index/bookerror",
        text="Another member is currently booking this court.",
    )


def too_early_page() -> FakePage:
    t('tests.helpers.too_early_page')
    return FakePage(
        "https://jct.gametime.net/scheduling/index/bookerror",
        text="Please wait, this time is not yet open for booking.",
    )


class FakeSession:
    """Browser session double sharing a navigation script with its factory."""

    def __init__(self, factory: "FakeSessionFactory") -> None:
        t('tests.helpers.FakeSession.__init__')
        self.factory = factory
        self.page: Any = None
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def open_booking_form(self, target: Any, parameters: Any) -> Any:
        t('tests.helpers.FakeSession.open_booking_form')
        self.factory.navigations.append(target.court_id)
        script = self.factory.script.get(target.court_id, [])
        if not script:
            raise AssertionError(f"Unexpected navigation to court {target.court_id}")
        step = script.pop(0)
        if isinstance(step, Exception):
            raise step
        self.page = step
        return step

    async def cookie_header(self) -> str:
        if self.factory.cookie_errors:
            error = self.factory.cookie_errors.pop(0)
            if error is not None:
                raise error
        return self.factory.cookie_header

    async def close(self) -> None:
        t('tests.helpers.FakeSession.close')
        if not self.closed:
            self.closed = True
            self.factory.closed += 1


class FakeSessionFactory:
    """Hands out :class:`FakeSession` objects and records what they did."""

    def __init__(
        self,
        script: Optional[Dict[str, List[Any]]] = None,
        *,
        cookie_header: str = "PHPSESSID=abc123",
        login_error: Optional[Exception] = None,
        open_errors: Optional[List[Optional[Exception]]] = None,
        cookie_errors: Optional[List[Optional[Exception]]] = None,
    ) -> None:
        t('tests.helpers.FakeSessionFactory.__init__')
        self.open_errors = list(open_errors or [])
        self.cookie_errors = list(cookie_errors or [])
        self.script = {key: list(steps) for key, steps in (script or {}).items()}
        self.cookie_header = cookie_header
        self.login_error = login_error
        self.sessions: List[FakeSession] = []
        self.navigations: List[str] = []
        self.closed = 0

    async def open(self, credentials: Any) -> FakeSession:
        t('tests.helpers.FakeSessionFactory.open')
        if self.login_error is not None:
            raise self.login_error
        if self.open_errors:
            error = self.open_errors.pop(0)
            if error is not None:
                raise error
        session = FakeSession(self)
        self.sessions.append(session)
        return session


class FakeClock:
    """Clock synchronizer double that never sleeps."""

    def __init__(self, round_trip_ms: int = 150) -> None:
        t('tests.helpers.FakeClock.__init__')
        self.round_trip_ms = round_trip_ms
        self.waits: List[int] = []
        self.synced = 0

    async def ensure_fresh(self) -> None:
        self.synced += 1

    async def measure_latency(self) -> int:
        return self.round_trip_ms

    async def wait_until(self, target_ms: int, cancel_token: Any = None) -> int:
        t('tests.helpers.FakeClock.wait_until')
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        self.waits.append(target_ms)
        return 0


def make_request(
    courts: Tuple[str, ...] = ("1", "2", "3"),
    target_instant_ms: int = 1_000_000,
    booking_date: Any = None,
    time_minutes: int = 540,
) -> Any:
    """Acquisition request for the given court numbers with test credentials."""
    t('tests.helpers.make_request')
    from datetime import date

    from automation.shared.booking_contracts import (
        AcquisitionRequest,
        BookingCredentials,
        BookingParameters,
    )

    return AcquisitionRequest.from_courts(
        courts,
        target_instant_ms,
        BookingParameters(booking_date=booking_date or date(2025, 11, 5), time_minutes=time_minutes),
        BookingCredentials(username="member@example.com", password="secret"),
        request_id="req-1",
    )

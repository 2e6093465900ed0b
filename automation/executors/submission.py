"""Final booking write: session fields + challenge token -> one HTTP POST."""

from __future__ import annotations
from tracking import t

import logging
import re
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import urlencode, urljoin

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from automation.browser.session import booking_form_url
from automation.shared.booking_contracts import AcquisitionRequest, CourtTarget, SubmissionOutcome
from automation.shared.cancellation import CancellationToken
from automation.shared.errors import ChallengeTokenError, MissingSessionFieldError, SubmissionError
from infrastructure.constants import (
    BOOKING_SAVE_PATH,
    BrowserTimeouts,
    CONFIRMATION_ID_PATTERN,
    CONFIRMATION_URL_PATTERN,
    FORM_DEFAULT_DURATION,
    FORM_FIELD_SELECTORS,
    GAMETIME_BASE_URL,
    RECAPTCHA_ACTION,
    RECAPTCHA_SITE_KEY,
    USER_AGENT,
)

GRECAPTCHA_READY_SCRIPT = "() => typeof window.grecaptcha !== 'undefined'"
GRECAPTCHA_EXECUTE_SCRIPT = (
    "async ([siteKey, action]) => await window.grecaptcha.execute(siteKey, {action: action})"
)
READ_VALUE_SCRIPT = "el => el.value"


@dataclass(frozen=True)
class SessionFields:
    """Session-bound values scraped from the loaded booking form."""

    temp: str
    user_id: str
    user_name: str


def build_form_fields(
    fields: SessionFields,
    token: str,
    target: CourtTarget,
    request: AcquisitionRequest,
) -> List[Tuple[str, str]]:
    """Ordered form body of the save endpoint.

    ``duration`` appears twice: the form's hidden default first, then the
    requested length, exactly as the browser form posts it.
    """
    t('automation.executors.submission.build_form_fields')
    params = request.parameters
    return [
        ("edit", ""),
        ("is_register", ""),
        ("rt_key", ""),
        ("temp", fields.temp),
        ("upd", "true"),
        ("duration", str(FORM_DEFAULT_DURATION)),
        ("g-recaptcha-response", token),
        ("court", target.court_id),
        ("date", params.form_date),
        ("time", str(params.time_minutes)),
        ("sportSel", params.sport_id),
        ("duration", str(params.duration_minutes)),
        ("rtype", params.reservation_type),
        ("invite_for", params.invite_for),
        ("players[1][user_id]", fields.user_id),
        ("players[1][name]", fields.user_name),
        ("players[2][user_id]", ""),
        ("players[2][name]", params.guest_name),
        ("players[2][guest]", "on"),
        ("players[2][guestof]", "1"),
        ("payee_hide", fields.user_id),
        ("bookingWaiverPolicy", "true"),
    ]


def interpret_response(
    response: httpx.Response,
    target: CourtTarget,
    base_url: str = GAMETIME_BASE_URL,
) -> SubmissionOutcome:
    """Map the save endpoint's answer to a submission outcome."""
    t('automation.executors.submission.interpret_response')
    status = response.status_code

    if 300 <= status < 400:
        location = response.headers.get("location")
        if not location:
            return SubmissionOutcome.unexpected_result(
                f"Redirect {status} without a Location header", http_status=status
            )

        final_url = urljoin(f"{base_url.rstrip('/')}/", location)
        if CONFIRMATION_URL_PATTERN in final_url:
            match = re.search(CONFIRMATION_ID_PATTERN, final_url)
            return SubmissionOutcome.success_result(
                target,
                match.group(1) if match else None,
                confirmation_url=final_url,
                http_status=status,
            )

        return SubmissionOutcome.contended_result(
            f"{target.label} is unavailable (redirected to {final_url})", http_status=status
        )

    return SubmissionOutcome.unexpected_result(
        f"Unexpected response status {status} for {target.label}", http_status=status
    )


class BookingSubmissionPipeline:
    """Converts a ready booking form into the final low-latency write."""

    def __init__(
        self,
        *,
        base_url: str = GAMETIME_BASE_URL,
        site_key: str = RECAPTCHA_SITE_KEY,
        challenge_timeout_ms: int = BrowserTimeouts.CHALLENGE_READY,
        challenge_settle_ms: int = BrowserTimeouts.CHALLENGE_SETTLE,
        write_timeout_ms: int = BrowserTimeouts.HTTP_WRITE,
        close_browser_before_submit: bool = True,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        monotonic: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.executors.submission.BookingSubmissionPipeline.__init__')
        self.base_url = base_url.rstrip("/")
        self.site_key = site_key
        self.challenge_timeout_ms = challenge_timeout_ms
        self.challenge_settle_ms = challenge_settle_ms
        self.write_timeout_ms = write_timeout_ms
        self.close_browser_before_submit = close_browser_before_submit
        self._client_factory = client_factory or self._default_client
        self._monotonic = monotonic
        self.logger = logger or logging.getLogger("BookingSubmission")

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "BookingSubmissionPipeline":
        t('automation.executors.submission.BookingSubmissionPipeline.from_settings')
        options = dict(
            base_url=settings.base_url,
            site_key=settings.recaptcha_site_key,
            challenge_timeout_ms=settings.challenge_timeout_ms,
            write_timeout_ms=settings.write_timeout_ms,
            close_browser_before_submit=settings.close_browser_before_submit,
        )
        options.update(overrides)
        return cls(**options)

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.write_timeout_ms / 1000),
            follow_redirects=False,
        )

    # ------------------------------------------------------------------
    # Browser side
    # ------------------------------------------------------------------
    async def _read_value(self, page: Any, selector: str) -> str:
        try:
            value = await page.eval_on_selector(selector, READ_VALUE_SCRIPT)
        except Exception as exc:
            self.logger.debug("Could not read %s: %s", selector, exc)
            return ""
        return str(value or "")

    async def extract_fields(self, page: Any) -> SessionFields:
        """Read ``temp`` and the member fields; ``user_id`` is mandatory."""
        t('automation.executors.submission.BookingSubmissionPipeline.extract_fields')
        fields = SessionFields(
            temp=await self._read_value(page, FORM_FIELD_SELECTORS['temp']),
            user_id=await self._read_value(page, FORM_FIELD_SELECTORS['user_id']),
            user_name=await self._read_value(page, FORM_FIELD_SELECTORS['user_name']),
        )
        if not fields.user_id:
            raise MissingSessionFieldError("user_id")
        if not fields.temp:
            self.logger.warning("Booking form has an empty temp field")
        return fields

    async def generate_token(self, page: Any) -> str:
        """Wait (bounded) for reCAPTCHA and execute it for a fresh token."""
        t('automation.executors.submission.BookingSubmissionPipeline.generate_token')
        try:
            await page.wait_for_function(GRECAPTCHA_READY_SCRIPT, timeout=self.challenge_timeout_ms)
        except PlaywrightTimeout:
            self.logger.warning("grecaptcha not loaded after %sms, trying anyway", self.challenge_timeout_ms)
        except PlaywrightError as exc:
            raise ChallengeTokenError(f"Page unusable while waiting for reCAPTCHA: {exc}") from exc

        if self.challenge_settle_ms > 0:
            try:
                await page.wait_for_timeout(self.challenge_settle_ms)
            except PlaywrightError as exc:
                raise ChallengeTokenError(f"Page unusable while waiting for reCAPTCHA: {exc}") from exc

        try:
            token = await page.evaluate(GRECAPTCHA_EXECUTE_SCRIPT, [self.site_key, RECAPTCHA_ACTION])
        except Exception as exc:
            raise ChallengeTokenError(f"Failed to generate reCAPTCHA token: {exc}") from exc

        if not token:
            raise ChallengeTokenError("Failed to generate reCAPTCHA token")
        self.logger.debug("Token generated: %s...", str(token)[:20])
        return str(token)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    def _headers(self, cookie_header: str, referer: str) -> dict:
        return {
            "Cookie": cookie_header,
            "User-Agent": USER_AGENT,
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Origin": self.base_url,
            "Referer": referer,
            "Upgrade-Insecure-Requests": "1",
        }

    async def submit(
        self,
        session: Any,
        target: CourtTarget,
        request: AcquisitionRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SubmissionOutcome:
        """
        Submit the booking for a court whose form is loaded in ``session``

        Never raises for per-court failures; only cancellation propagates.
        """
        t('automation.executors.submission.BookingSubmissionPipeline.submit')
        page = session.page
        try:
            fields = await self.extract_fields(page)
            token = await self.generate_token(page)
        except SubmissionError as exc:
            self.logger.error("❌ %s: %s", target.label, exc)
            return SubmissionOutcome.unexpected_result(str(exc))

        token_ready_at = self._monotonic()
        try:
            cookie_header = await session.cookie_header()
        except PlaywrightError as exc:
            self.logger.error("❌ %s: could not read session cookies: %s", target.label, exc)
            await session.close()
            return SubmissionOutcome.unexpected_result(f"Could not read session cookies for {target.label}: {exc}")

        if self.close_browser_before_submit:
            await session.close()

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        body = urlencode(build_form_fields(fields, token, target, request))
        referer = booking_form_url(self.base_url, target, request.parameters)

        self.logger.info("📤 Submitting booking for %s", target.label)
        try:
            async with self._client_factory() as client:
                response = await client.post(
                    f"{self.base_url}{BOOKING_SAVE_PATH}",
                    content=body,
                    headers=self._headers(cookie_header, referer),
                    follow_redirects=False,
                )
        except httpx.TimeoutException as exc:
            self.logger.error("❌ %s: booking write timed out (%s)", target.label, exc)
            return SubmissionOutcome.unexpected_result(f"Booking write timed out for {target.label}")
        except httpx.HTTPError as exc:
            self.logger.error("❌ %s: booking write failed: %s", target.label, exc)
            return SubmissionOutcome.unexpected_result(f"Booking write failed for {target.label}: {exc}")

        gap_ms = int(round((self._monotonic() - token_ready_at) * 1000))
        self.logger.info("Response status %s, token-to-write gap %sms", response.status_code, gap_ms)

        outcome = replace(interpret_response(response, target, self.base_url), token_to_write_ms=gap_ms)

        if outcome.success:
            self.logger.info(
                "✅ %s booking SUCCESSFUL, booking id %s", target.label, outcome.confirmation_id
            )
        else:
            self.logger.warning("❌ %s booking failed: %s", target.label, outcome.diagnostic)
        return outcome


__all__ = [
    "BookingSubmissionPipeline",
    "SessionFields",
    "build_form_fields",
    "interpret_response",
]

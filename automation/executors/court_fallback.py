"""Sequential court fallback: one run of the precision-timed acquisition engine."""

from __future__ import annotations
from tracking import t

import logging
from typing import Any, List, Optional

import httpx

from automation.browser.session import BrowserSessionFactory
from automation.executors.retry_controller import Navigator, RetryController
from automation.executors.submission import BookingSubmissionPipeline
from automation.forms.page_classifier import PageClassifier
from automation.shared.booking_contracts import (
    AcquisitionRequest,
    CourtTarget,
    OutcomeStatus,
    SubmissionOutcome,
)
from automation.shared.cancellation import CancellationToken
from automation.shared.errors import (
    AcquisitionCancelled,
    AuthenticationError,
    NoTargetsConfiguredError,
)
from automation.timing.booking_window import format_in_gametime_zone
from automation.timing.clock_sync import ClockSynchronizer, compute_load_time
from infrastructure.constants import LATENCY_FALLBACK_MS


class CourtFallbackOrchestrator:
    """
    Try each court of a request strictly in order until one is booked

    Courts are never reordered, deduplicated or attempted in parallel. Only
    run-fatal errors (no courts, failed login) escape :meth:`acquire`; every
    other failure ends up in the returned :class:`SubmissionOutcome`.
    """

    def __init__(
        self,
        *,
        session_factory: Any,
        clock: Any,
        retry_controller: Optional[RetryController] = None,
        submission: Optional[BookingSubmissionPipeline] = None,
        fallback_round_trip_ms: int = LATENCY_FALLBACK_MS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.executors.court_fallback.CourtFallbackOrchestrator.__init__')
        self.session_factory = session_factory
        self.clock = clock
        self.retry_controller = retry_controller or RetryController()
        self.submission = submission or BookingSubmissionPipeline()
        self.fallback_round_trip_ms = fallback_round_trip_ms
        self.logger = logger or logging.getLogger("CourtFallback")

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        clock: Optional[ClockSynchronizer] = None,
    ) -> "CourtFallbackOrchestrator":
        """Wire the production engine from :class:`AppSettings`."""
        t('automation.executors.court_fallback.CourtFallbackOrchestrator.from_settings')
        classifier = PageClassifier(form_ready_timeout_ms=settings.form_ready_timeout_ms)
        return cls(
            session_factory=BrowserSessionFactory.from_settings(settings),
            clock=clock
            or ClockSynchronizer(
                settings.base_url,
                probe_count=settings.latency_probe_count,
                fallback_round_trip_ms=settings.latency_fallback_ms,
                max_age_seconds=settings.clock_sync_max_age_seconds,
            ),
            retry_controller=RetryController(classifier, max_retries=settings.max_retries),
            submission=BookingSubmissionPipeline.from_settings(settings),
            fallback_round_trip_ms=settings.latency_fallback_ms,
        )

    async def _load_time(self, request: AcquisitionRequest) -> int:
        """Refresh the clock view and derive when the first form load starts."""
        try:
            await self.clock.ensure_fresh()
            round_trip_ms = await self.clock.measure_latency()
        except (httpx.HTTPError, OSError) as exc:
            self.logger.warning(
                "⚠️ Latency measurement failed (%s); assuming %sms", exc, self.fallback_round_trip_ms
            )
            round_trip_ms = self.fallback_round_trip_ms

        load_time = compute_load_time(request.target_instant_ms, round_trip_ms)
        self.logger.info(
            "🎯 Target %s, RTT %sms, form load at %s",
            format_in_gametime_zone(request.target_instant_ms),
            round_trip_ms,
            format_in_gametime_zone(load_time),
        )
        return load_time

    def _navigator(
        self,
        session: Any,
        request: AcquisitionRequest,
        load_time: int,
        cancel_token: CancellationToken,
    ) -> Navigator:
        async def navigate(target: CourtTarget, first_attempt: bool) -> Any:
            if first_attempt:
                lateness_ms = await self.clock.wait_until(load_time, cancel_token)
                self.logger.debug("%s: first navigation %sms after load time", target.label, lateness_ms)
            cancel_token.raise_if_cancelled()
            return await session.open_booking_form(target, request.parameters)

        return navigate

    async def acquire(
        self,
        request: AcquisitionRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SubmissionOutcome:
        """
        Run the engine once for ``request``

        Raises:
            NoTargetsConfiguredError: the request has no courts
            AuthenticationError: the GameTime login before the first court failed
        """
        t('automation.executors.court_fallback.CourtFallbackOrchestrator.acquire')
        if not request.targets:
            raise NoTargetsConfiguredError("No courts configured for this booking")

        token = cancel_token or CancellationToken()
        attempted: List[CourtTarget] = []
        failures: List[str] = []
        session = None

        self.logger.info(
            "Starting acquisition for %s at %s, courts to try: %s",
            request.parameters.form_date,
            request.parameters.time_label,
            ", ".join(target.label for target in request.targets),
        )

        try:
            session = await self.session_factory.open(request.credentials)
            load_time = await self._load_time(request)

            for index, target in enumerate(request.targets, start=1):
                token.raise_if_cancelled()
                attempted.append(target)
                self.logger.info("🎾 Attempt %s/%s: %s", index, len(request.targets), target.label)

                # Only the login before the first court is run-fatal
                if not session.is_open:
                    self.logger.info("Opening a new session for %s", target.label)
                    try:
                        session = await self.session_factory.open(request.credentials)
                    except AuthenticationError as exc:
                        self.logger.error("❌ %s: could not reopen session: %s", target.label, exc)
                        failures.append(f"{target.label}: session reopen failed: {exc}")
                        continue

                attempt = await self.retry_controller.attempt(
                    target,
                    self._navigator(session, request, load_time, token),
                    token,
                )
                if not attempt.ready:
                    last = attempt.state.last_result.value if attempt.state.last_result else "unknown"
                    failures.append(f"{target.label}: {last}")
                    continue

                outcome = await self.submission.submit(session, target, request, token)
                if outcome.success:
                    if index > 1:
                        self.logger.info(
                            "Preferred %s was unavailable, booked %s instead",
                            request.targets[0].label,
                            target.label,
                        )
                    return outcome.with_attempts(attempted)

                failures.append(f"{target.label}: {outcome.diagnostic}")
                if index < len(request.targets):
                    self.logger.info("Trying next court...")

        except AcquisitionCancelled as exc:
            self.logger.warning("🛑 Acquisition cancelled: %s", exc)
            return SubmissionOutcome(
                status=OutcomeStatus.CANCELLED,
                diagnostic=f"Acquisition cancelled: {exc}",
                targets_attempted=tuple(attempted),
            )
        finally:
            if session is not None:
                await session.close()

        tried = ", ".join(target.label for target in attempted)
        self.logger.error("❌ All courts unavailable or failed. Tried: %s", tried)
        for failure in failures:
            self.logger.debug("  %s", failure)
        return SubmissionOutcome(
            status=OutcomeStatus.EXHAUSTED,
            diagnostic=f"All courts unavailable or failed. Tried: {tried}",
            targets_attempted=tuple(attempted),
        )


__all__ = ["CourtFallbackOrchestrator"]

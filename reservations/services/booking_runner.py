"""Polling service that feeds due reservations to the acquisition engine."""

from __future__ import annotations
from tracking import t

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional

import pytz

from automation.executors.court_fallback import CourtFallbackOrchestrator
from automation.shared.booking_contracts import OutcomeStatus, SubmissionOutcome
from automation.shared.cancellation import CancellationToken
from automation.shared.errors import BookingEngineError
from reservations.queue.request_builder import ReservationRequestBuilder
from reservations.queue.reservation_repository import ReservationRepository
from reservations.queue.reservation_transitions import (
    failed_updates,
    failure_message,
    in_progress_updates,
    success_updates,
)


@dataclass(frozen=True)
class RunReport:
    """What happened to one reservation during a polling cycle."""

    reservation_id: str
    status: str
    message: str
    outcome: Optional[SubmissionOutcome] = None


class BookingRunner:
    """
    Background runner that executes reservations once their window opens

    Reservations are processed one at a time: the remote site allows a single
    booking session per member.
    """

    def __init__(
        self,
        repository: ReservationRepository,
        engine: CourtFallbackOrchestrator,
        builder: Optional[ReservationRequestBuilder] = None,
        *,
        max_retry_count: int = 3,
        lead_seconds: int = 90,
        check_interval: float = 60.0,
        pause_between_bookings: float = 2.0,
        now: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('reservations.services.booking_runner.BookingRunner.__init__')
        self.repository = repository
        self.engine = engine
        self.builder = builder or ReservationRequestBuilder()
        self.max_retry_count = max_retry_count
        self.lead_seconds = lead_seconds
        self.check_interval = check_interval
        self.pause_between_bookings = pause_between_bookings
        self._now = now or (lambda: datetime.now(pytz.utc))
        self.logger = logger or logging.getLogger("BookingRunner")
        self.running = False
        self._cancel_token: Optional[CancellationToken] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "BookingRunner":
        t('reservations.services.booking_runner.BookingRunner.from_settings')
        logger = logging.getLogger("BookingRunner")
        return cls(
            ReservationRepository(settings.reservations_file, logger=logger),
            CourtFallbackOrchestrator.from_settings(settings),
            ReservationRequestBuilder.from_settings(settings),
            max_retry_count=settings.runner_max_retry_count,
            lead_seconds=settings.runner_lead_seconds,
            check_interval=settings.runner_check_interval,
            logger=logger,
        )

    async def run_once(self) -> List[RunReport]:
        """Execute every reservation that is currently due."""
        t('reservations.services.booking_runner.BookingRunner.run_once')
        now = self._now()
        due = self.repository.due(now, lead_seconds=self.lead_seconds, max_retry_count=self.max_retry_count)
        if not due:
            self.logger.info("No pending bookings found")
            return []

        self.logger.info("Found %s booking(s) to execute", len(due))
        reports = []
        for index, reservation in enumerate(due):
            reports.append(await self.execute(reservation))
            if index < len(due) - 1 and self.pause_between_bookings > 0:
                await asyncio.sleep(self.pause_between_bookings)
        return reports

    async def execute(self, reservation: dict) -> RunReport:
        """Run the engine for one reservation and record the result."""
        t('reservations.services.booking_runner.BookingRunner.execute')
        reservation_id = str(reservation.get("id"))
        self.logger.info(
            "Processing booking %s: court %s on %s at %s",
            reservation_id,
            reservation.get("preferred_court"),
            reservation.get("booking_date"),
            reservation.get("booking_time"),
        )

        credentials = self.builder.resolve_credentials(reservation)
        if credentials is None:
            return self._record_failure(reservation, "Credentials not found for user")

        self.repository.update(reservation_id, in_progress_updates(self._now()))
        self._cancel_token = CancellationToken()
        try:
            request = self.builder.build(reservation, credentials=credentials, now=self._now())
            outcome = await self.engine.acquire(request, self._cancel_token)
        except (BookingEngineError, ValueError) as exc:
            self.logger.error("❌ Booking %s failed: %s", reservation_id, exc)
            return self._record_failure(reservation, str(exc))
        except Exception as exc:
            self.logger.exception("❌ Booking %s failed with exception", reservation_id)
            return self._record_failure(reservation, str(exc))
        finally:
            self._cancel_token = None

        if outcome.success:
            updates = success_updates(reservation, outcome, self._now())
            self.repository.update(reservation_id, updates)
            self.logger.info(
                "✅ Booking %s CONFIRMED, confirmation id %s: %s",
                reservation_id,
                outcome.confirmation_id,
                updates["status_message"],
            )
            if outcome.token_to_write_ms is not None:
                self.logger.info("Token submission time: %sms", outcome.token_to_write_ms)
            return RunReport(reservation_id, "success", updates["status_message"], outcome)

        if outcome.status == OutcomeStatus.CANCELLED:
            self.repository.update(
                reservation_id,
                {"auto_book_status": "pending", "status_message": outcome.diagnostic},
            )
            return RunReport(reservation_id, "pending", outcome.diagnostic, outcome)

        return self._record_failure(reservation, failure_message(reservation, outcome), outcome)

    def _record_failure(
        self,
        reservation: dict,
        message: str,
        outcome: Optional[SubmissionOutcome] = None,
    ) -> RunReport:
        reservation_id = str(reservation.get("id"))
        updates = failed_updates(reservation, message, self._now())
        self.repository.update(reservation_id, updates)
        self.logger.warning(
            "❌ Booking %s FAILED: %s (retry %s/%s)",
            reservation_id,
            message,
            updates["retry_count"],
            self.max_retry_count,
        )
        return RunReport(reservation_id, "failed", message, outcome)

    async def run_forever(self) -> None:
        """Poll until :meth:`stop` is called."""
        t('reservations.services.booking_runner.BookingRunner.run_forever')
        self.running = True
        self.logger.info("Booking runner started, checking every %ss", self.check_interval)
        while self.running:
            try:
                await self.run_once()
            except Exception as exc:
                self.logger.error("Runner error: %s", exc)
            if self.running:
                await asyncio.sleep(self.check_interval)
        self.logger.info("Booking runner stopped")

    def stop(self, reason: str = "runner stopping") -> None:
        t('reservations.services.booking_runner.BookingRunner.stop')
        self.running = False
        if self._cancel_token is not None:
            self._cancel_token.cancel(reason)


__all__ = ["BookingRunner", "RunReport"]

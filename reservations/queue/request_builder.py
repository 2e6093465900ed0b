"""Builders for transforming stored reservations into acquisition requests."""

from __future__ import annotations
from tracking import t

from datetime import date, datetime
from typing import Any, List, Mapping, Optional

import pytz

from automation.shared.booking_contracts import (
    AcquisitionRequest,
    BookingCredentials,
    BookingParameters,
)
from automation.timing.booking_window import get_booking_strategy
from infrastructure.constants import (
    ALL_COURT_NUMBERS,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_GUEST_NAME,
    GAMETIME_TIMEZONE,
)

REQUIRED_RESERVATION_FIELDS = {"booking_date", "booking_time", "preferred_court"}


def time_to_minutes(value: str) -> int:
    """Convert ``"HH:MM"`` (seconds ignored) into minutes since midnight."""
    t('reservations.queue.request_builder.time_to_minutes')
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid booking time: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid booking time: {value!r}")
    return hours * 60 + minutes


def courts_to_try(preferred_court: Any, accept_any_court: bool) -> List[str]:
    """Preferred court first, then every other court when any court is acceptable."""
    t('reservations.queue.request_builder.courts_to_try')
    preferred = str(preferred_court).strip()
    courts = [preferred]
    if accept_any_court:
        courts.extend(court for court in ALL_COURT_NUMBERS if court != preferred)
    return courts


class ReservationRequestBuilder:
    """Construct acquisition requests from reservation records."""

    def __init__(
        self,
        *,
        default_credentials: Optional[BookingCredentials] = None,
        guest_name: str = DEFAULT_GUEST_NAME,
        timezone: str = GAMETIME_TIMEZONE,
    ) -> None:
        t('reservations.queue.request_builder.ReservationRequestBuilder.__init__')
        self.default_credentials = default_credentials
        self.guest_name = guest_name
        self.timezone = timezone

    @classmethod
    def from_settings(cls, settings: Any) -> "ReservationRequestBuilder":
        t('reservations.queue.request_builder.ReservationRequestBuilder.from_settings')
        credentials = None
        if settings.gametime_username and settings.gametime_password:
            credentials = BookingCredentials(settings.gametime_username, settings.gametime_password)
        return cls(
            default_credentials=credentials,
            guest_name=settings.guest_name,
            timezone=settings.timezone,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def resolve_credentials(self, reservation: Mapping[str, Any]) -> Optional[BookingCredentials]:
        """Credentials stored on the record, else the configured defaults."""
        t('reservations.queue.request_builder.ReservationRequestBuilder.resolve_credentials')
        stored = reservation.get("credentials") or {}
        username = stored.get("username")
        password = stored.get("password")
        if username and password:
            return BookingCredentials(username=username, password=password)
        return self.default_credentials

    def build(
        self,
        reservation: Mapping[str, Any],
        *,
        credentials: Optional[BookingCredentials] = None,
        now: Optional[datetime] = None,
    ) -> AcquisitionRequest:
        """
        Convert a reservation mapping into an :class:`AcquisitionRequest`

        Raises:
            ValueError: missing fields, unknown courts or malformed times
        """
        t('reservations.queue.request_builder.ReservationRequestBuilder.build')
        self._ensure_fields(reservation, REQUIRED_RESERVATION_FIELDS, "Reservation")

        credentials = credentials or self.resolve_credentials(reservation)
        if credentials is None:
            raise ValueError("Credentials not found for user")

        booking_date = self._parse_date(reservation["booking_date"])
        parameters = BookingParameters(
            booking_date=booking_date,
            time_minutes=time_to_minutes(reservation["booking_time"]),
            duration_minutes=int(reservation.get("duration_minutes") or DEFAULT_DURATION_MINUTES),
            guest_name=reservation.get("guest_name") or self.guest_name,
        )

        courts = courts_to_try(
            reservation["preferred_court"],
            bool(reservation.get("accept_any_court", False)),
        )
        strategy = get_booking_strategy(booking_date, now, self.timezone)

        try:
            return AcquisitionRequest.from_courts(
                courts,
                strategy.execute_at_ms,
                parameters,
                credentials,
                request_id=reservation.get("id"),
                metadata={
                    "user_id": reservation.get("user_id"),
                    "preferred_court": str(reservation["preferred_court"]),
                    "strategy": strategy.mode,
                },
            )
        except KeyError as exc:
            raise ValueError(f"Unknown court in reservation: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _parse_date(value: Any) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return datetime.strptime(value.strip()[:10], "%Y-%m-%d").date()
        raise ValueError(f"Unsupported date value: {value!r}")

    @staticmethod
    def _ensure_fields(source: Mapping[str, Any], required: set, label: str) -> None:
        missing = [field for field in required if source.get(field) in (None, "")]
        if missing:
            raise ValueError(f"{label} missing required fields: {', '.join(sorted(missing))}")


def scheduled_execute_time(
    booking_date: date,
    now: Optional[datetime] = None,
    timezone: str = GAMETIME_TIMEZONE,
) -> str:
    """ISO timestamp (UTC) at which a reservation becomes due."""
    t('reservations.queue.request_builder.scheduled_execute_time')
    strategy = get_booking_strategy(booking_date, now, timezone)
    return strategy.execute_at.astimezone(pytz.utc).isoformat()


__all__ = [
    "ReservationRequestBuilder",
    "courts_to_try",
    "scheduled_execute_time",
    "time_to_minutes",
]

"""Shared booking request/result contracts for the runner, engine and submission."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from infrastructure.constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_GUEST_NAME,
    DEFAULT_INVITE_FOR,
    DEFAULT_RESERVATION_TYPE,
    DEFAULT_SPORT_ID,
    court_number_to_id,
)


@dataclass(frozen=True)
class CourtTarget:
    """One contested court. Equality is by GameTime court id only."""

    court_id: str
    court_number: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_court_number(cls, number: str) -> "CourtTarget":
        number = str(number).strip()
        return cls(court_id=court_number_to_id(number), court_number=number)

    @property
    def label(self) -> str:
        if self.court_number:
            return f"Court {self.court_number}"
        return f"Court id {self.court_id}"

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class BookingCredentials:
    """GameTime login material. The password never appears in reprs."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class BookingParameters:
    """Resource parameters shared by every court attempt of a run."""

    booking_date: date
    time_minutes: int
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    reservation_type: str = DEFAULT_RESERVATION_TYPE
    invite_for: str = DEFAULT_INVITE_FOR
    guest_name: str = DEFAULT_GUEST_NAME
    sport_id: str = DEFAULT_SPORT_ID

    @property
    def form_date(self) -> str:
        """Date as the write endpoint expects it (``2025-11-05``)."""

        return self.booking_date.strftime("%Y-%m-%d")

    @property
    def url_date(self) -> str:
        """Date as the booking form URL expects it, without leading zeros."""

        return f"{self.booking_date.year}-{self.booking_date.month}-{self.booking_date.day}"

    @property
    def time_label(self) -> str:
        hours, minutes = divmod(self.time_minutes, 60)
        return f"{hours:02d}:{minutes:02d}"


@dataclass(frozen=True)
class AcquisitionRequest:
    """Immutable input of one acquisition run."""

    targets: Tuple[CourtTarget, ...]
    target_instant_ms: int
    parameters: BookingParameters
    credentials: BookingCredentials
    request_id: Optional[str] = None
    metadata: Dict[str, object] = field(default_factory=dict, compare=False)

    @classmethod
    def from_courts(
        cls,
        courts: Iterable[str],
        target_instant_ms: int,
        parameters: BookingParameters,
        credentials: BookingCredentials,
        *,
        request_id: Optional[str] = None,
        metadata: Optional[Dict[str, object]] = None,
    ) -> "AcquisitionRequest":
        """Build a request from court display numbers, keeping their order."""

        return cls(
            targets=tuple(CourtTarget.from_court_number(court) for court in courts),
            target_instant_ms=int(target_instant_ms),
            parameters=parameters,
            credentials=credentials,
            request_id=request_id,
            metadata=dict(metadata or {}),
        )


class OutcomeStatus(Enum):
    """Terminal classification of a submission or of a whole run."""

    SUCCESS = "success"
    CONTENDED = "contended"
    UNEXPECTED = "unexpected"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Canonical result surfaced to the runner and the status sink."""

    status: OutcomeStatus
    diagnostic: str
    confirmation_id: Optional[str] = None
    confirmation_url: Optional[str] = None
    target: Optional[CourtTarget] = None
    targets_attempted: Tuple[CourtTarget, ...] = field(default_factory=tuple)
    http_status: Optional[int] = None
    token_to_write_ms: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def success_result(
        cls,
        target: CourtTarget,
        confirmation_id: Optional[str],
        *,
        confirmation_url: Optional[str] = None,
        http_status: Optional[int] = None,
        token_to_write_ms: Optional[int] = None,
    ) -> "SubmissionOutcome":
        return cls(
            status=OutcomeStatus.SUCCESS,
            diagnostic=f"{target.label} booked (confirmation {confirmation_id or 'unknown'})",
            confirmation_id=confirmation_id,
            confirmation_url=confirmation_url,
            target=target,
            http_status=http_status,
            token_to_write_ms=token_to_write_ms,
        )

    @classmethod
    def contended_result(
        cls,
        diagnostic: str,
        *,
        http_status: Optional[int] = None,
        token_to_write_ms: Optional[int] = None,
    ) -> "SubmissionOutcome":
        return cls(
            status=OutcomeStatus.CONTENDED,
            diagnostic=diagnostic,
            http_status=http_status,
            token_to_write_ms=token_to_write_ms,
        )

    @classmethod
    def unexpected_result(
        cls,
        diagnostic: str,
        *,
        http_status: Optional[int] = None,
        token_to_write_ms: Optional[int] = None,
    ) -> "SubmissionOutcome":
        return cls(
            status=OutcomeStatus.UNEXPECTED,
            diagnostic=diagnostic,
            http_status=http_status,
            token_to_write_ms=token_to_write_ms,
        )

    def with_attempts(self, targets: Iterable[CourtTarget]) -> "SubmissionOutcome":
        """Return a copy recording the targets attempted during the run."""

        return replace(self, targets_attempted=tuple(targets))

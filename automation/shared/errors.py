"""Exception hierarchy for the acquisition engine.

Run-fatal errors escape :meth:`CourtFallbackOrchestrator.acquire`; everything
else is converted into a :class:`SubmissionOutcome` at the component seams.
"""

from __future__ import annotations


class BookingEngineError(Exception):
    """Base class for all engine errors."""


class RunFatalError(BookingEngineError):
    """Aborts the whole run before any court is attempted."""


class NoTargetsConfiguredError(RunFatalError, ValueError):
    """The acquisition request carries no courts to try."""


class AuthenticationError(RunFatalError):
    """The GameTime login did not produce an authenticated session."""


class SubmissionError(BookingEngineError):
    """Aborts the current court only; the orchestrator advances."""


class MissingSessionFieldError(SubmissionError):
    """A required session-bound form field could not be extracted."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Missing {field_name} from form extraction")
        self.field_name = field_name


class ChallengeTokenError(SubmissionError):
    """The reCAPTCHA token could not be generated."""


class AcquisitionCancelled(BookingEngineError):
    """Raised at a suspension point once cancellation was requested."""

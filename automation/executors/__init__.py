"""Booking execution modules for the acquisition engine."""

from .court_fallback import CourtFallbackOrchestrator
from .retry_controller import (
    AttemptState,
    RetryController,
    RetryDecision,
    TargetAttempt,
    decide,
)
from .submission import BookingSubmissionPipeline, build_form_fields, interpret_response

__all__ = [
    "AttemptState",
    "BookingSubmissionPipeline",
    "CourtFallbackOrchestrator",
    "RetryController",
    "RetryDecision",
    "TargetAttempt",
    "build_form_fields",
    "decide",
    "interpret_response",
]

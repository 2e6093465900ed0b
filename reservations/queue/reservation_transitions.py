"""State transition helpers for stored reservations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import pytz

from automation.shared.booking_contracts import SubmissionOutcome
from tracking import t


def _timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(pytz.utc)).isoformat()


def in_progress_updates(now: Optional[datetime] = None) -> Dict[str, Any]:
    t('reservations.queue.reservation_transitions.in_progress_updates')
    return {'auto_book_status': 'in_progress', 'updated_at': _timestamp(now)}


def success_message(preferred_court: Any, booked_court: Any) -> str:
    t('reservations.queue.reservation_transitions.success_message')
    if str(preferred_court) == str(booked_court):
        return f"Booking confirmed on Court {booked_court}"
    return f"Court {preferred_court} was unavailable. Booking confirmed on Court {booked_court} instead"


def failure_message(reservation: Dict[str, Any], outcome: SubmissionOutcome) -> str:
    """User-facing reason for a run that did not book anything."""

    t('reservations.queue.reservation_transitions.failure_message')
    if reservation.get('accept_any_court'):
        courts = ", ".join(target.court_number or target.court_id for target in outcome.targets_attempted)
        return f"No courts available. Attempted: Courts {courts}" if courts else outcome.diagnostic
    return f"Court {reservation.get('preferred_court')} is not available"


def success_updates(
    reservation: Dict[str, Any],
    outcome: SubmissionOutcome,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    t('reservations.queue.reservation_transitions.success_updates')
    booked = outcome.target.court_number if outcome.target else None
    return {
        'status': 'confirmed',
        'auto_book_status': 'success',
        'gametime_confirmation_id': outcome.confirmation_id,
        'confirmation_url': outcome.confirmation_url,
        'actual_court': booked,
        'status_message': success_message(reservation.get('preferred_court'), booked),
        'updated_at': _timestamp(now),
    }


def failed_updates(
    reservation: Dict[str, Any],
    message: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    t('reservations.queue.reservation_transitions.failed_updates')
    return {
        'auto_book_status': 'failed',
        'status_message': message,
        'retry_count': int(reservation.get('retry_count') or 0) + 1,
        'updated_at': _timestamp(now),
    }

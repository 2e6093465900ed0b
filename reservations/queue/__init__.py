"""Reservation store, request building and status transitions."""

from .request_builder import ReservationRequestBuilder, courts_to_try, time_to_minutes
from .reservation_repository import ReservationRepository

__all__ = [
    "ReservationRepository",
    "ReservationRequestBuilder",
    "courts_to_try",
    "time_to_minutes",
]

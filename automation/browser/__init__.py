"""Browser session management for the booking engine."""

from .session import BrowserSession, BrowserSessionFactory, booking_form_url

__all__ = [
    "BrowserSession",
    "BrowserSessionFactory",
    "booking_form_url",
]

"""Timing helpers: server clock synchronization and booking windows."""

from .booking_window import (
    BookingStrategy,
    calculate_booking_open_time,
    format_in_gametime_zone,
    get_booking_strategy,
    to_epoch_ms,
)
from .clock_sync import ClockOffset, ClockSynchronizer, compute_load_time, one_way_latency

__all__ = [
    "BookingStrategy",
    "ClockOffset",
    "ClockSynchronizer",
    "calculate_booking_open_time",
    "compute_load_time",
    "format_in_gametime_zone",
    "get_booking_strategy",
    "one_way_latency",
    "to_epoch_ms",
]

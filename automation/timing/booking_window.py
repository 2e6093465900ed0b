"""Booking window calculations in the GameTime server timezone.

GameTime opens a court slot for reservation 6 days before the target date at
8:00 AM local time (America/New_York). Bookings requested after that instant
run immediately; earlier ones are precision-timed for the opening instant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from tracking import t
from infrastructure.constants import (
    BOOKING_WINDOW_DAYS,
    BOOKING_WINDOW_OPEN_HOUR,
    GAMETIME_TIMEZONE,
)


@dataclass(frozen=True)
class BookingStrategy:
    """How and when a reservation should be executed."""

    mode: str
    execute_at: datetime
    reason: str

    @property
    def is_precision(self) -> bool:
        return self.mode == "precision"

    @property
    def execute_at_ms(self) -> int:
        return to_epoch_ms(self.execute_at)


def to_epoch_ms(moment: datetime) -> int:
    """Epoch milliseconds of an aware datetime (naive values are taken as UTC)."""

    t('automation.timing.booking_window.to_epoch_ms')
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return int(moment.timestamp() * 1000)


def calculate_booking_open_time(target_date: date, timezone: str = GAMETIME_TIMEZONE) -> datetime:
    """Return the UTC instant the slot for ``target_date`` becomes bookable."""

    t('automation.timing.booking_window.calculate_booking_open_time')
    tz = pytz.timezone(timezone)
    opening_day = target_date - timedelta(days=BOOKING_WINDOW_DAYS)
    local_open = tz.localize(datetime.combine(opening_day, time(hour=BOOKING_WINDOW_OPEN_HOUR)))
    return local_open.astimezone(pytz.utc)


def get_booking_strategy(
    target_date: date,
    now: Optional[datetime] = None,
    timezone: str = GAMETIME_TIMEZONE,
) -> BookingStrategy:
    """Choose between an immediate run and a precision-timed one."""

    t('automation.timing.booking_window.get_booking_strategy')
    current = now or datetime.now(pytz.utc)
    if current.tzinfo is None:
        current = pytz.utc.localize(current)

    open_time = calculate_booking_open_time(target_date, timezone)

    if current >= open_time:
        return BookingStrategy(
            mode="immediate",
            execute_at=current,
            reason=f"Booking slot is already open (within {BOOKING_WINDOW_DAYS}-day window)",
        )

    seconds_until_open = int((open_time - current).total_seconds())
    hours, remainder = divmod(seconds_until_open, 3600)
    minutes = remainder // 60
    return BookingStrategy(
        mode="precision",
        execute_at=open_time,
        reason=f"Booking opens in {hours}h {minutes}m at {open_time.isoformat()}",
    )


def format_in_gametime_zone(timestamp_ms: int, timezone: str = GAMETIME_TIMEZONE) -> str:
    """Format epoch milliseconds in the server timezone for log output."""

    t('automation.timing.booking_window.format_in_gametime_zone')
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=pytz.utc)
    local = moment.astimezone(pytz.timezone(timezone))
    return local.strftime("%Y-%m-%d %H:%M:%S.") + f"{timestamp_ms % 1000:03d} {local.tzname()}"

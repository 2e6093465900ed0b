"""Command line entrypoints for the court booking runner.

Commands:
    once    execute every reservation that is currently due, then exit
    watch   poll the reservation store until interrupted
    window  show when the booking window opens for a date
    add     add a reservation to the store
"""

from __future__ import annotations
from tracking import t

import argparse
import asyncio
import logging
import uuid
from datetime import datetime

import pytz

from infrastructure import logging_config  # noqa: F401  (configures handlers on import)
from infrastructure.constants import ALL_COURT_NUMBERS
from infrastructure.settings import get_settings
from automation.timing.booking_window import format_in_gametime_zone, get_booking_strategy
from reservations.queue.request_builder import scheduled_execute_time, time_to_minutes
from reservations.queue.reservation_repository import ReservationRepository
from reservations.services.booking_runner import BookingRunner

logger = logging.getLogger("BookingRunner")


def _parse_date(value: str):
    t('scripts.run_bookings._parse_date')
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def _parse_time(value: str) -> str:
    t('scripts.run_bookings._parse_time')
    try:
        time_to_minutes(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def run_once() -> int:
    t('scripts.run_bookings.run_once')
    runner = BookingRunner.from_settings(get_settings())
    reports = asyncio.run(runner.run_once())
    for report in reports:
        print(f"{report.reservation_id}: {report.status} - {report.message}")
    return 0 if all(report.status != "failed" for report in reports) else 1


def watch() -> int:
    t('scripts.run_bookings.watch')
    runner = BookingRunner.from_settings(get_settings())
    try:
        asyncio.run(runner.run_forever())
    except KeyboardInterrupt:
        runner.stop("interrupted")
        logger.info("Interrupted, exiting")
    return 0


def show_window(booking_date) -> int:
    t('scripts.run_bookings.show_window')
    settings = get_settings()
    strategy = get_booking_strategy(booking_date, timezone=settings.timezone)
    print(f"Mode:       {strategy.mode}")
    print(f"Execute at: {format_in_gametime_zone(strategy.execute_at_ms, settings.timezone)}")
    print(f"Reason:     {strategy.reason}")
    return 0


def add_reservation(args: argparse.Namespace) -> int:
    t('scripts.run_bookings.add_reservation')
    settings = get_settings()

    reservation = {
        "id": args.id or uuid.uuid4().hex,
        "user_id": args.user_id,
        "booking_date": args.date.isoformat(),
        "booking_time": args.time,
        "preferred_court": args.court,
        "accept_any_court": args.any_court,
        "status": "pending",
        "auto_book_status": "pending",
        "retry_count": 0,
        "scheduled_execute_time": scheduled_execute_time(args.date, timezone=settings.timezone),
        "created_at": datetime.now(pytz.utc).isoformat(),
    }

    repository = ReservationRepository(settings.reservations_file, logger=logger)
    reservations = repository.load()
    reservations.append(reservation)
    repository.save(reservations)
    print(f"Added reservation {reservation['id']}, due {reservation['scheduled_execute_time']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    t('scripts.run_bookings.build_parser')
    parser = argparse.ArgumentParser(description="Precision-timed GameTime court booking")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("once", help="Execute due reservations once")
    commands.add_parser("watch", help="Poll for due reservations until interrupted")

    window = commands.add_parser("window", help="Show the booking window for a date")
    window.add_argument("date", type=_parse_date, help="Booking date (YYYY-MM-DD)")

    add = commands.add_parser("add", help="Add a reservation")
    add.add_argument("date", type=_parse_date, help="Booking date (YYYY-MM-DD)")
    add.add_argument("time", type=_parse_time, help="Start time (HH:MM)")
    add.add_argument("court", choices=ALL_COURT_NUMBERS, help="Preferred court number")
    add.add_argument("--any-court", action="store_true", help="Fall back to any other court")
    add.add_argument("--user-id", default=None, help="Owner of the reservation")
    add.add_argument("--id", default=None, help="Reservation id (generated when omitted)")
    return parser


def main(argv=None) -> int:
    t('scripts.run_bookings.main')
    args = build_parser().parse_args(argv)

    if args.command == "once":
        return run_once()
    if args.command == "watch":
        return watch()
    if args.command == "window":
        return show_window(args.date)
    return add_reservation(args)


if __name__ == "__main__":
    raise SystemExit(main())

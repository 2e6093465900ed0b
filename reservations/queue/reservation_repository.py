"""Persistence helpers for the reservation store."""

from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytz

from tracking import t


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp into an aware UTC datetime (naive means UTC)."""

    t('reservations.queue.reservation_repository.parse_timestamp')
    if not value:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(pytz.utc)


class ReservationRepository:
    """Read/write reservation data to a JSON backing file."""

    def __init__(self, file_path: str, *, logger: Any) -> None:
        t('reservations.queue.reservation_repository.ReservationRepository.__init__')
        self._path = Path(file_path)
        self._logger = logger
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[dict]:
        """Load reservations from disk, returning an empty list on failure."""

        t('reservations.queue.reservation_repository.ReservationRepository.load')
        try:
            with self._lock:
                if not self._path.exists():
                    self._logger.debug("Reservation file %s does not exist; starting empty", self._path)
                    return []
                with self._path.open('r', encoding='utf-8') as handle:
                    payload = json.load(handle)
        except (OSError, ValueError) as exc:
            self._logger.error("Failed to load reservations from %s: %s", self._path, exc)
            return []

        if isinstance(payload, list):
            self._logger.debug("Loaded %s reservations from %s", len(payload), self._path)
            return payload
        self._logger.warning(
            "Invalid reservation file format in %s; expected list, received %s",
            self._path,
            type(payload).__name__,
        )
        return []

    def save(self, reservations: Iterable[dict]) -> None:
        """Persist reservations to disk, ensuring parent directories exist."""

        t('reservations.queue.reservation_repository.ReservationRepository.save')
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
                with tmp_path.open('w', encoding='utf-8') as handle:
                    json.dump(list(reservations), handle, indent=2, ensure_ascii=False)
                tmp_path.replace(self._path)
            self._logger.debug("Reservations saved to %s", self._path)
        except OSError as exc:
            self._logger.error("Failed to save reservations to %s: %s", self._path, exc)

    def get(self, reservation_id: str) -> Optional[dict]:
        t('reservations.queue.reservation_repository.ReservationRepository.get')
        for reservation in self.load():
            if str(reservation.get("id")) == str(reservation_id):
                return reservation
        return None

    def update(self, reservation_id: str, updates: Dict[str, Any]) -> bool:
        """Merge ``updates`` into one stored reservation; False if it is unknown."""

        t('reservations.queue.reservation_repository.ReservationRepository.update')
        with self._lock:
            reservations = self.load()
            for reservation in reservations:
                if str(reservation.get("id")) == str(reservation_id):
                    reservation.update(updates)
                    self.save(reservations)
                    return True
        self._logger.warning("Reservation %s not found for update", reservation_id)
        return False

    def due(self, now: datetime, *, lead_seconds: int = 0, max_retry_count: int = 3) -> List[dict]:
        """Reservations ready to execute, oldest scheduled time first.

        A reservation is due when it is still ``pending``, its engine status is
        ``pending`` or ``failed``, it is scheduled within ``lead_seconds`` of
        ``now`` and it has retries left.
        """

        t('reservations.queue.reservation_repository.ReservationRepository.due')
        current = parse_timestamp(now)
        ready = []
        for reservation in self.load():
            if reservation.get("status", "pending") != "pending":
                continue
            if reservation.get("auto_book_status", "pending") not in ("pending", "failed"):
                continue
            if int(reservation.get("retry_count") or 0) >= max_retry_count:
                continue
            scheduled = parse_timestamp(reservation.get("scheduled_execute_time"))
            if scheduled is None:
                self._logger.warning("Reservation %s has no scheduled execute time", reservation.get("id"))
                continue
            if (scheduled - current).total_seconds() <= lead_seconds:
                ready.append((scheduled, reservation))
        ready.sort(key=lambda item: item[0])
        return [reservation for _, reservation in ready]

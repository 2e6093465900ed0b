"""Clock synchronization with the GameTime server.

Estimates the offset between the local clock and the server's ``Date`` header
and the network round-trip, and schedules the booking form load so that the
request reaches the server at the instant the booking window opens.
"""

from __future__ import annotations
from tracking import t

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from infrastructure.constants import (
    BrowserTimeouts,
    CLOCK_SYNC_MAX_AGE_SECONDS,
    LATENCY_FALLBACK_MS,
    LATENCY_PROBE_COUNT,
    LATENCY_PROBE_SPACING_SECONDS,
    USER_AGENT,
)
from automation.shared.cancellation import CancellationToken


def one_way_latency(round_trip_ms: int) -> int:
    """Return ``floor(round_trip_ms / 2)``; negative round-trips are rejected."""
    t('automation.timing.clock_sync.one_way_latency')
    round_trip_ms = int(round_trip_ms)
    if round_trip_ms < 0:
        raise ValueError(f"Round-trip time cannot be negative: {round_trip_ms}ms")
    return round_trip_ms // 2


def compute_load_time(target_instant_ms: int, round_trip_ms: int) -> int:
    """When to load the form so the request arrives at ``target_instant_ms``."""
    t('automation.timing.clock_sync.compute_load_time')
    return int(target_instant_ms) - one_way_latency(round_trip_ms)


@dataclass(frozen=True)
class ClockOffset:
    """Server-minus-local offset measured at ``measured_at_ms`` (local clock)."""

    offset_ms: int
    round_trip_ms: int
    measured_at_ms: int

    @property
    def one_way_latency_ms(self) -> int:
        return one_way_latency(self.round_trip_ms)

    def age_ms(self, local_now_ms: int) -> int:
        return max(0, local_now_ms - self.measured_at_ms)

    def is_fresh(self, local_now_ms: int, max_age_ms: int) -> bool:
        return self.age_ms(local_now_ms) < max_age_ms


class ClockSynchronizer:
    """Owns one run's view of the server clock.

    The cached offset is guarded by a lock so a single instance may also be
    shared process-wide between concurrent runs.
    """

    MAX_WAIT_SLICE_SECONDS = 1.0

    def __init__(
        self,
        authority_url: str,
        *,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        probe_count: int = LATENCY_PROBE_COUNT,
        fallback_round_trip_ms: int = LATENCY_FALLBACK_MS,
        max_age_seconds: int = CLOCK_SYNC_MAX_AGE_SECONDS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.timing.clock_sync.ClockSynchronizer.__init__')
        self.authority_url = authority_url
        self._client_factory = client_factory or self._default_client
        self._clock = clock
        self._monotonic = monotonic
        self.probe_count = max(1, probe_count)
        self.fallback_round_trip_ms = fallback_round_trip_ms
        self.max_age_ms = max_age_seconds * 1000
        self.logger = logger or logging.getLogger("ClockSync")
        self._lock = threading.Lock()
        self._offset: Optional[ClockOffset] = None

    @staticmethod
    def _default_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=BrowserTimeouts.HTTP_PROBE / 1000,
            follow_redirects=False,
        )

    # ------------------------------------------------------------------
    # Clock readings
    # ------------------------------------------------------------------
    def local_now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def offset(self) -> Optional[ClockOffset]:
        with self._lock:
            return self._offset

    def synced_now(self) -> int:
        """Local time plus the last known server offset (zero if never synced)."""
        with self._lock:
            offset_ms = self._offset.offset_ms if self._offset else 0
        return self.local_now_ms() + offset_ms

    def is_fresh(self) -> bool:
        current = self.offset
        if current is None:
            return False
        return current.is_fresh(self.local_now_ms(), self.max_age_ms)

    def status(self) -> Dict[str, Any]:
        t('automation.timing.clock_sync.ClockSynchronizer.status')
        current = self.offset
        now_ms = self.local_now_ms()
        return {
            "is_synced": current is not None,
            "offset_ms": current.offset_ms if current else 0,
            "round_trip_ms": current.round_trip_ms if current else None,
            "age_ms": current.age_ms(now_ms) if current else None,
            "is_fresh": self.is_fresh(),
        }

    def reset(self) -> None:
        t('automation.timing.clock_sync.ClockSynchronizer.reset')
        with self._lock:
            self._offset = None
        self.logger.debug("Time sync reset")

    # ------------------------------------------------------------------
    # Network probes
    # ------------------------------------------------------------------
    async def _probe(self, client: httpx.AsyncClient, url: str) -> Tuple[httpx.Response, int]:
        started = self._monotonic()
        response = await client.head(url)
        round_trip_ms = int(round((self._monotonic() - started) * 1000))
        return response, max(0, round_trip_ms)

    async def measure_latency(self, authority_url: Optional[str] = None) -> int:
        """Median round-trip of ``probe_count`` HEAD probes, in milliseconds.

        A failed probe contributes the conservative fallback value instead of
        aborting the measurement.
        """
        t('automation.timing.clock_sync.ClockSynchronizer.measure_latency')
        url = authority_url or self.authority_url
        samples: List[int] = []

        async with self._client_factory() as client:
            for index in range(self.probe_count):
                try:
                    _, round_trip_ms = await self._probe(client, url)
                    samples.append(round_trip_ms)
                    self.logger.debug(
                        "Latency measurement %s/%s: %sms", index + 1, self.probe_count, round_trip_ms
                    )
                except httpx.HTTPError as exc:
                    self.logger.warning(
                        "Latency measurement %s/%s failed (%s); using %sms",
                        index + 1,
                        self.probe_count,
                        exc,
                        self.fallback_round_trip_ms,
                    )
                    samples.append(self.fallback_round_trip_ms)

                if index < self.probe_count - 1:
                    await asyncio.sleep(LATENCY_PROBE_SPACING_SECONDS)

        samples.sort()
        median = samples[len(samples) // 2]
        self.logger.info(
            "📡 Network latency samples: %s -> median RTT %sms",
            ", ".join(f"{sample}ms" for sample in samples),
            median,
        )
        return median

    async def sync(self, authority_url: Optional[str] = None) -> Optional[ClockOffset]:
        """Refresh the offset from the server ``Date`` header.

        Failure is non-fatal: the previous offset (or none) stays in place and
        the engine runs in degraded-accuracy mode.
        """
        t('automation.timing.clock_sync.ClockSynchronizer.sync')
        url = authority_url or self.authority_url

        try:
            async with self._client_factory() as client:
                response, round_trip_ms = await self._probe(client, url)
            local_after_ms = self.local_now_ms()

            date_header = response.headers.get("date")
            if not date_header:
                raise ValueError("No Date header in response")
            server_ms = int(parsedate_to_datetime(date_header).timestamp() * 1000)
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            previous = self.offset
            self.logger.warning(
                "⚠️ Clock sync failed (%s); degraded accuracy, using offset %sms",
                exc,
                previous.offset_ms if previous else 0,
            )
            return previous

        estimated_server_ms = server_ms + one_way_latency(round_trip_ms)
        new_offset = ClockOffset(
            offset_ms=estimated_server_ms - local_after_ms,
            round_trip_ms=round_trip_ms,
            measured_at_ms=local_after_ms,
        )

        with self._lock:
            previous = self._offset
            self._offset = new_offset

        self.logger.info(
            "🕒 Clock synced: offset %sms, RTT %sms", new_offset.offset_ms, round_trip_ms
        )
        if previous is not None:
            self.logger.info(
                "Clock drift since last sync: %sms", abs(new_offset.offset_ms - previous.offset_ms)
            )
        return new_offset

    async def ensure_fresh(self, authority_url: Optional[str] = None) -> Optional[ClockOffset]:
        """Re-sync when the cached offset is missing or older than the threshold."""
        t('automation.timing.clock_sync.ClockSynchronizer.ensure_fresh')
        if self.is_fresh():
            return self.offset
        return await self.sync(authority_url)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    async def wait_until(
        self,
        target_ms: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> int:
        """Sleep cooperatively until the synced clock reaches ``target_ms``.

        Returns how late (in ms) the wake-up was relative to ``target_ms``.
        """
        t('automation.timing.clock_sync.ClockSynchronizer.wait_until')
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        remaining_ms = target_ms - self.synced_now()
        if remaining_ms > 0:
            self.logger.info("⏳ Waiting %.3fs for scheduled load time", remaining_ms / 1000)

        while remaining_ms > 0:
            delay = min(remaining_ms / 1000, self.MAX_WAIT_SLICE_SECONDS)
            if cancel_token is not None:
                await cancel_token.sleep(delay)
            else:
                await asyncio.sleep(delay)
            remaining_ms = target_ms - self.synced_now()

        return -remaining_ms


__all__ = [
    "ClockOffset",
    "ClockSynchronizer",
    "compute_load_time",
    "one_way_latency",
]

"""Cooperative cancellation signal checked at every engine suspension point."""

from __future__ import annotations
from tracking import t

import asyncio
from typing import Optional

from .errors import AcquisitionCancelled


class CancellationToken:
    """Thin wrapper around :class:`asyncio.Event` with a reason string."""

    def __init__(self) -> None:
        t('automation.shared.cancellation.CancellationToken.__init__')
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        t('automation.shared.cancellation.CancellationToken.cancel')
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AcquisitionCancelled(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early and raising on cancellation."""

        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

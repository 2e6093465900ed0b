"""Runtime helpers recording which instrumented functions execute."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Optional, Set

_LOCK = threading.RLock()
_TRACKING_FILE = Path(__file__).resolve().parents[1] / "logs" / "functions_in_use.txt"
_SEEN: Set[str] = set()
_ENABLED: Optional[bool] = None


def _tracking_enabled() -> bool:
    global _ENABLED
    if _ENABLED is None:
        _ENABLED = os.getenv("FUNCTION_TRACKING", "true").strip().lower() in {"1", "true", "yes", "on"}
    return _ENABLED


def _load_seen() -> None:
    if not _TRACKING_FILE.exists():
        return
    try:
        with _TRACKING_FILE.open("r", encoding="utf-8") as handle:
            _SEEN.update(line.strip() for line in handle if line.strip())
    except OSError:
        return


def t(func_name: str) -> None:
    """Record ``func_name`` the first time it runs in this process."""
    if not func_name or not _tracking_enabled():
        return

    with _LOCK:
        if func_name in _SEEN:
            return

        _SEEN.add(func_name)
        try:
            _TRACKING_FILE.parent.mkdir(parents=True, exist_ok=True)
            with _TRACKING_FILE.open("a", encoding="utf-8") as handle:
                handle.write(f"{func_name}\n")
        except OSError:
            return


def seen_functions() -> Set[str]:
    """Return a snapshot of the function names recorded so far."""
    with _LOCK:
        return set(_SEEN)


_load_seen()

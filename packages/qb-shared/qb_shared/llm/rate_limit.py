"""Throttling for outbound correction-service calls.

An import pass with several workers can send many conversion errors to the
fallback corrector at once. A process-wide gate caps in-flight calls and
spaces out their start times.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from ..config import get_settings


class CallGate:
    """Bounded concurrency plus a minimum interval between call starts."""

    def __init__(self, max_concurrent: int = 8, stagger_seconds: float = 0.5):
        self.max_concurrent = max(1, int(max_concurrent))
        self.stagger_seconds = max(0.0, float(stagger_seconds))
        self._slots = threading.BoundedSemaphore(self.max_concurrent)
        self._lock = threading.Lock()
        self._next_start = 0.0

    def wait_turn(self) -> None:
        """Block until this caller may start."""
        if self.stagger_seconds <= 0:
            return
        with self._lock:
            now = time.monotonic()
            delay = self._next_start - now
            if delay > 0:
                time.sleep(delay)
                now = time.monotonic()
            self._next_start = max(now, self._next_start) + self.stagger_seconds

    @contextmanager
    def slot(self) -> Iterator[None]:
        with self._slots:
            self.wait_turn()
            yield


_gate: Optional[CallGate] = None
_gate_lock = threading.Lock()


def get_call_gate() -> CallGate:
    """Process-wide gate built from QB_LLM_MAX_CONCURRENT_CALLS / QB_LLM_CALL_STAGGER_SECONDS."""
    global _gate
    with _gate_lock:
        if _gate is None:
            settings = get_settings()
            _gate = CallGate(settings.llm_max_concurrent_calls, settings.llm_call_stagger_seconds)
        return _gate


def reset_call_gate() -> None:
    """Forget the current gate; the next call rebuilds it from settings."""
    global _gate
    with _gate_lock:
        _gate = None


@contextmanager
def llm_call_guard() -> Iterator[None]:
    """Hold a call slot for the duration of one LLM request."""
    with get_call_gate().slot():
        yield

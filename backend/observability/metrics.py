"""
Duration metrics for lobby gates.

Each measurement becomes a single METRIC_TIMER record on the JSONL log;
nothing is aggregated in process. Two measurements exist today:
lobby_join (how long the transport join took) and lobby_wait (time spent
WAITING, tagged with how the wait ended).
"""

from __future__ import annotations

import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any

from observability.logger import log_event


# timer_id -> (metric name, monotonic start in ns)
_active_timers: dict[str, tuple[str, int]] = {}
_timers_lock = threading.Lock()


def start_timer(name: str) -> str:
    """Begin measuring `name`; pair with stop_timer() or use timed()."""
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    started = time.monotonic_ns()
    with _timers_lock:
        _active_timers[timer_id] = (name, started)
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    call_context: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> int | None:
    """
    Emit the METRIC_TIMER record for `timer_id`.

    Returns the elapsed milliseconds, or None when the id is unknown or
    was already stopped (nothing is logged then).
    """
    with _timers_lock:
        entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, started = entry
    elapsed_ms = (time.monotonic_ns() - started) // 1_000_000

    log_event({
        "ts_ms": time.time_ns() // 1_000_000,
        "level": "info",
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": elapsed_ms,
        "call_context": call_context,
        "state": state,
        "details": details or {},
    })
    return elapsed_ms


def active_timer_count() -> int:
    with _timers_lock:
        return len(_active_timers)


@contextmanager
def timed(
    name: str,
    *,
    call_context: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
):
    """Measure the enclosed block; the record is emitted even if it raises."""
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, call_context=call_context, state=state, details=details)

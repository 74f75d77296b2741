"""Lightweight timing utilities for per-stage diagnostics."""
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Return current time in milliseconds using high-resolution timer."""
    return time.perf_counter() * 1000


@contextmanager
def time_stage(
    label: str,
    timings: Optional[Dict[str, float]] = None,
    log_fn: Optional[Callable[[str], None]] = None,
):
    """
    Time a block, store the elapsed milliseconds under timings[label] and log it.

    The elapsed time is recorded even when the block raises.

    Example:
        timings = {}
        with time_stage("fetch_goals", timings):
            goals = await store.get_goals(user_id)
    """
    start = now_ms()
    try:
        yield
    finally:
        elapsed = round(now_ms() - start, 2)
        if timings is not None:
            timings[label] = elapsed
        (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")


def log_elapsed(start_ms: float, label: str, log_fn: Optional[Callable[[str], None]] = None) -> float:
    """
    Log elapsed time since start_ms and return current time.

    Example:
        t = now_ms()
        t = log_elapsed(t, "step1")
        t = log_elapsed(t, "step2")
    """
    elapsed = now_ms() - start_ms
    (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
    return now_ms()

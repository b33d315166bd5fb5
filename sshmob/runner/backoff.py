"""Exponential reconnect backoff."""

from __future__ import annotations

from sshmob.common.constants import BACKOFF_CAP_SECS


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the 0-based *attempt* failed: 1, 2, 4, 8, 16, 16, ..."""
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    # exponent clamped so very large attempt numbers stay cheap
    return min(2.0 ** min(attempt, 16), BACKOFF_CAP_SECS)

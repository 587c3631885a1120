"""Rate limiting utilities for the Research Engine."""

import time
from typing import Dict, List

# Rate limit configuration
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX_CALLS = 10  # max calls per window

# Rate limit tracker (key -> list of timestamps) and each key's window
_rate_limit_tracker: Dict[str, List[float]] = {}
_rate_limit_windows: Dict[str, float] = {}


def _prune(now: float) -> None:
    """Forget keys whose calls have all left their window."""
    expired = [
        key for key, timestamps in _rate_limit_tracker.items()
        if not timestamps or now - timestamps[-1] >= _rate_limit_windows.get(key, 0)
    ]
    for key in expired:
        del _rate_limit_tracker[key]
        _rate_limit_windows.pop(key, None)


def check_rate_limit(
    key: str,
    max_calls: int = RATE_LIMIT_MAX_CALLS,
    window: float = RATE_LIMIT_WINDOW,
) -> bool:
    """
    Check if a call keyed on ``key`` (tool name, or tool plus user id)
    is within the sliding-window rate limit.
    Returns True if allowed, False if rate limited.
    """
    now = time.time()
    _prune(now)
    timestamps = [ts for ts in _rate_limit_tracker.get(key, []) if now - ts < window]
    _rate_limit_windows[key] = window

    if len(timestamps) >= max_calls:
        _rate_limit_tracker[key] = timestamps
        return False

    timestamps.append(now)
    _rate_limit_tracker[key] = timestamps
    return True


def reset_rate_limits() -> None:
    _rate_limit_tracker.clear()
    _rate_limit_windows.clear()

"""
Alerts for policy fallbacks and repeated access denials.
"""

import logging
import time
from collections import defaultdict
from typing import Optional

logger = logging.getLogger(__name__)

# In-memory counter for deny events per minute (sliding window)
_deny_counts: defaultdict[str, list] = defaultdict(list)
_last_sweep = 0.0
DENY_THRESHOLD_PER_MIN = 10
DENY_WINDOW_SECONDS = 60


def emit_policy_fallback(key: str, raw_value: Optional[str], default: object) -> None:
    """A malformed admin setting was replaced by its default."""
    logger.warning(
        "Invalid subscription policy value, using default",
        extra={"setting_key": key, "raw_value": raw_value, "default": default},
    )


def _record_deny(user_id: str) -> None:
    now = time.time()
    cutoff = now - DENY_WINDOW_SECONDS
    recent = [t for t in _deny_counts.get(user_id, ()) if t > cutoff]
    recent.append(now)
    _deny_counts[user_id] = recent
    _sweep_idle(now)


def _sweep_idle(now: float) -> None:
    """Drop users with no deny inside the window, at most once per window."""
    global _last_sweep
    if now - _last_sweep < DENY_WINDOW_SECONDS:
        return
    _last_sweep = now
    cutoff = now - DENY_WINDOW_SECONDS
    for user_id in [u for u, stamps in _deny_counts.items() if not stamps or stamps[-1] <= cutoff]:
        del _deny_counts[user_id]


def record_deny_and_alert(user_id: str, reason: str) -> None:
    """Record a deny event; alert if over threshold per minute."""
    _record_deny(user_id)
    count = len(_deny_counts[user_id])
    if count >= DENY_THRESHOLD_PER_MIN:
        emit_deny_alert(user_id, reason, count)


def emit_deny_alert(user_id: str, reason: str, count: int) -> None:
    """Alert on repeated deny events (>N/min)."""
    logger.warning(
        "Repeated subscription access denials",
        extra={"user_id": user_id, "reason": reason, "count_per_min": count},
    )


def reset_deny_counts() -> None:
    global _last_sweep
    _deny_counts.clear()
    _last_sweep = 0.0

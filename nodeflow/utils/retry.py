from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence


def compute_backoff(attempt: int, schedule: Sequence[float]) -> float:
    """Delay before ``attempt`` (2-based: the first retry is attempt 2).

    The last entry of ``schedule`` repeats once the schedule runs out.
    """
    if not schedule or attempt < 2:
        return 0.0
    index = min(attempt - 2, len(schedule) - 1)
    return float(schedule[index])


def next_attempt_due(
    attempt: int,
    max_attempts: int,
    schedule: Sequence[float],
    first_enqueued_at: datetime,
    retry_until: float,
    now: datetime,
) -> Optional[float]:
    """Return the delay for the attempt after ``attempt``, or ``None`` if exhausted.

    No further attempt is made once ``max_attempts`` is reached or when the
    next attempt would start past ``first_enqueued_at + retry_until``.
    """
    if attempt >= max_attempts:
        return None
    delay = compute_backoff(attempt + 1, schedule)
    horizon = first_enqueued_at + timedelta(seconds=retry_until)
    if now + timedelta(seconds=delay) > horizon:
        return None
    return delay

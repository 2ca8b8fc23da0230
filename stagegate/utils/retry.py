from __future__ import annotations

import asyncio
import random


def compute_backoff(
    attempt: int, initial: float = 1.0, factor: float = 2.0, jitter: float = 0.0
) -> float:
    """Delay before retry number ``attempt`` (1-based), with optional jitter."""
    delay = initial * factor ** max(attempt - 1, 0)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, initial: float = 1.0, jitter: float = 0.0) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, initial=initial, jitter=jitter)
    await asyncio.sleep(delay)

from __future__ import annotations

import asyncio


def compute_backoff(attempt: int, delay_ms: int) -> float:
    """Return the delay in seconds before retry number ``attempt``.

    The first retry waits ``delay_ms``; every further retry doubles it.
    """
    if attempt < 1 or delay_ms <= 0:
        return 0.0
    return delay_ms * 2 ** (attempt - 1) / 1000


async def schedule_retry(attempt: int, delay_ms: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, delay_ms)
    if delay:
        await asyncio.sleep(delay)

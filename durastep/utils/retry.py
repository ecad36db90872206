from __future__ import annotations

import asyncio


def compute_backoff(attempt: int, base_ms: int = 1000) -> float:
    """Compute linear backoff in seconds: ``base_ms * attempt`` milliseconds."""
    return max(0, base_ms) * max(1, attempt) / 1000.0


async def schedule_retry(attempt: int, base_ms: int = 1000) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base_ms)
    if delay:
        await asyncio.sleep(delay)

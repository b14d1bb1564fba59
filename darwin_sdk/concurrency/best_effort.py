"""
Best-effort side effects.

Cosmetic work (overlay injection, subtitle updates, teardown telemetry) must
never abort a task. These helpers run such work, log failures, and hand back a
result object the caller is free to ignore.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

# Strong references to scheduled tasks so they are not garbage collected mid-flight
_pending: Set[asyncio.Task] = set()


@dataclass(frozen=True)
class BestEffortResult:
    """Outcome of a best-effort operation."""
    label: str
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None

    def __bool__(self) -> bool:
        return self.ok


async def call_maybe_async(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call `fn` and await the result when it is awaitable."""
    outcome = fn(*args, **kwargs)
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome


async def best_effort(awaitable: Awaitable[Any], label: str) -> BestEffortResult:
    """
    Await an operation, converting any exception into a failed result.

    Cancellation is not swallowed.
    """
    try:
        value = await awaitable
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug(f"Best-effort operation '{label}' failed: {type(e).__name__}: {e}")
        return BestEffortResult(label=label, ok=False, error=e)
    return BestEffortResult(label=label, ok=True, value=value)


def fire_and_forget(awaitable: Awaitable[Any], label: str) -> asyncio.Task:
    """
    Schedule a best-effort operation without awaiting it.

    The returned task resolves to a BestEffortResult; callers in hot paths
    simply drop it.
    """
    task = asyncio.ensure_future(best_effort(awaitable, label))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_pending(timeout: float = 1.0) -> int:
    """Wait briefly for outstanding fire-and-forget tasks; returns how many were still pending."""
    tasks = [t for t in _pending if not t.done()]
    if not tasks:
        return 0
    done, not_done = await asyncio.wait(tasks, timeout=timeout)
    return len(not_done)


def get_pending_stats() -> dict:
    return {
        'pending': sum(1 for t in _pending if not t.done()),
        'tracked': len(_pending),
    }

"""
Concurrency utilities package.
"""

from .best_effort import BestEffortResult, best_effort, call_maybe_async, drain_pending, fire_and_forget, get_pending_stats

__all__ = [
    'BestEffortResult',
    'best_effort',
    'call_maybe_async',
    'fire_and_forget',
    'drain_pending',
    'get_pending_stats',
]

"""
Interfaces for the in-page overlays (timer, analytics notifications, reasoning
subtitle).

The overlays themselves are injected page scripts maintained outside this
package. The agent only calls the operations below, always through
``best_effort`` so a broken overlay cannot fail a task.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from darwin_sdk.agent.capability import Page


@runtime_checkable
class TimerOverlay(Protocol):
    async def inject(self, page: Page, options: Optional[Dict[str, Any]] = None) -> None: ...

    async def stop(self, page: Page) -> None: ...

    async def remove(self, page: Page) -> None: ...


@runtime_checkable
class AnalyticsOverlay(Protocol):
    async def inject(self, page: Page, options: Optional[Dict[str, Any]] = None) -> None: ...

    async def show(self, page: Page, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None: ...

    async def remove(self, page: Page) -> None: ...


@runtime_checkable
class ReasoningOverlay(Protocol):
    async def inject(self, page: Page, options: Optional[Dict[str, Any]] = None) -> None: ...

    async def update(self, page: Page, text: str) -> None: ...

    async def remove(self, page: Page) -> None: ...


class NullTimerOverlay:
    async def inject(self, page, options=None):
        return None

    async def stop(self, page):
        return None

    async def remove(self, page):
        return None


class NullAnalyticsOverlay:
    async def inject(self, page, options=None):
        return None

    async def show(self, page, event_name, properties=None):
        return None

    async def remove(self, page):
        return None


class NullReasoningOverlay:
    async def inject(self, page, options=None):
        return None

    async def update(self, page, text):
        return None

    async def remove(self, page):
        return None


@dataclass
class OverlaySet:
    """The three overlays used during a run; defaults do nothing."""
    timer: TimerOverlay = field(default_factory=NullTimerOverlay)
    analytics: AnalyticsOverlay = field(default_factory=NullAnalyticsOverlay)
    reasoning: ReasoningOverlay = field(default_factory=NullReasoningOverlay)
    timer_options: Dict[str, Any] = field(default_factory=lambda: {'position': 'top-right'})
    analytics_options: Dict[str, Any] = field(default_factory=lambda: {'position': 'top-left'})
    reasoning_options: Dict[str, Any] = field(default_factory=lambda: {'position': 'bottom-center'})

"""
Shape of the browser-automation engine the agent drives.

Any engine works as long as it matches these protocols; the shapes follow the
Playwright ``Page`` API for the controllable surface.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterable, Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from darwin_sdk.agent.views import Environment, Viewport


@runtime_checkable
class Page(Protocol):
    async def goto(self, url: str, **kwargs: Any) -> Any: ...

    async def evaluate(self, expression: str, *args: Any) -> Any: ...


@dataclass
class AgentCallbacks:
    """Step-boundary hooks handed to the engine's agent loop."""
    prepare_step: Callable[[Any], Awaitable[Any]]
    on_step_finish: Callable[[Any], Awaitable[None]]


@runtime_checkable
class StreamResult(Protocol):
    """What agent.execute() resolves to when streaming is enabled."""
    full_stream: AsyncIterable[Any]
    text_stream: AsyncIterable[str]
    result: Awaitable[Any]


@runtime_checkable
class EngineAgent(Protocol):
    async def execute(self, *, instruction: str, max_steps: int, callbacks: AgentCallbacks) -> StreamResult: ...


@runtime_checkable
class BrowserCapability(Protocol):
    async def init(self) -> None: ...

    async def close(self) -> None: ...

    def pages(self) -> List[Page]: ...

    def agent(
        self,
        *,
        mode: str,
        model: str,
        stream: bool,
        system_prompt: str,
        integrations: Optional[List[str]] = None,
    ) -> EngineAgent: ...


class CapabilityOptions(BaseModel):
    """Options used to construct an engine instance."""
    env: Environment = 'LOCAL'
    verbose: int = 2
    model: str
    experimental: bool = True  # hybrid mode requires it
    headless: bool = False
    viewport: Viewport = Field(default_factory=Viewport)
    api_key: Optional[str] = Field(None, repr=False)
    project_id: Optional[str] = None


CapabilityFactory = Callable[[CapabilityOptions], BrowserCapability]

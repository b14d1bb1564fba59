from __future__ import annotations

import asyncio
import logging

from darwin_sdk.sessions.registry import SessionRegistry
from darwin_sdk.sessions.views import LogEntry, SessionEvent

logger = logging.getLogger(__name__)

_END = object()


class SessionEventFeed:
    """
    Async iterator over one session's events.

    The existing log buffer is replayed first, then live log entries follow as
    they are appended. Iteration ends on close(), or once the session reaches a
    terminal status when ``close_on_terminal`` is set.

    Usage:
        feed = SessionEventFeed(registry, session_id)
        async for event in feed:
            ...
    """

    def __init__(
        self,
        registry: SessionRegistry,
        session_id: str,
        *,
        replay: bool = True,
        close_on_terminal: bool = True,
    ):
        self.registry = registry
        self.session_id = session_id
        self.close_on_terminal = close_on_terminal
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

        session = self.registry.get(session_id)
        if replay and session is not None:
            for entry in list(session.logs):
                self._queue.put_nowait(SessionEvent.from_log(session_id, entry))
        self._unsubscribe = self.registry.subscribe(self)

        if close_on_terminal and session is not None and session.is_terminal:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._queue.put_nowait(_END)
        logger.debug(f"Session feed closed for {self.session_id}")

    # registry listener hooks

    def on_log_appended(self, session_id: str, entry: LogEntry) -> None:
        if session_id != self.session_id or self._closed:
            return
        self._queue.put_nowait(SessionEvent.from_log(session_id, entry))

    def on_status_changed(self, session_id: str, status: str) -> None:
        if session_id == self.session_id and self.close_on_terminal and status == 'cancelled':
            self.close()

    def on_completed(self, session_id: str, result) -> None:
        if session_id == self.session_id and self.close_on_terminal:
            self.close()

    def on_error(self, session_id: str, message: str) -> None:
        if session_id == self.session_id and self.close_on_terminal:
            self.close()

    # async iteration

    def __aiter__(self) -> SessionEventFeed:
        return self

    async def __anext__(self) -> SessionEvent:
        item = await self._queue.get()
        if item is _END:
            # keep later readers from blocking forever
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> SessionEventFeed:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

"""
Process-wide registry of agent sessions.

Observers (dashboards, log viewers, SSE bridges) subscribe to the registry and
receive synchronous notifications in registration order. Observers are never
control-flow participants: a failing listener is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from uuid_extensions import uuid7str

from darwin_sdk.agent.views import FinalResult, TaskConfig
from darwin_sdk.config import CONFIG
from darwin_sdk.sessions.views import (
    MAX_LOG_ENTRIES,
    SWEEPABLE_STATUSES,
    LogEntry,
    LogKind,
    Session,
    SessionStatus,
)
from darwin_sdk.timing import now_utc

logger = logging.getLogger(__name__)

# Listener hooks; a listener may implement any subset
LISTENER_HOOKS = ('on_created', 'on_status_changed', 'on_log_appended', 'on_completed', 'on_error')


class SessionRegistry:
    """Table of sessions keyed by id. All mutators are no-ops for unknown ids."""

    def __init__(self, retention_seconds: Optional[float] = None, max_logs: int = MAX_LOG_ENTRIES):
        self._sessions: Dict[str, Session] = {}
        self._listeners: List[Any] = []
        self._retention_seconds = retention_seconds
        self._max_logs = max_logs
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def retention(self) -> timedelta:
        seconds = self._retention_seconds if self._retention_seconds is not None else CONFIG.DARWIN_SESSION_RETENTION_SECONDS
        return timedelta(seconds=seconds)

    # ------------------------------------------------------------------ observers

    def subscribe(self, listener: Any) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        if not any(callable(getattr(listener, hook, None)) for hook in LISTENER_HOOKS):
            logger.warning(f"Listener {type(listener).__name__} implements none of {', '.join(LISTENER_HOOKS)}")
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self, hook: str, *args: Any) -> None:
        for listener in list(self._listeners):
            fn = getattr(listener, hook, None)
            if not callable(fn):
                continue
            try:
                fn(*args)
            except Exception as e:
                logger.warning(f"Session listener {type(listener).__name__}.{hook} failed: {type(e).__name__}: {e}")

    # ------------------------------------------------------------------ queries

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> List[Session]:
        """Newest first."""
        return list(reversed(self._sessions.values()))

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------ mutators

    def create(self, config: TaskConfig) -> str:
        session_id = f"session-{uuid7str()}"
        self._sessions[session_id] = Session(id=session_id, config=config)
        logger.debug(f"Session created: {session_id}")
        self._notify('on_created', session_id)
        return session_id

    def update_status(self, session_id: str, status: SessionStatus) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.status = status
        self.add_log(session_id, 'status', f"Status changed to: {status}")
        self._notify('on_status_changed', session_id, status)

    def set_result(self, session_id: str, result: FinalResult) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        if session.result is not None or session.error is not None:
            logger.warning(f"Session {session_id} already finished; ignoring result")
            return
        session.result = result
        session.status = 'completed'
        self._stamp_completed(session)
        self.add_log(session_id, 'result', result.message or "Task completed")
        self._notify('on_completed', session_id, result)

    def set_error(self, session_id: str, message: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        if session.result is not None or session.error is not None:
            logger.warning(f"Session {session_id} already finished; ignoring error")
            return
        session.error = message
        session.status = 'error'
        self._stamp_completed(session)
        self.add_log(session_id, 'error', message)
        self._notify('on_error', session_id, message)

    def cancel(self, session_id: str) -> None:
        """Mark a session cancelled. An in-flight orchestrator run is not interrupted."""
        session = self._sessions.get(session_id)
        if session is None or session.is_terminal:
            return
        self._stamp_completed(session)
        self.update_status(session_id, 'cancelled')

    def add_log(self, session_id: str, kind: LogKind, message: str, data: Any = None) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        entry = LogEntry(kind=kind, message=message, data=data)
        session.logs.append(entry)
        if len(session.logs) > self._max_logs:
            del session.logs[: len(session.logs) - self._max_logs]
        self._notify('on_log_appended', session_id, entry)

    @staticmethod
    def _stamp_completed(session: Session) -> None:
        if session.completed_at is None:
            session.completed_at = now_utc()

    # ------------------------------------------------------------------ retention

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Delete completed/errored sessions older than the retention window."""
        cutoff = (now or now_utc()) - self.retention
        expired = [
            sid
            for sid, s in self._sessions.items()
            if s.status in SWEEPABLE_STATUSES and s.completed_at is not None and s.completed_at < cutoff
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Swept {len(expired)} expired session(s)")
        return expired

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """Run sweep() periodically on the running event loop until stop_sweeper()."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        interval = interval_seconds if interval_seconds is not None else CONFIG.DARWIN_SESSION_SWEEP_INTERVAL_SECONDS
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval: float) -> None:
        logger.debug(f"Session sweeper started (interval={interval}s, retention={self.retention})")
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    self.sweep()
                except Exception as e:
                    logger.error(f"Session sweep failed: {type(e).__name__}: {e}")
        finally:
            logger.debug("Session sweeper stopped.")


session_registry = SessionRegistry()

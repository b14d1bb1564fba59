from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from darwin_sdk.agent.views import FinalResult, TaskConfig
from darwin_sdk.timing import now_utc

SessionStatus = Literal['initializing', 'running', 'completed', 'error', 'cancelled']
LogKind = Literal['think', 'action', 'status', 'error', 'log', 'result']

TERMINAL_STATUSES = frozenset({'completed', 'error', 'cancelled'})
# Statuses eligible for the retention sweep; cancelled sessions stay until a terminal result lands
SWEEPABLE_STATUSES = frozenset({'completed', 'error'})

MAX_LOG_ENTRIES = 1000


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: LogKind
    timestamp: datetime = Field(default_factory=now_utc)
    message: str
    data: Any = None


class Session(BaseModel):
    """One tracked orchestrator run. Mutated only through SessionRegistry."""

    model_config = ConfigDict(validate_assignment=False)

    id: str
    status: SessionStatus = 'initializing'
    config: TaskConfig
    result: Optional[FinalResult] = None
    error: Optional[str] = None
    logs: List[LogEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class SessionEvent(BaseModel):
    """Typed push event for a single session's observers (status/think/action/error/log/result)."""

    model_config = ConfigDict(frozen=True)

    type: LogKind
    session_id: str
    timestamp: datetime = Field(default_factory=now_utc)
    message: str = ''
    data: Any = None

    @classmethod
    def from_log(cls, session_id: str, entry: LogEntry) -> SessionEvent:
        return cls(type=entry.kind, session_id=session_id, timestamp=entry.timestamp, message=entry.message, data=entry.data)

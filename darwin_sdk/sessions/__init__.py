from darwin_sdk.sessions.capture import CaptureToken, LogCapture
from darwin_sdk.sessions.feed import SessionEventFeed
from darwin_sdk.sessions.registry import SessionRegistry, session_registry
from darwin_sdk.sessions.runner import run_session
from darwin_sdk.sessions.views import LogEntry, Session, SessionEvent

__all__ = [
    'CaptureToken',
    'LogCapture',
    'LogEntry',
    'Session',
    'SessionEvent',
    'SessionEventFeed',
    'SessionRegistry',
    'run_session',
    'session_registry',
]

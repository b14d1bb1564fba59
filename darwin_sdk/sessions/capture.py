"""
Route process output into a session's log buffer while a task runs.

Two sources are captured: ``logging`` records (one handler on the
``darwin_sdk`` logger, one on the root logger for everything else) and raw
writes to ``sys.stdout`` / ``sys.stderr`` (line-buffered tee streams). The
original output is always preserved and the root logger's level is left alone.
"""

from __future__ import annotations

import json
import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, List, Optional, TextIO, Tuple

from uuid_extensions import uuid7str

from darwin_sdk.exceptions import LogCaptureActiveError, LogCaptureTokenError
from darwin_sdk.logging_config import RESULT_LEVEL
from darwin_sdk.sessions.registry import SessionRegistry, session_registry
from darwin_sdk.sessions.views import LogKind

logger = logging.getLogger(__name__)

_ANSI_RE = re.compile(r'\x1b\[[0-9;]*m')
_THINK_RE = re.compile(r'.*?(?:💭\s*)?Thinking:\s*', re.DOTALL)
_ACTION_RE = re.compile(r'.*?(?:🔧\s*)?Action:\s*', re.DOTALL)

PACKAGE_LOGGER = 'darwin_sdk'


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub('', text)


def format_exception(exc: BaseException) -> str:
    tb = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"{type(exc).__name__}: {exc}\n{tb}".rstrip()


def format_value(value: Any) -> str:
    """Render one captured value: strings de-coloured, exceptions with traceback, objects as JSON."""
    if isinstance(value, str):
        return strip_ansi(value)
    if isinstance(value, BaseException):
        return format_exception(value)
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def classify(message: str, level: int = logging.INFO) -> Optional[Tuple[LogKind, str]]:
    """Map one formatted message to a (kind, text) pair, or None when nothing should be logged."""
    if not message.strip():
        return None
    if level >= logging.ERROR:
        return 'error', message
    if level >= logging.WARNING and level != RESULT_LEVEL:
        return 'log', f"WARN: {message}"
    if level < logging.INFO:
        return 'log', f"DEBUG: {message}"
    if 'Thinking:' in message:
        thought = _THINK_RE.sub('', message, count=1).strip()
        return ('think', thought) if thought else None
    if 'Action:' in message:
        return 'action', _ACTION_RE.sub('', message, count=1).strip()
    return 'log', message


@dataclass(frozen=True)
class CaptureToken:
    """Proof of ownership for an active capture; required to stop it."""

    session_id: str
    nonce: str = field(default_factory=uuid7str)


class SessionLogHandler(logging.Handler):
    """Logging handler that appends each record to a session via a sink callable."""

    def __init__(self, sink: Callable[[LogKind, str], None], level: int = logging.NOTSET):
        super().__init__(level)
        self._sink = sink

    def format_record(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, str):
            message = strip_ansi(record.getMessage())
        else:
            message = format_value(record.msg)
        if record.exc_info and record.exc_info[1] is not None:
            message = f"{message}\n{format_exception(record.exc_info[1])}" if message else format_exception(record.exc_info[1])
        return message

    def emit(self, record: logging.LogRecord) -> None:
        try:
            classified = classify(self.format_record(record), record.levelno)
            if classified is not None:
                self._sink(*classified)
        except Exception:
            self.handleError(record)


class _ExcludePackage(logging.Filter):
    """Rejects records from one logger namespace; the inverse of logging.Filter."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not super().filter(record)


class TeeStream:
    """Line-buffered wrapper that forwards writes to the original stream and each full line to a sink."""

    def __init__(self, original: TextIO, on_line: Callable[[str], None]):
        self.original = original
        self._on_line = on_line
        self._buffer = ''

    def write(self, s: str) -> int:
        written = self.original.write(s)
        self._buffer += s
        while '\n' in self._buffer:
            line, self._buffer = self._buffer.split('\n', 1)
            self._on_line(line)
        return written if written is not None else len(s)

    def writelines(self, lines) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        self.original.flush()

    def drain(self) -> None:
        """Deliver any trailing partial line."""
        if self._buffer:
            line, self._buffer = self._buffer, ''
            self._on_line(line)

    def __getattr__(self, name: str) -> Any:
        return getattr(self.original, name)


class LogCapture:
    """
    Attributes a process's output to exactly one session at a time.

    ``start_logging`` returns a token; only that token can stop the capture.
    Starting again while a token is outstanding raises LogCaptureActiveError.
    """

    # one capture per process, whichever instance holds it
    _active_token: ClassVar[Optional[CaptureToken]] = None

    def __init__(self, registry: Optional[SessionRegistry] = None, level: int = logging.INFO):
        self.registry = registry if registry is not None else session_registry
        self.level = level
        self._token: Optional[CaptureToken] = None
        self._attached: List[Tuple[logging.Logger, SessionLogHandler]] = []
        self._saved_level: Optional[int] = None
        self._stdout: Optional[TextIO] = None
        self._stderr: Optional[TextIO] = None
        self._tees: List[TeeStream] = []
        self._appending = False

    @property
    def active(self) -> bool:
        return self._token is not None

    @property
    def session_id(self) -> Optional[str]:
        return self._token.session_id if self._token else None

    def start_logging(self, session_id: str) -> CaptureToken:
        active = LogCapture._active_token
        if active is not None:
            raise LogCaptureActiveError(
                f"Log capture already active for session {active.session_id}; stop it before starting {session_id}"
            )
        token = CaptureToken(session_id=session_id)
        logger.debug(f"Log capture starting for session {session_id}")

        # root sees whatever the host's levels let through; only our own
        # package logger is opened up to the capture level
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        root_handler = SessionLogHandler(self._append, level=self.level)
        root_handler.addFilter(_ExcludePackage(PACKAGE_LOGGER))
        package_handler = SessionLogHandler(self._append, level=self.level)
        self._attached = [(logging.getLogger(), root_handler), (package_logger, package_handler)]
        for target, handler in self._attached:
            target.addHandler(handler)
        if package_logger.getEffectiveLevel() > self.level:
            self._saved_level = package_logger.level
            package_logger.setLevel(self.level)

        self._stdout, self._stderr = sys.stdout, sys.stderr
        out_tee = TeeStream(self._stdout, lambda line: self._append_line(line, logging.INFO))
        err_tee = TeeStream(self._stderr, lambda line: self._append_line(line, logging.ERROR))
        self._tees = [out_tee, err_tee]
        sys.stdout, sys.stderr = out_tee, err_tee

        self._token = LogCapture._active_token = token
        return token

    def stop_logging(self, token: CaptureToken) -> None:
        if self._token is None or token != self._token:
            raise LogCaptureTokenError(
                f"Capture token for session {token.session_id} does not own the active capture"
            )
        for tee in self._tees:
            tee.drain()

        sys.stdout, sys.stderr = self._stdout, self._stderr
        for target, handler in self._attached:
            target.removeHandler(handler)
        if self._saved_level is not None:
            logging.getLogger(PACKAGE_LOGGER).setLevel(self._saved_level)

        session_id = self._token.session_id
        self._token = LogCapture._active_token = None
        self._attached = []
        self._saved_level = None
        self._tees = []
        self._stdout = self._stderr = None
        logger.debug(f"Log capture stopped for session {session_id}")

    def _append_line(self, line: str, level: int) -> None:
        classified = classify(strip_ansi(line), level)
        if classified is not None:
            self._append(*classified)

    def _append(self, kind: LogKind, message: str) -> None:
        # registry listeners may log or print; don't capture our own echo
        if self._appending or self._token is None:
            return
        self._appending = True
        try:
            self.registry.add_log(self._token.session_id, kind, message)
        finally:
            self._appending = False

import io
import logging
import sys

import pytest

from darwin_sdk.agent.views import TaskConfig
from darwin_sdk.exceptions import LogCaptureActiveError, LogCaptureTokenError
from darwin_sdk.sessions.capture import CaptureToken, LogCapture, classify, format_value

log = logging.getLogger('darwin_sdk.tests.capture')


@pytest.fixture
def session_id(registry):
    return registry.create(TaskConfig(website='https://a.example', task='t'))


@pytest.fixture
def capture(registry, session_id):
    cap = LogCapture(registry, level=logging.DEBUG)
    token = cap.start_logging(session_id)
    yield cap
    if cap.active:
        cap.stop_logging(token)


def _entries(registry, session_id):
    return [(e.kind, e.message) for e in registry.get(session_id).logs]


def test_log_records_are_classified(capture, registry, session_id):
    log.info("💭 Thinking: The signup button is hidden")
    log.info("Thinking:   ")
    log.info("🔧 Action: 👆 click at (1, 2)")
    log.info("Navigating to %s", "https://a.example")
    log.warning("slow page")
    log.debug("raw payload")
    log.error("engine gone")

    assert _entries(registry, session_id) == [
        ('think', 'The signup button is hidden'),
        ('action', '👆 click at (1, 2)'),
        ('log', 'Navigating to https://a.example'),
        ('log', 'WARN: slow page'),
        ('log', 'DEBUG: raw payload'),
        ('error', 'engine gone'),
    ]


def test_exceptions_and_objects_are_formatted(capture, registry, session_id):
    try:
        raise ValueError("bad selector")
    except ValueError:
        log.exception("lookup failed")
    log.info({'step': 2})

    (kind, message), (obj_kind, obj_message) = _entries(registry, session_id)
    assert kind == 'error'
    assert message.startswith('lookup failed\nValueError: bad selector\nTraceback')
    assert (obj_kind, obj_message) == ('log', '{\n  "step": 2\n}')


def test_stdout_and_stderr_are_teed(registry, session_id):
    # pytest swaps sys.stdout between setup and call, so the tee is installed here
    cap = LogCapture(registry)
    token = cap.start_logging(session_id)
    try:
        print("\x1b[32mplain line\x1b[0m")
        sys.stdout.write("partial ")
        sys.stdout.write("line\n")
        print("stderr noise", file=sys.stderr)
        print("   ")
    finally:
        cap.stop_logging(token)

    assert _entries(registry, session_id) == [
        ('log', 'plain line'),
        ('log', 'partial line'),
        ('error', 'stderr noise'),
    ]


def test_host_root_level_and_console_are_left_alone(registry, session_id):
    root = logging.getLogger()
    package_logger = logging.getLogger('darwin_sdk')
    saved_root_level, saved_package_level = root.level, package_logger.level
    host_console = io.StringIO()
    host_handler = logging.StreamHandler(host_console)
    root.addHandler(host_handler)
    root.setLevel(logging.WARNING)
    cap = LogCapture(registry)
    try:
        token = cap.start_logging(session_id)
        assert root.level == logging.WARNING
        logging.getLogger('somelib.internal').info('unrelated chatter')
        logging.getLogger('somelib.internal').warning('disk almost full')
        log.info('💭 Thinking: checking the cart')
        cap.stop_logging(token)
        assert package_logger.level == saved_package_level
    finally:
        root.removeHandler(host_handler)
        root.setLevel(saved_root_level)

    assert 'unrelated chatter' not in host_console.getvalue()
    assert 'disk almost full' in host_console.getvalue()
    assert _entries(registry, session_id) == [
        ('log', 'WARN: disk almost full'),
        ('think', 'checking the cart'),
    ]


def test_stop_restores_streams_and_handlers(registry, session_id):
    out, err = sys.stdout, sys.stderr
    root_handlers = list(logging.getLogger().handlers)
    cap = LogCapture(registry)

    token = cap.start_logging(session_id)
    assert sys.stdout is not out
    cap.stop_logging(token)

    assert sys.stdout is out and sys.stderr is err
    assert logging.getLogger().handlers == root_handlers
    log.info("after stop")
    assert registry.get(session_id).logs == []


def test_capture_has_a_single_owner(registry, session_id):
    other_id = registry.create(TaskConfig(website='https://b.example', task='t'))
    first = LogCapture(registry)
    token = first.start_logging(session_id)
    try:
        with pytest.raises(LogCaptureActiveError):
            LogCapture(registry).start_logging(other_id)
        with pytest.raises(LogCaptureActiveError):
            first.start_logging(other_id)
        with pytest.raises(LogCaptureTokenError):
            first.stop_logging(CaptureToken(session_id=session_id))
    finally:
        first.stop_logging(token)

    with pytest.raises(LogCaptureTokenError):
        first.stop_logging(token)
    # released: a new session can be captured
    second = first.start_logging(other_id)
    first.stop_logging(second)


def test_classify_and_format_helpers():
    assert classify('   ') is None
    assert classify('Thinking:') is None
    assert classify('[agent] 💭 Thinking: ok') == ('think', 'ok')
    assert classify('boom', logging.CRITICAL) == ('error', 'boom')
    assert format_value('\x1b[1mbold\x1b[0m') == 'bold'
    assert format_value(object).startswith("<class 'object'>")

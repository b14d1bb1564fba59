from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from darwin_sdk.agent.capability import CapabilityFactory
from darwin_sdk.agent.overlays import OverlaySet
from darwin_sdk.agent.service import BrowserAgent
from darwin_sdk.agent.views import ExecutionOutcome, TaskConfig
from darwin_sdk.concurrency import call_maybe_async
from darwin_sdk.sessions.capture import LogCapture
from darwin_sdk.sessions.registry import SessionRegistry, session_registry

logger = logging.getLogger(__name__)

_RUN_STATUSES = ('initializing', 'running')


async def run_session(
    config: TaskConfig,
    capability_factory: CapabilityFactory,
    registry: SessionRegistry = session_registry,
    overlays: Optional[OverlaySet] = None,
    capture: Optional[LogCapture] = None,
) -> Tuple[str, Optional[ExecutionOutcome]]:
    """
    Run one task as a tracked session.

    The session's log buffer receives everything the run logs or prints while
    capture is held. Failures are recorded on the session rather than raised;
    the outcome is None when the run did not complete.
    """
    session_id = registry.create(config)
    capture = capture or LogCapture(registry)
    try:
        token = capture.start_logging(session_id)
    except Exception as e:
        registry.set_error(session_id, str(e))
        raise

    user_sink = config.on_event

    async def on_event(kind: str, payload: Any) -> None:
        if kind == 'status' and payload in _RUN_STATUSES:
            registry.update_status(session_id, payload)
        if user_sink is not None:
            await call_maybe_async(user_sink, kind, payload)

    agent = BrowserAgent(config.model_copy(update={'on_event': on_event}), capability_factory, overlays=overlays)
    outcome: Optional[ExecutionOutcome] = None
    failure: Optional[BaseException] = None
    try:
        try:
            await agent.init()
            outcome = await agent.execute()
        except Exception as e:
            failure = e
            logger.debug(f"Session {session_id} failed: {type(e).__name__}: {e}")
        finally:
            await agent.close()

        if failure is not None:
            registry.set_error(session_id, str(failure) or type(failure).__name__)
        elif outcome is not None:
            registry.set_result(session_id, outcome.result)
    finally:
        capture.stop_logging(token)

    return session_id, outcome

from __future__ import annotations

import enum
import logging
from typing import Any, List, Optional, TextIO

import anyio
from uuid_extensions import uuid7str

from darwin_sdk.agent.capability import (
    AgentCallbacks,
    BrowserCapability,
    CapabilityFactory,
    CapabilityOptions,
    Page,
)
from darwin_sdk.agent.events import ActionDeduplicator, ToolCallEvent, extract_reasoning_payload, parse_step_finish
from darwin_sdk.agent.overlays import OverlaySet
from darwin_sdk.agent.prompts import build_instruction, build_system_prompt
from darwin_sdk.agent.reasoning import sanitize_result_message
from darwin_sdk.agent.step_policy import StepPolicyEnforcer
from darwin_sdk.agent.streams import DualStreamConsumer
from darwin_sdk.agent.thoughts import ThoughtRecorder
from darwin_sdk.agent.views import ExecutionOutcome, FinalResult, StepRecord, TaskConfig, ThoughtEntry
from darwin_sdk.concurrency import best_effort, call_maybe_async, drain_pending, fire_and_forget, get_pending_stats
from darwin_sdk.config import CONFIG
from darwin_sdk.exceptions import AgentConfigurationError, AgentNotInitializedError, DarwinError
from darwin_sdk.logging_config import RESULT_LEVEL
from darwin_sdk.timing import monotonic_seconds

logger = logging.getLogger(__name__)

_PUBLISH_TASK_ID_SCRIPT = """(taskId) => {
  try { window.localStorage.setItem('darwin_task_id', taskId); } catch (e) {}
  window.__DARWIN_TASK_ID__ = taskId;
  return taskId;
}"""

# Prefer the page's own tracking hook so the event lands in the same analytics
# pipeline as user events; fall back to posting it directly.
_SESSION_ENDED_SCRIPT = """async ([eventName, props, endpoint]) => {
  if (typeof window.trackEvent === 'function') {
    await window.trackEvent(eventName, props);
    return 'hook';
  }
  if (window.amplitude && typeof window.amplitude.track === 'function') {
    window.amplitude.track(eventName, props);
    return 'amplitude';
  }
  await fetch(endpoint, {
    method: 'POST',
    headers: { 'Content-Type': 'application/json' },
    body: JSON.stringify({ event_type: eventName, event_properties: props, timestamp: Date.now() }),
    keepalive: true,
  });
  return 'fetch';
}"""

_TOOL_GLYPHS = {
    'think': '💭',
    'click': '👆',
    'type': '⌨️',
    'scroll': '📜',
    'goto': '🌐',
    'screenshot': '📸',
    'extract': '🔍',
    'wait': '⏳',
    'act': '🎬',
    'fillForm': '📝',
    'ariaTree': '🌳',
    'keys': '⌨️',
    'navback': '⬅️',
    'search': '🔎',
    'dragAndDrop': '🖱️',
    'clickAndHold': '👆',
    'fillFormVision': '👁️',
}


def tool_glyph(tool_name: str) -> str:
    return _TOOL_GLYPHS.get(tool_name, '🔧')


def _clip(value: str, limit: int = 50) -> str:
    return value if len(value) <= limit else f"{value[:limit]}..."


def format_tool_args(args: Any, tool_name: str) -> str:
    """Compact one-line rendering of tool arguments for action logs."""
    if not isinstance(args, dict):
        return _clip(str(args), 100) if args else ''
    if tool_name == 'click' and args.get('x') is not None and args.get('y') is not None:
        return f"at ({args['x']}, {args['y']})"
    if tool_name == 'type' and isinstance(args.get('text'), str):
        return f'"{_clip(args["text"])}"'
    if tool_name == 'goto' and args.get('url'):
        return str(args['url'])
    if tool_name == 'scroll' and args.get('direction'):
        return str(args['direction'])
    if tool_name == 'extract' and isinstance(args.get('instruction'), str):
        return f'"{_clip(args["instruction"])}"'
    if not args:
        return ''
    if len(args) == 1:
        key, value = next(iter(args.items()))
        rendered = value if isinstance(value, str) else repr(value)
        return f"{key}: {_clip(rendered)}"
    return f"{len(args)} parameters"


class AgentLifecycle(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZED = 'initialized'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ERROR = 'error'


class BrowserAgent:
    """
    Runs one task against a live page through an external automation engine.

    The agent enforces think-before-act at step boundaries, merges the engine's
    tool-event and text streams into a deduplicated thought timeline, keeps the
    cosmetic overlays up to date and reports lifecycle events to the
    configured ``on_event`` sink.
    """

    def __init__(
        self,
        config: TaskConfig,
        capability_factory: CapabilityFactory,
        overlays: Optional[OverlaySet] = None,
        output: Optional[TextIO] = None,
    ):
        self.config = config
        self.task_id: str = config.task_id or f"task-{uuid7str()}"
        self.overlays = overlays or OverlaySet()
        self.state = AgentLifecycle.UNINITIALIZED
        self.page: Optional[Page] = None

        self._capability_factory = capability_factory
        self._capability: Optional[BrowserCapability] = None
        self._output = output
        self._policy = StepPolicyEnforcer()
        self._recorder = ThoughtRecorder(step_provider=lambda: self._policy.step_number, on_thought=self._on_new_thought)
        self._actions = ActionDeduplicator()
        self._step_logs: List[StepRecord] = []
        self._started_at: Optional[float] = None
        self._closed = False

    # ------------------------------------------------------------------ lifecycle

    def _build_options(self) -> CapabilityOptions:
        cfg = self.config
        api_key = project_id = None
        if cfg.env == 'BROWSERBASE':
            api_key = cfg.api_key or CONFIG.BROWSERBASE_API_KEY
            project_id = cfg.project_id or CONFIG.BROWSERBASE_PROJECT_ID
            if not api_key or not project_id:
                raise AgentConfigurationError(
                    "BROWSERBASE mode requires API key and project ID. "
                    "Set BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID environment variables, "
                    "or provide them in the config."
                )
        return CapabilityOptions(
            env=cfg.env,
            verbose=cfg.verbose,
            model=cfg.model,
            headless=False,
            viewport=cfg.viewport,
            api_key=api_key,
            project_id=project_id,
        )

    async def init(self) -> None:
        """Create and bootstrap the automation engine."""
        if self._capability is not None:
            logger.debug("init() called twice; engine already initialized")
            return
        options = self._build_options()
        capability = self._capability_factory(options)
        await capability.init()
        self._capability = capability
        self.state = AgentLifecycle.INITIALIZED

        logger.info("✓ Browser agent initialized")
        logger.info(f"  Environment: {self.config.env}")
        logger.info(f"  Model: {self.config.model}")
        logger.info(f"  Website: {self.config.website}")
        logger.info(f"  Task: {self.config.task}")

    async def execute(self) -> ExecutionOutcome:
        if self._capability is None or self.state is AgentLifecycle.UNINITIALIZED:
            raise AgentNotInitializedError("Agent not initialized. Call init() first.")
        if self.state is not AgentLifecycle.INITIALIZED:
            raise DarwinError(f"Agent cannot execute from state '{self.state.value}'")

        self.state = AgentLifecycle.RUNNING
        self._started_at = monotonic_seconds()
        try:
            page = self._first_page()
            self.page = page

            logger.info(f"🌐 Navigating to: {self.config.website}")
            await page.goto(self.config.website)
            await best_effort(call_maybe_async(page.evaluate, _PUBLISH_TASK_ID_SCRIPT, self.task_id), 'publish-task-id')
            await self._inject_overlays(page)
            await self._emit('status', 'running')

            agent = self._capability.agent(
                mode='hybrid',
                model=self.config.model,
                stream=True,
                system_prompt=build_system_prompt(self.config.system_prompt),
                integrations=list(self.config.integrations) or None,
            )
            logger.info("🤖 Starting task execution...")
            logger.debug(f"   Instruction: {self.config.task}")
            logger.debug(f"   Max steps: {self.config.max_steps}")

            stream_result = await agent.execute(
                instruction=build_instruction(self.config.task, self.config.website),
                max_steps=self.config.max_steps,
                callbacks=AgentCallbacks(prepare_step=self._prepare_step, on_step_finish=self._on_step_finish),
            )

            consumer = DualStreamConsumer(self._recorder, on_action=self._on_stream_action, output=self._output)
            await consumer.consume(
                getattr(stream_result, 'full_stream', None),
                getattr(stream_result, 'text_stream', None),
            )
            raw_result = await call_maybe_async(lambda: stream_result.result)
            result = raw_result if isinstance(raw_result, FinalResult) else FinalResult.model_validate(raw_result)
        except Exception as e:
            self.state = AgentLifecycle.ERROR
            logger.debug(f"Execution aborted: {type(e).__name__}: {e}")
            await self._emit('error', str(e) or type(e).__name__)
            raise

        await best_effort(call_maybe_async(self.overlays.timer.stop, page), 'timer-stop')
        await best_effort(call_maybe_async(self.overlays.reasoning.update, page, ''), 'reasoning-clear')

        result = result.model_copy(update={'message': sanitize_result_message(result.message, result.success)})

        close_action = result.terminal_close_action
        if close_action is not None and close_action.reasoning and close_action.reasoning.strip():
            await self._recorder.record(close_action.reasoning, 'final_reasoning')

        self.state = AgentLifecycle.COMPLETED
        logger.log(RESULT_LEVEL, "✅ Task execution completed!")
        logger.info(f"   Total steps: {self._policy.step_number}")
        logger.info(f"   Success: {'Yes' if result.success else 'No'}")
        logger.info(f"   Message: {result.message}")

        return ExecutionOutcome(
            thoughts=list(self._recorder.thoughts),
            result=result,
            steps=self._policy.step_number,
        )

    async def close(self) -> None:
        """Send the session_ended event, remove overlays and release the engine. Never raises."""
        page = self.page
        if page is not None:
            await self._send_session_ended(page)

        if self._closed:
            return
        self._closed = True

        if page is not None:
            await best_effort(call_maybe_async(self.overlays.analytics.remove, page), 'analytics-remove')
            await best_effort(call_maybe_async(self.overlays.reasoning.remove, page), 'reasoning-remove')
        leftover = await drain_pending(timeout=0.5)
        if leftover:
            stats = get_pending_stats()
            logger.debug(f"{leftover} overlay update(s) still running at close ({stats['tracked']} tracked)")

        if self._capability is not None:
            outcome = await best_effort(call_maybe_async(self._capability.close), 'engine-close')
            if outcome:
                logger.info("✓ Browser closed")
            else:
                logger.warning(f"Browser close failed: {outcome.error}")

    # ------------------------------------------------------------------ accessors

    @property
    def thoughts(self) -> List[ThoughtEntry]:
        return list(self._recorder.thoughts)

    @property
    def steps(self) -> int:
        return self._policy.step_number

    def get_logs(self) -> List[StepRecord]:
        return list(self._step_logs)

    def log_summary(self) -> None:
        """Log a per-step summary of thoughts and actions."""
        logger.info("📊 Execution Summary")
        total_thoughts = 0
        total_actions = 0
        for record in self._step_logs:
            logger.info(f"Step {record.step_number}: {record.finish_reason} at {record.timestamp:%H:%M:%S}")
            thoughts = record.thought_calls
            actions = record.action_calls
            total_thoughts += len(thoughts)
            total_actions += len(actions)
            if thoughts:
                logger.info(f"  💭 {len(thoughts)} thinking step(s)")
                for tc in thoughts:
                    preview = extract_reasoning_payload(tc.args) or ''
                    if preview:
                        logger.info(f'     "{_clip(preview, 80)}"')
            for tc in actions:
                logger.info(f"  {tool_glyph(tc.tool_name)} {tc.tool_name}")
            if record.reasoning:
                logger.info(f"  🧠 {_clip(record.reasoning, 100)}")
        logger.info("📈 Totals:")
        logger.info(f"   Total steps: {len(self._step_logs)}")
        logger.info(f"   Thinking steps: {total_thoughts}")
        logger.info(f"   Action steps: {total_actions}")

    # ------------------------------------------------------------------ internals

    def _first_page(self) -> Page:
        pages = self._capability.pages() if self._capability is not None else []
        if not pages:
            raise DarwinError("Browser engine exposed no pages")
        return pages[0]

    async def _inject_overlays(self, page: Page) -> None:
        ov = self.overlays
        await best_effort(call_maybe_async(ov.timer.inject, page, dict(ov.timer_options)), 'timer-inject')
        await best_effort(call_maybe_async(ov.analytics.inject, page, dict(ov.analytics_options)), 'analytics-inject')
        await best_effort(call_maybe_async(ov.reasoning.inject, page, dict(ov.reasoning_options)), 'reasoning-inject')

    async def _emit(self, kind: str, payload: Any) -> None:
        sink = self.config.on_event
        if sink is None:
            return
        try:
            await call_maybe_async(sink, kind, payload)
        except Exception as e:
            logger.debug(f"on_event sink failed for '{kind}': {type(e).__name__}: {e}")

    async def _emit_action(self, channel: str, tool_name: str, args: Any, tool_call_id: Optional[str] = None) -> None:
        if not self._actions.admit(channel, tool_name, args, tool_call_id):
            logger.debug(f"Action {tool_name} already reported; skipping {channel} copy")
            return
        details = format_tool_args(args, tool_name)
        logger.info(f"🔧 Action: {tool_glyph(tool_name)} {tool_name}{' ' + details if details else ''}")
        await self._emit('action', {'tool_name': tool_name, 'args': args})

    async def _on_new_thought(self, entry: ThoughtEntry) -> None:
        if self.page is not None:
            fire_and_forget(call_maybe_async(self.overlays.reasoning.update, self.page, entry.text), 'reasoning-update')
        await self._emit('think', entry.text)

    async def _on_stream_action(self, event: ToolCallEvent) -> None:
        await self._emit_action('stream', event.tool_name, event.args if event.args is not None else event.input, event.tool_call_id)

    async def _prepare_step(self, context: Any) -> Any:
        prepared = self._policy.prepare_step(context)
        logger.info(f"📋 Step {self._policy.step_number}/{self.config.max_steps}")
        return prepared

    async def _on_step_finish(self, event: Any) -> None:
        try:
            record = parse_step_finish(event, fallback_step=self._policy.step_number)
        except Exception as e:
            logger.debug(f"Unreadable step-finish payload skipped: {type(e).__name__}: {e}")
            return
        self._step_logs.append(record)
        self._policy.record_step(record.tool_calls)

        for tc in record.tool_calls:
            try:
                if tc.is_reasoning:
                    await self._recorder.record(extract_reasoning_payload(tc.args), 'step_finish')
                else:
                    await self._emit_action('step_finish', tc.tool_name, tc.args, tc.tool_call_id)
            except Exception as e:
                logger.debug(f"Failed to process tool call '{tc.tool_name}': {type(e).__name__}: {e}")

        if record.reasoning:
            logger.debug(f"🧠 Step {record.step_number} reasoning: {_clip(record.reasoning, 200)}")
        elif self.config.verbose >= 1:
            logger.debug(f"(No reasoning text found for step {record.step_number})")
        logger.debug(f"Finish reason: {record.finish_reason}")

    async def _send_session_ended(self, page: Page) -> None:
        duration_ms = int((monotonic_seconds() - self._started_at) * 1000) if self._started_at is not None else 0
        props = {
            'task_id': self.task_id,
            'task': self.config.task,
            'website': self.config.website,
            'duration_ms': duration_ms,
        }
        timeout = CONFIG.DARWIN_CLOSE_TELEMETRY_TIMEOUT_SECONDS
        try:
            with anyio.move_on_after(timeout) as scope:
                channel = await page.evaluate(_SESSION_ENDED_SCRIPT, ['session_ended', props, self.config.telemetry_endpoint])
            if scope.cancelled_caught:
                logger.debug(f"session_ended telemetry timed out after {timeout}s; continuing teardown")
            else:
                logger.debug(f"session_ended telemetry sent via {channel}")
        except Exception as e:
            logger.warning(f"session_ended telemetry failed: {type(e).__name__}: {e}")
            return
        await best_effort(call_maybe_async(self.overlays.analytics.show, page, 'session_ended', props), 'analytics-show')

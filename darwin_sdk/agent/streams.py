from __future__ import annotations

import logging
import sys
from typing import Any, AsyncIterable, Awaitable, Callable, Optional, TextIO

import anyio

from darwin_sdk.agent.events import (
    ToolCallEvent,
    ToolResultEvent,
    extract_event_payload,
    parse_stream_event,
)
from darwin_sdk.agent.reasoning import strip_control_chars
from darwin_sdk.agent.thoughts import ThoughtRecorder

logger = logging.getLogger(__name__)

ActionSink = Callable[[ToolCallEvent], Awaitable[None]]


class DualStreamConsumer:
    """
    Drains the engine's structured event stream and its text-delta stream.

    The two streams are read by independent tasks; both run to exhaustion
    before consume() returns. Reasoning-tool calls/results feed the thought
    recorder, other tool calls go to the action sink, text deltas only go to
    incidental output.
    """

    def __init__(
        self,
        recorder: ThoughtRecorder,
        on_action: Optional[ActionSink] = None,
        output: Optional[TextIO] = None,
    ):
        self.recorder = recorder
        self.on_action = on_action
        self.output = output
        self.events_seen = 0
        self.events_skipped = 0
        self.text_chars = 0

    async def consume(self, full_stream: Optional[AsyncIterable[Any]], text_stream: Optional[AsyncIterable[str]]) -> None:
        async with anyio.create_task_group() as tg:
            if full_stream is not None:
                tg.start_soon(self._drain_events, full_stream)
            if text_stream is not None:
                tg.start_soon(self._drain_text, text_stream)
        logger.debug(
            f"Streams drained: events={self.events_seen} skipped={self.events_skipped} text_chars={self.text_chars}"
        )

    async def _drain_events(self, stream: AsyncIterable[Any]) -> None:
        try:
            async for raw in stream:
                self.events_seen += 1
                try:
                    await self.handle_event(raw)
                except Exception as e:
                    self.events_skipped += 1
                    logger.debug(f"Skipping malformed stream event: {type(e).__name__}: {e}")
        except Exception as e:
            # The final result still reports how the run ended
            logger.warning(f"Event stream ended with error: {type(e).__name__}: {e}")

    async def handle_event(self, raw: Any) -> None:
        event = parse_stream_event(raw)
        if isinstance(event, ToolCallEvent):
            if event.is_reasoning:
                await self.recorder.record(extract_event_payload(event), 'stream')
            elif self.on_action is not None:
                await self.on_action(event)
        elif isinstance(event, ToolResultEvent) and event.is_reasoning:
            await self.recorder.record(extract_event_payload(event), 'tool_result')

    async def _drain_text(self, stream: AsyncIterable[str]) -> None:
        try:
            async for delta in stream:
                text = strip_control_chars(delta if isinstance(delta, str) else str(delta))
                if not text.strip():
                    continue
                self.text_chars += len(text)
                self._write(text)
        except Exception as e:
            logger.warning(f"Text stream ended with error: {type(e).__name__}: {e}")

    def _write(self, text: str) -> None:
        out = self.output or sys.stdout
        try:
            out.write(text)
            out.flush()
        except (OSError, ValueError) as e:
            logger.debug(f"Incidental output write failed: {e}")

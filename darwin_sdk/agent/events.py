from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, Tuple, Union

from darwin_sdk.agent.views import REASONING_TOOL, StepRecord, ToolCall

logger = logging.getLogger(__name__)

_MISSING = object()

# Argument fields that may carry the reasoning text, in priority order
PAYLOAD_FIELDS = ('thought', 'text', 'input')
_SCALAR_PAYLOADS = (str, bytes, int, float, bool, list, tuple)


def _get(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present attribute/key among `names` from a mapping or object."""
    for name in names:
        if isinstance(obj, Mapping):
            if name in obj:
                return obj[name]
        else:
            value = getattr(obj, name, _MISSING)
            if value is not _MISSING:
                return value
    return default


def _call_id(obj: Any) -> Optional[str]:
    value = _get(obj, 'toolCallId', 'tool_call_id')
    return str(value) if value not in (None, '') else None


@dataclass
class StreamEvent:
    """Base class for events read from the engine's structured stream."""
    type: str
    tool_name: str = ''

    @property
    def is_reasoning(self) -> bool:
        return self.tool_name == REASONING_TOOL


@dataclass
class ToolCallEvent(StreamEvent):
    """Event emitted when the agent invokes a tool."""
    args: Any = field(default=None)
    input: Any = field(default=None)  # some engines carry the raw input separately from args
    tool_call_id: Optional[str] = None

    def to_tool_call(self) -> ToolCall:
        return ToolCall(
            tool_name=self.tool_name or 'unknown',
            args=self.args if self.args is not None else self.input,
            tool_call_id=self.tool_call_id,
        )


@dataclass
class ToolResultEvent(StreamEvent):
    """Event emitted when a tool returns."""
    result: Any = field(default=None)


@dataclass
class UnknownEvent(StreamEvent):
    """Any other chunk type (text, reasoning, finish markers)."""
    raw: Any = field(default=None)


ParsedEvent = Union[ToolCallEvent, ToolResultEvent, UnknownEvent]


def parse_stream_event(raw: Any) -> ParsedEvent:
    """Turn a raw stream chunk into a tagged event.

    Accepts mappings or attribute objects, camelCase or snake_case keys, and
    chunks wrapped as ``{"chunk": {...}}``.
    """
    inner = _get(raw, 'chunk')
    if inner is not None and _get(raw, 'type') is None:
        raw = inner
    event_type = str(_get(raw, 'type', default='') or '')
    tool_name = str(_get(raw, 'toolName', 'tool_name', default='') or '')
    if event_type == 'tool-call':
        return ToolCallEvent(
            type=event_type,
            tool_name=tool_name,
            args=_get(raw, 'args'),
            input=_get(raw, 'input'),
            tool_call_id=_call_id(raw),
        )
    if event_type == 'tool-result':
        return ToolResultEvent(
            type=event_type,
            tool_name=tool_name,
            result=_get(raw, 'result', 'output'),
        )
    return UnknownEvent(type=event_type or 'unknown', tool_name=tool_name, raw=raw)


def render_payload(value: Any) -> Optional[str]:
    """Render a non-string payload as indented JSON, falling back to str()."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def extract_reasoning_payload(args: Any, raw_input: Any = None) -> Optional[str]:
    """Pick the reasoning text out of a tool payload.

    Priority: ``args.thought``, ``args.text``, ``args.input``, the event's raw
    ``input`` value, then ``args`` itself. The first value that is not None
    wins; non-string values are rendered as JSON. Returns None if nothing is
    available.
    """
    if args is not None and not isinstance(args, _SCALAR_PAYLOADS):
        for name in PAYLOAD_FIELDS:
            value = _get(args, name)
            if value is not None:
                return render_payload(value)
    if raw_input is not None:
        return render_payload(raw_input)
    return render_payload(args)


def extract_event_payload(event: ParsedEvent) -> Optional[str]:
    if isinstance(event, ToolCallEvent):
        return extract_reasoning_payload(event.args, event.input)
    if isinstance(event, ToolResultEvent):
        return extract_reasoning_payload(event.result)
    return None


def _content_text(content: Any) -> str:
    """Flatten a step's `content` (string or list of parts) into text."""
    if isinstance(content, str):
        return content
    if not isinstance(content, (list, tuple)):
        return ''
    parts = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
        elif item is not None:
            text = _get(item, 'text', 'content')
            if isinstance(text, str):
                parts.append(text)
    return '\n'.join(p for p in parts if p.strip())


def parse_step_finish(event: Any, fallback_step: int) -> StepRecord:
    """Build a StepRecord from the engine's step-finish payload."""
    step_number = _get(event, 'stepNumber', 'step_number', 'step', 'stepIndex')
    tool_calls = []
    for tc in _get(event, 'toolCalls', 'tool_calls') or []:
        tool_calls.append(ToolCall(
            tool_name=str(_get(tc, 'toolName', 'tool_name') or 'unknown'),
            args=_get(tc, 'args', 'input'),
            tool_call_id=_call_id(tc),
        ))

    reasoning = _content_text(_get(event, 'content'))
    if not reasoning:
        for name in ('text', 'responseText', 'reasoning', 'message'):
            value = _get(event, name)
            if value:
                reasoning = str(value)
                break

    return StepRecord(
        step_number=int(step_number) if isinstance(step_number, int) else fallback_step,
        finish_reason=str(_get(event, 'finishReason', 'finish_reason') or 'unknown'),
        tool_calls=tool_calls,
        reasoning=reasoning.strip() or None,
    )


def _args_key(args: Any) -> str:
    try:
        return json.dumps(args, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(args)


class ActionDeduplicator:
    """
    Collapses the same tool call reported on the event stream and again at
    step finish into a single action.

    Calls carrying an engine ``toolCallId`` are dropped once that id has been
    seen. Everything else is matched on tool name plus canonical args and
    counted per channel, so a call repeated N times is admitted N times no
    matter how many channels report it.
    """

    def __init__(self) -> None:
        self._seen_ids: Set[str] = set()
        self._channel_counts: Dict[Tuple[str, str], Dict[str, int]] = {}
        self._admitted: Dict[Tuple[str, str], int] = {}

    def admit(self, channel: str, tool_name: str, args: Any, tool_call_id: Optional[str] = None) -> bool:
        """Return True the first time a call is reported on any channel."""
        if tool_call_id is not None:
            if tool_call_id in self._seen_ids:
                return False
            self._seen_ids.add(tool_call_id)

        key = (tool_name, _args_key(args))
        counts = self._channel_counts.setdefault(key, {})
        seen = counts.get(channel, 0) + 1
        counts[channel] = seen
        if seen <= self._admitted.get(key, 0):
            return False
        self._admitted[key] = seen
        return True


__all__ = [
    'ActionDeduplicator',
    'StreamEvent',
    'ToolCallEvent',
    'ToolResultEvent',
    'UnknownEvent',
    'ParsedEvent',
    'parse_stream_event',
    'render_payload',
    'extract_reasoning_payload',
    'extract_event_payload',
    'parse_step_finish',
]

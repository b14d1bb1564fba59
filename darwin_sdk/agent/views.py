from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from darwin_sdk.config import DEFAULT_MODEL
from darwin_sdk.timing import now_utc, now_utc_iso

logger = logging.getLogger(__name__)

REASONING_TOOL = 'think'

Environment = Literal['LOCAL', 'BROWSERBASE']
ThoughtSource = Literal['stream', 'step_finish', 'tool_result', 'final_reasoning']
AgentEventKind = Literal['think', 'action', 'status', 'error']

# on_event sink; may be a plain function or a coroutine function
EventSink = Callable[[str, Any], Union[None, Awaitable[None]]]


class Viewport(BaseModel):
    width: int = 1288
    height: int = 711


class TaskConfig(BaseModel):
    """Configuration for one task run. Frozen once the run starts."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    website: str = Field(min_length=1, description="Target URL the agent navigates to first.")
    task: str = Field(min_length=1, description="Instruction text for the agent.")
    model: str = DEFAULT_MODEL
    max_steps: int = Field(20, ge=1)
    env: Environment = 'LOCAL'
    verbose: Literal[0, 1, 2] = 2
    api_key: Optional[str] = Field(None, repr=False, description="Remote browser API key; BROWSERBASE_API_KEY is used when unset.")
    project_id: Optional[str] = Field(None, description="Remote browser project id; BROWSERBASE_PROJECT_ID is used when unset.")
    system_prompt: Optional[str] = None
    integrations: List[str] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)
    telemetry_endpoint: str = Field('/api/events', description="In-page fallback endpoint for the session_ended event.")
    task_id: Optional[str] = Field(None, description="Identifier published to the page; generated when unset.")
    on_event: Optional[EventSink] = Field(None, exclude=True, repr=False)


class ToolCall(BaseModel):
    """A single tool invocation as reported at step boundaries."""

    tool_name: str = 'unknown'
    args: Any = None
    tool_call_id: Optional[str] = None

    @property
    def is_reasoning(self) -> bool:
        return self.tool_name == REASONING_TOOL


class StepRecord(BaseModel):
    step_number: int
    finish_reason: str = 'unknown'
    tool_calls: List[ToolCall] = Field(default_factory=list)
    reasoning: Optional[str] = None
    timestamp: datetime = Field(default_factory=now_utc)

    @property
    def thought_calls(self) -> List[ToolCall]:
        return [tc for tc in self.tool_calls if tc.is_reasoning]

    @property
    def action_calls(self) -> List[ToolCall]:
        return [tc for tc in self.tool_calls if not tc.is_reasoning]


class ThoughtEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: int
    text: str
    timestamp: str = Field(default_factory=now_utc_iso)
    source: ThoughtSource


class AgentAction(BaseModel):
    model_config = ConfigDict(extra='allow')

    type: str = 'unknown'
    reasoning: Optional[str] = None


class FinalResult(BaseModel):
    """Final outcome reported by the automation engine."""

    model_config = ConfigDict(extra='allow')

    success: bool = False
    message: Optional[str] = None
    actions: List[AgentAction] = Field(default_factory=list)

    @field_validator('actions', mode='before')
    @classmethod
    def _none_actions(cls, v):
        return v if v is not None else []

    @property
    def terminal_close_action(self) -> Optional[AgentAction]:
        for action in reversed(self.actions):
            if action.type == 'close':
                return action
        return None


class ExecutionOutcome(BaseModel):
    thoughts: List[ThoughtEntry] = Field(default_factory=list)
    result: FinalResult
    steps: int = 0

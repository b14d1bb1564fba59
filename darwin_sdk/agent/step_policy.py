from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List

from darwin_sdk.agent.prompts import FORCE_THINK_INSTRUCTION
from darwin_sdk.agent.views import ToolCall

logger = logging.getLogger(__name__)


class StepPolicyEnforcer:
    """
    Enforces "explain before act" at step boundaries.

    The first step is exempt. Every later step gets a forcing instruction
    appended to its messages unless the previous step consisted solely of
    reasoning-tool calls.
    """

    def __init__(self) -> None:
        self.step_number: int = 0
        self.last_step_tool_calls: List[ToolCall] = []
        self.last_step_had_think: bool = False
        self.injections: int = 0

    def needs_injection(self, step_number: int) -> bool:
        if step_number <= 1:
            return False
        if not self.last_step_had_think:
            return True
        return any(not tc.is_reasoning for tc in self.last_step_tool_calls)

    def prepare_step(self, context: Any) -> Any:
        """Advance the step counter and return the (possibly augmented) step context."""
        self.step_number += 1
        step = self.step_number
        if not self.needs_injection(step):
            return context
        self.injections += 1
        logger.debug(f"Step {step}: previous step acted without narrating, forcing a think call")
        return self._with_instruction(context)

    def record_step(self, tool_calls: Iterable[ToolCall]) -> None:
        calls = list(tool_calls)
        self.last_step_tool_calls = calls
        self.last_step_had_think = any(tc.is_reasoning for tc in calls)

    @staticmethod
    def _with_instruction(context: Any) -> Dict[str, Any]:
        base: Dict[str, Any] = dict(context) if isinstance(context, Mapping) else {}
        messages = list(base.get('messages') or [])
        messages.append({'role': 'user', 'content': FORCE_THINK_INSTRUCTION})
        base['messages'] = messages
        return base

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from darwin_sdk.agent.reasoning import normalize_reasoning
from darwin_sdk.agent.views import ThoughtEntry, ThoughtSource

logger = logging.getLogger(__name__)


class ThoughtDeduplicator:
    """Remembers every normalized thought seen during one run."""

    def __init__(self) -> None:
        self.seen: Set[str] = set()

    def should_emit(self, text: str) -> bool:
        if text in self.seen:
            return False
        self.seen.add(text)
        return True

    def __len__(self) -> int:
        return len(self.seen)


class ThoughtRecorder:
    """
    Builds the ordered thought timeline for one run.

    Both stream consumers and the step-finish callback feed raw payloads in
    here; the recorder normalizes, drops empty and repeated text, stamps the
    current step and keeps first-seen order.
    """

    def __init__(
        self,
        step_provider: Callable[[], int],
        on_thought: Optional[Callable[[ThoughtEntry], Union[None, Awaitable[Any]]]] = None,
    ):
        self._step_provider = step_provider
        self._on_thought = on_thought
        self._dedup = ThoughtDeduplicator()
        self.thoughts: List[ThoughtEntry] = []

    async def record(self, raw: Optional[str], source: ThoughtSource) -> Optional[ThoughtEntry]:
        text = normalize_reasoning(raw)
        if not text:
            return None
        if not self._dedup.should_emit(text):
            logger.debug(f"Duplicate thought suppressed ({source})")
            return None
        entry = ThoughtEntry(step=max(1, self._step_provider()), text=text, source=source)
        self.thoughts.append(entry)
        logger.info(f"💭 Thinking: {text}")
        if self._on_thought is not None:
            try:
                outcome = self._on_thought(entry)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.debug(f"on_thought listener failed: {e}")
        return entry

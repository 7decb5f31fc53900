from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, TypeVar

ContextT = TypeVar("ContextT")

logger = logging.getLogger("support_chat.pipeline")


@dataclass
class PipelineStep(Generic[ContextT]):
    """Named step with an optional skip guard."""
    name: str
    fn: Callable[[ContextT], None]
    skip_if: Optional[Callable[[ContextT], bool]] = None


class PipelineRunner(Generic[ContextT]):
    """Execute steps in order against one mutable context."""

    def __init__(self, steps: List[PipelineStep[ContextT]]) -> None:
        self._steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: ContextT) -> None:
        """Purpose: Run each step unless its skip guard says otherwise.
        Inputs/Outputs: Input is a mutable context object; no return value.
        Side Effects / State: Step functions mutate the context.
        Dependencies: PipelineStep.fn and PipelineStep.skip_if.
        Failure Modes: Step exceptions propagate; later steps do not run.
        If Removed: Chat turns have no execution order.
        Testing Notes: A step whose skip_if returns True is not called.
        """
        # Guards are evaluated lazily, after earlier steps have run.
        for step in self._steps:
            if step.skip_if and step.skip_if(context):
                logger.debug("step=%s skipped", step.name)
                continue
            step.fn(context)

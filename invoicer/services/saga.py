"""Saga runner: ordered steps, each paired with its compensating action"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from invoicer.monitoring.metrics import metrics_collector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    """
    One step of a saga.

    The compensation is registered before the action runs and is invoked for
    every started step, including the one that failed, so actions that fan
    out must record partial progress where their compensation can see it.
    Compensations must treat "nothing happened" as a no-op.
    """

    name: str
    action: Callable[[], Awaitable[Any]]
    compensation: Optional[Callable[[], Awaitable[Any]]] = None


class Saga:
    """Runs steps in order and unwinds started steps in reverse on failure"""

    def __init__(self, name: str, steps: Sequence[SagaStep]):
        self.name = name
        self.steps = list(steps)

    async def run(self) -> List[Any]:
        """
        Execute every step.

        Returns:
            Results of each action, in step order

        Raises:
            The original exception of the failed step, after compensation
        """
        started: List[SagaStep] = []
        results: List[Any] = []

        for step in self.steps:
            started.append(step)
            try:
                results.append(await step.action())
            except Exception as e:
                logger.error(f"Saga {self.name} failed at step {step.name}: {e}")
                await self._compensate(started)
                metrics_collector.record_saga(self.name, "compensated")
                raise

        metrics_collector.record_saga(self.name, "completed")
        return results

    async def _compensate(self, started: List[SagaStep]) -> None:
        for step in reversed(started):
            if step.compensation is None:
                continue
            try:
                await step.compensation()
                logger.info(f"Saga {self.name}: compensated step {step.name}")
            except Exception as e:
                # Compensation failures never replace the original error
                logger.error(f"Saga {self.name}: compensation for {step.name} failed: {e}")
                metrics_collector.record_compensation_failure(self.name, step.name)

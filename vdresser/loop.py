from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
import time
from typing import Callable, Optional

from .controller import FrameLoopController, TickOutcome


@dataclass
class LoopStats:
    ticks: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def count(self, outcome: TickOutcome) -> int:
        return int(self.outcomes.get(outcome, 0))


class FrameLoop:
    """Fixed-interval scheduler for ``FrameLoopController.tick``.

    ``run`` ends when the camera is disabled; enabling it again and calling
    ``run`` resumes ticking.
    """

    def __init__(
        self,
        controller: FrameLoopController,
        poll_interval_s: float = 1.0 / 60.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.controller = controller
        self.poll_interval_s = float(poll_interval_s)
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self.stats = LoopStats()

    @property
    def running(self) -> bool:
        return self._running

    def step(self) -> TickOutcome:
        outcome = self.controller.tick()
        self.stats.ticks += 1
        self.stats.outcomes[outcome] += 1
        return outcome

    def run(self, max_ticks: Optional[int] = None) -> LoopStats:
        self._running = True
        ticks = 0
        try:
            while self._running and self.controller.camera_enabled:
                started = self._clock()
                self.step()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                remaining = self.poll_interval_s - (self._clock() - started)
                if remaining > 0:
                    self._sleep(remaining)
        finally:
            self._running = False
        return self.stats

    def stop(self) -> None:
        self._running = False

    def settle(self, timeout_s: float = 30.0) -> bool:
        """Wait for an in-flight adjustment to be delivered. True when nothing is left in flight."""
        deadline = self._clock() + float(timeout_s)
        while True:
            self.controller.pump()
            if not self.controller.state.adjustment_in_flight:
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(self.poll_interval_s)

"""
Step detection from accelerometer magnitude.

The acceleration magnitude (in g) is smoothed with a first-order IIR
filter. A step is flagged when the centre sample of a short sliding
window is the window maximum and exceeds a fixed threshold, subject to
a minimum and maximum interval between steps.
"""

from collections import deque
from typing import Deque, List, Optional, Tuple

from ..config import InertialConfig


class StepDetector:
    """
    Peak-picking step detector.

    Timestamps are in seconds on any monotonic clock. A peak arriving more
    than ``max_step_interval_s`` after the previous step is held as a
    candidate: it becomes the first step of a new walk only when the next
    peak lands inside the interval gate, and is dropped otherwise. An
    isolated jolt is therefore never counted.
    """

    def __init__(self, config: Optional[InertialConfig] = None):
        self.config = config or InertialConfig()
        self._window: Deque[Tuple[float, float]] = deque(maxlen=self.config.window_size)
        self._step_times: Deque[float] = deque(maxlen=self.config.cadence_window)
        self._filtered: Optional[float] = None
        self._last_step: Optional[float] = None
        self._candidate: Optional[float] = None

    def reset(self) -> None:
        self._window.clear()
        self._step_times.clear()
        self._filtered = None
        self._last_step = None
        self._candidate = None

    @property
    def filtered(self) -> Optional[float]:
        return self._filtered

    @property
    def last_step_time(self) -> Optional[float]:
        return self._last_step

    def process(self, magnitude_g: float, timestamp: float) -> List[float]:
        """
        Feed one acceleration-magnitude sample.

        Returns:
            Timestamps of the steps this sample confirms: none, one, or two
            when it also confirms a held candidate
        """
        if self._filtered is None:
            self._filtered = magnitude_g
        else:
            self._filtered += self.config.smoothing * (magnitude_g - self._filtered)

        self._window.append((timestamp, self._filtered))
        if len(self._window) < self._window.maxlen:
            return []

        center_time, center_value = self._window[len(self._window) // 2]
        if center_value <= self.config.step_threshold_g:
            return []
        if center_value < max(value for _, value in self._window):
            return []

        previous = self._candidate if self._candidate is not None else self._last_step
        if previous is not None:
            interval = center_time - previous
            if interval < self.config.min_step_interval_s:
                return []
            if interval <= self.config.max_step_interval_s:
                steps = [center_time]
                if self._candidate is not None:
                    steps.insert(0, self._candidate)
                    self._step_times.clear()
                    self._step_times.append(self._candidate)
                    self._candidate = None
                self._last_step = center_time
                self._step_times.append(center_time)
                return steps

        # first peak, or the previous step is too old: wait for a partner
        self._candidate = center_time
        return []

    def cadence(self) -> float:
        """Steps per minute over the recent step history (0 with fewer than two steps)."""
        if len(self._step_times) < 2:
            return 0.0
        span = self._step_times[-1] - self._step_times[0]
        if span <= 0:
            return 0.0
        return (len(self._step_times) - 1) / span * 60.0

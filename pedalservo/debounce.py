"""Counter-based contact debouncing for digital inputs."""

from __future__ import annotations

from typing import Callable


class DebounceButton:
    """Filters a noisy digital input.

    The reported level changes only after the raw level has stayed the same
    for ``threshold`` consecutive reads.
    """

    def __init__(self, read_pin: Callable[[], int], threshold: int) -> None:
        if threshold < 0:
            raise ValueError("threshold must not be negative")
        self._read_pin = read_pin
        self.threshold = threshold
        self.stable_state = int(read_pin())
        self.last_state = self.stable_state
        self.counter = 0

    def read(self) -> int:
        """Sample the pin once and return the debounced level."""
        current = int(self._read_pin())
        if current == self.last_state:
            if self.counter < self.threshold:
                self.counter += 1
        else:
            self.counter = 0
        self.last_state = current
        if self.counter >= self.threshold:
            self.stable_state = current
        return self.stable_state
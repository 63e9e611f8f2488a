"""Pedal and mode-switch inputs, with double-pedal gesture detection."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable, Optional

from pedalservo.debounce import DebounceButton

logger = logging.getLogger(__name__)

PIN_RESET = 0
DEFAULT_DEBOUNCE_THRESHOLD = 5
SHORT_HOLD_MS = 500
LONG_HOLD_MS = 5000


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class ButtonState(IntEnum):
    OFF = 0
    ON = 1


class DoubleButtonEvent(IntEnum):
    NONE = 0
    SHORT = 1
    LONG = 2
    PRESS = 3
    RELEASE = 4


@dataclass
class ButtonsState:
    gyro: ButtonState = ButtonState.OFF
    turn_right: ButtonState = ButtonState.OFF
    turn_left: ButtonState = ButtonState.OFF
    calibrate: ButtonState = ButtonState.OFF
    bind_mode: ButtonState = ButtonState.OFF

    def describe(self) -> str:
        return (
            f"bind={self.bind_mode.name}, cal={self.calibrate.name}, "
            f"gyro={self.gyro.name}, left={self.turn_left.name}, "
            f"right={self.turn_right.name}"
        )


def _level_to_state(level: int) -> ButtonState:
    # Inputs are pulled up: a pressed button pulls the pin low.
    return ButtonState.ON if level == PIN_RESET else ButtonState.OFF


class ButtonPanel:
    """Tracks the five inputs; the pedals are debounced."""

    def __init__(
        self,
        read_gyro: Callable[[], int],
        read_left: Callable[[], int],
        read_right: Callable[[], int],
        read_calibrate: Callable[[], int],
        read_bind: Callable[[], int],
        clock: Optional[Callable[[], int]] = None,
        threshold: int = DEFAULT_DEBOUNCE_THRESHOLD,
    ) -> None:
        self._read_gyro = read_gyro
        self._read_calibrate = read_calibrate
        self._read_bind = read_bind
        self._left = DebounceButton(read_left, threshold)
        self._right = DebounceButton(read_right, threshold)
        self._clock = clock or _monotonic_ms
        self.state = ButtonsState()
        self._logged_state = ButtonsState()
        self._double_prev = False
        self._press_start = 0
        self._event_sent = 0
        self._released_sent = False

    def _set(self, name: str, value: ButtonState) -> bool:
        previous = getattr(self.state, name)
        setattr(self.state, name, value)
        return previous != value

    def update_gyro(self) -> bool:
        return self._set("gyro", _level_to_state(self._read_gyro()))

    def update_turn_right(self) -> bool:
        return self._set("turn_right", _level_to_state(self._right.read()))

    def update_turn_left(self) -> bool:
        return self._set("turn_left", _level_to_state(self._left.read()))

    def update_calibrate(self) -> bool:
        return self._set("calibrate", _level_to_state(self._read_calibrate()))

    def update_bind_mode(self) -> bool:
        return self._set("bind_mode", _level_to_state(self._read_bind()))

    def update(self) -> bool:
        """Sample every input; return True if any of them changed."""
        changed = False
        changed |= self.update_bind_mode()
        changed |= self.update_calibrate()
        changed |= self.update_gyro()
        changed |= self.update_turn_left()
        changed |= self.update_turn_right()
        if self._logged_state != self.state:
            logger.info("[Buttons] State changed: %s", self.state.describe())
            self._logged_state = replace(self.state)
        return changed

    def update_double(self, auto_reset: bool = False) -> DoubleButtonEvent:
        """Detect press, short hold, long hold and release of both pedals."""
        now = (
            self.state.turn_left == ButtonState.ON
            and self.state.turn_right == ButtonState.ON
        )
        result = DoubleButtonEvent.NONE
        if now:
            if not self._double_prev:
                self._press_start = self._clock()
                self._released_sent = False
                self._event_sent = 1
                result = DoubleButtonEvent.PRESS
                logger.info("[DBTN] PRESS: both pedals pressed, t=%d", self._press_start)
            else:
                held = self._clock() - self._press_start
                if held >= LONG_HOLD_MS and self._event_sent < 3:
                    result = DoubleButtonEvent.LONG
                    self._event_sent = 3
                    logger.info("[DBTN] LONG: held %d ms", held)
                elif held >= SHORT_HOLD_MS and self._event_sent < 2:
                    result = DoubleButtonEvent.SHORT
                    self._event_sent = 2
                    logger.info("[DBTN] SHORT: held %d ms", held)
        else:
            if self._double_prev and not self._released_sent:
                result = DoubleButtonEvent.RELEASE
                self._released_sent = True
                logger.info("[DBTN] RELEASE: both pedals released, t=%d", self._clock())
            self._press_start = 0
            self._event_sent = 0
        self._double_prev = now
        return result
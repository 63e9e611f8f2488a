"""Operating modes and the transition rules driven by the buttons."""

from __future__ import annotations

import logging
import time
from enum import Enum, auto
from typing import Callable, Optional

from pedalservo.buttons import ButtonPanel, ButtonState
from pedalservo.potentiometer import Potentiometer

logger = logging.getLogger(__name__)

SCAN_BLOCK_MS = 800


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class State(Enum):
    INITIAL = auto()
    MANUAL = auto()
    GIROSCOPE = auto()
    CALIBRATE = auto()
    SCAN = auto()
    BIND_MODE = auto()
    CALIBRATE_AND_BIND = auto()
    ANGLE_ADJUST = auto()


_STATE_NAMES = {
    State.INITIAL: "Initial",
    State.MANUAL: "Manual",
    State.GIROSCOPE: "GiroScope",
    State.SCAN: "Scan",
    State.BIND_MODE: "BindMode",
    State.CALIBRATE: "Calibrate",
    State.CALIBRATE_AND_BIND: "CalibrateAndBind",
}


def state_name(state: State) -> str:
    """Display name of a state; states without one are "Unknown"."""
    return _STATE_NAMES.get(state, "Unknown")


class StateMachine:
    """Holds the current operating mode."""

    def __init__(self) -> None:
        self.state = State.INITIAL

    def is_in(self, state: State) -> bool:
        return self.state == state


class ModeController:
    """Applies the mode transition rules each time the buttons change."""

    def __init__(
        self,
        buttons: ButtonPanel,
        potentiometer: Potentiometer,
        set_lamp: Optional[Callable[[bool], None]] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.buttons = buttons
        self.potentiometer = potentiometer
        self._set_lamp = set_lamp or (lambda on: None)
        self._clock = clock or _monotonic_ms
        self.machine = StateMachine()
        self._scan_blocked = False
        self._scan_block_start = 0

    @property
    def state(self) -> State:
        return self.machine.state

    def setup(self) -> None:
        self.machine.state = State.INITIAL
        self._scan_blocked = False
        self._scan_block_start = 0

    def _enter(self, state: State, message: str, lamp: Optional[bool] = None) -> None:
        self.machine.state = state
        logger.info("[FSM] -> %s", message)
        if lamp is not None:
            self._set_lamp(lamp)

    def _apply_rules(self) -> None:
        b = self.buttons.state
        m = self.machine
        on = ButtonState.ON
        off = ButtonState.OFF
        setup_modes = (State.CALIBRATE, State.BIND_MODE, State.CALIBRATE_AND_BIND)

        if b.calibrate == on and b.bind_mode == on:
            if not m.is_in(State.CALIBRATE_AND_BIND):
                self._enter(State.CALIBRATE_AND_BIND, "CalibrateAndBind", False)
        elif b.bind_mode == on:
            if not m.is_in(State.BIND_MODE):
                self._enter(State.BIND_MODE, "BindMode", False)
        elif b.calibrate == on:
            if not m.is_in(State.CALIBRATE):
                self._enter(State.CALIBRATE, "Calibrate", False)
        elif m.state in (State.MANUAL, State.INITIAL) and b.gyro == on:
            self._enter(State.GIROSCOPE, "GiroScope", True)
        elif m.is_in(State.GIROSCOPE) and b.gyro == off:
            self._enter(State.MANUAL, "Manual (from GiroScope)", False)
        elif b.gyro == on and m.state in setup_modes:
            self._enter(State.GIROSCOPE, "GiroScope (after Calibrate/Bind)", True)
        elif m.is_in(State.INITIAL) and (b.turn_left == on or b.turn_right == on):
            self._enter(State.MANUAL, "Manual (from Initial)")
        elif m.state in setup_modes and all(
            v == off
            for v in (b.bind_mode, b.calibrate, b.gyro, b.turn_left, b.turn_right)
        ):
            self._enter(State.INITIAL, "Initial (from Bind/Calibrate)")

    def _apply_scan_rules(self) -> None:
        b = self.buttons.state
        on = ButtonState.ON
        if self.machine.state in (State.INITIAL, State.MANUAL, State.GIROSCOPE):
            if b.turn_left == on and b.turn_right == on and not self._scan_blocked:
                self.machine.state = State.SCAN
                self._scan_blocked = True
                self._scan_block_start = self._clock()
                logger.info("[FSM] -> Scan (double_pedal pressed)")
        if (
            self.machine.is_in(State.SCAN)
            and not self._scan_blocked
            and (b.turn_left == on or b.turn_right == on)
        ):
            self._enter(State.MANUAL, "Manual (pedal released)")

    def loop(self) -> None:
        """Run one iteration: sample the buttons and update the mode."""
        if self.buttons.update():
            logger.info("[FSM] Potentiometer: %d%%", self.potentiometer.percentage())
            self._apply_rules()
            logger.info("Current state: %s", state_name(self.machine.state))
            self._apply_scan_rules()

        if self._scan_blocked and self._clock() - self._scan_block_start > SCAN_BLOCK_MS:
            self._scan_blocked = False
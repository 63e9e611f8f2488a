import pytest

from pedalservo.buttons import (
    LONG_HOLD_MS,
    SHORT_HOLD_MS,
    ButtonPanel,
    ButtonsState,
    ButtonState,
    DoubleButtonEvent,
)


class Rig:
    def __init__(self):
        self.levels = {"gyro": 1, "left": 1, "right": 1, "cal": 1, "bind": 1}
        self.now = 0

    def readers(self):
        return tuple(
            (lambda key=key: self.levels[key])
            for key in ("gyro", "left", "right", "cal", "bind")
        )

    def clock(self):
        return self.now


@pytest.fixture
def rig():
    return Rig()


def test_enum_values_match_protocol():
    assert ButtonState(0) is ButtonState.OFF
    assert ButtonState(1) is ButtonState.ON
    assert [DoubleButtonEvent(v).name for v in range(5)] == [
        "NONE",
        "SHORT",
        "LONG",
        "PRESS",
        "RELEASE",
    ]


def test_initial_state_all_off(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    assert panel.state == ButtonsState()
    assert panel.update() is False


def test_gyro_is_active_low(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["gyro"] = 0
    assert panel.update_gyro() is True
    assert panel.state.gyro == ButtonState.ON
    assert panel.update_gyro() is False
    rig.levels["gyro"] = 1
    assert panel.update_gyro() is True
    assert panel.state.gyro == ButtonState.OFF


@pytest.mark.parametrize("name,attr", [("cal", "calibrate"), ("bind", "bind_mode")])
def test_mode_switches(rig, name, attr):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels[name] = 0
    assert panel.update() is True
    assert getattr(panel.state, attr) == ButtonState.ON


def test_pedal_is_debounced(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=3)
    rig.levels["left"] = 0
    results = [panel.update_turn_left() for _ in range(4)]
    assert results == [False, False, False, True]
    assert panel.state.turn_left == ButtonState.ON


def test_right_pedal_update(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["right"] = 0
    assert panel.update_turn_right() is True
    assert panel.state.turn_right == ButtonState.ON


def test_double_press_sequence(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["left"] = rig.levels["right"] = 0
    panel.update()
    assert panel.update_double() == DoubleButtonEvent.PRESS
    assert panel.update_double() == DoubleButtonEvent.NONE
    rig.now = SHORT_HOLD_MS
    assert panel.update_double() == DoubleButtonEvent.SHORT
    assert panel.update_double() == DoubleButtonEvent.NONE
    rig.now = LONG_HOLD_MS
    assert panel.update_double() == DoubleButtonEvent.LONG
    assert panel.update_double() == DoubleButtonEvent.NONE
    rig.levels["left"] = 1
    panel.update()
    assert panel.update_double() == DoubleButtonEvent.RELEASE
    assert panel.update_double() == DoubleButtonEvent.NONE


def test_double_long_without_short(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["left"] = rig.levels["right"] = 0
    panel.update()
    assert panel.update_double() == DoubleButtonEvent.PRESS
    rig.now = LONG_HOLD_MS + 1
    assert panel.update_double() == DoubleButtonEvent.LONG
    assert panel.update_double() == DoubleButtonEvent.NONE


def test_single_pedal_gives_no_double_event(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["left"] = 0
    panel.update()
    events = [panel.update_double(True) for _ in range(3)]
    assert events == [DoubleButtonEvent.NONE] * 3


def test_second_press_after_release(rig):
    panel = ButtonPanel(*rig.readers(), clock=rig.clock, threshold=0)
    rig.levels["left"] = rig.levels["right"] = 0
    panel.update()
    panel.update_double()
    rig.levels["right"] = 1
    panel.update()
    assert panel.update_double() == DoubleButtonEvent.RELEASE
    rig.levels["right"] = 0
    panel.update()
    assert panel.update_double() == DoubleButtonEvent.PRESS
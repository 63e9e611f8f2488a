import itertools

import pytest

from pedalservo import app
from pedalservo.app import ManualDrive, main
from pedalservo.buttons import ButtonState, ButtonsState
from pedalservo.mks_servo import MksServo, checksum
from pedalservo.state_machine import State


class FakeTransport:
    def __init__(self):
        self.writes = []

    def write(self, data):
        self.writes.append(bytes(data))
        return len(data)


def make_servo(step=50):
    transport = FakeTransport()
    counter = itertools.count(0, step)
    servo = MksServo(transport, 1, clock=lambda: next(counter))
    return servo, transport


ON = ButtonState.ON
OFF = ButtonState.OFF


def decode_speed(frame):
    return ((frame[3] & 0x0F) << 8) | frame[4]


def test_no_action_outside_manual_mode():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    assert drive.step(State.GIROSCOPE, ButtonsState(turn_left=ON)) is None
    assert transport.writes == []
    assert drive.running is False


def test_left_pedal_reads_carry_then_runs_direction_one():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    frame = drive.step(State.MANUAL, ButtonsState(turn_left=ON))
    assert transport.writes[0][2] == 0x30
    assert frame == transport.writes[-1]
    assert frame[2] == 0xF6
    assert frame[3] >> 7 == 1
    assert decode_speed(frame) == app.PEDAL_SPEED
    assert frame[5] == app.PEDAL_ACC
    assert frame[-1] == checksum(frame[:-1])
    assert drive.running is True


def test_holding_pedal_sends_nothing_more():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    drive.step(State.MANUAL, ButtonsState(turn_left=ON))
    count = len(transport.writes)
    assert drive.step(State.MANUAL, ButtonsState(turn_left=ON)) is None
    assert len(transport.writes) == count


def test_right_pedal_runs_direction_zero_without_carry():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    frame = drive.step(State.MANUAL, ButtonsState(turn_right=ON))
    assert len(transport.writes) == 1
    assert frame[2] == 0xF6
    assert frame[3] >> 7 == 0
    assert decode_speed(frame) == app.PEDAL_SPEED


def test_release_stops_servo():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    drive.step(State.MANUAL, ButtonsState(turn_right=ON))
    frame = drive.step(State.MANUAL, ButtonsState())
    assert frame == bytes([0xFA, 0x01, 0xF6, 0x00, 0x00, 0x00, 0xF1])
    assert drive.running is False


def test_release_without_press_sends_nothing():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    assert drive.step(State.MANUAL, ButtonsState()) is None
    assert transport.writes == []


def test_left_has_priority_when_both_pressed():
    servo, transport = make_servo()
    drive = ManualDrive(servo)
    frame = drive.step(State.MANUAL, ButtonsState(turn_left=ON, turn_right=ON))
    assert frame[3] >> 7 == 1
    assert [w[2] for w in transport.writes] == [0x30, 0xF6]


def test_sweep_sends_both_directions():
    servo, transport = make_servo(step=1000)
    pauses = []
    app._sweep(servo, 1, pause_s=0.0, sleep=pauses.append)
    moves = [w for w in transport.writes if w[2] == 0xFD]
    assert [m[3] >> 7 for m in moves] == [1, 0]
    assert all(int.from_bytes(m[6:10], "big") == app.SWEEP_PULSES for m in moves)
    assert all(decode_speed(m) == app.SWEEP_SPEED for m in moves)
    assert pauses == [0.0]


def test_main_reports_unopenable_port():
    assert main(["--port", "/nonexistent/serial-port", "status"]) == app.EXIT_PORT_ERROR


def test_main_requires_command():
    with pytest.raises(SystemExit):
        main(["--port", "/nonexistent/serial-port"])


def test_main_rejects_unknown_direction():
    with pytest.raises(SystemExit):
        main(["run", "up"])
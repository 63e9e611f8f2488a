"""Pedal-driven servo control and the command-line entry point."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Callable, Optional, Sequence

import serial

from pedalservo.buttons import ButtonState, ButtonsState
from pedalservo.mks_servo import (
    STEPS_PER_REV,
    MksServo,
    MksServoError,
    PositionErrorPoller,
)
from pedalservo.state_machine import State

logger = logging.getLogger(__name__)

SERVO_BAUDRATE = 38400
DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_ADDRESS = 1
MICROSTEP_16 = 0x05

PEDAL_SPEED = 1500
PEDAL_ACC = 200
CARRY_TIMEOUT_MS = 100

SWEEP_SPEED = 3000
SWEEP_ACC = 1
SWEEP_PULSES = STEPS_PER_REV
SWEEP_START_TIMEOUT_MS = 3000
SWEEP_DONE_TIMEOUT_MS = 10000
SWEEP_PAUSE_S = 2.0

EXIT_OK = 0
EXIT_PORT_ERROR = 1
EXIT_SERVO_ERROR = 2


class ManualDrive:
    """Runs the servo while a pedal is held in manual mode."""

    def __init__(self, servo: MksServo) -> None:
        self.servo = servo
        self.running = False

    def step(self, state: State, buttons: ButtonsState) -> Optional[bytes]:
        """Apply the pedals once; return the speed frame sent, if any."""
        if state is not State.MANUAL:
            return None
        on = ButtonState.ON
        off = ButtonState.OFF
        sent: Optional[bytes] = None

        if buttons.turn_left == on and not self.running:
            self.running = True
            try:
                self.servo.get_carry(CARRY_TIMEOUT_MS)
            except MksServoError as exc:
                logger.warning("[MKS] Encoder carry read failed: %s", exc)
            sent = self.servo.speed_mode_run(1, PEDAL_SPEED, PEDAL_ACC)
            logger.info("[MKS] Servo running left")
        elif buttons.turn_right == on and not self.running:
            self.running = True
            sent = self.servo.speed_mode_run(0, PEDAL_SPEED, PEDAL_ACC)
            logger.info("[MKS] Servo running right")

        if buttons.turn_left == off and buttons.turn_right == off and self.running:
            self.running = False
            sent = self.servo.speed_mode_run(0, 0, 0)
            logger.info("[MKS] Servo stopped")
        return sent


def _wait_ack(servo: MksServo, timeout_ms: int) -> None:
    try:
        servo.wait_for_ack(5, timeout_ms)
    except MksServoError as exc:
        logger.warning("[MKS] No acknowledgement: %s", exc)


def _report_status(servo: MksServo) -> None:
    try:
        status = servo.read_status(100)
    except MksServoError:
        print("[MKS] Status read error")
        return
    print(f"[MKS] Locked-rotor: {status.locked_rotor}, Encoder: {status.encoder_position}")


def _report_position_error(servo: MksServo, timeout_ms: int = 300) -> None:
    try:
        error = servo.read_position_error(timeout_ms)
    except MksServoError:
        print("[MKS] Position error read error")
        return
    print(f"[MKS] Position error: {error}")


def _sweep(
    servo: MksServo,
    cycles: int,
    pause_s: float = SWEEP_PAUSE_S,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Turn one revolution each way per cycle, then report the servo state."""
    poller = PositionErrorPoller(servo)
    for _ in range(cycles):
        print(f"[MKS] Move {SWEEP_PULSES} steps CW (Position Mode 1)")
        servo.position_mode1_run(1, SWEEP_SPEED, SWEEP_ACC, SWEEP_PULSES)
        _wait_ack(servo, SWEEP_START_TIMEOUT_MS)
        _wait_ack(servo, SWEEP_DONE_TIMEOUT_MS)
        sleep(pause_s)
        print(f"[MKS] Move {SWEEP_PULSES} steps CCW (Position Mode 1)")
        servo.position_mode1_run(0, SWEEP_SPEED, SWEEP_ACC, SWEEP_PULSES)
        _wait_ack(servo, SWEEP_START_TIMEOUT_MS)
        _wait_ack(servo, SWEEP_DONE_TIMEOUT_MS)
        _report_status(servo)
        _report_position_error(servo)
        poller.poll()


def _cmd_status(servo: MksServo, args: argparse.Namespace) -> None:
    status = servo.read_status(args.timeout)
    print(f"Locked-rotor: {status.locked_rotor}, Encoder: {status.encoder_position}")


def _cmd_position_error(servo: MksServo, args: argparse.Namespace) -> None:
    print(f"Position error: {servo.read_position_error(args.timeout)}")


def _cmd_run(servo: MksServo, args: argparse.Namespace) -> None:
    direction = 1 if args.direction == "left" else 0
    servo.speed_mode_run(direction, args.speed, args.acc)
    print(f"Running {args.direction} at speed {args.speed}")


def _cmd_stop(servo: MksServo, args: argparse.Namespace) -> None:
    if args.emergency:
        ok = servo.emergency_stop()
        print("Emergency stop " + ("confirmed" if ok else "refused"))
    else:
        servo.speed_mode_run(0, 0, 0)
        print("Stopped")


def _cmd_sweep(servo: MksServo, args: argparse.Namespace) -> None:
    _sweep(servo, args.cycles, args.pause)


_COMMANDS = {
    "status": _cmd_status,
    "position-error": _cmd_position_error,
    "run": _cmd_run,
    "stop": _cmd_stop,
    "sweep": _cmd_sweep,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pedalservo", description="Control an MKS servo over an RS485 serial line."
    )
    parser.add_argument("--port", default=DEFAULT_PORT, help="serial port of the RS485 adapter")
    parser.add_argument("--baud", type=int, default=SERVO_BAUDRATE)
    parser.add_argument("--address", type=int, default=DEFAULT_ADDRESS)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("status", "position-error"):
        p = sub.add_parser(name)
        p.add_argument("--timeout", type=int, default=300, help="milliseconds")

    run = sub.add_parser("run")
    run.add_argument("direction", choices=("left", "right"))
    run.add_argument("--speed", type=int, default=PEDAL_SPEED)
    run.add_argument("--acc", type=int, default=PEDAL_ACC)

    stop = sub.add_parser("stop")
    stop.add_argument("--emergency", action="store_true")

    sweep = sub.add_parser("sweep")
    sweep.add_argument("--cycles", type=int, default=1)
    sweep.add_argument("--pause", type=float, default=SWEEP_PAUSE_S, help="seconds")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Open the servo line, set 16 microsteps and run one command."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s"
    )
    try:
        port = serial.Serial(args.port, baudrate=args.baud, timeout=0)
    except (serial.SerialException, OSError, ValueError) as exc:
        print(f"cannot open {args.port}: {exc}", file=sys.stderr)
        return EXIT_PORT_ERROR
    with port:
        servo = MksServo(port, args.address)
        servo.set_microstep(MICROSTEP_16)
        try:
            _COMMANDS[args.command](servo, args)
        except MksServoError as exc:
            print(f"servo error: {exc}", file=sys.stderr)
            return EXIT_SERVO_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
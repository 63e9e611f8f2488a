"""Serial protocol driver for MKS closed-loop stepper servos over RS485."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)

RX_BUFFER_SIZE = 128
STEPS_PER_REV = 122880
ENCODER_STEPS_PER_REV = 51200
POLL_INTERVAL_MS = 1000

REQUEST_HEAD = 0xFA
RESPONSE_HEAD = 0xFB

CMD_CALIBRATE = 0x80
CMD_READ_CARRY = 0x30
CMD_READ_ADDITION = 0x31
CMD_READ_POSITION_ERROR = 0x39
CMD_MOVE_STEPS = 0xA3
CMD_READ_STATUS = 0xF2
CMD_SPEED_MODE = 0xF6
CMD_EMERGENCY_STOP = 0xF7
CMD_SET_MICROSTEP = 0xF8
CMD_POSITION_MODE1 = 0xFD

SIMPLE_STOP_FRAME = bytes([0xAA, 0xF7, 0x00, 0x00, 0x55])

_MAX_ACK_LENGTH = 32
_TURNAROUND_DELAY_S = 0.001
_IDLE_SLEEP_S = 0.0005


class MksServoError(Exception):
    """Base class for servo communication failures."""


class ServoTimeoutError(MksServoError, TimeoutError):
    """No complete response arrived within the timeout."""


class ServoChecksumError(MksServoError):
    """A response arrived with a wrong checksum."""


class ServoResponseError(MksServoError):
    """A response carried an unexpected address or command."""


class Transport(Protocol):
    def write(self, data: bytes) -> Optional[int]: ...


def checksum(data: bytes) -> int:
    """Additive checksum: the low byte of the sum of all bytes."""
    return sum(data) & 0xFF


def xor_checksum(data: bytes) -> int:
    """XOR of all bytes."""
    result = 0
    for byte in data:
        result ^= byte
    return result


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _hex(data: bytes) -> str:
    return " ".join(f"{b:02X}" for b in data)


class ServoState(IntEnum):
    UNKNOWN = 0
    STOPPED = 1
    MOVING = 2
    ERROR = 3


@dataclass
class ServoStatus:
    state: ServoState = ServoState.UNKNOWN
    last_status_code: int = 0
    last_update_tick: int = 0
    locked_rotor: int = 0
    encoder_position: int = 0
    position: int = 0
    is_stopped: bool = False


@dataclass
class Motor:
    """Bookkeeping of a motor's position and motion, in steps."""

    position_from_encoder: int = 0
    position: int = 0
    home_position: int = 0
    target: int = 0
    speed: int = 0
    max_speed: int = 0
    direction: int = 0
    is_moving: bool = False


class MksServo:
    """One servo on a half-duplex RS485 line.

    Received bytes land in a bounded buffer, either pushed with ``feed`` or
    pulled from the transport when it exposes ``in_waiting`` and ``read``.
    """

    def __init__(
        self,
        transport: Transport,
        address: int = 1,
        clock: Optional[Callable[[], int]] = None,
        set_direction: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.transport = transport
        self.address = address & 0xFF
        self.clock = clock or _monotonic_ms
        self._set_direction = set_direction or (lambda transmit: None)
        self._rx: deque[int] = deque()
        self.status = ServoStatus()

    # -- receive side -------------------------------------------------

    def feed(self, data: bytes) -> None:
        """Queue received bytes; bytes that do not fit are dropped."""
        for byte in data:
            if len(self._rx) < RX_BUFFER_SIZE - 1:
                self._rx.append(byte & 0xFF)

    def _pull(self) -> None:
        waiting = getattr(self.transport, "in_waiting", 0)
        if waiting:
            self.feed(self.transport.read(waiting))

    def read_byte(self) -> Optional[int]:
        """Take the oldest received byte, or None when nothing is buffered."""
        if not self._rx:
            self._pull()
        return self._rx.popleft() if self._rx else None

    def _clear_rx(self) -> None:
        self._pull()
        self._rx.clear()

    def _incoming(self, timeout_ms: int) -> Iterator[int]:
        start = self.clock()
        while self.clock() - start < timeout_ms:
            byte = self.read_byte()
            if byte is None:
                time.sleep(_IDLE_SLEEP_S)
                continue
            yield byte

    def _frames(self, length: int, timeout_ms: int) -> Iterator[bytes]:
        """Yield frames of ``length`` bytes, each starting at a response head."""
        frame = bytearray()
        for byte in self._incoming(timeout_ms):
            if frame or byte == RESPONSE_HEAD:
                frame.append(byte)
            if len(frame) == length:
                yield bytes(frame)
                frame = bytearray()

    # -- transmit side ------------------------------------------------

    def _send(self, frame: bytes) -> bytes:
        self._set_direction(True)
        time.sleep(_TURNAROUND_DELAY_S)
        try:
            self.transport.write(frame)
        finally:
            self._set_direction(False)
        return frame

    def _request(self, command: int, payload: bytes = b"") -> bytes:
        body = bytes([REQUEST_HEAD, self.address, command]) + payload
        return self._send(body + bytes([checksum(body)]))

    @staticmethod
    def _dir_speed(direction: int, speed: int) -> bytes:
        return bytes([((direction << 7) | ((speed >> 8) & 0x0F)) & 0xFF, speed & 0xFF])

    # -- commands -----------------------------------------------------

    def speed_mode_run(self, direction: int, speed: int, acc: int) -> bytes:
        """Run continuously at ``speed``; speed 0 stops the motor."""
        payload = self._dir_speed(direction, speed) + bytes([acc & 0xFF])
        return self._request(CMD_SPEED_MODE, payload)

    def set_microstep(self, microstep: int) -> bytes:
        return self._request(CMD_SET_MICROSTEP, bytes([microstep & 0xFF]))

    def calibrate(self, timeout_ms: int) -> int:
        """Start encoder calibration and return the acknowledged status."""
        self._request(CMD_CALIBRATE, b"\x00")
        return self.wait_for_ack(5, timeout_ms)

    def update_state_from_ack(self, ack: bytes) -> None:
        """Update ``status`` from an acknowledgement frame."""
        if len(ack) < 5:
            return
        code = ack[3]
        self.status.last_status_code = code
        self.status.last_update_tick = self.clock()
        if ack[2] == CMD_POSITION_MODE1:
            if code == 0x01:
                self.status.state = ServoState.MOVING
                self.status.is_stopped = False
            elif code == 0x02:
                self.status.state = ServoState.STOPPED
                self.status.is_stopped = True
            else:
                self.status.state = ServoState.UNKNOWN
                self.status.is_stopped = False
            if len(ack) >= 8:
                self.status.position = int.from_bytes(ack[4:8], "little", signed=True)
        else:
            self.status.state = ServoState.UNKNOWN
            self.status.is_stopped = False

    def wait_for_ack(self, length: int, timeout_ms: int) -> int:
        """Wait for a valid acknowledgement and return its status byte."""
        if not 4 <= length <= _MAX_ACK_LENGTH:
            raise ValueError(f"acknowledgement length must be 4..{_MAX_ACK_LENGTH}")
        for frame in self._frames(length, timeout_ms):
            logger.debug("[MKS] ACK RX: %s", _hex(frame))
            if frame[-1] == checksum(frame[:-1]):
                self.update_state_from_ack(frame)
                return frame[3]
        raise ServoTimeoutError("no acknowledgement received")

    def read_status(self, timeout_ms: int) -> ServoStatus:
        """Read the locked-rotor flag and encoder position."""
        self._request(CMD_READ_STATUS)
        received = bytearray()
        for byte in self._incoming(timeout_ms):
            logger.debug("[MKS][F2] RX BYTE: %02X", byte)
            received.append(byte)
            if len(received) == 8:
                break
        if len(received) < 8:
            raise ServoTimeoutError(f"status read timed out after {len(received)} bytes")
        logger.debug("[MKS][F2] RX PACKET: %s", _hex(received))
        if received[1] != self.address or received[2] != CMD_READ_STATUS:
            raise ServoResponseError(
                f"wrong address/command: {received[1]:02X} {received[2]:02X}"
            )
        self.status.locked_rotor = received[3]
        self.status.encoder_position = received[4] | (received[5] << 8)
        return self.status

    def read_position_error(self, timeout_ms: int) -> int:
        """Read the signed position error."""
        self._request(CMD_READ_POSITION_ERROR)
        for frame in self._frames(8, timeout_ms):
            logger.debug("[MKS][39] RX PACKET: %s", _hex(frame))
            if frame[1] != self.address or frame[2] != CMD_READ_POSITION_ERROR:
                raise ServoResponseError(
                    f"wrong address/command: {frame[1]:02X} {frame[2]:02X}"
                )
            return int.from_bytes(frame[3:7], "big", signed=True)
        raise ServoTimeoutError("position error read timed out")

    def move_steps(self, direction: int, steps: int, acc: int) -> bytes:
        payload = bytes(
            [
                ((direction << 7) | ((steps >> 16) & 0x3F)) & 0xFF,
                (steps >> 8) & 0xFF,
                steps & 0xFF,
                acc & 0xFF,
                0,
                0,
            ]
        )
        return self._request(CMD_MOVE_STEPS, payload)

    def move_degrees(self, degrees: float, acc: int) -> bytes:
        """Move by an angle; positive angles turn in direction 1."""
        direction = 1 if degrees >= 0 else 0
        steps = int((abs(degrees) / 360.0) * STEPS_PER_REV)
        return self.move_steps(direction, steps, acc)

    def read_response(self, length: int, timeout_ms: int) -> bytes:
        """Read one response frame of ``length`` bytes and verify its checksum."""
        if length < 2:
            raise ValueError("response length must be at least 2")
        for frame in self._frames(length, timeout_ms):
            logger.debug("[MKS] RX PACKET: %s", _hex(frame))
            if frame[-1] != checksum(frame[:-1]):
                raise ServoChecksumError("response checksum mismatch")
            return frame
        raise ServoTimeoutError("response read timed out")

    def position_mode1_run(
        self, direction: int, speed: int, acc: int, pulses: int
    ) -> bytes:
        payload = (
            self._dir_speed(direction, speed)
            + bytes([acc & 0xFF])
            + (pulses & 0xFFFFFFFF).to_bytes(4, "big")
        )
        return self._request(CMD_POSITION_MODE1, payload)

    def position_mode_run(self, position: int, speed: int, acc: int) -> bytes:
        """Move to an absolute position relative to the last known one."""
        current = self.status.position
        direction = 1 if position >= current else 0
        return self.position_mode1_run(direction, speed, acc, abs(position - current))

    def emergency_stop(self) -> bool:
        """Stop immediately; True when the servo reports success."""
        body = bytes([REQUEST_HEAD, self.address, CMD_EMERGENCY_STOP])
        self._send(body + bytes([xor_checksum(body)]))
        for frame in self._frames(6, 100):
            logger.debug("[MKS][F7] RX PACKET: %s", _hex(frame))
            crc = xor_checksum(frame[:5])
            if crc != frame[5]:
                raise ServoChecksumError(f"checksum {crc:02X} != {frame[5]:02X}")
            if frame[1] != self.address or frame[2] != CMD_EMERGENCY_STOP:
                raise ServoResponseError(
                    f"wrong address/command: {frame[1]:02X} {frame[2]:02X}"
                )
            logger.debug("[MKS][F7] STATUS: %d", frame[3])
            return frame[3] == 1
        raise ServoTimeoutError("emergency stop response timed out")

    def emergency_stop_simple(self) -> None:
        """Send the fixed stop frame without waiting for a reply."""
        self._send(SIMPLE_STOP_FRAME)
        logger.info("[MKS][SIMPLE STOP] Sent: %s", _hex(SIMPLE_STOP_FRAME))

    def get_carry(self, timeout_ms: int) -> tuple[int, int]:
        """Read the encoder carry and value; stale input is discarded first."""
        self._clear_rx()
        self._request(CMD_READ_CARRY)
        for frame in self._frames(10, timeout_ms):
            logger.debug("[MKS][0x30] RX PACKET: %s", _hex(frame))
            if frame[9] == checksum(frame[:9]) and frame[2] == CMD_READ_CARRY:
                carry = int.from_bytes(frame[3:7], "big", signed=True)
                value = frame[7] | (frame[8] << 8)
                logger.info("[MKS] Encoder carry: %d, value: %d", carry, value)
                return carry, value
        raise ServoTimeoutError("encoder carry read timed out or checksum error")

    def get_addition_value(self, timeout_ms: int) -> int:
        """Read the 48-bit accumulated encoder value."""
        self._request(CMD_READ_ADDITION)
        for frame in self._frames(10, timeout_ms):
            if frame[9] == checksum(frame[:9]) and frame[2] == CMD_READ_ADDITION:
                value = int.from_bytes(frame[3:9], "little")
                logger.info("[MKS] Encoder addition value: %d", value)
                return value
        raise ServoTimeoutError("encoder addition value read timed out or checksum error")


class PositionErrorPoller:
    """Reads the servo's position error at most once per second."""

    def __init__(self, servo: MksServo, clock: Optional[Callable[[], int]] = None) -> None:
        self.servo = servo
        self._clock = clock or servo.clock
        self._last_poll = 0

    def poll(self) -> Optional[float]:
        """Return the error in degrees when a read happened and succeeded."""
        now = self._clock()
        if now - self._last_poll < POLL_INTERVAL_MS:
            return None
        self._last_poll = now
        try:
            error = self.servo.read_position_error(100)
        except MksServoError:
            logger.warning("[MKS] [Poll] Position error read error")
            return None
        degrees = error * 360.0 / ENCODER_STEPS_PER_REV
        if -1.0 < degrees < 1.0:
            logger.info("[MKS] [Poll] Position error: <1 deg")
        else:
            logger.info("[MKS] [Poll] Position error: %d deg", int(degrees))
        return degrees
# pedalservo

Control of an MKS closed-loop servo from foot pedals and mode buttons, with
the servo reached over a serial (RS485) line.

## Modules

- `pedalservo.debounce` – `DebounceButton` wraps a pin-reading callable and
  reports a new level only after it has been seen for `threshold`
  consecutive reads.
- `pedalservo.buttons` – `ButtonPanel` samples five inputs (gyro, left pedal,
  right pedal, calibrate, bind) given as callables returning a pin level;
  a level of 0 means pressed. The two pedals are debounced. `update()`
  refreshes `ButtonPanel.state` (a `ButtonsState`) and returns whether
  anything changed. `update_double()` reports `DoubleButtonEvent.PRESS`,
  `SHORT` (held 500 ms), `LONG` (held 5 s) and `RELEASE` for both pedals
  together.
- `pedalservo.potentiometer` – `adc_to_percent` turns a 12-bit ADC sample
  into a whole percentage clamped to 0..100; `Potentiometer` does the same
  for a sampling callable.
- `pedalservo.state_machine` – the operating modes `State`, `state_name`,
  `StateMachine`, and `ModeController`, whose `loop()` samples the buttons
  and moves between Initial, Manual, GiroScope, Scan, BindMode, Calibrate
  and CalibrateAndBind, switching an optional lamp callback on and off.
- `pedalservo.mks_servo` – `MksServo`, a client for the MKS serial protocol:
  speed mode, position mode (relative and absolute), step and degree moves,
  microstep setting, calibration, status and position-error reads, encoder
  carry and addition values, and emergency stop. `PositionErrorPoller` reads
  the position error at most once per second and returns it in degrees.
  `checksum`, `xor_checksum`, `ServoStatus`, `ServoState` and `Motor` are
  also provided.
- `pedalservo.app` – `ManualDrive`, which in Manual mode runs the servo left
  or right while a pedal is held and stops it when both pedals are released,
  and `main`, the command-line entry point.

## Installation

```
pip install pedalservo
```

## Command line

```
pedalservo [--port PORT] [--baud BAUD] [--address N] [-v] COMMAND
```

The port defaults to `/dev/ttyUSB0` at 38400 baud, address 1. After
opening the port the servo is set to 16 microsteps, then one command runs:

- `status [--timeout MS]` – print the locked-rotor flag and encoder position.
- `position-error [--timeout MS]` – print the position error.
- `run left|right [--speed N] [--acc N]` – run in speed mode.
- `stop [--emergency]` – stop with speed 0, or send the emergency stop and
  report whether the servo confirmed it.
- `sweep [--cycles N] [--pause S]` – turn one revolution each way per cycle
  and report status and position error.

Exit status is 0 on success, 1 if the port cannot be opened, 2 on a servo
communication error.

## Using the servo client

`MksServo` writes frames to any object with a `write(bytes)` method.
Received bytes are either passed in with `feed`, or read from the transport
when it has `in_waiting` and `read` (as a `serial.Serial` does):

```python
import serial
from pedalservo.mks_servo import MksServo

port = serial.Serial("/dev/ttyUSB0", 38400, timeout=0)
servo = MksServo(port, address=1)
servo.set_microstep(0x05)
servo.speed_mode_run(1, 1500, 200)   # run in direction 1
servo.speed_mode_run(0, 0, 0)        # stop
print(servo.read_position_error(300))
```

Command methods return the frame they sent. Reads take a timeout in
milliseconds and return the decoded value; when no valid reply arrives they
raise `ServoTimeoutError`, and a bad checksum or an unexpected address or
command raises `ServoChecksumError` or `ServoResponseError` (all subclasses
of `MksServoError`).

## What it does not do

The package does not read pedals, buttons, a lamp or an ADC from hardware
itself: `ButtonPanel`, `Potentiometer` and `ModeController` take callables
that you supply. The command line talks only to the servo; it does not run
the pedal and mode loop, which you assemble from `ModeController` and
`ManualDrive`.

## Tests

```
pip install pedalservo[test]
pytest
```
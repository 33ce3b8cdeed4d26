"""
controller.py — device-side motion state machine.

One motion primitive at a time:

  IDLE --MOVE_DISTANCE--> MOVING --latch--> PAUSED_FOR_OBSTACLE
  IDLE --TURN_ANGLE-->    TURNING           PAUSED --clear--> MOVING
  MOVING/TURNING --effective elapsed >= target--> IDLE  (MOVEMENT_COMPLETE:SUCCESS)
  any --RESET/STOP--> IDLE

Motion commands outside IDLE are rejected with BLOCKED. Completion is decided
from elapsed time only; time spent paused is accumulated separately and
subtracted, so the planned distance is still covered after a pause.

While MOVING the accelerometer tilt trims the left/right PWM so the robot
tracks straight. A failed tilt read falls back to the uncorrected base speed.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .. import codec, config
from ..calibration import MotionCalibration
from ..errors import DeviceBlocked, SensorReadFailure


class MotionState(enum.Enum):
    IDLE = "IDLE"
    MOVING = "MOVING"
    TURNING = "TURNING"
    PAUSED_FOR_OBSTACLE = "PAUSED_FOR_OBSTACLE"


class ActiveCommand(enum.Enum):
    NONE = "NONE"
    MOVE = "MOVE"
    TURN = "TURN"


@dataclass
class DeviceMotionState:
    state: MotionState = MotionState.IDLE
    active_command: ActiveCommand = ActiveCommand.NONE
    start_ms: float = 0.0
    target_value: float = 0.0      # inches or degrees
    target_ms: float = 0.0
    paused_accumulated_ms: float = 0.0
    pause_started_ms: Optional[float] = None
    left_pwm: int = 0
    right_pwm: int = 0

    @property
    def is_moving(self) -> bool:
        return self.active_command is not ActiveCommand.NONE

    def effective_elapsed_ms(self, now_ms: float) -> float:
        paused = self.paused_accumulated_ms
        if self.pause_started_ms is not None:
            paused += now_ms - self.pause_started_ms
        return now_ms - self.start_ms - paused


def _millis() -> float:
    return time.monotonic() * 1000.0


class MotionController:
    def __init__(self, motors, tilt=None, leds=None,
                 emit: Callable[[str], None] = None,
                 clock: Callable[[], float] = None,
                 calibration: MotionCalibration = None,
                 level_reference: float = 0.0,
                 kp: float = None, deadband: float = None, max_correction: int = None,
                 min_pwm: int = None, max_pwm: int = None):
        self.motors = motors
        self.tilt = tilt
        self.leds = leds
        self.emit = emit or (lambda line: None)
        self.clock = clock or _millis
        self.calibration = calibration if calibration is not None else MotionCalibration()
        self.level_reference = level_reference
        self.kp = kp if kp is not None else config.TILT_KP
        self.deadband = deadband if deadband is not None else config.TILT_DEADBAND
        self.max_correction = max_correction if max_correction is not None else config.TILT_MAX_CORRECTION
        self.min_pwm = min_pwm if min_pwm is not None else config.MIN_PWM
        self.max_pwm = max_pwm if max_pwm is not None else config.MAX_PWM

        self.motion = DeviceMotionState()
        self.legacy_drive: Optional[str] = None
        self.obstacle_latched = False
        self._tilt_failed = False

    @property
    def state(self) -> MotionState:
        return self.motion.state

    # ---- boot ----
    def reset_state(self) -> None:
        """Back to IDLE with motors off (boot / RESET)."""
        self.motion = DeviceMotionState()
        self.legacy_drive = None

    def calibrate_level(self, samples: int = 20) -> float:
        """Average tilt readings taken at rest as the 'level' reference."""
        if self.tilt is None:
            return self.level_reference
        values = []
        for _ in range(samples):
            try:
                values.append(self.tilt.read())
            except SensorReadFailure:
                continue
        if values:
            self.level_reference = sum(values) / len(values)
        self.emit(f"Level reference: {self.level_reference:.3f}")
        return self.level_reference

    # ---- command intake ----
    def handle_line(self, line: str) -> None:
        command = codec.decode_command(line)
        if isinstance(command, codec.Invalid):
            self.emit(f"ERROR:{command.reason}: {command.raw}")
            return
        self.emit(codec.encode_event(codec.ReceivedEcho(line.strip())))
        self.handle(command)

    def handle(self, command: codec.Command) -> None:
        try:
            self._dispatch(command)
        except DeviceBlocked as e:
            self.emit(codec.encode_event(codec.Blocked(str(e))))

    def _dispatch(self, command: codec.Command) -> None:
        if isinstance(command, codec.MoveDistance):
            self._start_move(command.inches)
        elif isinstance(command, codec.TurnAngle):
            self._start_turn(command.degrees)
        elif isinstance(command, codec.Drive):
            self._start_drive(command.action)
        elif isinstance(command, codec.Stop):
            self._stop()
        elif isinstance(command, codec.Reset):
            self._reset()
        elif isinstance(command, codec.TableLed):
            if self.leds is not None:
                self.leds.set_table(command.table, command.on)
            self.emit(f"Table {command.table} LED {'ON' if command.on else 'OFF'}")
        elif isinstance(command, codec.Invalid):
            self.emit(f"ERROR:{command.reason}: {command.raw}")
        else:
            raise TypeError(f"unhandled command: {command!r}")

    def _require_idle(self) -> None:
        if self.motion.state is not MotionState.IDLE or self.legacy_drive is not None:
            raise DeviceBlocked("already moving")

    def _start_move(self, inches: float) -> None:
        self._require_idle()
        now = self.clock()
        cal = self.calibration
        self.motion = DeviceMotionState(
            state=MotionState.MOVING,
            active_command=ActiveCommand.MOVE,
            start_ms=now,
            target_value=inches,
            target_ms=inches / cal.inches_per_second * 1000.0,
        )
        self.emit(f"Moving {inches:.2f} inches ({self.motion.target_ms:.0f} ms)")
        if self.obstacle_latched:
            self._pause(now)
        else:
            self._apply_trimmed_speed()

    def _start_turn(self, degrees: float) -> None:
        self._require_idle()
        cal = self.calibration
        self.motion = DeviceMotionState(
            state=MotionState.TURNING,
            active_command=ActiveCommand.TURN,
            start_ms=self.clock(),
            target_value=degrees,
            target_ms=abs(degrees) / cal.degrees_per_second * 1000.0,
        )
        speed = cal.precision_speed
        # positive angle = clockwise (right)
        if degrees >= 0:
            self._set_speeds(speed, -speed)
        else:
            self._set_speeds(-speed, speed)
        self.emit(f"Turning {degrees:.1f} degrees ({self.motion.target_ms:.0f} ms)")

    def _start_drive(self, action: str) -> None:
        self._require_idle()
        speed = self.calibration.base_speed
        if action == codec.FORWARD:
            if self.obstacle_latched:
                raise DeviceBlocked("obstacle")
            self._set_speeds(speed, speed)
        elif action == codec.LEFT:
            self._set_speeds(-speed, speed)
        else:
            self._set_speeds(speed, -speed)
        self.legacy_drive = action

    def _stop(self) -> None:
        was_moving = self.motion.is_moving
        self.motors.stop()
        self.reset_state()
        if was_moving:
            self.emit(codec.encode_event(codec.MovementComplete("STOPPED")))

    def _reset(self) -> None:
        if self.motion.is_moving or self.legacy_drive is not None:
            self.motors.stop()
        self.reset_state()
        self.emit("RESET: state cleared")

    # ---- obstacle ----
    def on_obstacle(self, latched: bool) -> None:
        self.obstacle_latched = latched
        now = self.clock()
        if latched:
            if self.motion.state is MotionState.MOVING:
                self._pause(now)
            elif self.legacy_drive == codec.FORWARD:
                self.motors.stop()
                self.legacy_drive = None
                self.emit("Legacy drive stopped: obstacle")
        elif self.motion.state is MotionState.PAUSED_FOR_OBSTACLE:
            m = self.motion
            m.paused_accumulated_ms += now - m.pause_started_ms
            m.pause_started_ms = None
            m.state = MotionState.MOVING
            self._apply_trimmed_speed()
            self.emit(codec.encode_event(codec.MovementResumed()))

    def _pause(self, now: float) -> None:
        self.motors.stop()
        self.motion.state = MotionState.PAUSED_FOR_OBSTACLE
        self.motion.pause_started_ms = now
        self.motion.left_pwm = self.motion.right_pwm = 0
        self.emit(codec.encode_event(codec.MovementPaused("OBSTACLE")))

    # ---- control tick ----
    def tick(self) -> None:
        m = self.motion
        if m.state not in (MotionState.MOVING, MotionState.TURNING):
            return
        now = self.clock()
        if m.effective_elapsed_ms(now) >= m.target_ms:
            self.motors.stop()
            self.reset_state()
            self.emit(codec.encode_event(codec.MovementComplete("SUCCESS")))
            return
        if m.state is MotionState.MOVING:
            self._apply_trimmed_speed()

    def trimmed_speeds(self):
        """(left, right) PWM for a straight move, corrected by tilt."""
        base = self.calibration.precision_speed
        if self.tilt is None:
            return self._clamp(base), self._clamp(base)
        try:
            tilt = self.tilt.read()
        except SensorReadFailure as e:
            if not self._tilt_failed:
                self.emit(f"Tilt read failed, running uncorrected: {e}")
            self._tilt_failed = True
            return self._clamp(base), self._clamp(base)
        self._tilt_failed = False
        deviation = tilt - self.level_reference
        if abs(deviation) < self.deadband:
            correction = 0.0
        else:
            correction = max(-self.max_correction, min(self.max_correction, self.kp * deviation))
        # leaning right (positive) boosts the left motor
        return self._clamp(base + correction), self._clamp(base - correction)

    def _apply_trimmed_speed(self) -> None:
        left, right = self.trimmed_speeds()
        self._set_speeds(left, right)

    def _set_speeds(self, left: int, right: int) -> None:
        if (left, right) == (self.motion.left_pwm, self.motion.right_pwm) and self.motion.is_moving:
            return
        self.motion.left_pwm, self.motion.right_pwm = left, right
        self.motors.set_speeds(left, right)

    def _clamp(self, value: float) -> int:
        return int(round(max(self.min_pwm, min(self.max_pwm, value))))

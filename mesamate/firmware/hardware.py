#!/usr/bin/env python3
"""
hardware.py — Raspberry Pi backends for the firmware loop.

- PiMotorDriver: two H-bridge channels (EN = PWM, IN1/IN2 = direction)
- UltrasonicSensor: HC-SR04 echo timing
- AccelerometerTilt: MPU-6050 lateral axis over I2C, in g
- PiLeds: one notification LED per table

RPi.GPIO is optional (`pi` extra). Without it, open_pi_hardware() raises
HardwareUnavailable with the reason instead of failing at import.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from smbus2 import SMBus

from .. import config
from ..errors import HardwareUnavailable, SensorReadFailure

try:
    import RPi.GPIO as GPIO  # type: ignore
    _GPIO_IMPORT_ERROR = None
except Exception as _e:
    GPIO = None  # type: ignore
    _GPIO_IMPORT_ERROR = _e


# --- CONFIG (BCM numbering) ---

LEFT_MOTOR_PINS = (12, 5, 6)      # EN, IN1, IN2
RIGHT_MOTOR_PINS = (13, 20, 21)
PWM_FREQ_HZ = 1000
PWM_FULL_SCALE = 255

SONAR_PINS = [(23, 24), (17, 27), (22, 25)]   # (TRIG, ECHO): left, center, right
ECHO_TIMEOUT_US = config.ECHO_TIMEOUT_US

LED_PINS = {1: 16, 2: 19, 3: 26}

MPU6050_ADDR = 0x68
REG_PWR_MGMT_1 = 0x6B
REG_ACCEL_YOUT_H = 0x3D
ACCEL_LSB_PER_G = 16384.0         # +-2 g range


# --- INTERNAL STATE ---

_state_lock = threading.Lock()
_gpio_initialized = False


def _setup_gpio() -> None:
    global _gpio_initialized
    with _state_lock:
        if _gpio_initialized:
            return
        if GPIO is None:
            raise HardwareUnavailable(f"GPIO unavailable ({_GPIO_IMPORT_ERROR})")
        try:
            GPIO.setwarnings(False)
            GPIO.setmode(GPIO.BCM)
        except RuntimeError as e:
            # e.g., "No access to /dev/mem. Try running as root!"
            raise HardwareUnavailable(str(e)) from e
        _gpio_initialized = True


class PiMotorDriver:
    def __init__(self, left_pins: Tuple[int, int, int] = LEFT_MOTOR_PINS,
                 right_pins: Tuple[int, int, int] = RIGHT_MOTOR_PINS):
        _setup_gpio()
        self._channels = []
        for en, in1, in2 in (left_pins, right_pins):
            GPIO.setup([en, in1, in2], GPIO.OUT, initial=GPIO.LOW)
            pwm = GPIO.PWM(en, PWM_FREQ_HZ)
            pwm.start(0)
            self._channels.append((pwm, in1, in2))

    def _drive(self, channel, speed: int) -> None:
        pwm, in1, in2 = channel
        GPIO.output(in1, GPIO.HIGH if speed > 0 else GPIO.LOW)
        GPIO.output(in2, GPIO.HIGH if speed < 0 else GPIO.LOW)
        duty = min(abs(speed), PWM_FULL_SCALE) * 100.0 / PWM_FULL_SCALE
        pwm.ChangeDutyCycle(duty)

    def set_speeds(self, left: int, right: int) -> None:
        """Signed PWM per side, positive = forward."""
        self._drive(self._channels[0], left)
        self._drive(self._channels[1], right)

    def stop(self) -> None:
        self.set_speeds(0, 0)

    def close(self) -> None:
        self.stop()
        for pwm, _, _ in self._channels:
            pwm.stop()


class UltrasonicSensor:
    def __init__(self, trig: int, echo: int, timeout_us: int = ECHO_TIMEOUT_US):
        _setup_gpio()
        self.trig = trig
        self.echo = echo
        self.timeout_us = timeout_us
        GPIO.setup(trig, GPIO.OUT, initial=GPIO.LOW)
        GPIO.setup(echo, GPIO.IN)

    def read_pulse_us(self) -> Optional[float]:
        """Echo pulse width in microseconds, or None on timeout."""
        GPIO.output(self.trig, GPIO.HIGH)
        time.sleep(0.00001)
        GPIO.output(self.trig, GPIO.LOW)

        deadline = time.perf_counter() + self.timeout_us / 1e6
        while GPIO.input(self.echo) == GPIO.LOW:
            if time.perf_counter() > deadline:
                return None
        start = time.perf_counter()
        while GPIO.input(self.echo) == GPIO.HIGH:
            if time.perf_counter() > deadline:
                return None
        return (time.perf_counter() - start) * 1e6


class AccelerometerTilt:
    """Lateral acceleration in g; positive when the chassis leans right."""

    def __init__(self, bus_num: int = 1, address: int = MPU6050_ADDR):
        self.address = address
        try:
            self.bus = SMBus(bus_num)
            # wake up from sleep
            self.bus.write_byte_data(self.address, REG_PWR_MGMT_1, 0)
        except OSError as e:
            raise HardwareUnavailable(f"MPU-6050 not found on i2c-{bus_num}: {e}") from e

    def _read_register_16(self, reg: int) -> int:
        """Read a big-endian 16-bit register pair and return it signed."""
        hi, lo = self.bus.read_i2c_block_data(self.address, reg, 2)
        value = (hi << 8) | lo
        if value & 0x8000:
            value -= 1 << 16
        return value

    def read(self) -> float:
        try:
            return self._read_register_16(REG_ACCEL_YOUT_H) / ACCEL_LSB_PER_G
        except OSError as e:
            raise SensorReadFailure(f"MPU-6050 read error: {e}") from e

    def close(self) -> None:
        try:
            self.bus.close()
        except Exception:
            pass


class PiLeds:
    def __init__(self, pins: Dict[int, int] = None):
        _setup_gpio()
        self.pins = dict(pins or LED_PINS)
        for pin in self.pins.values():
            GPIO.setup(pin, GPIO.OUT, initial=GPIO.LOW)

    def set_table(self, table: int, on: bool) -> None:
        pin = self.pins.get(table)
        if pin is not None:
            GPIO.output(pin, GPIO.HIGH if on else GPIO.LOW)


@dataclass
class PiHardware:
    motors: PiMotorDriver
    tilt: Optional[AccelerometerTilt]
    sensors: List[UltrasonicSensor]
    leds: PiLeds

    def close(self) -> None:
        try:
            self.motors.close()
        except Exception as e:
            print(f"[hw] motor shutdown failed: {e}", flush=True)
        if self.tilt is not None:
            self.tilt.close()
        cleanup()


def open_pi_hardware(bus_num: int = 1) -> PiHardware:
    """Set up all devices. A missing accelerometer is tolerated (uncorrected moves)."""
    _setup_gpio()
    motors = PiMotorDriver()
    try:
        tilt = AccelerometerTilt(bus_num)
    except HardwareUnavailable as e:
        print(f"[hw] tilt correction disabled: {e}", flush=True)
        tilt = None
    sensors = [UltrasonicSensor(trig, echo) for trig, echo in SONAR_PINS]
    print("[hw] Using RPi.GPIO backend.", flush=True)
    return PiHardware(motors, tilt, sensors, PiLeds())


def cleanup() -> None:
    global _gpio_initialized
    with _state_lock:
        if _gpio_initialized and GPIO is not None:
            try:
                GPIO.cleanup()
            except Exception:
                pass
        _gpio_initialized = False

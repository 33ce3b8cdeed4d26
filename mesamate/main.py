#!/usr/bin/env python3
"""
main.py — command line entry point.

  mesamate deliver T1 T3 --sim --auto-confirm 2
  mesamate deliver T2 --port /dev/ttyACM0
  mesamate device --port /dev/serial0        (on the robot's Raspberry Pi)
  mesamate calibrate --sim
  mesamate ports
"""

from __future__ import annotations

import argparse
import sys
import time
from typing import List, Optional

from . import config
from .calibration import MotionCalibration
from .context import RobotContext
from .delivery import DeliverySession, DeliveryStatus
from .errors import HardwareUnavailable, UnreachableTarget
from .link import SerialLink, list_ports


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mesamate", description="MesaMate delivery robot")
    sub = parser.add_subparsers(dest="command", required=True)

    def _link_args(p):
        p.add_argument("--port", default=config.PORT, help=f"serial port (default: {config.PORT})")
        p.add_argument("--baud", type=int, default=config.BAUD, help=f"baud rate (default: {config.BAUD})")
        p.add_argument("--sim", action="store_true", help="drive the in-process simulated robot")

    deliver = sub.add_parser("deliver", help="deliver to one or more tables and return")
    deliver.add_argument("tables", nargs="+", help="table names, e.g. T1 T3")
    deliver.add_argument("--auto-confirm", type=float, default=None, metavar="SECONDS",
                         help="confirm each delivery automatically after SECONDS")
    _link_args(deliver)

    calibrate = sub.add_parser("calibrate", help="run the precision movement test pattern")
    _link_args(calibrate)

    device = sub.add_parser("device", help="run the firmware loop on Raspberry Pi hardware")
    device.add_argument("--port", default=config.DEVICE_PORT, help=f"host link (default: {config.DEVICE_PORT})")
    device.add_argument("--baud", type=int, default=config.BAUD)
    device.add_argument("--i2c-bus", type=int, default=1)
    device.add_argument("--sim", action="store_true", help="simulated motors and sensors")
    device.add_argument("--sim-obstacle", type=float, default=None, metavar="AFTER_SECONDS",
                        help="with --sim: put an obstacle in front of the robot after AFTER_SECONDS")

    sub.add_parser("ports", help="list serial ports")
    return parser


def build_context(args) -> RobotContext:
    calibration = MotionCalibration()
    if args.sim:
        from .sim import SimWorld, make_port_factory
        link = SerialLink(baud=args.baud, settle_sec=0,
                          port_factory=make_port_factory(SimWorld(lean_g=0.05), calibration))
        port = "sim://"
    else:
        link = SerialLink(baud=args.baud)
        port = args.port
    context = RobotContext(link=link, calibration=calibration)
    context.add_listener(lambda event: print(f"[ui] {event}", flush=True))
    context.connect(port)
    return context


def cmd_deliver(args) -> int:
    context = build_context(args)
    session = DeliverySession(context, args.tables, confirm_timeout=args.auto_confirm)
    try:
        session.start()
    except UnreachableTarget as e:
        print(f"[main] Delivery failed: {e}", flush=True)
        context.close()
        return 2
    try:
        while session.status not in (DeliveryStatus.COMPLETE, DeliveryStatus.CANCELLED,
                                     DeliveryStatus.FAILED):
            if session.awaiting_confirmation and args.auto_confirm is None:
                input(f"Delivered to {session.current_table}? Press Enter to confirm... ")
                session.confirm_delivery()
            time.sleep(0.2)
    except (KeyboardInterrupt, EOFError):
        print("\n[main] cancelling delivery", flush=True)
        session.cancel()
        session.join(timeout=10.0)
    finally:
        context.close()
    print(f"[main] Delivery {session.status.value}", flush=True)
    return 0 if session.status is DeliveryStatus.COMPLETE else 1


def cmd_calibrate(args) -> int:
    from .planner import MotionPlanner
    context = build_context(args)
    planner = MotionPlanner(context)
    print("[main] Testing precision movement...", flush=True)
    try:
        # 12 in, 45 deg, 6 in, back -45 deg
        planner.wait(planner.move_distance(12) + planner.wait_buffer)
        planner.wait(planner.turn_angle(45) + planner.wait_buffer)
        planner.wait(planner.move_distance(6) + planner.wait_buffer)
        planner.wait(planner.turn_angle(-45) + planner.wait_buffer)
    finally:
        context.close()
    print("[main] Precision movement test complete", flush=True)
    return 0


def cmd_device(args) -> int:
    import serial
    from .firmware import hardware
    from .firmware.controller import MotionController
    from .firmware.device import FirmwareDevice
    from .firmware.obstacle import ObstacleMonitor

    if args.sim or args.sim_obstacle is not None:
        from .sim import SimWorld, open_sim_hardware
        world = SimWorld()
        if args.sim_obstacle is not None:
            world.schedule_obstacle(args.sim_obstacle, duration_s=3.0)
        hw = open_sim_hardware(world)
    else:
        try:
            hw = hardware.open_pi_hardware(args.i2c_bus)
        except HardwareUnavailable as e:
            print(f"[main] hardware unavailable: {e}", flush=True)
            return 2
    port = device = None
    try:
        port = serial.Serial(args.port, baudrate=args.baud, timeout=0)
        controller = MotionController(hw.motors, tilt=hw.tilt, leds=hw.leds)
        device = FirmwareDevice(port, controller, ObstacleMonitor(hw.sensors))
        print(f"[main] firmware loop on {args.port} @ {args.baud}", flush=True)
        device.run()
    except serial.SerialException as e:
        print(f"[main] cannot open {args.port}: {e}", flush=True)
        return 2
    except KeyboardInterrupt:
        print("\n[main] Exiting (Ctrl+C)", flush=True)
    finally:
        if device is not None:
            device.stop()
        hw.close()
        if port is not None:
            port.close()
    return 0


def cmd_ports(args) -> int:
    for device in list_ports():
        print(device)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    handlers = {
        "deliver": cmd_deliver,
        "calibrate": cmd_calibrate,
        "device": cmd_device,
        "ports": cmd_ports,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    sys.exit(main())

"""
Command line entry point for the SO-101 teleoperation system.

    so101-teleop setup        find, identify and calibrate the leader and follower arms
    so101-teleop teleoperate  mirror the leader arm onto the follower arm
"""

import argparse
import asyncio
import logging
import queue
import sys
import time
from typing import Optional

from .config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_HZ,
    MOTOR_NAMES,
    WIGGLE_AMOUNT,
    WIGGLE_DURATION_MS,
    ArmConfig,
    RobotConfig,
)
from .control_loop import TeleopController
from .core.calibration import Calibration
from .core.recorder import CalibrationRecorder
from .core.servo_bus import BusFactory
from .errors import TeleopError

logger = logging.getLogger(__name__)

STATUS_INTERVAL = 0.5  # seconds between status lines during teleoperation


# --- Setup ------------------------------------------------------------------


def identify_arm_with_wiggle(
    port: str, need_leader: bool, need_follower: bool, bus_factory: Optional[BusFactory] = None
) -> Optional[str]:
    """Wiggle servo 1 of the arm on port and ask the operator which arm moved."""
    if bus_factory is None:
        from .core.feetech_bus import open_feetech_bus

        bus_factory = open_feetech_bus

    try:
        bus = bus_factory(port, [1])
    except TeleopError as e:
        logger.error(f"Could not open {port}: {e}")
        return None

    try:
        original = bus.position(1)
        bus.enable(1)
        print(f"\n  Wiggling arm on {port}...")
        pause = (WIGGLE_DURATION_MS + 100) / 1000
        for target in (original + WIGGLE_AMOUNT, original - WIGGLE_AMOUNT, original):
            bus.set_position(1, target, duration_ms=WIGGLE_DURATION_MS)
            time.sleep(pause)
    except TeleopError as e:
        logger.error(f"Wiggle failed on {port}: {e}")
        return None
    finally:
        try:
            bus.disable(1)
        except TeleopError as e:
            logger.warning(f"Could not disable torque on {port}: {e}")
        bus.close()

    options = []
    if need_leader:
        options.append(("leader", "Leader (the one you move by hand)"))
    if need_follower:
        options.append(("follower", "Follower (the one that follows)"))
    options.append(("skip", "Skip this arm"))

    print(f"Which arm is on {port}? (the arm that just wiggled)")
    for i, (_, label) in enumerate(options, 1):
        print(f"  {i}. {label}")
    while True:
        choice = input("> ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(options):
            role = options[int(choice) - 1][0]
            return None if role == "skip" else role
        print(f"Enter a number between 1 and {len(options)}")


def scan_for_arms() -> RobotConfig:
    """Find the connected arms and let the operator assign leader and follower."""
    from .core.feetech_bus import find_arms

    print("Scanning for robot arms...\n")
    ports = find_arms()
    if not ports:
        print("No SO-101 arms found.")
        print("Make sure your arms are connected and powered on.")
        sys.exit(1)

    print(f"Found {len(ports)} arm(s). Let's identify them...")
    leader_port = follower_port = None
    for port in ports:
        role = identify_arm_with_wiggle(port, leader_port is None, follower_port is None)
        if role == "leader":
            leader_port = port
        elif role == "follower":
            follower_port = port
        if leader_port and follower_port:
            break

    if not leader_port or not follower_port:
        if not leader_port:
            print("Leader arm not identified.")
        if not follower_port:
            print("Follower arm not identified.")
        print("\nBoth leader and follower are required for teleoperation.")
        sys.exit(1)

    print("\nArms identified:")
    print(f"  Leader:   {leader_port}")
    print(f"  Follower: {follower_port}")
    return RobotConfig(leader=ArmConfig(port=leader_port), follower=ArmConfig(port=follower_port))


class BoundsTable:
    """Redraws the min/current/max table in place on every recorder tick."""

    def __init__(self):
        self.lines_drawn = 0

    def __call__(self, recorder: CalibrationRecorder):
        lines = [f"{'Motor':<15} {'Min':>6} {'Current':>8} {'Max':>6} {'Range':>6}"]
        for name, bounds in recorder.bounds().items():
            lo, cur, hi = bounds["min"], bounds["current"], bounds["max"]
            span = hi - lo if lo is not None and hi is not None else None
            lines.append(
                f"{name:<15} {_fmt(lo):>6} {_fmt(cur):>8} {_fmt(hi):>6} {_fmt(span):>6}"
            )
        if self.lines_drawn:
            sys.stdout.write(f"\033[{self.lines_drawn}F")
        sys.stdout.write("\n".join(lines) + "\n")
        sys.stdout.flush()
        self.lines_drawn = len(lines)


def _fmt(value) -> str:
    return "-" if value is None else str(value)


def calibrate_arm(port: str, arm_name: str, min_span: int = 0) -> Calibration:
    """Record the range of motion of the arm on port."""
    from .core.feetech_bus import FeetechServoBus
    from .inputs.keyboard_listener import ConfirmKeyListener

    print(f"\nCalibrating {arm_name} arm on {port}\n")
    bus = FeetechServoBus(port, [i + 1 for i in range(len(MOTOR_NAMES))])
    try:
        recorder = CalibrationRecorder(bus)
        recorder.start()
        print("Record range of motion")
        print("Move each joint to its minimum AND maximum positions.")
        print("Explore the full range of motion for all joints, then press Enter.\n")
        with ConfirmKeyListener() as done:
            calibration = recorder.run(done, on_sample=BoundsTable())
    finally:
        bus.close()

    if min_span > 0:
        for name in calibration.narrow_motors(min_span):
            logger.warning(f"{name} range {calibration[name].span} is narrower than {min_span}, recalibrate?")

    print(f"\n{arm_name.capitalize()} arm calibrated.")
    return calibration


def run_setup(args) -> int:
    config = scan_for_arms()

    print("\n━━━ Calibrating Leader Arm ━━━")
    config.leader.calibration = calibrate_arm(config.leader.port, "leader", args.min_span)
    config.save(args.config)

    print("\n━━━ Calibrating Follower Arm ━━━")
    config.follower.calibration = calibrate_arm(config.follower.port, "follower", args.min_span)
    config.save(args.config)

    print("\nSetup complete!")
    print(f"Configuration saved to {args.config}")
    print("Start teleoperation with: so101-teleop teleoperate")
    return 0


# --- Teleoperation ------------------------------------------------------------


def print_unlogged(controller: TeleopController):
    """Print channel lines that did not already go through the logging module."""
    for line in controller.logs.drain():
        if not line.logged:
            print(line)


async def observe(controller: TeleopController):
    """Print the latest leader positions and the log lines logging has not shown, until cancelled."""
    while True:
        print_unlogged(controller)
        try:
            state = controller.states.get_nowait()
        except queue.Empty:
            state = None
        # Errors arrive as log lines
        if state is not None and state.error is None:
            print(" | ".join(f"{name}: {state.positions.get(name, 0.0):7.1f}" for name in MOTOR_NAMES))
        await asyncio.sleep(STATUS_INTERVAL)


async def run_teleoperation(controller: TeleopController):
    control_task = asyncio.create_task(controller.start())
    observer_task = asyncio.create_task(observe(controller))
    try:
        await control_task
    finally:
        if not control_task.done():
            control_task.cancel()
        observer_task.cancel()
        await asyncio.gather(control_task, observer_task, return_exceptions=True)
        print_unlogged(controller)


def run_teleoperate(args) -> int:
    if not RobotConfig.exists(args.config):
        logger.error(f"No configuration found at {args.config}, run 'so101-teleop setup' first")
        return 1

    robot_config = RobotConfig.load(args.config)
    if not robot_config.leader.is_calibrated or not robot_config.follower.is_calibrated:
        logger.error("Both arms must be calibrated, run 'so101-teleop setup' first")
        return 1

    config = robot_config.to_teleop_config(hz=args.hz, mirror=args.mirror)
    logger.info("Starting with configuration:")
    logger.info(f"  Leader:   {config.leader_port}")
    logger.info(f"  Follower: {config.follower_port}")
    logger.info(f"  Frequency: {config.hz} Hz")
    logger.info(f"  Mirror: {'enabled' if config.mirror else 'disabled'}")

    try:
        controller = TeleopController.from_config(config)
    except TeleopError as e:
        logger.error(f"❌ Failed to connect arms: {e}")
        return 1

    print("Move the leader arm and the follower will mirror it. Press Ctrl+C to stop.")
    try:
        asyncio.run(run_teleoperation(controller))
    except KeyboardInterrupt:
        print("\nStopping teleoperation...")
    finally:
        try:
            controller.close()
        except TeleopError as e:
            logger.error(f"Error closing arms: {e}")
    return 0


# --- CLI ----------------------------------------------------------------------


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="SO-101 Leader/Follower Teleoperation")
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set logging level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup = subparsers.add_parser("setup", help="Find, identify and calibrate both arms")
    setup.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="Robot configuration file to write")
    setup.add_argument(
        "--min-span",
        type=int,
        default=0,
        help="Warn about motors whose recorded range is narrower than this (raw units, 0 disables)",
    )

    teleoperate = subparsers.add_parser("teleoperate", help="Run leader/follower teleoperation")
    teleoperate.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="Robot configuration file to read")
    teleoperate.add_argument("--hz", type=int, default=DEFAULT_HZ, help="Control loop frequency")
    teleoperate.add_argument(
        "--mirror", action="store_true", help="Mirror mode: invert shoulder_pan and wrist_roll positions"
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_arguments(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if args.command == "setup":
        return run_setup(args)
    return run_teleoperate(args)


def main_cli():
    """Console script entry point for pip-installed package."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nShutdown complete.")
    except TeleopError as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main_cli()

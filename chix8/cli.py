"""Headless CHIP-8 runner.

Usage:
    chix8 ROM [--config FILE] [key=value ...]

Examples:
    chix8 games/pong.ch8 frames=1200 snapshot=pong.png
    chix8 games/pong.ch8 hold_keys=[1] machine.error_policy=skip ascii=true
"""

import argparse
import time
from dataclasses import asdict
from typing import Optional, Sequence

from chix8.config import RunConfig, load_config
from chix8.errors import EngineError
from chix8.logging import EmulatorLogger, frame_progress
from chix8.machine import Chip8
from chix8.rendering import display_to_text, save_frame


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chix8",
        description="Run a CHIP-8 ROM headlessly for a fixed number of frames",
    )
    parser.add_argument(
        "rom",
        type=str,
        help="Path to a raw CHIP-8 ROM file",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML file with run settings (default: none)",
    )
    parser.add_argument(
        "overrides",
        nargs="*",
        help="Settings as key=value, e.g. frames=300 machine.instructions_per_frame=12",
    )
    return parser


def run(config: RunConfig, logger: Optional[EmulatorLogger] = None) -> int:
    """Run ``config.rom`` for ``config.frames`` frames. Returns an exit status."""
    machine_config = config.machine
    logger = logger or EmulatorLogger(
        log_level=machine_config.log_level, use_colors=machine_config.use_colors
    )
    machine = Chip8(machine_config, logger=logger)
    machine.load_rom(config.rom)
    for key in config.hold_keys:
        machine.set_key(key, True)

    logger.log_run_start(asdict(config))

    status = 0
    tone_ends = 0
    frame_interval = 1.0 / machine_config.timer_hz
    with frame_progress(config.frames, enabled=config.progress) as progress:
        for frame in range(config.frames):
            start_time = time.time()
            try:
                result = machine.run_frame()
            except EngineError:
                status = 1
                break
            if result.tone_end is not None:
                tone_ends += 1
            logger.log_frame(frame, config.frames, machine.state)
            progress.update(1)
            if result.halted:
                status = 1
                break

            if config.realtime:
                sleep_time = frame_interval - (time.time() - start_time)
                if sleep_time > 0:
                    time.sleep(sleep_time)

    if config.ascii:
        print(display_to_text(machine.framebuffer()))
    if config.snapshot:
        save_frame(machine.framebuffer(), config.snapshot, config.scale, config.color_scheme)
        logger.info(f"Snapshot saved: {config.snapshot}")

    logger.log_run_end({
        "frames": machine.frame_count,
        "instructions": machine.instruction_count,
        "tone_ends": tone_ends,
        "faults": logger.fault_count,
        "halted": machine.halted,
    })
    return status


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_intermixed_args(argv)
    config = load_config(args.config, args.overrides)
    config.rom = args.rom
    return run(config)


if __name__ == "__main__":
    raise SystemExit(main())

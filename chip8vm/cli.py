#!/usr/bin/env python3
"""
Command line runner for the CHIP-8 machine
Runs a ROM in a window, or headless for a fixed number of cycles.
"""

import argparse
import logging
import os
import sys

from .display import display_to_text, save_display_png
from .errors import Chip8Error
from .machine import TICKS_PER_FRAME, Machine, read_rom

logger = logging.getLogger(__name__)

DEFAULT_CYCLES = 5000
DEFAULT_SCALE = 10


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a CHIP-8 ROM")
    parser.add_argument("rom", type=str, help="ROM file (raw CHIP-8 bytecode)")
    parser.add_argument("--scale", type=positive_int, default=DEFAULT_SCALE, help="Display scale factor")
    parser.add_argument("--ticks-per-frame", type=positive_int, default=TICKS_PER_FRAME,
                        help="Instruction ticks per 60 Hz timer tick")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the random number source")
    parser.add_argument("--headless", action="store_true", help="Run without a window")
    parser.add_argument("--cycles", type=int, default=DEFAULT_CYCLES,
                        help="Instruction ticks to run in headless mode")
    parser.add_argument("--png", type=str, default=None,
                        help="Save the final display as a PNG (headless mode)")
    parser.add_argument("--text", action="store_true",
                        help="Print the final display as text (headless mode)")
    parser.add_argument("--log-level", type=str, default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    return parser


def run_headless(machine: Machine, args) -> int:
    try:
        machine.run(args.cycles, ticks_per_frame=args.ticks_per_frame)
        status = 0
    except Chip8Error as e:
        print(f"Emulation stopped: {e}")
        status = 1

    print(f"Instructions executed: {machine.cycles}")
    print(f"Program counter: 0x{machine.program_counter:03X}")

    if args.text:
        print(display_to_text(machine.get_display()))
    if args.png:
        save_display_png(machine.get_display(), args.png, scale=args.scale)
        print(f"Display saved to: {args.png}")
    return status


def run_window(machine: Machine, args) -> int:
    from .frontend import Chip8Window

    window = Chip8Window(machine, scale=args.scale, ticks_per_frame=args.ticks_per_frame,
                         title=f"CHIP-8: {os.path.basename(args.rom)}")
    error = window.mainloop()
    return 1 if error is not None else 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    try:
        rom_data = read_rom(args.rom)
    except FileNotFoundError:
        print(f"ROM file not found: {args.rom}")
        return 2

    machine = Machine(seed=args.seed)
    try:
        machine.load(rom_data)
    except Chip8Error as e:
        print(f"Error loading ROM: {e}")
        return 2
    print(f"Loaded ROM: {args.rom} ({len(rom_data)} bytes)")

    if args.headless:
        return run_headless(machine, args)
    return run_window(machine, args)


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""CHIP-8 VM Command Line Interface.

Run CHIP-8 programs headlessly and print the final screen.

Usage:
    python main.py --rom roms/IBM.ch8
    python main.py --rom roms/pong.ch8 --frames 600 --keys 1,q --trace
    python main.py --rom roms/IBM.ch8 --disassemble
"""

import argparse
import logging
import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8, Chip8Error, EmulatorConfig, ProgramTooLargeError, disassemble
from chip8_vm.config import MAX_CYCLES_PER_FRAME, MIN_CYCLES_PER_FRAME
from chip8_vm.host import HostLoop
from chip8_vm.memory import MAX_PROGRAM_SIZE, PROGRAM_OFFSET


def main():
    parser = argparse.ArgumentParser(
        description="CHIP-8 VM: headless CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run for 10 seconds of emulated time (600 frames at 60 Hz)
    python main.py --rom roms/IBM.ch8 --frames 600

    # Hold the '1' and 'q' host keys (CHIP-8 keys 1 and 4) the whole run
    python main.py --rom roms/pong.ch8 --keys 1,q

    # Disassemble instead of running
    python main.py --rom roms/IBM.ch8 --disassemble
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        required=True,
        help="Path to CHIP-8 program image"
    )
    parser.add_argument(
        "--frames", "-f",
        type=int,
        default=600,
        help="Number of 60 Hz frames to run. Default: 600"
    )
    parser.add_argument(
        "--cycles-per-frame", "-c",
        type=int,
        default=8,
        help=f"Instructions per frame ({MIN_CYCLES_PER_FRAME}-{MAX_CYCLES_PER_FRAME}). Default: 8"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Comma-separated host keys held down for the whole run (e.g. 1,q)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction"
    )
    parser.add_argument(
        "--no-sound",
        action="store_true",
        help="Disable the tone gate"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Pace frames at 60 Hz instead of running flat out"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly of the program and exit"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace (last 1000 cycles)"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final screen only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )

    args = parser.parse_args()

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = EmulatorConfig(
            cycles_per_frame=args.cycles_per_frame,
            sound_enabled=not args.no_sound,
        )
    except ValueError as e:
        parser.error(str(e))

    rom_path = Path(args.rom)
    if not rom_path.is_file():
        print(f"Error: Program file not found: {args.rom}")
        return 1
    if rom_path.stat().st_size > MAX_PROGRAM_SIZE:
        print(f"Error: Program must be at most {MAX_PROGRAM_SIZE} bytes: {args.rom}")
        return 1

    if args.disassemble:
        for address, instruction in disassemble(rom_path.read_bytes(), PROGRAM_OFFSET):
            print(f"0x{address:03X}  {instruction}")
        return 0

    rng = random.Random(args.seed) if args.seed is not None else None
    machine = Chip8(config=config, rng=rng, trace=args.trace)

    try:
        machine.load_rom(rom_path)
    except ProgramTooLargeError as e:
        print(f"Error: {e}")
        return 1

    host = HostLoop(machine, realtime=args.realtime)
    keys = [k.strip() for k in args.keys.split(",") if k.strip()]
    ignored = host.hold_keys(keys)
    if ignored:
        print(f"Warning: unmapped keys ignored: {', '.join(ignored)}")

    if not args.quiet:
        print(f"Loading program: {args.rom} ({machine.program_size} bytes)")
        print("-" * 64)

    exit_code = 0
    try:
        host.run(args.frames)
    except Chip8Error as e:
        print(f"Execution error: {e}")
        exit_code = 1

    # Output
    print(host.renderer.to_text(machine.framebuffer))

    if args.trace:
        machine.print_trace()
    elif not args.quiet:
        summary = machine.get_summary()
        print("-" * 64)
        print(f"Frames: {host.frames}")
        print(f"Cycles: {summary['cycles']}")
        print(f"Status: {summary['status']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['index']:03X}")
        print(f"Registers: {' '.join(f'{k}={v:02X}' for k, v in summary['registers'].items())}")
        print(f"Beeps: {host.tone.beeps}")
        if summary["last_error"]:
            print(f"Error: {summary['last_error']}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""CHIP-8 VM Command Line Interface.

Run CHIP-8 program images headless and print the resulting framebuffer.

Usage:
    python main.py --rom roms/pong.ch8 --cycles 2000
    python main.py --seconds 2 --clock 700
"""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8VM, RomLoadError, Scheduler, load_rom
from chip8_vm.driver import CLOCK_FREQ_DEFAULT, KEY_MAP
from chip8_vm.rom import DEFAULT_ROM


def main():
    parser = argparse.ArgumentParser(
        description="CHIP-8 Virtual Machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the built-in demo program for one emulated second
    python main.py

    # Run a ROM for 5000 instructions with a full trace of the last 50
    python main.py --rom roms/maze.ch8 --cycles 5000 --trace 50

    # Run a ROM for two emulated seconds at 900 Hz
    python main.py --rom roms/maze.ch8 --seconds 2 --clock 900
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to a CHIP-8 program image (.ch8). Default: built-in demo"
    )
    parser.add_argument(
        "--cycles", "-c",
        type=int,
        help="Run exactly this many instruction steps (ignores timing)"
    )
    parser.add_argument(
        "--seconds", "-s",
        type=float,
        default=1.0,
        help="Emulated time to run through the scheduler. Default: 1.0"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Pace --seconds against the host clock instead of simulating it"
    )
    parser.add_argument(
        "--clock",
        type=float,
        default=CLOCK_FREQ_DEFAULT,
        help=f"Instruction clock in Hz (clamped to 1-1000). Default: {CLOCK_FREQ_DEFAULT:g}"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the random number instruction"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Keyboard keys held down for the whole run (e.g. 'qw' = hexpad 4 and 5)"
    )
    parser.add_argument(
        "--trace", "-t",
        type=int,
        default=0,
        metavar="N",
        help="Keep and print a trace of the last N instructions"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (framebuffer only)"
    )

    args = parser.parse_args()

    if args.cycles is not None and args.cycles < 0:
        parser.error("--cycles must be non-negative")
    if args.trace < 0:
        parser.error("--trace must be non-negative")

    # Load program
    if args.rom:
        try:
            program = load_rom(args.rom)
        except RomLoadError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        if not args.quiet:
            print(f"Loading program: {args.rom} ({len(program)} bytes)")
    else:
        program = DEFAULT_ROM
        if not args.quiet:
            print("Running built-in demo program")

    unknown = []
    vm = Chip8VM(
        seed=args.seed,
        trace_limit=args.trace,
        on_unknown_opcode=lambda word, pc: unknown.append((pc, word))
    )
    scheduler = Scheduler(vm, clock_freq=args.clock)
    scheduler.load(program)

    for char in args.keys.lower():
        if char not in KEY_MAP:
            parser.error(f"Unmapped key: {char!r}")
        vm.update_key(KEY_MAP[char], True)

    # Run
    if not args.quiet:
        print("-" * 64)
        print("Executing...")
        print("-" * 64)

    if args.cycles is not None:
        # Held keys stay down for every step
        for _ in range(args.cycles):
            vm.refresh_keys()
            vm.step()
    elif args.realtime:
        scheduler.run_realtime(args.seconds)
    else:
        scheduler.run_for(args.seconds)

    # Output
    if args.trace:
        vm.print_trace()

    print(vm.render_text())

    if not args.quiet:
        print()
        summary = vm.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Clock: {scheduler.clock_freq:g} Hz")
        print(f"PC: {summary['pc']:03X}  I: {summary['i']:03X}")
        print(f"Timers: delay={summary['delay']} sound={summary['sound']}")
        print(f"Waiting for key: {'Yes' if summary['waiting'] else 'No'}")
        print(f"Registers: {summary['registers']}")
        if unknown:
            print(f"Unknown opcodes skipped: {len(unknown)} (first {unknown[0][1]:04X} at {unknown[0][0]:03X})")

    return 0


if __name__ == "__main__":
    sys.exit(main())

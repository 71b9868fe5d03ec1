"""Scheduler: Real-time driver for the CHIP-8 VM.

The VM itself has no notion of time. The scheduler owns three
independent accumulators, each fed with the elapsed wall-clock time:

    clock   -> vm.step()         at the configurable instruction rate
    timer   -> vm.tick_timers()  at a fixed 60 Hz
    refresh -> redraw signal     at a fixed 60 Hz

The clock and timer accumulators are discharged completely on every
advance, so a slow host catches up by running several steps or ticks at
once. The refresh accumulator is simply zeroed when a redraw is due,
since rendering the same frame twice changes nothing.

Time is injected by the caller in nanoseconds, which keeps the scheduler
deterministic and usable from any event loop.
"""

import time
from typing import Dict, Mapping, Optional

from .vm import Chip8VM


# Clock frequency range, in Hz
CLOCK_FREQ_MIN = 1.0
CLOCK_FREQ_DEFAULT = 600.0
CLOCK_FREQ_MAX = 1000.0

TIMER_FREQ = 60.0
REFRESH_FREQ = 60.0

NS_PER_SECOND = 1_000_000_000

# Keyboard layout for the hexpad:
#   1 2 3 C      1 2 3 4
#   4 5 6 D  <-  Q W E R
#   7 8 9 E      A S D F
#   A 0 B F      Z X C V
KEY_MAP: Dict[str, int] = {
    "x": 0x0,
    "1": 0x1, "2": 0x2, "3": 0x3,
    "q": 0x4, "w": 0x5, "e": 0x6,
    "a": 0x7, "s": 0x8, "d": 0x9,
    "z": 0xA, "c": 0xB,
    "4": 0xC, "r": 0xD, "f": 0xE, "v": 0xF,
}


def calculate_period(freq: float) -> int:
    """Convert a frequency in Hz to a period in whole nanoseconds."""
    return int((1.0 / freq) * NS_PER_SECOND)


class Scheduler:
    """Drives a Chip8VM from elapsed wall-clock time.

    Attributes:
        vm: The virtual machine being driven
        clock_freq: Instruction rate in Hz
        paused: Whether stepping and timers are suspended
    """

    def __init__(self, vm: Chip8VM, clock_freq: float = CLOCK_FREQ_DEFAULT):
        self.vm = vm
        self.paused = False

        self.clock_freq = CLOCK_FREQ_DEFAULT
        self.clock_period = calculate_period(CLOCK_FREQ_DEFAULT)
        self.timer_period = calculate_period(TIMER_FREQ)
        self.refresh_period = calculate_period(REFRESH_FREQ)
        self.set_frequency(clock_freq)

        self.clock_acc = 0
        self.timer_acc = 0
        self.refresh_acc = 0

    # =========================================================================
    # Clock frequency
    # =========================================================================

    def set_frequency(self, value: float) -> float:
        """Set the instruction rate, clamped to the supported range.

        Returns:
            The frequency actually applied
        """
        value = max(CLOCK_FREQ_MIN, min(CLOCK_FREQ_MAX, float(value)))
        self.clock_freq = value
        self.clock_period = calculate_period(value)
        return value

    def add_frequency(self, delta: float) -> float:
        return self.set_frequency(self.clock_freq + delta)

    def reset_frequency(self) -> float:
        return self.set_frequency(CLOCK_FREQ_DEFAULT)

    # =========================================================================
    # Program control
    # =========================================================================

    def toggle_pause(self) -> bool:
        self.paused = not self.paused
        return self.paused

    def restart(self) -> None:
        """Replay the loaded program from the start and unpause."""
        self.vm.restart()
        self.paused = False

    def load(self, program: bytes) -> None:
        """Load a new program into a blank machine and unpause."""
        self.vm.reset()
        self.vm.load_program(program)
        self.paused = False

    # =========================================================================
    # Timing
    # =========================================================================

    def apply_keys(self, keys: Mapping[int, bool]) -> None:
        """Forward hexpad states to the VM."""
        for digit, pressed in keys.items():
            self.vm.update_key(digit, pressed)

    def advance(self, delta_ns: int, keys: Optional[Mapping[int, bool]] = None) -> bool:
        """Account for elapsed time and run the VM to catch up.

        Key states are applied before any step so instructions executed
        in this frame observe them. Keys that are still down are pressed
        again every frame, so a held key releases a pending FX0A.

        Args:
            delta_ns: Nanoseconds since the previous call
            keys: Optional hexpad digit -> pressed mapping for this frame

        Returns:
            True if the display should be redrawn
        """
        if not self.paused:
            if keys:
                self.apply_keys(keys)
            self.vm.refresh_keys()

            self.timer_acc += delta_ns
            while self.timer_acc >= self.timer_period:
                self.vm.tick_timers()
                self.timer_acc -= self.timer_period

            self.clock_acc += delta_ns
            while self.clock_acc >= self.clock_period:
                self.vm.step()
                self.clock_acc -= self.clock_period

        self.refresh_acc += delta_ns
        if self.refresh_acc >= self.refresh_period:
            self.refresh_acc = 0
            return True
        return False

    def run_for(self, seconds: float, frame_ns: Optional[int] = None) -> int:
        """Simulate a span of time in fixed frames without sleeping.

        Args:
            seconds: Emulated time to run
            frame_ns: Frame length (defaults to one refresh period)

        Returns:
            Number of frames that requested a redraw
        """
        frame_ns = frame_ns or self.refresh_period
        remaining = int(seconds * NS_PER_SECOND)
        redraws = 0
        while remaining > 0:
            delta = min(frame_ns, remaining)
            if self.advance(delta):
                redraws += 1
            remaining -= delta
        return redraws

    def run_realtime(self, seconds: float) -> int:
        """Run against the host clock for a span of wall-clock time.

        Returns:
            Number of frames that requested a redraw
        """
        redraws = 0
        start = last = time.perf_counter_ns()
        deadline = start + int(seconds * NS_PER_SECOND)
        while last < deadline:
            time.sleep(self.refresh_period / NS_PER_SECOND / 4)
            now = time.perf_counter_ns()
            if self.advance(now - last):
                redraws += 1
            last = now
        return redraws

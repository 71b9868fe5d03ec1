"""Chip8VM: The CHIP-8 virtual machine.

This module implements the execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The VM has no clock of its own. A driver decides how often to call
step() and tick_timers(), and forwards hexpad transitions through
update_key(). Every call runs to completion synchronously; callers that
share one VM between threads must serialize access themselves.
"""

import random
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from .state import (
    Chip8State,
    MAX_PROGRAM_SIZE,
    NUM_KEYS,
    PROGRAM_START,
    VIDEO_HEIGHT,
    VIDEO_WIDTH,
    create_initial_state,
)
from .registry import Chip8Registry, get_registry
from .decode import Decoder, DecodeResult


UnknownOpcodeHook = Callable[[int, int], None]


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        pc: Address the word was fetched from
        word: Raw 16-bit instruction word
        decode_result: Result from the decoder
        pre_state: Registers, I, PC and SP before execution
        post_state: Registers, I, PC and SP after execution
        error: Error message if the word was not recognized
    """
    cycle: int
    pc: int
    word: int
    decode_result: DecodeResult
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


def _trace_view(state: Chip8State) -> dict:
    return {
        "registers": list(state.registers),
        "i": state.i,
        "pc": state.pc,
        "sp": state.sp,
    }


class Chip8VM:
    """CHIP-8 virtual machine.

    Attributes:
        decoder: Decoder for instruction words
        registry: Chip8Registry with the instruction primitives
        state: Current machine state
        trace: Most recent execution trace entries (empty unless enabled)
        on_unknown_opcode: Optional hook called as (word, pc) for unrecognized words
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        trace_limit: int = 0,
        on_unknown_opcode: Optional[UnknownOpcodeHook] = None
    ):
        """Initialize the VM with zeroed state and the font installed.

        Args:
            rng: Random source for CXNN
            seed: Seed for a new random source (ignored if rng is given)
            trace_limit: Number of trace entries to keep; 0 disables tracing
            on_unknown_opcode: Diagnostic hook for unrecognized words

        Raises:
            ValueError: If trace_limit is negative
        """
        if trace_limit < 0:
            raise ValueError(f"trace_limit must be non-negative, got {trace_limit}")
        if rng is None:
            rng = random.Random(seed)
        self.decoder = Decoder()
        self.registry: Chip8Registry = get_registry()
        self.state: Chip8State = create_initial_state(rng)
        self.trace_limit = trace_limit
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=trace_limit or None)
        self.on_unknown_opcode = on_unknown_opcode

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset(self) -> None:
        """Full reset: warm restart and erase the program region."""
        self.state.reset()
        self.trace.clear()

    def restart(self) -> None:
        """Warm restart: replay the loaded program from the beginning."""
        self.state.restart()
        self.trace.clear()

    def load_program(self, program: bytes) -> None:
        """Copy a program image to the program start and restart.

        The image must fit in the program region; the caller is responsible
        for truncating or rejecting larger images.

        Args:
            program: Raw CHIP-8 machine code

        Raises:
            TypeError: If program is not a bytes-like object
        """
        if not isinstance(program, (bytes, bytearray, memoryview)):
            raise TypeError(f"Program must be bytes, not {type(program).__name__}")

        data = bytes(program)[:MAX_PROGRAM_SIZE]
        self.state.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        self.restart()

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE. Does nothing while the VM is
        waiting for a key press.

        Returns:
            ExecutionTraceEntry when tracing is enabled and an instruction
            ran, else None
        """
        state = self.state
        if state.waiting_register is not None:
            return None

        # FETCH: two bytes, big-endian, then advance past them
        pc = state.pc
        word = state.read_word(pc)
        state.pc = (pc + 2) & 0xFFFF

        # DECODE
        decode_result = self.decoder.decode(word)
        if not decode_result.valid and self.on_unknown_opcode is not None:
            self.on_unknown_opcode(word, pc)

        if not self.trace_limit:
            self.registry.execute(state, decode_result.key, decode_result.params)
            return None

        pre_state = _trace_view(state)
        pre_state["pc"] = pc
        cycle = state.cycle_count

        # EXECUTE
        self.registry.execute(state, decode_result.key, decode_result.params)

        entry = ExecutionTraceEntry(
            cycle=cycle,
            pc=pc,
            word=word,
            decode_result=decode_result,
            pre_state=pre_state,
            post_state=_trace_view(state),
            error=decode_result.error
        )
        self.trace.append(entry)
        return entry

    def run(self, cycles: int) -> int:
        """Call step() a fixed number of times.

        Args:
            cycles: Number of step calls

        Returns:
            Number of instructions actually executed (steps taken while
            waiting for a key do not count)
        """
        start = self.state.cycle_count
        for _ in range(cycles):
            self.step()
        return self.state.cycle_count - start

    def tick_timers(self) -> None:
        """Count the delay and sound timers down by one, stopping at zero."""
        if self.state.delay > 0:
            self.state.delay -= 1
        if self.state.sound > 0:
            self.state.sound -= 1

    def update_key(self, digit: int, pressed: bool) -> None:
        """Record a hexpad key transition.

        A press while waiting for a key stores the digit in the waiting
        register and resumes execution. Releases never resume execution.

        Args:
            digit: Hexpad digit 0-F
            pressed: New key state

        Raises:
            ValueError: If digit is outside 0..15
        """
        if not 0 <= digit < NUM_KEYS:
            raise ValueError(f"Invalid hexpad digit: {digit}")

        pressed = bool(pressed)
        self.state.keys[digit] = pressed

        if pressed and self.state.waiting_register is not None:
            self.state.registers[self.state.waiting_register] = digit
            self.state.waiting_register = None

    def refresh_keys(self) -> None:
        """Re-send a press for every key that is still down.

        A key held across an FX0A resolves the wait on the next refresh,
        the same as polling the keyboard once per frame.
        """
        for digit, pressed in enumerate(self.state.keys):
            if pressed:
                self.update_key(digit, True)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def display(self) -> List[int]:
        """Framebuffer rows (read-only by convention)."""
        return self.state.display

    def get_register(self, index: int) -> int:
        return self.state.get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_i(self) -> int:
        return self.state.i

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def is_waiting(self) -> bool:
        return self.state.is_waiting

    def sound_active(self) -> bool:
        """Whether the buzzer should currently sound."""
        return self.state.sound_active

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as text, one line per row."""
        lines = []
        for row in self.state.display:
            bits = format(row, f"0{VIDEO_WIDTH}b")
            lines.append(bits.replace("1", on).replace("0", off))
        return "\n".join(lines)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"SKIPPED: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {entry.pc:03X}: {entry.word:04X} {status}")
            print(f"  Decoded Key: {entry.decode_result.key}")
            print(f"  Params: {entry.decode_result.params}")

            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"V{index:X}: {before} → {after}"
                for index, (before, after) in enumerate(zip(pre_regs, post_regs))
                if before != after
            ]
            if changes:
                print(f"  Changes: {', '.join(changes)}")
            if entry.pre_state["i"] != entry.post_state["i"]:
                print(f"  I: {entry.pre_state['i']:03X} → {entry.post_state['i']:03X}")

            expected_pc = (entry.pc + 2) & 0xFFFF
            if entry.post_state["pc"] != expected_pc:
                print(f"  PC: {entry.pc:03X} → {entry.post_state['pc']:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and current state
        """
        lit = sum(bin(row).count("1") for row in self.state.display)
        return {
            "cycles": self.get_cycle_count(),
            "pc": self.get_pc(),
            "i": self.get_i(),
            "registers": self.dump_registers(),
            "delay": self.state.delay,
            "sound": self.state.sound,
            "waiting": self.is_waiting(),
            "lit_pixels": lit,
            "display_size": (VIDEO_WIDTH, VIDEO_HEIGHT),
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }

"""Chip8State: Mutable machine state for the CHIP-8 virtual machine.

This module defines every piece of emulated state owned by one VM
instance, together with the lifecycle helpers (restart, reset, program
clearing) that reinitialize it.

State Components:
    - Memory: 4096 bytes, font glyphs at 0..79, program from 512
    - Registers: V0-VF (16 x 8-bit), VF doubles as the flag register
    - I: 16-bit address register
    - PC / SP: Program counter and stack pointer
    - Stack: 16 return addresses
    - Timers: delay and sound, 8-bit countdown registers
    - Display: 32 rows of 64-bit masks (MSB = leftmost column)
    - Keys: 16 hexpad key states
    - Waiting register: None while running, else the register that will
      receive the next pressed key
    - Cycle count: Total executed instructions

The renderer reads the state through snapshot() and never writes it.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Memory layout
RAM_SIZE = 4096
PROGRAM_START = 512
MAX_PROGRAM_SIZE = RAM_SIZE - PROGRAM_START
ADDRESS_MASK = 0x0FFF

NUM_REGISTERS = 16
STACK_SIZE = 16
NUM_KEYS = 16
FLAG_REGISTER = 0xF

# Native display dimensions
VIDEO_WIDTH = 64
VIDEO_HEIGHT = 32
ROW_MASK = (1 << VIDEO_WIDTH) - 1

FONT_GLYPH_SIZE = 5

# Hexadecimal font, one 5-byte glyph per digit 0-F
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


@dataclass
class Chip8State:
    """CHIP-8 machine state.

    Every container here is mutated in place by the instruction primitives.
    The stack pointer is not bounds-checked: a return on an empty stack
    or a 17th nested call wraps the index modulo the stack size.

    Attributes:
        memory: 4096-byte RAM image
        registers: V0-VF, 8-bit each
        i: Address register (16-bit)
        pc: Program counter (16-bit)
        sp: Stack pointer (8-bit)
        stack: Subroutine return addresses
        delay: Delay timer
        sound: Sound timer
        display: Framebuffer rows as 64-bit masks
        keys: Hexpad key states
        waiting_register: Destination register of a pending FX0A, or None
        cycle_count: Number of executed instructions
        rng: Random source for CXNN
    """
    memory: bytearray = field(default_factory=lambda: bytearray(RAM_SIZE))
    registers: bytearray = field(default_factory=lambda: bytearray(NUM_REGISTERS))
    i: int = 0
    pc: int = PROGRAM_START
    sp: int = 0
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)
    delay: int = 0
    sound: int = 0
    display: List[int] = field(default_factory=lambda: [0] * VIDEO_HEIGHT)
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    waiting_register: Optional[int] = None
    cycle_count: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def install_font(self) -> None:
        """Copy the hexadecimal font into the reserved area at offset 0."""
        self.memory[0:len(FONT)] = FONT

    def clear_display(self) -> None:
        """Zero every framebuffer row."""
        for row in range(VIDEO_HEIGHT):
            self.display[row] = 0

    def restart(self) -> None:
        """Warm restart: replay the loaded program from its first byte.

        Clears registers, stack, display and timers, and leaves memory
        (font and program) untouched.
        """
        self.registers[:] = bytes(NUM_REGISTERS)
        self.stack[:] = [0] * STACK_SIZE
        self.clear_display()

        self.delay = 0
        self.sound = 0

        self.pc = PROGRAM_START
        self.sp = 0
        self.i = 0

        self.waiting_register = None

    def clear_program(self) -> None:
        """Erase the program region of memory (512 to end)."""
        self.memory[PROGRAM_START:] = bytes(MAX_PROGRAM_SIZE)

    def reset(self) -> None:
        """Full reset: warm restart plus program erase."""
        self.restart()
        self.clear_program()

    # =========================================================================
    # Memory access
    # =========================================================================

    def read_byte(self, address: int) -> int:
        return self.memory[address & ADDRESS_MASK]

    def write_byte(self, address: int, value: int) -> None:
        self.memory[address & ADDRESS_MASK] = value & 0xFF

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word starting at address."""
        return (self.read_byte(address) << 8) | self.read_byte(address + 1)

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get value of register V[index].

        Raises:
            IndexError: If index is outside 0..15
        """
        if not 0 <= index < NUM_REGISTERS:
            raise IndexError(f"Invalid register: V{index}")
        return self.registers[index]

    def set_register(self, index: int, value: int) -> None:
        """Set register V[index], truncating the value to 8 bits.

        Raises:
            IndexError: If index is outside 0..15
        """
        if not 0 <= index < NUM_REGISTERS:
            raise IndexError(f"Invalid register: V{index}")
        self.registers[index] = value & 0xFF

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0..VF."""
        return {f"V{index:X}": value for index, value in enumerate(self.registers)}

    # =========================================================================
    # Display and status
    # =========================================================================

    def pixel(self, x: int, y: int) -> bool:
        """Return whether the pixel at column x, row y is lit."""
        return bool((self.display[y] >> (VIDEO_WIDTH - 1 - x)) & 1)

    @property
    def is_waiting(self) -> bool:
        return self.waiting_register is not None

    @property
    def sound_active(self) -> bool:
        return self.sound > 0

    def snapshot(self) -> dict:
        """Create a detached copy of the current state for tracing or display.

        Returns:
            Dictionary containing copies of all state components
        """
        return {
            "registers": list(self.registers),
            "i": self.i,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack),
            "delay": self.delay,
            "sound": self.sound,
            "display": list(self.display),
            "keys": list(self.keys),
            "waiting_register": self.waiting_register,
            "cycle_count": self.cycle_count,
            "memory": bytes(self.memory),
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory, register file, stack, display and keys have their fixed sizes
            - Registers and timers fit in 8 bits, I and PC in 16 bits
            - Display rows fit in 64 bits
            - The waiting register, if set, names a real register

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != RAM_SIZE or len(self.registers) != NUM_REGISTERS:
            return False
        if len(self.stack) != STACK_SIZE or len(self.keys) != NUM_KEYS:
            return False
        if len(self.display) != VIDEO_HEIGHT:
            return False

        for value in (self.delay, self.sound, self.sp):
            if not 0 <= value <= 0xFF:
                return False
        for value in (self.i, self.pc, *self.stack):
            if not 0 <= value <= 0xFFFF:
                return False
        for row in self.display:
            if not 0 <= row <= ROW_MASK:
                return False

        if self.waiting_register is not None and not 0 <= self.waiting_register < NUM_REGISTERS:
            return False

        return self.cycle_count >= 0

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{index:X}={value:02X}" for index, value in enumerate(self.registers))
        waiting = f" WAIT->V{self.waiting_register:X}" if self.is_waiting else ""
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} SP={self.sp} "
            f"DT={self.delay} ST={self.sound} {regs}{waiting}"
        )


def create_initial_state(rng: Optional[random.Random] = None) -> Chip8State:
    """Create a freshly initialized machine with the font installed.

    Args:
        rng: Random source for CXNN (a new unseeded one if omitted)

    Returns:
        Zeroed Chip8State with PC at the program start
    """
    state = Chip8State(rng=rng if rng is not None else random.Random())
    state.install_font()
    return state

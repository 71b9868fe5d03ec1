"""chip8_vm: CHIP-8 Virtual Machine.

This package implements the CHIP-8 virtual machine: a 4 KB memory image
with a built-in hexadecimal font, sixteen 8-bit registers, a 16-entry
call stack, delay and sound timers, a 64x32 monochrome framebuffer and a
16-key hexpad, driven by a fetch-decode-execute loop over the 34
instructions of the base instruction set.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [PC-based] [Pattern] [OP_*]  [Frozen]   [Mutable]
                       table           Primitives   Chip8State

Modules:
    state: Chip8State dataclass and lifecycle helpers
    decode: Pattern-table instruction decoder
    registry: Instruction primitives (OP_CLS, OP_DRAW, etc.)
    vm: Main Chip8VM orchestrator
    driver: Scheduler that runs the VM against wall-clock time
    rom: Program image loading
"""

__version__ = "0.1.0"
__author__ = "chip8-vm contributors"

from .state import Chip8State
from .registry import Chip8Registry
from .decode import Decoder
from .vm import Chip8VM
from .driver import Scheduler
from .rom import RomLoadError, load_rom

__all__ = [
    "Chip8State",
    "Chip8Registry",
    "Decoder",
    "Chip8VM",
    "Scheduler",
    "RomLoadError",
    "load_rom",
]

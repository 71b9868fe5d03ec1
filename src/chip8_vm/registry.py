"""Chip8Registry: Instruction primitives for the CHIP-8 VM.

This module implements the registry pattern for the instruction set:
every decoded operation key maps to one primitive that applies the
instruction's effect to the machine state.

Registry Keys:
    OP_CLS, OP_RET: Clear display, return from subroutine
    OP_JMP, OP_CALL, OP_JMP_V0: Jumps and subroutine call
    OP_SKIP_EQ_IMM, OP_SKIP_NE_IMM, OP_SKIP_EQ_REG, OP_SKIP_NE_REG: Conditional skips
    OP_LOAD_IMM, OP_ADD_IMM: Immediate loads and adds
    OP_MOV, OP_OR, OP_AND, OP_XOR: Register-to-register ALU
    OP_ADD_REG, OP_SUB, OP_SUBN, OP_SHR, OP_SHL: ALU ops that write VF
    OP_LOAD_ADDR, OP_ADD_ADDR, OP_FONT_ADDR: Address register ops
    OP_RND: Masked random byte
    OP_DRAW: XOR sprite drawing with collision flag
    OP_SKIP_KEY, OP_SKIP_NKEY, OP_WAIT_KEY: Hexpad input
    OP_READ_DELAY, OP_SET_DELAY, OP_SET_SOUND: Timers
    OP_BCD, OP_STORE_REGS, OP_LOAD_REGS: Memory transfers
    OP_INVALID: Unrecognized word, skipped

Each primitive is a function (Chip8State, params) -> None that mutates
the state in place. The PC has already been advanced past the
instruction when a primitive runs.
"""

from typing import Any, Callable, Dict, Optional

from .state import (
    Chip8State,
    FLAG_REGISTER,
    FONT_GLYPH_SIZE,
    STACK_SIZE,
    VIDEO_HEIGHT,
    VIDEO_WIDTH,
)


Primitive = Callable[[Chip8State, Dict[str, Any]], None]


class Chip8Registry:
    """Registry of CHIP-8 instruction primitives.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction primitives."""
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction primitives."""
        # Flow control
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JMP", self._op_jmp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JMP_V0", self._op_jmp_v0)

        # Conditional skips
        self.register("OP_SKIP_EQ_IMM", self._op_skip_eq_imm)
        self.register("OP_SKIP_NE_IMM", self._op_skip_ne_imm)
        self.register("OP_SKIP_EQ_REG", self._op_skip_eq_reg)
        self.register("OP_SKIP_NE_REG", self._op_skip_ne_reg)

        # Data movement and arithmetic
        self.register("OP_LOAD_IMM", self._op_load_imm)
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_MOV", self._op_mov)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Address register
        self.register("OP_LOAD_ADDR", self._op_load_addr)
        self.register("OP_ADD_ADDR", self._op_add_addr)
        self.register("OP_FONT_ADDR", self._op_font_addr)

        # Display
        self.register("OP_DRAW", self._op_draw)

        # Input
        self.register("OP_SKIP_KEY", self._op_skip_key)
        self.register("OP_SKIP_NKEY", self._op_skip_nkey)
        self.register("OP_WAIT_KEY", self._op_wait_key)

        # Timers
        self.register("OP_READ_DELAY", self._op_read_delay)
        self.register("OP_SET_DELAY", self._op_set_delay)
        self.register("OP_SET_SOUND", self._op_set_sound)

        # Memory transfers
        self.register("OP_BCD", self._op_bcd)
        self.register("OP_STORE_REGS", self._op_store_regs)
        self.register("OP_LOAD_REGS", self._op_load_regs)

        # Special
        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key (e.g., "OP_DRAW")
            handler: Function that takes (state, params) and mutates the state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: Chip8State, key: str, params: Dict[str, Any]) -> None:
        """Execute a registered primitive against the state.

        Args:
            state: Machine state, mutated in place
            key: Operation key
            params: Operation parameters

        Raises:
            KeyError: If key not in registry
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")

        self._primitives[key](state, params)
        state.cycle_count += 1

    # =========================================================================
    # Flow Control Primitives
    # =========================================================================

    def _op_cls(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """00E0 - Clear the display."""
        state.clear_display()

    def _op_ret(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """00EE - Return from a subroutine.

        An empty stack is not detected: SP wraps and PC is loaded from
        whatever slot the wrapped index selects.
        """
        state.sp = (state.sp - 1) & 0xFF
        state.pc = state.stack[state.sp % STACK_SIZE]

    def _op_jmp(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """1NNN - Jump to address NNN."""
        state.pc = params["nnn"]

    def _op_call(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """2NNN - Call subroutine at NNN.

        The return address (already advanced past this call) is pushed.
        A 17th nested call overwrites the oldest slot.
        """
        state.stack[state.sp % STACK_SIZE] = state.pc
        state.sp = (state.sp + 1) & 0xFF
        state.pc = params["nnn"]

    def _op_jmp_v0(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """BNNN - Jump to address NNN + V0."""
        state.pc = (params["nnn"] + state.registers[0]) & 0xFFFF

    # =========================================================================
    # Conditional Skip Primitives
    # =========================================================================

    def _op_skip_eq_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """3XNN - Skip next instruction if VX == NN."""
        if state.registers[params["x"]] == params["nn"]:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_skip_ne_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """4XNN - Skip next instruction if VX != NN."""
        if state.registers[params["x"]] != params["nn"]:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_skip_eq_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """5XY0 - Skip next instruction if VX == VY."""
        if state.registers[params["x"]] == state.registers[params["y"]]:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_skip_ne_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """9XY0 - Skip next instruction if VX != VY."""
        if state.registers[params["x"]] != state.registers[params["y"]]:
            state.pc = (state.pc + 2) & 0xFFFF

    # =========================================================================
    # Arithmetic Primitives
    # =========================================================================

    def _op_load_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """6XNN - Store NN in VX."""
        state.registers[params["x"]] = params["nn"]

    def _op_add_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """7XNN - Add NN to VX. Wraps without touching VF."""
        x = params["x"]
        state.registers[x] = (state.registers[x] + params["nn"]) & 0xFF

    def _op_mov(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY0 - Store VY in VX."""
        state.registers[params["x"]] = state.registers[params["y"]]

    def _op_or(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY1 - VX |= VY."""
        state.registers[params["x"]] |= state.registers[params["y"]]

    def _op_and(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY2 - VX &= VY."""
        state.registers[params["x"]] &= state.registers[params["y"]]

    def _op_xor(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY3 - VX ^= VY."""
        state.registers[params["x"]] ^= state.registers[params["y"]]

    def _op_add_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY4 - VX += VY, VF = carry.

        Operands are read before VF is written, and VX is written last, so
        with X = F the truncated sum ends up in VF.
        """
        x, y = params["x"], params["y"]
        total = state.registers[x] + state.registers[y]
        state.registers[FLAG_REGISTER] = 1 if total > 0xFF else 0
        state.registers[x] = total & 0xFF

    def _op_sub(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY5 - VX -= VY, VF = 1 when no borrow occurs."""
        x, y = params["x"], params["y"]
        vx, vy = state.registers[x], state.registers[y]
        state.registers[FLAG_REGISTER] = 1 if vx >= vy else 0
        state.registers[x] = (vx - vy) & 0xFF

    def _op_shr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY6 - VX = VY >> 1, VF = bit shifted out of VY."""
        vy = state.registers[params["y"]]
        state.registers[FLAG_REGISTER] = vy & 0x01
        state.registers[params["x"]] = vy >> 1

    def _op_subn(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY7 - VX = VY - VX, VF = 1 when no borrow occurs."""
        x, y = params["x"], params["y"]
        vx, vy = state.registers[x], state.registers[y]
        state.registers[FLAG_REGISTER] = 1 if vy >= vx else 0
        state.registers[x] = (vy - vx) & 0xFF

    def _op_shl(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XYE - VX = VY << 1, VF = bit shifted out of VY."""
        vy = state.registers[params["y"]]
        state.registers[FLAG_REGISTER] = (vy >> 7) & 0x01
        state.registers[params["x"]] = (vy << 1) & 0xFF

    def _op_rnd(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """CXNN - VX = random byte AND NN."""
        state.registers[params["x"]] = state.rng.randrange(256) & params["nn"]

    # =========================================================================
    # Address Register Primitives
    # =========================================================================

    def _op_load_addr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """ANNN - I = NNN."""
        state.i = params["nnn"]

    def _op_add_addr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX1E - I += VX, wrapping at 16 bits with no flag."""
        state.i = (state.i + state.registers[params["x"]]) & 0xFFFF

    def _op_font_addr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX29 - Point I at the font glyph for digit VX."""
        state.i = state.registers[params["x"]] * FONT_GLYPH_SIZE

    # =========================================================================
    # Display Primitives
    # =========================================================================

    def _op_draw(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """DXYN - Draw an 8xN sprite from memory[I] at (VX, VY).

        Rows wrap vertically; columns past the right edge are clipped.
        VF is set to 1 if any lit pixel was already lit before the XOR.
        """
        x = state.registers[params["x"]]
        y = state.registers[params["y"]]
        height = params["n"]

        state.registers[FLAG_REGISTER] = 0
        for dy in range(height):
            row = (y + dy) % VIDEO_HEIGHT
            # Left-align the sprite byte in the row, then shift it to column x
            mask = (state.read_byte(state.i + dy) << (VIDEO_WIDTH - 8)) >> x

            if state.display[row] & mask:
                state.registers[FLAG_REGISTER] = 1
            state.display[row] ^= mask

    # =========================================================================
    # Input Primitives
    # =========================================================================

    def _op_skip_key(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """EX9E - Skip next instruction if the key VX is pressed."""
        if state.keys[state.registers[params["x"]] & 0x0F]:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_skip_nkey(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """EXA1 - Skip next instruction if the key VX is not pressed."""
        if not state.keys[state.registers[params["x"]] & 0x0F]:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_wait_key(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX0A - Suspend execution until a key press is stored in VX."""
        state.waiting_register = params["x"]

    # =========================================================================
    # Timer Primitives
    # =========================================================================

    def _op_read_delay(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX07 - VX = delay timer."""
        state.registers[params["x"]] = state.delay

    def _op_set_delay(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX15 - delay timer = VX."""
        state.delay = state.registers[params["x"]]

    def _op_set_sound(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX18 - sound timer = VX."""
        state.sound = state.registers[params["x"]]

    # =========================================================================
    # Memory Transfer Primitives
    # =========================================================================

    def _op_bcd(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX33 - Store the decimal digits of VX at I, I+1, I+2."""
        number = state.registers[params["x"]]
        state.write_byte(state.i, number // 100)
        state.write_byte(state.i + 1, (number // 10) % 10)
        state.write_byte(state.i + 2, number % 10)

    def _op_store_regs(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX55 - Copy V0..VX into memory at I; afterwards I += X + 1."""
        count = params["x"] + 1
        for offset in range(count):
            state.write_byte(state.i + offset, state.registers[offset])
        state.i = (state.i + count) & 0xFFFF

    def _op_load_regs(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX65 - Fill V0..VX from memory at I; afterwards I += X + 1."""
        count = params["x"] + 1
        for offset in range(count):
            state.registers[offset] = state.read_byte(state.i + offset)
        state.i = (state.i + count) & 0xFFFF

    # =========================================================================
    # Special Primitives
    # =========================================================================

    def _op_invalid(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """Unrecognized word: skipped, the PC advance from fetch stands."""


# Singleton registry instance
_registry: Optional[Chip8Registry] = None


def get_registry() -> Chip8Registry:
    """Get the shared, frozen instruction registry.

    Returns:
        The frozen Chip8Registry instance
    """
    global _registry
    if _registry is None:
        _registry = Chip8Registry()
    return _registry

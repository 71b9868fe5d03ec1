"""Tests for the instruction primitives."""

import random
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.decode import Decoder
from chip8_vm.registry import Chip8Registry, get_registry
from chip8_vm.state import create_initial_state, PROGRAM_START


@pytest.fixture
def state():
    return create_initial_state(random.Random(1234))


def execute(state, word):
    """Decode and execute one word as if it had just been fetched."""
    result = Decoder().decode(word)
    state.pc += 2
    get_registry().execute(state, result.key, result.params)
    return state


class TestRegistryStructure:
    """Test registry bookkeeping."""

    def test_registry_is_frozen(self):
        """Registry cannot be extended after construction."""
        registry = Chip8Registry()
        assert registry.is_frozen() is True
        with pytest.raises(RuntimeError, match="frozen"):
            registry.register("OP_NEW", lambda s, p: None)

    def test_keys_match_decoder(self):
        """Every decoder key has a primitive."""
        assert get_registry().get_valid_keys() == Decoder.VALID_KEYS

    def test_unknown_key(self, state):
        """Executing an unregistered key raises KeyError."""
        with pytest.raises(KeyError):
            get_registry().execute(state, "OP_HALT", {})

    def test_singleton(self):
        """get_registry returns the same instance."""
        assert get_registry() is get_registry()

    def test_execute_counts_cycles(self, state):
        """Every executed primitive increments the cycle count."""
        execute(state, 0x6001)
        execute(state, 0x0000)
        assert state.cycle_count == 2


class TestFlowControl:
    """Test jumps, calls and returns."""

    def test_clear(self, state):
        """00E0 zeroes every row."""
        state.display[:] = [0xFFFF_FFFF_FFFF_FFFF] * 32
        execute(state, 0x00E0)
        assert state.display == [0] * 32

    def test_jump(self, state):
        """1NNN sets PC."""
        execute(state, 0x1ABC)
        assert state.pc == 0xABC

    def test_call_and_return(self, state):
        """2NNN then 00EE resumes after the call."""
        state.pc = 0x300
        execute(state, 0x2400)
        assert state.pc == 0x400
        assert state.sp == 1
        assert state.stack[0] == 0x302

        execute(state, 0x00EE)
        assert state.pc == 0x302
        assert state.sp == 0

    def test_nested_calls(self, state):
        """Returns unwind in reverse order."""
        state.pc = 0x300
        execute(state, 0x2400)
        execute(state, 0x2500)
        assert state.sp == 2
        execute(state, 0x00EE)
        assert state.pc == 0x402
        execute(state, 0x00EE)
        assert state.pc == 0x302

    def test_return_on_empty_stack_wraps(self, state):
        """A return with SP 0 wraps SP instead of raising."""
        state.stack[15] = 0x234
        execute(state, 0x00EE)
        assert state.sp == 0xFF
        assert state.pc == 0x234

    def test_seventeenth_call_wraps(self, state):
        """The 17th nested call overwrites slot 0."""
        for _ in range(17):
            execute(state, 0x2300)
        assert state.sp == 17
        assert state.stack[0] == 0x302

    def test_jump_indexed(self, state):
        """BNNN jumps to NNN + V0."""
        state.registers[0] = 0x10
        execute(state, 0xB300)
        assert state.pc == 0x310


class TestSkips:
    """Test conditional skips."""

    @pytest.mark.parametrize("word,vx,vy,skips", [
        (0x3A42, 0x42, 0, True),
        (0x3A42, 0x41, 0, False),
        (0x4A42, 0x41, 0, True),
        (0x4A42, 0x42, 0, False),
        (0x5AB0, 7, 7, True),
        (0x5AB0, 7, 8, False),
        (0x9AB0, 7, 8, True),
        (0x9AB0, 7, 7, False),
    ])
    def test_skip(self, state, word, vx, vy, skips):
        """Skips advance PC by a further 2 only when the condition holds."""
        state.registers[0xA] = vx
        state.registers[0xB] = vy
        execute(state, word)
        assert state.pc == PROGRAM_START + (4 if skips else 2)


class TestArithmetic:
    """Test register arithmetic and the VF flag."""

    def test_load_immediate(self, state):
        """6XNN stores NN."""
        execute(state, 0x6A42)
        assert state.registers[0xA] == 0x42

    def test_add_immediate_wraps_without_flag(self, state):
        """7XNN wraps and leaves VF alone."""
        state.registers[0] = 0xFF
        state.registers[0xF] = 0x55
        execute(state, 0x7002)
        assert state.registers[0] == 0x01
        assert state.registers[0xF] == 0x55

    def test_move(self, state):
        """8XY0 copies VY."""
        state.registers[2] = 9
        execute(state, 0x8120)
        assert state.registers[1] == 9

    def test_bitwise(self, state):
        """8XY1/2/3 are OR, AND, XOR."""
        state.registers[1] = 0b1100
        state.registers[2] = 0b1010
        execute(state, 0x8121)
        assert state.registers[1] == 0b1110

        state.registers[1] = 0b1100
        execute(state, 0x8122)
        assert state.registers[1] == 0b1000

        state.registers[1] = 0b1100
        execute(state, 0x8123)
        assert state.registers[1] == 0b0110

    def test_add_register_exhaustive(self, state):
        """8XY4 sets VF iff the sum exceeds 255."""
        for a in range(256):
            for b in range(0, 256, 15):
                state.registers[1] = a
                state.registers[2] = b
                execute(state, 0x8124)
                assert state.registers[1] == (a + b) % 256
                assert state.registers[0xF] == (1 if a + b > 255 else 0)

    def test_sub_exhaustive(self, state):
        """8XY5 sets VF iff VX >= VY."""
        for a in range(256):
            for b in range(0, 256, 15):
                state.registers[1] = a
                state.registers[2] = b
                execute(state, 0x8125)
                assert state.registers[1] == (a - b) % 256
                assert state.registers[0xF] == (1 if a >= b else 0)

    def test_subn(self, state):
        """8XY7 computes VY - VX with the no-borrow flag."""
        state.registers[1] = 10
        state.registers[2] = 3
        execute(state, 0x8127)
        assert state.registers[1] == (3 - 10) % 256
        assert state.registers[0xF] == 0

        state.registers[1] = 3
        state.registers[2] = 10
        execute(state, 0x8127)
        assert state.registers[1] == 7
        assert state.registers[0xF] == 1

    def test_equal_operands_do_not_borrow(self, state):
        """Equal operands set the no-borrow flag in both subtractions."""
        state.registers[1] = 5
        state.registers[2] = 5
        execute(state, 0x8125)
        assert state.registers[0xF] == 1
        state.registers[1] = 5
        execute(state, 0x8127)
        assert state.registers[0xF] == 1

    def test_shift_right_uses_vy(self, state):
        """8XY6 shifts VY into VX and captures the low bit."""
        state.registers[1] = 0xFF
        state.registers[2] = 0b0000_0101
        execute(state, 0x8126)
        assert state.registers[1] == 0b10
        assert state.registers[0xF] == 1
        assert state.registers[2] == 0b101

    def test_shift_left_uses_vy(self, state):
        """8XYE shifts VY into VX and captures bit 7."""
        state.registers[2] = 0b1000_0001
        execute(state, 0x812E)
        assert state.registers[1] == 0b0000_0010
        assert state.registers[0xF] == 1

        state.registers[2] = 0b0100_0000
        execute(state, 0x812E)
        assert state.registers[1] == 0b1000_0000
        assert state.registers[0xF] == 0

    def test_shift_with_same_register(self, state):
        """X == Y still captures the pre-shift bit."""
        state.registers[3] = 0x81
        execute(state, 0x833E)
        assert state.registers[3] == 0x02
        assert state.registers[0xF] == 1

        state.registers[3] = 0x81
        execute(state, 0x8336)
        assert state.registers[3] == 0x40
        assert state.registers[0xF] == 1

    def test_shift_from_vf(self, state):
        """Y == F reads VF before the flag overwrites it."""
        state.registers[0xF] = 0x80
        execute(state, 0x81FE)
        assert state.registers[1] == 0x00
        assert state.registers[0xF] == 1

    def test_flag_register_as_destination(self, state):
        """With X == F the result, written last, replaces the flag."""
        state.registers[0xF] = 200
        state.registers[1] = 100
        execute(state, 0x8F14)
        assert state.registers[0xF] == 44

    def test_random_is_masked(self, state):
        """CXNN never sets bits outside NN."""
        for _ in range(100):
            execute(state, 0xC10F)
            assert state.registers[1] & 0xF0 == 0

    def test_random_is_reproducible(self):
        """Equal seeds produce equal random bytes."""
        a = create_initial_state(random.Random(99))
        b = create_initial_state(random.Random(99))
        for _ in range(10):
            execute(a, 0xC1FF)
            execute(b, 0xC1FF)
            assert a.registers[1] == b.registers[1]


class TestAddressRegister:
    """Test I register operations."""

    def test_load_address(self, state):
        """ANNN sets I."""
        execute(state, 0xA123)
        assert state.i == 0x123

    def test_add_address(self, state):
        """FX1E adds VX to I without touching VF."""
        state.i = 0xFFF
        state.registers[2] = 2
        execute(state, 0xF21E)
        assert state.i == 0x1001
        assert state.registers[0xF] == 0

    def test_add_address_wraps_16_bits(self, state):
        """FX1E wraps at the register width."""
        state.i = 0xFFFF
        state.registers[2] = 1
        execute(state, 0xF21E)
        assert state.i == 0

    def test_font_address(self, state):
        """FX29 points I at glyph VX."""
        state.registers[4] = 0xA
        execute(state, 0xF429)
        assert state.i == 50
        assert state.memory[state.i] == 0xF0


class TestDraw:
    """Test sprite drawing."""

    def test_single_row(self, state):
        """0xF0 at (0, 0) lights the four leftmost pixels."""
        state.i = 0x300
        state.memory[0x300] = 0xF0
        execute(state, 0xD011)
        assert state.display[0] == 0xF << 60
        assert state.registers[0xF] == 0

    def test_position(self, state):
        """Sprites are placed at column VX and row VY."""
        state.i = 0x300
        state.memory[0x300] = 0x80
        state.registers[1] = 10
        state.registers[2] = 7
        execute(state, 0xD121)
        assert state.pixel(10, 7) is True
        assert sum(bin(row).count("1") for row in state.display) == 1

    def test_double_draw_erases(self, state):
        """Drawing the same sprite twice restores the display."""
        state.i = 0
        state.display[3] = 0x0123_4567_89AB_CDEF
        before = list(state.display)
        state.registers[1] = 5
        state.registers[2] = 1
        execute(state, 0xD125)
        assert state.display != before
        execute(state, 0xD125)
        assert state.display == before

    def test_collision(self, state):
        """Redrawing over lit pixels sets VF."""
        state.i = 0x300
        state.memory[0x300] = 0xFF
        execute(state, 0xD011)
        assert state.registers[0xF] == 0
        execute(state, 0xD011)
        assert state.registers[0xF] == 1
        assert state.display[0] == 0

    def test_no_collision_adjacent(self, state):
        """Lit pixels next to, but not under, the sprite do not collide."""
        state.i = 0x300
        state.memory[0x300] = 0xF0
        state.display[0] = 0x0F << 56
        execute(state, 0xD011)
        assert state.registers[0xF] == 0
        assert state.display[0] == 0xFF << 56

    def test_collision_is_sticky(self, state):
        """A collision in an early row survives later clean rows."""
        state.i = 0x300
        state.memory[0x300:0x303] = b"\x80\x80\x80"
        state.display[0] = 1 << 63
        execute(state, 0xD013)
        assert state.registers[0xF] == 1

    def test_wraps_vertically(self, state):
        """Rows past the bottom wrap to the top."""
        state.i = 0x300
        state.memory[0x300:0x302] = b"\x80\x80"
        state.registers[2] = 31
        execute(state, 0xD122)
        assert state.pixel(0, 31) is True
        assert state.pixel(0, 0) is True

    def test_clips_horizontally(self, state):
        """Columns past the right edge are dropped, not wrapped."""
        state.i = 0x300
        state.memory[0x300] = 0xFF
        state.registers[1] = 60
        execute(state, 0xD121)
        assert state.display[0] == 0xF
        assert state.pixel(0, 0) is False

    def test_far_right_draws_nothing(self, state):
        """VX beyond the display width draws nothing."""
        state.i = 0x300
        state.memory[0x300] = 0xFF
        state.registers[1] = 200
        execute(state, 0xD121)
        assert state.display[0] == 0

    def test_flag_cleared_before_draw(self, state):
        """VF is reset to 0 when nothing collides."""
        state.registers[0xF] = 1
        state.i = 0x300
        execute(state, 0xD001)
        assert state.registers[0xF] == 0

    def test_zero_height(self, state):
        """DXY0 draws no rows."""
        execute(state, 0xD010)
        assert state.display == [0] * 32


class TestInput:
    """Test key skips and the wait latch."""

    def test_skip_key(self, state):
        """EX9E skips when key VX is down."""
        state.registers[1] = 0xA
        state.keys[0xA] = True
        execute(state, 0xE19E)
        assert state.pc == PROGRAM_START + 4

    def test_skip_nkey(self, state):
        """EXA1 skips when key VX is up."""
        state.registers[1] = 0xA
        execute(state, 0xE1A1)
        assert state.pc == PROGRAM_START + 4

        state.keys[0xA] = True
        execute(state, 0xE1A1)
        assert state.pc == PROGRAM_START + 6

    def test_wait_key_sets_latch(self, state):
        """FX0A records the destination register."""
        execute(state, 0xF30A)
        assert state.waiting_register == 3


class TestTimers:
    """Test timer instructions."""

    def test_set_and_read_delay(self, state):
        """FX15 then FY07 round-trips through the delay timer."""
        state.registers[1] = 60
        execute(state, 0xF115)
        assert state.delay == 60
        execute(state, 0xF207)
        assert state.registers[2] == 60

    def test_set_sound(self, state):
        """FX18 sets the sound timer."""
        state.registers[1] = 30
        execute(state, 0xF118)
        assert state.sound == 30


class TestMemoryTransfer:
    """Test BCD and register block transfers."""

    def test_bcd(self, state):
        """FX33 with 157 stores 1, 5, 7."""
        state.registers[1] = 157
        state.i = 0x300
        execute(state, 0xF133)
        assert list(state.memory[0x300:0x303]) == [1, 5, 7]
        assert state.i == 0x300

    @pytest.mark.parametrize("value,digits", [(0, [0, 0, 0]), (9, [0, 0, 9]), (255, [2, 5, 5])])
    def test_bcd_edges(self, state, value, digits):
        """FX33 pads with leading zeros."""
        state.registers[1] = value
        state.i = 0x300
        execute(state, 0xF133)
        assert list(state.memory[0x300:0x303]) == digits

    def test_store_registers(self, state):
        """FX55 stores V0..VX and advances I."""
        state.registers[0:4] = bytes([1, 2, 3, 4])
        state.i = 0x300
        execute(state, 0xF355)
        assert list(state.memory[0x300:0x305]) == [1, 2, 3, 4, 0]
        assert state.i == 0x304

    def test_load_registers(self, state):
        """FX65 loads V0..VX and advances I."""
        state.memory[0x300:0x304] = bytes([9, 8, 7, 6])
        state.i = 0x300
        execute(state, 0xF265)
        assert list(state.registers[0:4]) == [9, 8, 7, 0]
        assert state.i == 0x303

    def test_store_wraps_memory(self, state):
        """Transfers past the end of memory wrap to address 0."""
        state.registers[0:2] = bytes([0xAA, 0xBB])
        state.i = 0xFFF
        execute(state, 0xF155)
        assert state.memory[0xFFF] == 0xAA
        assert state.memory[0x000] == 0xBB


class TestInvalid:
    """Test unrecognized words."""

    def test_invalid_is_noop(self, state):
        """OP_INVALID changes nothing except the cycle count."""
        before = state.snapshot()
        get_registry().execute(state, "OP_INVALID", {"word": 0})
        after = state.snapshot()
        assert after["cycle_count"] == before["cycle_count"] + 1
        before.pop("cycle_count")
        after.pop("cycle_count")
        assert before == after

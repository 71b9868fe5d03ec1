"""Decoder: Instruction word decoder for the CHIP-8 VM.

CHIP-8 opcodes are not a single field of the instruction word: they are
patterns of fixed nibbles, and the same nibble positions carry arguments
in some instructions and opcode bits in others. Decoding therefore walks
an ordered table of (mask, value) pairs and picks the first pattern whose
fixed nibbles match.

Architecture:
    16-bit word -> Decoder -> (operation_key, params) -> Registry -> Execute

Argument fields of a word i:
    nnn = i & 0x0FFF    (12-bit address)
    nn  = i & 0x00FF    (8-bit immediate)
    n   = i & 0x000F    (4-bit immediate)
    x   = (i >> 8) & 0xF  (register)
    y   = (i >> 4) & 0xF  (register)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple


@dataclass
class DecodeResult:
    """Result of decoding one instruction word.

    Attributes:
        key: Operation key (e.g., "OP_ADD_REG")
        params: Argument fields used by the operation
        valid: Whether a pattern matched
        error: Error message if decode failed
        word: Original 16-bit instruction word
    """
    key: str
    params: Dict[str, int]
    valid: bool
    error: Optional[str] = None
    word: int = 0


# Opcode patterns in match precedence order: (mask, value, key, fields)
OPCODE_TABLE: List[Tuple[int, int, str, Tuple[str, ...]]] = [
    (0xFFFF, 0x00E0, "OP_CLS", ()),
    (0xFFFF, 0x00EE, "OP_RET", ()),
    (0xF000, 0x1000, "OP_JMP", ("nnn",)),
    (0xF000, 0x2000, "OP_CALL", ("nnn",)),
    (0xF000, 0x3000, "OP_SKIP_EQ_IMM", ("x", "nn")),
    (0xF000, 0x4000, "OP_SKIP_NE_IMM", ("x", "nn")),
    (0xF00F, 0x5000, "OP_SKIP_EQ_REG", ("x", "y")),
    (0xF000, 0x6000, "OP_LOAD_IMM", ("x", "nn")),
    (0xF000, 0x7000, "OP_ADD_IMM", ("x", "nn")),
    (0xF00F, 0x8000, "OP_MOV", ("x", "y")),
    (0xF00F, 0x8001, "OP_OR", ("x", "y")),
    (0xF00F, 0x8002, "OP_AND", ("x", "y")),
    (0xF00F, 0x8003, "OP_XOR", ("x", "y")),
    (0xF00F, 0x8004, "OP_ADD_REG", ("x", "y")),
    (0xF00F, 0x8005, "OP_SUB", ("x", "y")),
    (0xF00F, 0x8006, "OP_SHR", ("x", "y")),
    (0xF00F, 0x8007, "OP_SUBN", ("x", "y")),
    (0xF00F, 0x800E, "OP_SHL", ("x", "y")),
    (0xF00F, 0x9000, "OP_SKIP_NE_REG", ("x", "y")),
    (0xF000, 0xA000, "OP_LOAD_ADDR", ("nnn",)),
    (0xF000, 0xB000, "OP_JMP_V0", ("nnn",)),
    (0xF000, 0xC000, "OP_RND", ("x", "nn")),
    (0xF000, 0xD000, "OP_DRAW", ("x", "y", "n")),
    (0xF0FF, 0xE09E, "OP_SKIP_KEY", ("x",)),
    (0xF0FF, 0xE0A1, "OP_SKIP_NKEY", ("x",)),
    (0xF0FF, 0xF007, "OP_READ_DELAY", ("x",)),
    (0xF0FF, 0xF00A, "OP_WAIT_KEY", ("x",)),
    (0xF0FF, 0xF015, "OP_SET_DELAY", ("x",)),
    (0xF0FF, 0xF018, "OP_SET_SOUND", ("x",)),
    (0xF0FF, 0xF01E, "OP_ADD_ADDR", ("x",)),
    (0xF0FF, 0xF029, "OP_FONT_ADDR", ("x",)),
    (0xF0FF, 0xF033, "OP_BCD", ("x",)),
    (0xF0FF, 0xF055, "OP_STORE_REGS", ("x",)),
    (0xF0FF, 0xF065, "OP_LOAD_REGS", ("x",)),
]


def fetch_fields(word: int) -> Dict[str, int]:
    """Split an instruction word into all of its argument fields."""
    return {
        "nnn": word & 0x0FFF,
        "nn": word & 0x00FF,
        "n": word & 0x000F,
        "x": (word & 0x0F00) >> 8,
        "y": (word & 0x00F0) >> 4,
    }


class Decoder:
    """Pattern-table decoder for CHIP-8 instruction words.

    Attributes:
        table: Ordered opcode patterns; the first match wins
    """

    VALID_KEYS: Set[str] = {entry[2] for entry in OPCODE_TABLE} | {"OP_INVALID"}

    def __init__(self, table: Optional[List[Tuple[int, int, str, Tuple[str, ...]]]] = None):
        self.table = list(table) if table is not None else list(OPCODE_TABLE)

    def decode(self, word: int) -> DecodeResult:
        """Decode a 16-bit instruction word to an operation key and parameters.

        Args:
            word: Instruction word (big-endian fetch of two bytes)

        Returns:
            DecodeResult with operation key and parameters; OP_INVALID
            when no pattern matches
        """
        word &= 0xFFFF

        for mask, value, key, fields in self.table:
            if word & mask == value:
                all_fields = fetch_fields(word)
                return DecodeResult(
                    key,
                    {name: all_fields[name] for name in fields},
                    True,
                    word=word
                )

        return DecodeResult(
            "OP_INVALID",
            {"word": word},
            False,
            error=f"Unknown opcode: {word:04X}",
            word=word
        )

    def overlapping_patterns(self) -> List[Tuple[str, str]]:
        """Find pattern pairs that could both match the same word.

        Two patterns overlap when they agree on every nibble both of them
        fix. Any overlap would make the result depend on table order.

        Returns:
            List of (earlier_key, later_key) pairs that overlap
        """
        overlaps = []
        for index, (mask_a, value_a, key_a, _) in enumerate(self.table):
            for mask_b, value_b, key_b, _ in self.table[index + 1:]:
                common = mask_a & mask_b
                if value_a & common == value_b & common:
                    overlaps.append((key_a, key_b))
        return overlaps

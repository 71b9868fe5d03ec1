"""ROM loading for the CHIP-8 VM.

CHIP-8 program images have no header or magic number, so there is no way
to tell a program from any other binary file. The loader only accepts
files with the conventional ``.ch8`` extension and rejects images that
do not fit in the program region of memory.
"""

from pathlib import Path
from typing import Union

from .state import MAX_PROGRAM_SIZE


ROM_EXTENSION = ".ch8"

# Played when no ROM is given: draws "CHIP-8" and counts up with the delay timer
DEFAULT_ROM = bytes([
    0x6E, 0x0C, 0x60, 0x88, 0x61, 0x88, 0x62, 0xF8, 0x63, 0x88, 0x64, 0x88, 0xA2, 0x70, 0xF4, 0x55,
    0x60, 0x00, 0x61, 0x00, 0x62, 0xF8, 0x63, 0x00, 0x64, 0x00, 0xF4, 0x55, 0x22, 0x2E, 0x6A, 0x0A,
    0xFA, 0x15, 0xFA, 0x07, 0x3A, 0x00, 0x12, 0x22, 0x22, 0x2E, 0x7E, 0x01, 0x12, 0x1C, 0x60, 0x0C,
    0xF0, 0x29, 0x60, 0x10, 0xD0, 0xE5, 0xA2, 0x70, 0x60, 0x18, 0xD0, 0xE5, 0xA2, 0x75, 0x60, 0x20,
    0xD0, 0xE5, 0x60, 0x08, 0xF0, 0x29, 0x60, 0x28, 0xD0, 0xE5, 0x00, 0xEE,
])


class RomLoadError(Exception):
    """Raised when a ROM file cannot be used as a program image."""


def load_rom(path: Union[str, Path]) -> bytes:
    """Read a program image from disk.

    Args:
        path: Path to a .ch8 file

    Returns:
        Raw program bytes

    Raises:
        RomLoadError: If the extension is wrong, the file cannot be read,
            or the image is larger than the program region
    """
    rom_path = Path(path)
    if rom_path.suffix.lower() != ROM_EXTENSION:
        raise RomLoadError(f"ROM files should have '{ROM_EXTENSION}' extension: {rom_path}")

    try:
        data = rom_path.read_bytes()
    except OSError as e:
        raise RomLoadError(f"Could not read ROM at '{rom_path}': {e}") from e

    if len(data) > MAX_PROGRAM_SIZE:
        raise RomLoadError(
            f"ROM at '{rom_path}' is {len(data)} bytes; at most {MAX_PROGRAM_SIZE} fit in memory"
        )

    return data

"""Memory: flat 4KB byte store for the CHIP-8 VM.

Layout:
    0x000-0x04F: built-in hexadecimal font (16 glyphs x 5 bytes)
    0x050-0x1FF: unused (historically the interpreter itself)
    0x200-0xFFF: program image and program data

Every access is bounds-checked; an address outside 0x000-0xFFF raises
AddressError instead of wrapping.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np

from .errors import AddressError, ProgramTooLargeError


logger = logging.getLogger(__name__)

MEMORY_SIZE = 4096
PROGRAM_OFFSET = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_OFFSET
FONT_OFFSET = 0x000
FONT_GLYPH_SIZE = 5

# Hexadecimal font sprites 0-F, 4 pixels wide and 5 rows tall
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


class Memory:
    """Bounds-checked 4096-byte store.

    Attributes:
        _cells: numpy uint8 array backing the address space
    """

    def __init__(self):
        self._cells = np.zeros(MEMORY_SIZE, dtype=np.uint8)

    def __len__(self) -> int:
        return MEMORY_SIZE

    def _check(self, address: int) -> int:
        if not 0 <= address < MEMORY_SIZE:
            raise AddressError(address)
        return address

    def read(self, address: int) -> int:
        """Read one byte.

        Raises:
            AddressError: If address is outside 0x000-0xFFF
        """
        return int(self._cells[self._check(address)])

    def write(self, address: int, value: int) -> None:
        """Write one byte (value is truncated to 8 bits).

        Raises:
            AddressError: If address is outside 0x000-0xFFF
        """
        self._cells[self._check(address)] = value & 0xFF

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word from address and address+1."""
        return (self.read(address) << 8) | self.read(address + 1)

    def read_block(self, address: int, length: int) -> bytes:
        """Read length consecutive bytes starting at address."""
        if length == 0:
            return b""
        self._check(address)
        self._check(address + length - 1)
        return self._cells[address:address + length].tobytes()

    def load(self, data: Union[bytes, bytearray, Iterable[int]], offset: int) -> None:
        """Copy a byte sequence into memory starting at offset.

        Args:
            data: Bytes to copy
            offset: Destination address

        Raises:
            AddressError: If offset + len(data) exceeds the address space
        """
        data = bytes(data)
        if offset < 0 or offset + len(data) > MEMORY_SIZE:
            raise AddressError(offset + len(data) - 1 if data else offset)
        self._cells[offset:offset + len(data)] = np.frombuffer(data, dtype=np.uint8)

    def load_font(self) -> None:
        self.load(FONT, FONT_OFFSET)

    def load_program(self, program: bytes) -> None:
        """Load a program image at PROGRAM_OFFSET.

        Raises:
            ProgramTooLargeError: If the image exceeds MAX_PROGRAM_SIZE bytes
        """
        if len(program) > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(
                f"Program is {len(program)} bytes, maximum is {MAX_PROGRAM_SIZE}"
            )
        self.load(program, PROGRAM_OFFSET)

    def reset(self) -> None:
        """Zero every byte."""
        self._cells.fill(0)

    def dump(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the full memory image to a file.

        Args:
            path: Output file (defaults to a timestamped name in the cwd)

        Returns:
            Path of the written dump
        """
        if path is None:
            path = f"MemoryDump-{datetime.now():%Y-%m-%d_%H.%M.%S}.bin"
        path = Path(path)
        path.write_bytes(self._cells.tobytes())
        logger.info("Dumped memory to %s", path)
        return path

    def snapshot(self) -> bytes:
        """Return a copy of the full address space."""
        return self._cells.tobytes()

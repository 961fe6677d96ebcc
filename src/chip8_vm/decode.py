"""Instruction decoder for the CHIP-8 VM.

Decoding is a pure function of the 16-bit opcode: it never touches machine
state, so decode and execute can be tested independently.

Architecture:
    opcode -> decode() -> Instruction(key, operands) -> Registry -> Execute

The decode table is a list of (mask, pattern, key) rows; the first row
where ``opcode & mask == pattern`` wins. Opcodes matching no row decode to
OP_UNKNOWN with valid=False.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple


@dataclass(frozen=True)
class Instruction:
    """A decoded opcode.

    Attributes:
        key: Operation key (e.g. "OP_ADD_REG")
        opcode: Raw 16-bit opcode
        valid: Whether the opcode matched the decode table
    """
    key: str
    opcode: int
    valid: bool = True

    @property
    def x(self) -> int:
        return (self.opcode & 0x0F00) >> 8

    @property
    def y(self) -> int:
        return (self.opcode & 0x00F0) >> 4

    @property
    def n(self) -> int:
        return self.opcode & 0x000F

    @property
    def nn(self) -> int:
        return self.opcode & 0x00FF

    @property
    def nnn(self) -> int:
        return self.opcode & 0x0FFF

    def mnemonic(self) -> str:
        """Conventional assembly text, e.g. ``ADD V1, V2``."""
        template = MNEMONICS.get(self.key, "DW 0x{opcode:04X}")
        return template.format(
            x=self.x, y=self.y, n=self.n, nn=self.nn, nnn=self.nnn, opcode=self.opcode
        )

    def __str__(self) -> str:
        return f"{self.opcode:04X}  {self.mnemonic()}"


# (mask, pattern, key), most specific rows first within each family
DECODE_TABLE: List[Tuple[int, int, str]] = [
    (0xFFFF, 0x00E0, "OP_CLS"),
    (0xFFFF, 0x00EE, "OP_RET"),
    (0xF000, 0x1000, "OP_JP"),
    (0xF000, 0x2000, "OP_CALL"),
    (0xF000, 0x3000, "OP_SE_IMM"),
    (0xF000, 0x4000, "OP_SNE_IMM"),
    (0xF00F, 0x5000, "OP_SE_REG"),
    (0xF000, 0x6000, "OP_LD_IMM"),
    (0xF000, 0x7000, "OP_ADD_IMM"),
    (0xF00F, 0x8000, "OP_LD_REG"),
    (0xF00F, 0x8001, "OP_OR"),
    (0xF00F, 0x8002, "OP_AND"),
    (0xF00F, 0x8003, "OP_XOR"),
    (0xF00F, 0x8004, "OP_ADD_REG"),
    (0xF00F, 0x8005, "OP_SUB"),
    (0xF00F, 0x8006, "OP_SHR"),
    (0xF00F, 0x8007, "OP_SUBN"),
    (0xF00F, 0x800E, "OP_SHL"),
    (0xF00F, 0x9000, "OP_SNE_REG"),
    (0xF000, 0xA000, "OP_LD_I"),
    (0xF000, 0xB000, "OP_JP_V0"),
    (0xF000, 0xC000, "OP_RND"),
    (0xF000, 0xD000, "OP_DRW"),
    (0xF0FF, 0xE09E, "OP_SKP"),
    (0xF0FF, 0xE0A1, "OP_SKNP"),
    (0xF0FF, 0xF007, "OP_LD_VX_DT"),
    (0xF0FF, 0xF00A, "OP_LD_VX_K"),
    (0xF0FF, 0xF015, "OP_LD_DT_VX"),
    (0xF0FF, 0xF018, "OP_LD_ST_VX"),
    (0xF0FF, 0xF01E, "OP_ADD_I_VX"),
    (0xF0FF, 0xF029, "OP_LD_F_VX"),
    (0xF0FF, 0xF033, "OP_LD_B_VX"),
    (0xF0FF, 0xF055, "OP_LD_MEM_VX"),
    (0xF0FF, 0xF065, "OP_LD_VX_MEM"),
]

MNEMONICS: Dict[str, str] = {
    "OP_CLS": "CLS",
    "OP_RET": "RET",
    "OP_JP": "JP 0x{nnn:03X}",
    "OP_CALL": "CALL 0x{nnn:03X}",
    "OP_SE_IMM": "SE V{x:X}, 0x{nn:02X}",
    "OP_SNE_IMM": "SNE V{x:X}, 0x{nn:02X}",
    "OP_SE_REG": "SE V{x:X}, V{y:X}",
    "OP_LD_IMM": "LD V{x:X}, 0x{nn:02X}",
    "OP_ADD_IMM": "ADD V{x:X}, 0x{nn:02X}",
    "OP_LD_REG": "LD V{x:X}, V{y:X}",
    "OP_OR": "OR V{x:X}, V{y:X}",
    "OP_AND": "AND V{x:X}, V{y:X}",
    "OP_XOR": "XOR V{x:X}, V{y:X}",
    "OP_ADD_REG": "ADD V{x:X}, V{y:X}",
    "OP_SUB": "SUB V{x:X}, V{y:X}",
    "OP_SHR": "SHR V{x:X}",
    "OP_SUBN": "SUBN V{x:X}, V{y:X}",
    "OP_SHL": "SHL V{x:X}",
    "OP_SNE_REG": "SNE V{x:X}, V{y:X}",
    "OP_LD_I": "LD I, 0x{nnn:03X}",
    "OP_JP_V0": "JP V0, 0x{nnn:03X}",
    "OP_RND": "RND V{x:X}, 0x{nn:02X}",
    "OP_DRW": "DRW V{x:X}, V{y:X}, {n}",
    "OP_SKP": "SKP V{x:X}",
    "OP_SKNP": "SKNP V{x:X}",
    "OP_LD_VX_DT": "LD V{x:X}, DT",
    "OP_LD_VX_K": "LD V{x:X}, K",
    "OP_LD_DT_VX": "LD DT, V{x:X}",
    "OP_LD_ST_VX": "LD ST, V{x:X}",
    "OP_ADD_I_VX": "ADD I, V{x:X}",
    "OP_LD_F_VX": "LD F, V{x:X}",
    "OP_LD_B_VX": "LD B, V{x:X}",
    "OP_LD_MEM_VX": "LD [I], V{x:X}",
    "OP_LD_VX_MEM": "LD V{x:X}, [I]",
}

VALID_KEYS = frozenset(key for _, _, key in DECODE_TABLE)


def decode(opcode: int) -> Instruction:
    """Decode a 16-bit opcode.

    Args:
        opcode: Raw instruction word

    Returns:
        Instruction; unknown patterns yield key OP_UNKNOWN and valid=False
    """
    opcode &= 0xFFFF
    for mask, pattern, key in DECODE_TABLE:
        if opcode & mask == pattern:
            return Instruction(key, opcode)
    return Instruction("OP_UNKNOWN", opcode, valid=False)


def disassemble(data: bytes, origin: int = 0x200) -> Iterator[Tuple[int, Instruction]]:
    """Decode a program image two bytes at a time.

    A trailing odd byte is decoded as if padded with 0x00.

    Args:
        data: Raw program bytes
        origin: Address of data[0]

    Yields:
        (address, Instruction) pairs
    """
    for offset in range(0, len(data), 2):
        hi = data[offset]
        lo = data[offset + 1] if offset + 1 < len(data) else 0
        yield origin + offset, decode((hi << 8) | lo)

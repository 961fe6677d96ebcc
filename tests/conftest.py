"""Shared fixtures for CHIP-8 VM tests."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8


def words_to_bytes(*words: int) -> bytes:
    """Assemble 16-bit opcodes into a big-endian program image."""
    return b"".join(w.to_bytes(2, "big") for w in words)


def run_until(machine: Chip8, pc: int, limit: int = 10000) -> int:
    """Cycle until the program counter reaches pc.

    Returns:
        Number of cycles executed
    """
    for count in range(limit):
        if machine.get_pc() == pc:
            return count
        machine.cycle()
    raise AssertionError(f"PC never reached 0x{pc:03X} in {limit} cycles")


class FixedRandom:
    """Random source that always yields the same byte."""

    def __init__(self, value: int):
        self.value = value

    def randint(self, a: int, b: int) -> int:
        return self.value


@pytest.fixture
def machine():
    return Chip8()


@pytest.fixture
def load(machine):
    """Load opcodes into the machine and return it."""
    def _load(*words: int) -> Chip8:
        machine.load_program(words_to_bytes(*words))
        return machine
    return _load

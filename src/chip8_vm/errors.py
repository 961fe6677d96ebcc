"""Exception hierarchy for the CHIP-8 VM.

Load-time errors are raised before any cycle executes. Execution faults
halt the machine and are re-raised from ``Chip8.cycle()``.
"""


class Chip8Error(Exception):
    """Base class for all CHIP-8 VM errors."""


class ProgramTooLargeError(Chip8Error):
    """Program image does not fit between the load offset and end of memory."""


class AddressError(Chip8Error):
    """Memory access outside 0x000-0xFFF."""

    def __init__(self, address: int):
        super().__init__(f"Address out of range: 0x{address:X}")
        self.address = address


class StackUnderflowError(Chip8Error):
    """Return executed with an empty call stack."""


class StackOverflowError(Chip8Error):
    """Subroutine call nested deeper than the call stack allows."""


class InvalidKeyError(Chip8Error):
    """Key instruction given a register value outside 0x0-0xF."""

    def __init__(self, key: int):
        super().__init__(f"Invalid key: 0x{key:X}")
        self.key = key

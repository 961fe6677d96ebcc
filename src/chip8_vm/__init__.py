"""chip8_vm: CHIP-8 virtual machine interpreter.

This package emulates the CHIP-8 virtual machine: 4KB of memory, sixteen
byte registers with VF as the flag register, a call stack, delay and sound
timers, a 64x32 monochrome framebuffer and a 16-key keypad.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |          |        |        |           |
             [PC]    [opcode   [OP_*]  [handler    [registers,
                      table]            table]      framebuffer]

Modules:
    memory: Bounds-checked 4KB store with the built-in font
    state: CPUState register file, call stack, timers and run status
    keypad: 16-key input state and host key map
    display: 64x32 framebuffer with sprite XOR-blit
    decode: Opcode decode table and disassembler
    registry: Instruction handlers keyed by operation
    cpu: Main Chip8 orchestrator
    config: EmulatorConfig settings
    host: Text renderer, tone gate and frame loop
"""

__version__ = "0.1.0"
__author__ = "chip8-vm contributors"

from .config import EmulatorConfig
from .state import CPUState, MachineStatus
from .memory import Memory
from .keypad import Keypad
from .display import Framebuffer
from .decode import Instruction, decode, disassemble
from .registry import InstructionRegistry
from .cpu import Chip8
from .errors import (
    AddressError,
    Chip8Error,
    InvalidKeyError,
    ProgramTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)

__all__ = [
    "EmulatorConfig",
    "CPUState",
    "MachineStatus",
    "Memory",
    "Keypad",
    "Framebuffer",
    "Instruction",
    "decode",
    "disassemble",
    "InstructionRegistry",
    "Chip8",
    "Chip8Error",
    "AddressError",
    "InvalidKeyError",
    "ProgramTooLargeError",
    "StackOverflowError",
    "StackUnderflowError",
]

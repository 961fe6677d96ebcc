"""CPUState: register file, call stack and run state for the CHIP-8 VM.

State Components:
    - Registers: V0-VF (16 unsigned bytes); VF doubles as the flag register
    - Index: 16-bit address register (I)
    - PC: Program counter, byte-granular, 2 bytes per instruction
    - Stack: Return addresses pushed by CALL, popped by RET
    - Timers: Delay and sound timers (bytes, decremented at 60 Hz)
    - Status: IDLE, RUNNING, WAITING_FOR_KEY or HALTED
    - Cycle count: Total executed cycles

State is mutated in place by the instruction handlers; snapshot() gives a
detached copy for tracing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from .errors import StackOverflowError, StackUnderflowError
from .memory import PROGRAM_OFFSET


REGISTER_COUNT = 16
STACK_DEPTH = 16
FLAG_REGISTER = 0xF


class MachineStatus(Enum):
    """Run state of the interpreter."""
    IDLE = "idle"
    RUNNING = "running"
    WAITING_FOR_KEY = "waiting_for_key"
    HALTED = "halted"


@dataclass
class CPUState:
    """Mutable CPU state.

    Attributes:
        registers: numpy uint8 array holding V0-VF
        index: I register (kept to 16 bits)
        pc: Program counter
        stack: Return addresses, innermost call last
        delay_timer: Delay timer value (0-255)
        sound_timer: Sound timer value (0-255)
        status: Current MachineStatus
        cycle_count: Number of execution cycles completed
    """
    registers: np.ndarray = field(default_factory=lambda: np.zeros(REGISTER_COUNT, dtype=np.uint8))
    index: int = 0
    pc: int = PROGRAM_OFFSET
    stack: List[int] = field(default_factory=list)
    delay_timer: int = 0
    sound_timer: int = 0
    status: MachineStatus = MachineStatus.IDLE
    cycle_count: int = 0

    def snapshot(self) -> dict:
        """Create a detached snapshot of the current state for tracing.

        Returns:
            Dictionary with plain-int copies of all state components
        """
        return {
            "registers": [int(v) for v in self.registers],
            "index": self.index,
            "pc": self.pc,
            "stack": list(self.stack),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "status": self.status.value,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Exactly 16 registers
            - Index and PC fit in 16 bits, every stack entry too
            - Stack depth within STACK_DEPTH
            - Timers are bytes

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.registers) != REGISTER_COUNT:
            return False
        if not 0 <= self.index <= 0xFFFF or not 0 <= self.pc <= 0xFFFF:
            return False
        if len(self.stack) > STACK_DEPTH:
            return False
        if any(not 0 <= addr <= 0xFFFF for addr in self.stack):
            return False
        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False
        return self.cycle_count >= 0

    # =========================================================================
    # Registers
    # =========================================================================

    def get_register(self, reg: int) -> int:
        """Get value of VX.

        Raises:
            IndexError: If reg is not 0x0-0xF
        """
        if not 0 <= reg < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{reg}")
        return int(self.registers[reg])

    def set_register(self, reg: int, value: int) -> None:
        """Set VX, truncating value to 8 bits."""
        if not 0 <= reg < REGISTER_COUNT:
            raise IndexError(f"Invalid register: V{reg}")
        self.registers[reg] = value & 0xFF

    def set_flag(self, value: int) -> None:
        """Write VF. Flag-producing instructions call this last."""
        self.registers[FLAG_REGISTER] = 1 if value else 0

    def set_index(self, value: int) -> None:
        self.index = value & 0xFFFF

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0-VF."""
        return {f"V{i:X}": int(v) for i, v in enumerate(self.registers)}

    # =========================================================================
    # Program counter
    # =========================================================================

    def advance(self) -> None:
        """Move to the next instruction."""
        self.pc = (self.pc + 2) & 0xFFFF

    def skip(self, condition: bool) -> None:
        """Skip the next instruction when condition holds, else advance."""
        self.pc = (self.pc + (4 if condition else 2)) & 0xFFFF

    def jump(self, address: int) -> None:
        self.pc = address & 0xFFFF

    # =========================================================================
    # Call stack
    # =========================================================================

    def push(self, address: int) -> None:
        """Push a return address.

        Raises:
            StackOverflowError: If the stack already holds STACK_DEPTH entries
        """
        if len(self.stack) >= STACK_DEPTH:
            raise StackOverflowError(f"Call stack exceeded {STACK_DEPTH} entries")
        self.stack.append(address)

    def pop(self) -> int:
        """Pop the most recent return address.

        Raises:
            StackUnderflowError: If the stack is empty
        """
        if not self.stack:
            raise StackUnderflowError("Return with empty call stack")
        return self.stack.pop()

    # =========================================================================
    # Timers
    # =========================================================================

    def tick_timers(self) -> None:
        """Decrement both timers toward zero."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"V{i:X}={int(v):02X}" for i, v in enumerate(self.registers))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} "
            f"DT={self.delay_timer} ST={self.sound_timer} SP={len(self.stack)} "
            f"{regs} {self.status.value.upper()}"
        )


def create_initial_state(status: Optional[MachineStatus] = None) -> CPUState:
    """Create a fresh CPU state with PC at the program load offset.

    Args:
        status: Initial status (defaults to IDLE)

    Returns:
        Fresh CPUState
    """
    return CPUState(status=status or MachineStatus.IDLE)

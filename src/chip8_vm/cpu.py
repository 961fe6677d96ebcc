"""Chip8: machine orchestrator for the CHIP-8 VM.

Execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The host drives two independent cadences: cycle() for instructions
(config.cycles_per_frame per frame) and tick_timers() at a fixed 60 Hz.
run_frame() bundles one of each for headless hosts.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, Dict, Optional, Union

from .config import EmulatorConfig
from .decode import Instruction, decode
from .display import Framebuffer
from .errors import Chip8Error, ProgramTooLargeError
from .keypad import Keypad
from .memory import MAX_PROGRAM_SIZE, Memory
from .registry import InstructionRegistry, get_registry
from .state import CPUState, MachineStatus, create_initial_state


logger = logging.getLogger(__name__)


@dataclass
class TraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        pc: Address the opcode was fetched from
        instruction: Decoded instruction, or None if the fetch faulted
        pre_state: State before execution
        post_state: State after execution
        error: Error message if execution faulted
    """
    cycle: int
    pc: int
    instruction: Optional[Instruction]
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Chip8:
    """CHIP-8 interpreter.

    Attributes:
        config: EmulatorConfig steering frame pacing
        memory: 4KB Memory with the font preloaded
        state: CPUState (registers, stack, timers, status)
        keypad: Keypad written by the input collaborator
        framebuffer: Framebuffer read by the renderer
        registry: InstructionRegistry with the instruction handlers
        rng: Random source for CXNN
        trace: Recent TraceEntry objects when tracing is enabled
    """

    DEFAULT_TRACE_LENGTH = 1000

    def __init__(
        self,
        config: Optional[EmulatorConfig] = None,
        rng: Optional[random.Random] = None,
        trace: bool = False,
        trace_length: int = DEFAULT_TRACE_LENGTH,
    ):
        self.config = config or EmulatorConfig()
        self.rng = rng or random.Random()
        self.memory = Memory()
        self.keypad = Keypad()
        self.framebuffer = Framebuffer()
        self.registry: InstructionRegistry = get_registry()
        self.state: CPUState = create_initial_state()
        self.tracing = trace
        self.trace: Deque[TraceEntry] = deque(maxlen=trace_length)
        self.program_size = 0
        self.last_error: Optional[str] = None
        self.reset()

    def reset(self) -> None:
        """Return to IDLE with zeroed memory (font reloaded) and a clear screen."""
        self.memory.reset()
        self.memory.load_font()
        self.framebuffer.reset()
        self.keypad.reset()
        self.state = create_initial_state()
        self.trace.clear()
        self.program_size = 0
        self.last_error = None

    def load_program(self, program: bytes) -> None:
        """Reset the machine and load a program image at 0x200.

        Args:
            program: Raw program bytes

        Raises:
            ProgramTooLargeError: If the image exceeds 3584 bytes
        """
        program = bytes(program)
        if len(program) > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(
                f"Program is {len(program)} bytes, maximum is {MAX_PROGRAM_SIZE}"
            )
        self.reset()
        self.memory.load_program(program)
        self.program_size = len(program)
        self.state.status = MachineStatus.RUNNING
        logger.info("Loaded program: %d bytes", len(program))

    def load_rom(self, path: Union[str, Path]) -> None:
        """Load a program image from a file.

        Raises:
            FileNotFoundError: If path does not exist
            ProgramTooLargeError: If the file exceeds 3584 bytes
        """
        path = Path(path)
        size = path.stat().st_size
        if size > MAX_PROGRAM_SIZE:
            raise ProgramTooLargeError(
                f"{path.name} is {size} bytes, maximum is {MAX_PROGRAM_SIZE}"
            )
        logger.info("Loading ROM %s", path)
        self.load_program(path.read_bytes())

    def cycle(self) -> Instruction:
        """Execute a single fetch-decode-execute cycle.

        Returns:
            The decoded instruction that was executed

        Raises:
            RuntimeError: If no program is loaded or the machine is halted
            Chip8Error: On a fatal fault; the machine is HALTED first
        """
        status = self.state.status
        if status is MachineStatus.IDLE:
            raise RuntimeError("No program loaded")
        if status is MachineStatus.HALTED:
            raise RuntimeError("Machine is halted")

        pc = self.state.pc
        cycle_index = self.state.cycle_count
        pre_state = self.state.snapshot() if self.tracing else {}
        instruction: Optional[Instruction] = None
        try:
            # FETCH
            instruction = decode(self.memory.read_word(pc))
            # EXECUTE
            self.registry.execute(self, instruction)
        except Chip8Error as e:
            self.state.status = MachineStatus.HALTED
            self.last_error = str(e)
            stage = instruction.mnemonic() if instruction is not None else "fetch"
            logger.error("Fatal fault at PC=0x%03X (%s): %s", pc, stage, e)
            self._record(cycle_index, pc, instruction, pre_state, str(e))
            raise

        self._record(cycle_index, pc, instruction, pre_state)
        return instruction

    def _record(self, cycle: int, pc: int, instruction: Optional[Instruction], pre_state: dict, error: Optional[str] = None) -> None:
        if not self.tracing:
            return
        logger.debug("0x%03X: %s", pc, instruction)
        self.trace.append(TraceEntry(
            cycle=cycle,
            pc=pc,
            instruction=instruction,
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        ))

    def tick_timers(self) -> None:
        """Decrement delay and sound timers, each floored at zero."""
        self.state.tick_timers()

    def run_frame(self) -> int:
        """Run one frame: up to cycles_per_frame cycles, then one timer tick.

        Cycling stops early while the machine waits for a key, but the
        timers still tick.

        Returns:
            Number of cycles executed
        """
        executed = 0
        for _ in range(self.config.cycles_per_frame):
            self.cycle()
            executed += 1
            if self.state.status is MachineStatus.WAITING_FOR_KEY:
                break
        self.tick_timers()
        return executed

    def run(self, frames: int) -> int:
        """Run a number of frames.

        Returns:
            Total cycles executed
        """
        return sum(self.run_frame() for _ in range(frames))

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_register(self, reg: int) -> int:
        return self.state.get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_index(self) -> int:
        return self.state.index

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def is_halted(self) -> bool:
        return self.state.status is MachineStatus.HALTED

    def is_waiting(self) -> bool:
        return self.state.status is MachineStatus.WAITING_FOR_KEY

    @property
    def status(self) -> MachineStatus:
        return self.state.status

    @property
    def sound_active(self) -> bool:
        """True while the sound timer is nonzero."""
        return self.state.sound_timer > 0

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"[Cycle {entry.cycle}] 0x{entry.pc:03X}  {entry.instruction or '<fetch>'}  {status}")

            pre_regs = entry.pre_state.get("registers", [])
            post_regs = entry.post_state.get("registers", [])
            changes = [
                f"V{i:X}: {a:02X} -> {b:02X}"
                for i, (a, b) in enumerate(zip(pre_regs, post_regs)) if a != b
            ]
            if entry.pre_state.get("index") != entry.post_state.get("index"):
                changes.append(f"I: {entry.pre_state['index']:03X} -> {entry.post_state['index']:03X}")
            if changes:
                print(f"    {', '.join(changes)}")

        print("=" * 70)
        print(f"FINAL STATE: {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "status": self.state.status.value,
            "registers": self.dump_registers(),
            "index": self.state.index,
            "pc": self.state.pc,
            "stack_depth": len(self.state.stack),
            "delay_timer": self.state.delay_timer,
            "sound_timer": self.state.sound_timer,
            "program_size": self.program_size,
            "lit_pixels": self.framebuffer.lit_count(),
            "last_error": self.last_error,
        }

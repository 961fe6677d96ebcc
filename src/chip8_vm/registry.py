"""InstructionRegistry: execution primitives for the CHIP-8 instruction set.

Each decoded Instruction carries an operation key; the registry maps that
key to a handler ``(machine, instruction) -> None`` that mutates the
machine's state, memory and framebuffer.

Registry Keys:
    OP_CLS, OP_RET, OP_JP, OP_CALL, OP_JP_V0      Flow control
    OP_SE_IMM, OP_SNE_IMM, OP_SE_REG, OP_SNE_REG   Conditional skips
    OP_SKP, OP_SKNP                               Key-conditional skips
    OP_LD_IMM, OP_ADD_IMM, OP_LD_REG              Register loads
    OP_OR, OP_AND, OP_XOR                         Bitwise ALU
    OP_ADD_REG, OP_SUB, OP_SUBN, OP_SHR, OP_SHL   Flag-producing ALU
    OP_LD_I, OP_ADD_I_VX, OP_LD_F_VX              Index register
    OP_RND, OP_DRW                                Random, sprite draw
    OP_LD_VX_DT, OP_LD_DT_VX, OP_LD_ST_VX         Timers
    OP_LD_VX_K                                    Wait for key
    OP_LD_B_VX, OP_LD_MEM_VX, OP_LD_VX_MEM        Memory transfer
    OP_UNKNOWN                                    Logged no-op

Flag-producing handlers read every source operand before writing, and
write VF after VX, so VX or VY may alias VF.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, Optional

from .decode import Instruction
from .memory import FONT_GLYPH_SIZE, FONT_OFFSET
from .state import MachineStatus

if TYPE_CHECKING:
    from .cpu import Chip8


logger = logging.getLogger(__name__)

Handler = Callable[["Chip8", Instruction], None]


class InstructionRegistry:
    """Frozen registry of instruction handlers.

    Attributes:
        _handlers: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        # Flow control
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_IMM", self._op_se_imm)
        self.register("OP_SNE_IMM", self._op_sne_imm)
        self.register("OP_SE_REG", self._op_se_reg)
        self.register("OP_SNE_REG", self._op_sne_reg)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Register loads
        self.register("OP_LD_IMM", self._op_ld_imm)
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_LD_REG", self._op_ld_reg)

        # ALU
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)

        # Index register
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I_VX", self._op_add_i_vx)
        self.register("OP_LD_F_VX", self._op_ld_f_vx)

        # Random and display
        self.register("OP_RND", self._op_rnd)
        self.register("OP_DRW", self._op_drw)

        # Timers and input
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)
        self.register("OP_LD_VX_K", self._op_ld_vx_k)

        # Memory transfer
        self.register("OP_LD_B_VX", self._op_ld_b_vx)
        self.register("OP_LD_MEM_VX", self._op_ld_mem_vx)
        self.register("OP_LD_VX_MEM", self._op_ld_vx_mem)

        self.register("OP_UNKNOWN", self._op_unknown)

    def register(self, key: str, handler: Handler) -> None:
        """Register an instruction handler.

        Args:
            key: Operation key (e.g., "OP_ADD_REG")
            handler: Function that takes (machine, instruction) and mutates the machine

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if key in self._handlers:
            raise ValueError(f"Handler already registered: {key}")
        self._handlers[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all registered operation keys."""
        return set(self._handlers.keys())

    def execute(self, machine: "Chip8", instruction: Instruction) -> None:
        """Execute a decoded instruction against a machine.

        Raises:
            KeyError: If the instruction key is not registered
        """
        if instruction.key not in self._handlers:
            raise KeyError(f"Unknown operation key: {instruction.key}")

        self._handlers[instruction.key](machine, instruction)
        machine.state.cycle_count += 1

    # =========================================================================
    # Flow Control
    # =========================================================================

    def _op_cls(self, machine: "Chip8", ins: Instruction) -> None:
        """00E0 - Clear the framebuffer."""
        machine.framebuffer.clear()
        machine.state.advance()

    def _op_ret(self, machine: "Chip8", ins: Instruction) -> None:
        """00EE - Return to the instruction after the matching CALL.

        Raises:
            StackUnderflowError: If the call stack is empty
        """
        machine.state.jump(machine.state.pop())
        machine.state.advance()

    def _op_jp(self, machine: "Chip8", ins: Instruction) -> None:
        """1NNN - Jump to NNN."""
        machine.state.jump(ins.nnn)

    def _op_call(self, machine: "Chip8", ins: Instruction) -> None:
        """2NNN - Push PC and jump to NNN.

        The CALL's own address is pushed; RET adds 2 after popping.
        """
        machine.state.push(machine.state.pc)
        machine.state.jump(ins.nnn)

    def _op_jp_v0(self, machine: "Chip8", ins: Instruction) -> None:
        """BNNN - Jump to NNN + V0."""
        machine.state.jump(ins.nnn + machine.state.get_register(0))

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _op_se_imm(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.skip(state.get_register(ins.x) == ins.nn)

    def _op_sne_imm(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.skip(state.get_register(ins.x) != ins.nn)

    def _op_se_reg(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.skip(state.get_register(ins.x) == state.get_register(ins.y))

    def _op_sne_reg(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.skip(state.get_register(ins.x) != state.get_register(ins.y))

    def _op_skp(self, machine: "Chip8", ins: Instruction) -> None:
        """EX9E - Skip if key VX is pressed."""
        machine.state.skip(machine.keypad.is_pressed(machine.state.get_register(ins.x)))

    def _op_sknp(self, machine: "Chip8", ins: Instruction) -> None:
        """EXA1 - Skip if key VX is not pressed."""
        machine.state.skip(not machine.keypad.is_pressed(machine.state.get_register(ins.x)))

    # =========================================================================
    # Register Loads
    # =========================================================================

    def _op_ld_imm(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.set_register(ins.x, ins.nn)
        machine.state.advance()

    def _op_add_imm(self, machine: "Chip8", ins: Instruction) -> None:
        """7XNN - VX += NN modulo 256; VF untouched."""
        state = machine.state
        state.set_register(ins.x, state.get_register(ins.x) + ins.nn)
        state.advance()

    def _op_ld_reg(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.set_register(ins.x, state.get_register(ins.y))
        state.advance()

    # =========================================================================
    # ALU
    # =========================================================================

    def _op_or(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.set_register(ins.x, state.get_register(ins.x) | state.get_register(ins.y))
        state.advance()

    def _op_and(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.set_register(ins.x, state.get_register(ins.x) & state.get_register(ins.y))
        state.advance()

    def _op_xor(self, machine: "Chip8", ins: Instruction) -> None:
        state = machine.state
        state.set_register(ins.x, state.get_register(ins.x) ^ state.get_register(ins.y))
        state.advance()

    def _op_add_reg(self, machine: "Chip8", ins: Instruction) -> None:
        """8XY4 - VX += VY; VF = 1 if the unsigned sum exceeds 255."""
        state = machine.state
        total = state.get_register(ins.x) + state.get_register(ins.y)
        state.set_register(ins.x, total)
        state.set_flag(total > 0xFF)
        state.advance()

    def _op_sub(self, machine: "Chip8", ins: Instruction) -> None:
        """8XY5 - VX -= VY; VF = 1 when VX >= VY (no borrow)."""
        state = machine.state
        vx = state.get_register(ins.x)
        vy = state.get_register(ins.y)
        state.set_register(ins.x, vx - vy)
        state.set_flag(vx >= vy)
        state.advance()

    def _op_shr(self, machine: "Chip8", ins: Instruction) -> None:
        """8XY6 - VX >>= 1; VF = evicted low bit. VY is ignored."""
        state = machine.state
        vx = state.get_register(ins.x)
        state.set_register(ins.x, vx >> 1)
        state.set_flag(vx & 0x1)
        state.advance()

    def _op_subn(self, machine: "Chip8", ins: Instruction) -> None:
        """8XY7 - VX = VY - VX; VF = 1 when VY >= VX (no borrow)."""
        state = machine.state
        vx = state.get_register(ins.x)
        vy = state.get_register(ins.y)
        state.set_register(ins.x, vy - vx)
        state.set_flag(vy >= vx)
        state.advance()

    def _op_shl(self, machine: "Chip8", ins: Instruction) -> None:
        """8XYE - VX <<= 1; VF = evicted high bit. VY is ignored."""
        state = machine.state
        vx = state.get_register(ins.x)
        state.set_register(ins.x, vx << 1)
        state.set_flag(vx >> 7)
        state.advance()

    # =========================================================================
    # Index Register
    # =========================================================================

    def _op_ld_i(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.set_index(ins.nnn)
        machine.state.advance()

    def _op_add_i_vx(self, machine: "Chip8", ins: Instruction) -> None:
        """FX1E - I += VX; VF untouched."""
        state = machine.state
        state.set_index(state.index + state.get_register(ins.x))
        state.advance()

    def _op_ld_f_vx(self, machine: "Chip8", ins: Instruction) -> None:
        """FX29 - Point I at the font glyph for VX."""
        state = machine.state
        state.set_index(FONT_OFFSET + state.get_register(ins.x) * FONT_GLYPH_SIZE)
        state.advance()

    # =========================================================================
    # Random and Display
    # =========================================================================

    def _op_rnd(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.set_register(ins.x, machine.rng.randint(0, 0xFF) & ins.nn)
        machine.state.advance()

    def _op_drw(self, machine: "Chip8", ins: Instruction) -> None:
        """DXYN - XOR-draw an N-row sprite from I at (VX, VY).

        VF = 1 if any lit pixel was turned off. I is unchanged.
        """
        state = machine.state
        x = state.get_register(ins.x)
        y = state.get_register(ins.y)
        rows = machine.memory.read_block(state.index, ins.n)
        collision = machine.framebuffer.draw_sprite(x, y, rows)
        state.set_flag(collision)
        state.advance()

    # =========================================================================
    # Timers and Input
    # =========================================================================

    def _op_ld_vx_dt(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.set_register(ins.x, machine.state.delay_timer)
        machine.state.advance()

    def _op_ld_dt_vx(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.delay_timer = machine.state.get_register(ins.x)
        machine.state.advance()

    def _op_ld_st_vx(self, machine: "Chip8", ins: Instruction) -> None:
        machine.state.sound_timer = machine.state.get_register(ins.x)
        machine.state.advance()

    def _op_ld_vx_k(self, machine: "Chip8", ins: Instruction) -> None:
        """FX0A - Wait for a key, store the lowest pressed key in VX.

        With no key down the machine enters WAITING_FOR_KEY and PC stays on
        this instruction, so the next cycle polls again.
        """
        state = machine.state
        key = machine.keypad.lowest_pressed()
        if key is None:
            if state.status is not MachineStatus.WAITING_FOR_KEY:
                logger.debug("Waiting for key at PC=0x%03X", state.pc)
            state.status = MachineStatus.WAITING_FOR_KEY
            return
        state.set_register(ins.x, key)
        state.status = MachineStatus.RUNNING
        state.advance()

    # =========================================================================
    # Memory Transfer
    # =========================================================================

    def _op_ld_b_vx(self, machine: "Chip8", ins: Instruction) -> None:
        """FX33 - Store decimal digits of VX at I, I+1, I+2."""
        state = machine.state
        value = state.get_register(ins.x)
        machine.memory.load((value // 100, value // 10 % 10, value % 10), state.index)
        state.advance()

    def _op_ld_mem_vx(self, machine: "Chip8", ins: Instruction) -> None:
        """FX55 - Store V0..VX at I; I advances by X+1."""
        state = machine.state
        # load() checks the whole range before copying
        machine.memory.load(state.registers[:ins.x + 1].tobytes(), state.index)
        state.set_index(state.index + ins.x + 1)
        state.advance()

    def _op_ld_vx_mem(self, machine: "Chip8", ins: Instruction) -> None:
        """FX65 - Load V0..VX from I; I advances by X+1."""
        state = machine.state
        block = machine.memory.read_block(state.index, ins.x + 1)
        for i, value in enumerate(block):
            state.set_register(i, value)
        state.set_index(state.index + ins.x + 1)
        state.advance()

    # =========================================================================
    # Unknown
    # =========================================================================

    def _op_unknown(self, machine: "Chip8", ins: Instruction) -> None:
        """Unsupported opcode: log and continue as a no-op."""
        logger.warning("Unknown opcode 0x%04X at PC=0x%03X", ins.opcode, machine.state.pc)
        machine.state.advance()


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry

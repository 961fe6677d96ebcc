"""Tests for instruction semantics executed through Chip8.cycle()."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8, MachineStatus
from chip8_vm.errors import AddressError, InvalidKeyError, StackOverflowError, StackUnderflowError

from conftest import FixedRandom, words_to_bytes


def execute(load, opcode, **registers):
    """Load a single opcode, preset registers (v0=..., vf=...), run one cycle."""
    machine = load(opcode)
    for name, value in registers.items():
        machine.state.set_register(int(name[1:], 16), value)
    machine.cycle()
    return machine


class TestFlowControl:
    """Jumps, calls and returns."""

    def test_jump(self, load):
        machine = load(0x1345)
        machine.cycle()
        assert machine.get_pc() == 0x345

    def test_call_pushes_and_jumps(self, load):
        machine = load(0x2208)
        machine.cycle()
        assert machine.get_pc() == 0x208
        assert machine.state.stack == [0x200]

    def test_call_return_round_trip(self, load):
        """RET lands on the instruction after the CALL."""
        machine = load(0x2204, 0x1202, 0x00EE)
        machine.cycle()
        machine.cycle()
        assert machine.get_pc() == 0x202
        assert machine.state.stack == []

    def test_jump_plus_v0(self, load):
        machine = execute(load, 0xB300, v0=0x04)
        assert machine.get_pc() == 0x304

    def test_return_with_empty_stack_halts(self, load):
        machine = load(0x00EE)
        with pytest.raises(StackUnderflowError):
            machine.cycle()
        assert machine.is_halted()
        assert machine.last_error is not None

    def test_halted_machine_refuses_cycles(self, load):
        machine = load(0x00EE)
        with pytest.raises(StackUnderflowError):
            machine.cycle()
        with pytest.raises(RuntimeError, match="halted"):
            machine.cycle()

    def test_recursion_overflows_stack(self, load):
        """A subroutine calling itself faults on the 17th call."""
        machine = load(0x2200)
        for _ in range(16):
            machine.cycle()
        with pytest.raises(StackOverflowError):
            machine.cycle()
        assert machine.is_halted()


class TestConditionalSkips:
    """3XNN, 4XNN, 5XY0, 9XY0."""

    @pytest.mark.parametrize("opcode,v1,v2,expected_pc", [
        (0x3142, 0x42, 0, 0x204),
        (0x3142, 0x41, 0, 0x202),
        (0x4142, 0x42, 0, 0x202),
        (0x4142, 0x41, 0, 0x204),
        (0x5120, 7, 7, 0x204),
        (0x5120, 7, 8, 0x202),
        (0x9120, 7, 7, 0x202),
        (0x9120, 7, 8, 0x204),
    ])
    def test_skip(self, load, opcode, v1, v2, expected_pc):
        machine = execute(load, opcode, v1=v1, v2=v2)
        assert machine.get_pc() == expected_pc


class TestRegisterLoads:
    """6XNN, 7XNN, 8XY0."""

    def test_load_immediate(self, load):
        machine = execute(load, 0x6A42)
        assert machine.get_register(0xA) == 0x42
        assert machine.get_pc() == 0x202

    def test_add_immediate_wraps_without_flag(self, load):
        machine = execute(load, 0x71_02, v1=0xFF, vf=0xAB)
        assert machine.get_register(1) == 0x01
        assert machine.get_register(0xF) == 0xAB

    def test_copy_register(self, load):
        machine = execute(load, 0x8120, v2=0x99)
        assert machine.get_register(1) == 0x99


class TestBitwise:
    """8XY1-8XY3 leave VF alone."""

    @pytest.mark.parametrize("opcode,expected", [
        (0x8121, 0b1110),
        (0x8122, 0b1000),
        (0x8123, 0b0110),
    ])
    def test_logic(self, load, opcode, expected):
        machine = execute(load, opcode, v1=0b1100, v2=0b1010, vf=0x55)
        assert machine.get_register(1) == expected
        assert machine.get_register(0xF) == 0x55


class TestArithmeticFlags:
    """8XY4-8XYE flag conventions, including VF aliasing."""

    @pytest.mark.parametrize("vx,vy,result,flag", [
        (200, 55, 255, 0),
        (200, 56, 0, 1),
        (0xFF, 0xFF, 0xFE, 1),
        (0, 0, 0, 0),
        (0, 0xFF, 0xFF, 0),
    ])
    def test_add_carry(self, load, vx, vy, result, flag):
        machine = execute(load, 0x8124, v1=vx, v2=vy)
        assert machine.get_register(1) == result
        assert machine.get_register(0xF) == flag

    @pytest.mark.parametrize("vx,vy,result,flag", [
        (10, 3, 7, 1),
        (5, 5, 0, 1),
        (4, 5, 0xFF, 0),
        (0, 0xFF, 0x01, 0),
        (0xFF, 0, 0xFF, 1),
    ])
    def test_sub_no_borrow_flag(self, load, vx, vy, result, flag):
        machine = execute(load, 0x8125, v1=vx, v2=vy)
        assert machine.get_register(1) == result
        assert machine.get_register(0xF) == flag

    @pytest.mark.parametrize("vx,vy,result,flag", [
        (3, 10, 7, 1),
        (5, 5, 0, 1),
        (10, 3, 0xF9, 0),
        (0xFF, 0, 0x01, 0),
    ])
    def test_subn_no_borrow_flag(self, load, vx, vy, result, flag):
        machine = execute(load, 0x8127, v1=vx, v2=vy)
        assert machine.get_register(1) == result
        assert machine.get_register(0xF) == flag

    @pytest.mark.parametrize("vx,result,flag", [
        (0x05, 0x02, 1),
        (0x04, 0x02, 0),
        (0x01, 0x00, 1),
    ])
    def test_shift_right(self, load, vx, result, flag):
        machine = execute(load, 0x8126, v1=vx, v2=0xFF)
        assert machine.get_register(1) == result
        assert machine.get_register(0xF) == flag

    @pytest.mark.parametrize("vx,result,flag", [
        (0x81, 0x02, 1),
        (0x41, 0x82, 0),
        (0x80, 0x00, 1),
    ])
    def test_shift_left(self, load, vx, result, flag):
        machine = execute(load, 0x812E, v1=vx, v2=0)
        assert machine.get_register(1) == result
        assert machine.get_register(0xF) == flag

    def test_add_same_register(self, load):
        machine = execute(load, 0x8114, v1=0x80)
        assert machine.get_register(1) == 0
        assert machine.get_register(0xF) == 1

    def test_sub_same_register(self, load):
        machine = execute(load, 0x8115, v1=0x07)
        assert machine.get_register(1) == 0
        assert machine.get_register(0xF) == 1

    def test_add_into_vf_keeps_flag(self, load):
        """With X = F the flag write wins over the sum."""
        machine = execute(load, 0x8F14, vf=0x10, v1=0x20)
        assert machine.get_register(0xF) == 0

    def test_add_vf_as_source(self, load):
        """VY = VF is read before the flag write."""
        machine = execute(load, 0x81F4, v1=0x02, vf=0xFF)
        assert machine.get_register(1) == 0x01
        assert machine.get_register(0xF) == 1

    def test_sub_into_vf(self, load):
        machine = execute(load, 0x8F15, vf=10, v1=3)
        assert machine.get_register(0xF) == 1

    def test_shift_right_vf(self, load):
        machine = execute(load, 0x8F06, vf=0x02)
        assert machine.get_register(0xF) == 0

    def test_shift_left_vf(self, load):
        machine = execute(load, 0x8F0E, vf=0x80)
        assert machine.get_register(0xF) == 1

    @pytest.mark.parametrize("low,reference", [
        (0x4, lambda vx, vy: (vx + vy, vx + vy > 0xFF)),
        (0x5, lambda vx, vy: (vx - vy, vx >= vy)),
        (0x6, lambda vx, vy: (vx >> 1, vx & 0x1)),
        (0x7, lambda vx, vy: (vy - vx, vy >= vx)),
        (0xE, lambda vx, vy: (vx << 1, vx >> 7)),
    ])
    def test_flag_ops_across_register_pairs(self, load, low, reference):
        """Every X/Y pair, VF included, writes the flag after the result."""
        for x in range(16):
            for y in range(16):
                machine = load(0x8000 | (x << 8) | (y << 4) | low)
                machine.state.set_register(x, 0xF1)
                machine.state.set_register(y, 0x20)
                machine.cycle()
                vx = 0x20 if x == y else 0xF1
                result, flag = reference(vx, 0x20)
                if x != 0xF:
                    assert machine.get_register(x) == result & 0xFF, (x, y)
                assert machine.get_register(0xF) == int(flag), (x, y)


class TestIndexRegister:
    """ANNN, FX1E, FX29."""

    def test_load_index(self, load):
        machine = execute(load, 0xA2F0)
        assert machine.get_index() == 0x2F0

    def test_add_to_index_leaves_vf(self, load):
        machine = load(0xA300, 0xF11E)
        machine.state.set_register(1, 0x10)
        machine.state.set_register(0xF, 0x77)
        machine.cycle()
        machine.cycle()
        assert machine.get_index() == 0x310
        assert machine.get_register(0xF) == 0x77

    def test_add_to_index_is_not_masked_to_12_bits(self, load):
        machine = load(0xAFFF, 0xF11E)
        machine.state.set_register(1, 0x02)
        machine.cycle()
        machine.cycle()
        assert machine.get_index() == 0x1001

    def test_font_glyph_address(self, load):
        machine = execute(load, 0xF129, v1=0xA)
        assert machine.get_index() == 50


class TestRandom:
    """CXNN masks the random byte."""

    def test_random_masked(self):
        machine = Chip8(rng=FixedRandom(0xAB))
        machine.load_program(bytes([0xC1, 0x0F]))
        machine.cycle()
        assert machine.get_register(1) == 0x0B


class TestDraw:
    """DXYN sprite drawing."""

    def test_draw_font_glyph(self, load):
        machine = load(0xA000, 0xD015)
        machine.cycle()
        machine.cycle()
        fb = machine.framebuffer
        assert [fb.get_pixel(x, 0) for x in range(8)] == [1, 1, 1, 1, 0, 0, 0, 0]
        assert fb.get_pixel(0, 1) == 1
        assert fb.get_pixel(3, 1) == 1
        assert fb.get_pixel(1, 1) == 0
        assert machine.get_register(0xF) == 0
        assert fb.needs_redraw is True

    def test_draw_twice_erases_and_collides(self, load):
        machine = load(0xA000, 0xD015, 0xD015)
        for _ in range(2):
            machine.cycle()
        assert machine.get_register(0xF) == 0
        assert machine.framebuffer.lit_count() > 0
        machine.cycle()
        assert machine.framebuffer.lit_count() == 0
        assert machine.get_register(0xF) == 1

    def test_draw_wraps_horizontally(self, load):
        machine = load(0xA300, 0xD011)
        machine.memory.write(0x300, 0xFF)
        machine.state.set_register(0, 60)
        machine.cycle()
        machine.cycle()
        fb = machine.framebuffer
        for x in list(range(60, 64)) + list(range(0, 4)):
            assert fb.get_pixel(x, 0) == 1
        assert fb.get_pixel(4, 0) == 0
        assert fb.lit_count() == 8

    def test_draw_wraps_vertically(self, load):
        machine = load(0xA300, 0xD012)
        machine.memory.write(0x300, 0x80)
        machine.memory.write(0x301, 0x80)
        machine.state.set_register(1, 31)
        machine.cycle()
        machine.cycle()
        assert machine.framebuffer.get_pixel(0, 31) == 1
        assert machine.framebuffer.get_pixel(0, 0) == 1

    def test_draw_coordinates_wrap_modulo_screen(self, load):
        machine = load(0xA300, 0xD011)
        machine.memory.write(0x300, 0x80)
        machine.state.set_register(0, 64 + 5)
        machine.state.set_register(1, 32 + 2)
        machine.cycle()
        machine.cycle()
        assert machine.framebuffer.get_pixel(5, 2) == 1

    def test_draw_leaves_index(self, load):
        machine = load(0xA000, 0xD015)
        machine.cycle()
        machine.cycle()
        assert machine.get_index() == 0

    def test_clear_screen(self, load):
        machine = load(0xA000, 0xD015, 0x00E0)
        for _ in range(2):
            machine.cycle()
        machine.framebuffer.consume_redraw()
        machine.cycle()
        assert machine.framebuffer.lit_count() == 0
        assert machine.framebuffer.needs_redraw is True


class TestKeys:
    """EX9E, EXA1, FX0A."""

    def test_skip_if_pressed(self, load):
        machine = load(0xE19E)
        machine.state.set_register(1, 0xB)
        machine.keypad.press(0xB)
        machine.cycle()
        assert machine.get_pc() == 0x204

    def test_skip_if_not_pressed(self, load):
        machine = load(0xE1A1)
        machine.state.set_register(1, 0xB)
        machine.cycle()
        assert machine.get_pc() == 0x204

    def test_no_skip_if_not_pressed(self, load):
        machine = load(0xE19E)
        machine.state.set_register(1, 0xB)
        machine.cycle()
        assert machine.get_pc() == 0x202

    @pytest.mark.parametrize("opcode", [0xE19E, 0xE1A1])
    def test_key_value_above_0xf_halts(self, load, opcode):
        """VX = 0x15 is not an alias for key 5."""
        machine = load(opcode)
        machine.state.set_register(1, 0x15)
        machine.keypad.press(0x5)
        with pytest.raises(InvalidKeyError):
            machine.cycle()
        assert machine.is_halted()
        assert machine.get_pc() == 0x200

    def test_wait_for_key_blocks(self, load):
        machine = load(0xF30A)
        for _ in range(3):
            machine.cycle()
            assert machine.get_pc() == 0x200
            assert machine.status is MachineStatus.WAITING_FOR_KEY

    def test_wait_for_key_resumes_with_lowest_key(self, load):
        machine = load(0xF30A)
        machine.cycle()
        machine.keypad.press(0xB)
        machine.keypad.press(0x4)
        machine.cycle()
        assert machine.get_register(3) == 0x4
        assert machine.get_pc() == 0x202
        assert machine.status is MachineStatus.RUNNING

    def test_wait_for_key_with_key_already_down(self, load):
        machine = load(0xF30A)
        machine.keypad.press(0x0)
        machine.cycle()
        assert machine.get_register(3) == 0x0
        assert machine.get_pc() == 0x202


class TestTimers:
    """FX07, FX15, FX18 and the timer tick."""

    def test_set_and_read_delay(self, load):
        machine = load(0xF115, 0xF207)
        machine.state.set_register(1, 9)
        machine.cycle()
        machine.cycle()
        assert machine.state.delay_timer == 9
        assert machine.get_register(2) == 9

    def test_set_sound(self, load):
        machine = execute(load, 0xF118, v1=4)
        assert machine.state.sound_timer == 4
        assert machine.sound_active is True

    def test_timer_decay(self, load):
        machine = execute(load, 0xF115, v1=5)
        for _ in range(5):
            machine.tick_timers()
        assert machine.state.delay_timer == 0
        machine.tick_timers()
        assert machine.state.delay_timer == 0

    def test_cycles_do_not_tick_timers(self, load):
        machine = load(0xF115, 0x1202)
        machine.state.set_register(1, 5)
        for _ in range(10):
            machine.cycle()
        assert machine.state.delay_timer == 5


class TestMemoryTransfer:
    """FX33, FX55, FX65."""

    @pytest.mark.parametrize("value,digits", [
        (255, [2, 5, 5]),
        (0, [0, 0, 0]),
        (7, [0, 0, 7]),
        (120, [1, 2, 0]),
    ])
    def test_bcd(self, load, value, digits):
        machine = load(0xA300, 0xF133)
        machine.state.set_register(1, value)
        machine.cycle()
        machine.cycle()
        assert [machine.memory.read(0x300 + i) for i in range(3)] == digits
        assert machine.get_index() == 0x300

    def test_store_load_round_trip(self, load):
        machine = load(0xA300, 0xF555, 0xA300, 0xF565)
        values = [0x11, 0x22, 0x33, 0x44, 0x55, 0x66]
        for i, value in enumerate(values):
            machine.state.set_register(i, value)
        machine.state.set_register(6, 0x77)

        machine.cycle()
        machine.cycle()
        assert machine.get_index() == 0x306
        assert machine.memory.read_block(0x300, 7) == bytes(values) + b"\x00"

        machine.state.registers[:] = 0
        machine.cycle()
        machine.cycle()
        assert [machine.get_register(i) for i in range(6)] == values
        assert machine.get_register(6) == 0
        assert machine.get_index() == 0x306

    def test_store_past_end_of_memory_halts(self, load):
        machine = load(0xAFFF, 0xF155)
        machine.cycle()
        with pytest.raises(AddressError):
            machine.cycle()
        assert machine.is_halted()

    def test_store_past_end_leaves_memory_untouched(self, load):
        machine = load(0xAFFE, 0xF355)
        for i, value in enumerate((0x11, 0x22, 0x33, 0x44)):
            machine.state.set_register(i, value)
        machine.cycle()
        with pytest.raises(AddressError):
            machine.cycle()
        assert machine.memory.read_block(0xFFE, 2) == b"\x00\x00"
        assert machine.get_index() == 0xFFE

    def test_load_past_end_leaves_registers_untouched(self, load):
        machine = load(0xAFFE, 0xF365)
        machine.memory.write(0xFFE, 0x99)
        machine.memory.write(0xFFF, 0x98)
        machine.cycle()
        with pytest.raises(AddressError):
            machine.cycle()
        assert machine.get_register(0) == 0
        assert machine.get_register(1) == 0
        assert machine.get_index() == 0xFFE

    def test_bcd_past_end_leaves_memory_untouched(self, load):
        machine = load(0xAFFE, 0xF133)
        machine.state.set_register(1, 123)
        machine.cycle()
        with pytest.raises(AddressError):
            machine.cycle()
        assert machine.memory.read_block(0xFFE, 2) == b"\x00\x00"


class TestUnknownOpcodes:
    """Unknown opcodes are logged no-ops."""

    @pytest.mark.parametrize("opcode", [0x0123, 0x5121, 0x812F, 0xF1FF])
    def test_unknown_is_noop(self, load, caplog, opcode):
        machine = load(opcode)
        before = machine.dump_registers()
        with caplog.at_level(logging.WARNING, logger="chip8_vm.registry"):
            machine.cycle()
        assert machine.get_pc() == 0x202
        assert machine.dump_registers() == before
        assert machine.status is MachineStatus.RUNNING
        assert f"0x{opcode:04X}" in caplog.text


class TestFetch:
    """Fetch edge cases."""

    def test_pc_past_memory_halts(self, load):
        machine = load(0x1FFF)
        machine.cycle()
        with pytest.raises(AddressError):
            machine.cycle()
        assert machine.is_halted()

    def test_fetch_fault_logged_as_fetch(self, caplog):
        machine = Chip8(trace=True)
        machine.load_program(words_to_bytes(0x1FFF))
        machine.cycle()
        with caplog.at_level(logging.ERROR, logger="chip8_vm.cpu"):
            with pytest.raises(AddressError):
                machine.cycle()
        assert "(fetch)" in caplog.text
        assert "DW 0x0000" not in caplog.text
        assert machine.trace[-1].instruction is None
        assert machine.trace[-1].error is not None

    def test_idle_machine_refuses_cycles(self, machine):
        with pytest.raises(RuntimeError, match="No program loaded"):
            machine.cycle()

    def test_cycle_returns_instruction(self, load):
        machine = load(0x6A01)
        assert machine.cycle().key == "OP_LD_IMM"
        assert machine.get_cycle_count() == 1

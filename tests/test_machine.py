import numpy as np
import pytest

from chip8vm.errors import (
    DecodeError,
    KeyIndexError,
    MachineHaltedError,
    MemoryAccessError,
    RomTooLargeError,
    StackUnderflowError,
)
from chip8vm.machine import (
    CHIP8_FONT,
    DISPLAY_PIXELS,
    MAX_PROGRAM_SIZE,
    MEMORY_SIZE,
    PROGRAM_START,
    Machine,
    read_rom,
)

from conftest import words_to_bytes


def assert_same_state(a, b):
    assert np.array_equal(a.memory, b.memory)
    assert np.array_equal(a.display, b.display)
    assert np.array_equal(a.registers, b.registers)
    assert np.array_equal(a.stack, b.stack)
    assert np.array_equal(a.keypad, b.keypad)
    assert a.index_register == b.index_register
    assert a.program_counter == b.program_counter
    assert a.stack_pointer == b.stack_pointer
    assert a.delay_timer == b.delay_timer
    assert a.sound_timer == b.sound_timer
    assert a.waiting_for_key == b.waiting_for_key
    assert a.crashed == b.crashed


def test_initial_state(machine):
    assert machine.program_counter == PROGRAM_START
    assert list(machine.memory[:80]) == list(CHIP8_FONT)
    assert not machine.memory[80:].any()
    assert not machine.registers.any()
    assert machine.stack_pointer == 0


def test_load_copies_program(machine):
    machine.load(bytes([0x12, 0x34, 0x56]))
    assert list(machine.memory[PROGRAM_START:PROGRAM_START + 4]) == [0x12, 0x34, 0x56, 0]


def test_load_accepts_numpy_and_lists(machine):
    machine.load(np.array([0xA2, 0x0A], dtype=np.uint8))
    assert machine.memory[PROGRAM_START] == 0xA2
    machine.load([0x60, 0x01])
    assert machine.memory[PROGRAM_START + 1] == 0x01


def test_load_largest_program(machine):
    machine.load(bytes([0xAB]) * MAX_PROGRAM_SIZE)
    assert machine.memory[MEMORY_SIZE - 1] == 0xAB


def test_load_rejects_oversized_program(machine):
    with pytest.raises(RomTooLargeError):
        machine.load(bytes(MAX_PROGRAM_SIZE + 1))


def test_reset_restores_fresh_state(run_program, machine):
    run_program(
        0x6A33,  # VA = 0x33
        0xA300,  # I = 0x300
        0xFA33,  # BCD
        0xFA15,  # DT = VA
        0xFA18,  # ST = VA
        0x2210,  # CALL 0x210
        steps=6,
    )
    machine.memory[0x210:0x212] = [0xD0, 0x05]
    machine.step()
    machine.set_key(3, True)
    assert machine.display.any()

    machine.reset()
    assert_same_state(machine, Machine(seed=1234))


def test_three_step_program(run_program):
    m = run_program(0x600A, 0x6105, 0x8014)
    assert (m.registers[0], m.registers[0xF], m.program_counter) == (15, 0, 518)


def test_key_wait_stalls_until_pressed(run_program, machine):
    run_program(0xF50A, steps=1)
    assert machine.waiting_for_key
    assert machine.program_counter == PROGRAM_START
    for _ in range(5):
        machine.step()
        assert machine.program_counter == PROGRAM_START

    machine.set_key(0xC, True)
    machine.set_key(0x7, True)
    machine.step()
    assert not machine.waiting_for_key
    assert machine.registers[5] == 0x7
    assert machine.program_counter == PROGRAM_START + 2


def test_key_wait_with_key_already_down(run_program, machine):
    machine.set_key(0x2, True)
    run_program(0xF30A)
    assert machine.registers[3] == 0x2
    assert machine.program_counter == PROGRAM_START + 2
    assert not machine.waiting_for_key


def test_key_wait_resumes_with_next_instruction(run_program, machine):
    run_program(0xF00A, 0x6142, steps=3)
    machine.set_key(0, True)
    machine.step()
    machine.step()
    assert machine.registers[0] == 0
    assert machine.registers[1] == 0x42
    assert machine.program_counter == PROGRAM_START + 4


def test_timers_keep_running_while_waiting(run_program, machine):
    machine.delay_timer = 3
    run_program(0xF00A, steps=2)
    machine.tick_timers()
    assert machine.delay_timer == 2


def test_timer_tick_stops_at_zero(machine):
    machine.delay_timer = 2
    machine.sound_timer = 1
    assert machine.sound_active
    machine.tick_timers()
    assert (machine.delay_timer, machine.sound_timer) == (1, 0)
    assert not machine.sound_active
    machine.tick_timers()
    machine.tick_timers()
    assert (machine.delay_timer, machine.sound_timer) == (0, 0)


def test_set_key_validates_index(machine):
    machine.set_key(0xF, True)
    assert machine.keypad[0xF]
    machine.set_key(0xF, False)
    assert not machine.keypad[0xF]
    with pytest.raises(KeyIndexError):
        machine.set_key(16, True)
    with pytest.raises(KeyIndexError):
        machine.set_key(-1, True)
    assert not machine.crashed


def test_get_display_is_flat_read_only_view(machine):
    view = machine.get_display()
    assert view.shape == (DISPLAY_PIXELS,)
    with pytest.raises(ValueError):
        view[0] = True
    machine.display[1, 2] = True
    assert view[1 * 64 + 2]


def test_decode_error_reports_address(machine):
    machine.load(words_to_bytes(0x6000, 0x0123))
    machine.step()
    with pytest.raises(DecodeError) as excinfo:
        machine.step()
    assert excinfo.value.word == 0x0123
    assert excinfo.value.address == PROGRAM_START + 2
    assert machine.crashed
    with pytest.raises(MachineHaltedError):
        machine.step()


def test_fetch_past_end_of_memory_faults(machine):
    machine.load(words_to_bytes(0x1FFF))
    machine.step()
    with pytest.raises(MemoryAccessError):
        machine.step()


def test_reset_clears_crash(machine):
    machine.load(words_to_bytes(0x00EE))
    with pytest.raises(StackUnderflowError):
        machine.step()
    machine.reset()
    assert not machine.crashed
    machine.load(words_to_bytes(0x6001))
    machine.step()
    assert machine.registers[0] == 1


def test_run_ticks_timers_once_per_frame(machine):
    # DT = V0 (V0 = 5), then spin
    machine.load(words_to_bytes(0x6005, 0xF015, 0x1204))
    machine.run(20, ticks_per_frame=10)
    assert machine.delay_timer == 3
    assert machine.cycles == 20


def test_read_rom(tmp_path):
    rom = tmp_path / "test.ch8"
    rom.write_bytes(b"\x60\x0a")
    assert read_rom(str(rom)) == b"\x60\x0a"


def test_display_view_survives_reset(machine):
    view = machine.get_display()
    registers = machine.registers
    machine.reset()
    machine.load(words_to_bytes(0x6000, 0xF029, 0xD005))
    for _ in range(3):
        machine.step()
    assert machine.display[0, 0]
    assert view[0]
    assert machine.registers is registers


def test_run_rejects_non_positive_frame_length(machine):
    machine.load(words_to_bytes(0x1200))
    for ticks in (0, -1):
        with pytest.raises(ValueError):
            machine.run(5, ticks_per_frame=ticks)
    assert machine.cycles == 0


def test_load_rejects_out_of_range_numpy_values(machine):
    with pytest.raises(ValueError):
        machine.load(np.array([0x60, 0x100]))
    with pytest.raises(ValueError):
        machine.load(np.array([-1, 0x00]))
    with pytest.raises(ValueError):
        machine.load([0x60, 0x100])
    assert not machine.memory[PROGRAM_START:].any()

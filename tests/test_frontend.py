import pytest

pytest.importorskip("tkinter")

from chip8vm.errors import StackUnderflowError  # noqa: E402
from chip8vm.frontend import KEY_MAPPING, Chip8Window, map_key  # noqa: E402

from conftest import words_to_bytes  # noqa: E402


def test_keypad_layout_covers_all_keys():
    assert sorted(KEY_MAPPING.values()) == list(range(16))


def test_map_key():
    assert map_key('1') == 0x1
    assert map_key('V') == 0xF
    assert map_key('x') == 0x0
    assert map_key('Escape') is None


class FakeRoot:
    def __init__(self):
        self.bells = 0

    def bell(self):
        self.bells += 1


class FakeLabel:
    def __init__(self):
        self.text = ""

    def config(self, text=""):
        self.text = text


def make_window(machine, ticks_per_frame=10):
    # Skip Tk setup so frames can run without a display
    window = Chip8Window.__new__(Chip8Window)
    window.machine = machine
    window.ticks_per_frame = ticks_per_frame
    window.error = None
    window._closing = False
    window.root = FakeRoot()
    window.status = FakeLabel()
    return window


def test_run_frame_steps_and_ticks_timers(machine):
    # V0 = 5, DT = V0, spin
    machine.load(words_to_bytes(0x6005, 0xF015, 0x1204))
    window = make_window(machine, ticks_per_frame=4)
    assert window.run_frame()
    assert machine.cycles == 4
    assert machine.delay_timer == 4


def test_run_frame_stops_on_fault(machine):
    machine.load(words_to_bytes(0x00EE))
    window = make_window(machine)
    assert not window.run_frame()
    assert isinstance(window.error, StackUnderflowError)
    assert window.status.text.startswith("CRASHED")
    assert not window.run_frame()


def test_bell_rings_when_sound_starts(machine):
    # V0 = 3, ST = V0, spin
    machine.load(words_to_bytes(0x6003, 0xF018, 0x1204))
    window = make_window(machine, ticks_per_frame=3)
    window.run_frame()
    assert window.root.bells == 1
    window.run_frame()
    assert window.root.bells == 1

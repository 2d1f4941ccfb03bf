import pytest

from chip8vm.machine import Machine


def words_to_bytes(*words):
    data = bytearray()
    for word in words:
        data += bytes([(word >> 8) & 0xFF, word & 0xFF])
    return bytes(data)


@pytest.fixture
def machine():
    return Machine(seed=1234)


@pytest.fixture
def run_program(machine):
    """Load instruction words at 0x200 and step once per word (or `steps` times)"""
    def _run(*words, steps=None):
        machine.load(words_to_bytes(*words))
        for _ in range(len(words) if steps is None else steps):
            machine.step()
        return machine
    return _run

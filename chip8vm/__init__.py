"""
chip8vm: a CHIP-8 bytecode interpreter
"""

from .errors import (
    Chip8Error,
    DecodeError,
    KeyIndexError,
    MachineFault,
    MachineHaltedError,
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from .instructions import Instruction, Op, decode
from .machine import Machine, read_rom

__version__ = "0.1.0"

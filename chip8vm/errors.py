"""
Exceptions raised by the CHIP-8 machine
Instruction-level problems crash the machine; API misuse raises ValueError subclasses.
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for every error raised by chip8vm"""


class DecodeError(Chip8Error):
    """Instruction word matches no known opcode"""

    def __init__(self, word: int, address: Optional[int] = None):
        self.word = word
        self.address = address
        if address is None:
            message = f"Unknown instruction 0x{word:04X}"
        else:
            message = f"Unknown instruction 0x{word:04X} at PC=0x{address:03X}"
        super().__init__(message)


class MachineFault(Chip8Error):
    """Execution moved outside one of the machine's fixed bounds"""


class MemoryAccessError(MachineFault, IndexError):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Memory access out of range: 0x{address:X}")


class StackOverflowError(MachineFault):
    pass


class StackUnderflowError(MachineFault):
    pass


class KeyIndexError(MachineFault, ValueError):
    def __init__(self, key: int):
        self.key = key
        super().__init__(f"Key index out of range: {key} (expected 0-15)")


class RomTooLargeError(Chip8Error, ValueError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"ROM too large: {size} bytes, max {limit}")


class MachineHaltedError(Chip8Error):
    """step() called on a machine that already crashed"""

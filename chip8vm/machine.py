"""
CHIP-8 virtual machine
Owns the whole machine state and advances it one instruction per step().
Windowing, input devices, audio and frame timing belong to the driver.
"""

import logging
from typing import Optional, Union, Sequence

import numpy as np

from .errors import (
    Chip8Error,
    DecodeError,
    KeyIndexError,
    MachineHaltedError,
    MemoryAccessError,
    RomTooLargeError,
    StackOverflowError,
    StackUnderflowError,
)
from .instructions import Instruction, Op, decode

logger = logging.getLogger(__name__)

# CHIP-8 System Constants
MEMORY_SIZE = 4096
DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32
DISPLAY_PIXELS = DISPLAY_WIDTH * DISPLAY_HEIGHT
REGISTER_COUNT = 16
STACK_SIZE = 16
KEYPAD_SIZE = 16
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
FONT_START = 0x000
FONT_GLYPH_SIZE = 5
FLAG_REGISTER = 0xF

# Default driver cadence: instruction ticks per 60 Hz timer tick
TICKS_PER_FRAME = 10

# CHIP-8 Font set (hexadecimal digits 0-F)
CHIP8_FONT = np.array([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80   # F
], dtype=np.uint8)
FONT_SIZE = len(CHIP8_FONT)

ProgramData = Union[bytes, bytearray, np.ndarray, Sequence[int]]


class Machine:
    """
    Single-instance CHIP-8 interpreter.

    The driver calls step() some number of times per frame, tick_timers()
    once per frame, then reads get_display() for presentation.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._handlers = {
            Op.NOP: self._op_nop,
            Op.CLS: self._op_cls,
            Op.RET: self._op_ret,
            Op.JP: self._op_jp,
            Op.CALL: self._op_call,
            Op.SE_BYTE: self._op_se_byte,
            Op.SNE_BYTE: self._op_sne_byte,
            Op.SE_REG: self._op_se_reg,
            Op.LD_BYTE: self._op_ld_byte,
            Op.ADD_BYTE: self._op_add_byte,
            Op.LD_REG: self._op_ld_reg,
            Op.OR: self._op_or,
            Op.AND: self._op_and,
            Op.XOR: self._op_xor,
            Op.ADD_REG: self._op_add_reg,
            Op.SUB: self._op_sub,
            Op.SHR: self._op_shr,
            Op.SUBN: self._op_subn,
            Op.SHL: self._op_shl,
            Op.SNE_REG: self._op_sne_reg,
            Op.LD_I: self._op_ld_i,
            Op.JP_V0: self._op_jp_v0,
            Op.RND: self._op_rnd,
            Op.DRW: self._op_drw,
            Op.SKP: self._op_skp,
            Op.SKNP: self._op_sknp,
            Op.LD_VX_DT: self._op_ld_vx_dt,
            Op.LD_VX_K: self._op_ld_vx_k,
            Op.LD_DT_VX: self._op_ld_dt_vx,
            Op.LD_ST_VX: self._op_ld_st_vx,
            Op.ADD_I: self._op_add_i,
            Op.LD_F: self._op_ld_f,
            Op.LD_B: self._op_ld_b,
            Op.LD_MEM_VX: self._op_ld_mem_vx,
            Op.LD_VX_MEM: self._op_ld_vx_mem,
        }
        self.memory = np.zeros(MEMORY_SIZE, dtype=np.uint8)
        self.display = np.zeros((DISPLAY_HEIGHT, DISPLAY_WIDTH), dtype=bool)
        self.registers = np.zeros(REGISTER_COUNT, dtype=np.uint8)
        self.stack = np.zeros(STACK_SIZE, dtype=np.uint16)
        self.keypad = np.zeros(KEYPAD_SIZE, dtype=bool)
        self.reset()

    def reset(self):
        """Reset the machine to its just-constructed state, reusing the same arrays"""
        self.memory.fill(0)
        self.display.fill(False)
        self.registers.fill(0)
        self.index_register = 0
        self.program_counter = PROGRAM_START
        self.stack_pointer = 0
        self.stack.fill(0)
        self.delay_timer = 0
        self.sound_timer = 0
        self.keypad.fill(False)
        self.waiting_for_key = False
        self.key_register = 0
        self.crashed = False
        self.cycles = 0
        self.rng = np.random.default_rng(self.seed)

        # Load font into memory
        self.memory[FONT_START:FONT_START + FONT_SIZE] = CHIP8_FONT
        logger.debug("Machine reset (PC=0x%03X)", self.program_counter)

    def load(self, program: ProgramData):
        """Copy program bytes into memory starting at 0x200"""
        if isinstance(program, np.ndarray):
            if program.size and (program.min() < 0 or program.max() > 0xFF):
                raise ValueError("bytes must be in range(0, 256)")
            rom_bytes = program.astype(np.uint8).tobytes()
        else:
            rom_bytes = bytes(program)

        if len(rom_bytes) > MAX_PROGRAM_SIZE:
            raise RomTooLargeError(len(rom_bytes), MAX_PROGRAM_SIZE)

        data = np.frombuffer(rom_bytes, dtype=np.uint8)
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        logger.debug("Loaded ROM: %d bytes", len(rom_bytes))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def step(self):
        """Execute one instruction"""
        if self.crashed:
            raise MachineHaltedError(
                f"Machine crashed at PC=0x{self.program_counter:03X}; reset() before stepping"
            )

        if self.waiting_for_key:
            self._poll_keypad()
            return

        address = self.program_counter
        word = None
        try:
            word = self._fetch()
            try:
                instruction = decode(word)
            except DecodeError:
                raise DecodeError(word, address) from None
            self.execute(instruction)
        except Chip8Error as e:
            self.crashed = True
            if word is None:
                logger.error("Fetch failed at PC=0x%03X: %s", address, e)
            else:
                logger.error("Crashed executing 0x%04X at PC=0x%03X: %s", word, address, e)
            raise

        self.cycles += 1

    def execute(self, instruction: Instruction):
        """Apply an already-decoded instruction to the machine state"""
        self._handlers[instruction.op](instruction)

    def tick_timers(self):
        """Advance the delay and sound timers by one 60 Hz tick"""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    def run(self, cycles: int, ticks_per_frame: int = TICKS_PER_FRAME):
        """Run for a number of instruction ticks, ticking timers once per frame"""
        if ticks_per_frame < 1:
            raise ValueError(f"ticks_per_frame must be at least 1, got {ticks_per_frame}")
        for cycle in range(cycles):
            self.step()
            if (cycle + 1) % ticks_per_frame == 0:
                self.tick_timers()

    # ------------------------------------------------------------------
    # Collaborator accessors
    # ------------------------------------------------------------------

    def set_key(self, key: int, pressed: bool):
        """Set key state (0-F)"""
        if not 0 <= key < KEYPAD_SIZE:
            raise KeyIndexError(key)
        self.keypad[key] = bool(pressed)

    def get_display(self) -> np.ndarray:
        """Read-only row-major view of the 64x32 bitmap (2048 booleans)"""
        view = self.display.reshape(-1).view()
        view.flags.writeable = False
        return view

    @property
    def sound_active(self) -> bool:
        return self.sound_timer > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch(self) -> int:
        pc = self.program_counter
        if pc < 0 or pc + 1 >= MEMORY_SIZE:
            raise MemoryAccessError(pc)
        high_byte = int(self.memory[pc])
        low_byte = int(self.memory[pc + 1])
        self.program_counter = pc + 2
        return (high_byte << 8) | low_byte

    def _read(self, address: int) -> int:
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryAccessError(address)
        return int(self.memory[address])

    def _write(self, address: int, value: int):
        if not 0 <= address < MEMORY_SIZE:
            raise MemoryAccessError(address)
        self.memory[address] = value & 0xFF

    def _v(self, index: int) -> int:
        return int(self.registers[index])

    def _set_v(self, index: int, value: int):
        self.registers[index] = value & 0xFF

    def _skip_if(self, condition: bool):
        if condition:
            self.program_counter += 2

    def _first_pressed_key(self) -> Optional[int]:
        pressed = np.flatnonzero(self.keypad)
        if pressed.size == 0:
            return None
        return int(pressed[0])

    def _poll_keypad(self):
        # PC still points at the Fx0A instruction while waiting
        key = self._first_pressed_key()
        if key is None:
            return
        self._set_v(self.key_register, key)
        self.waiting_for_key = False
        self.program_counter += 2
        self.cycles += 1

    def _check_key(self, key: int) -> int:
        if key >= KEYPAD_SIZE:
            raise KeyIndexError(key)
        return key

    # 0nnn
    def _op_nop(self, ins: Instruction):
        pass

    def _op_cls(self, ins: Instruction):
        self.display.fill(False)

    def _op_ret(self, ins: Instruction):
        if self.stack_pointer == 0:
            raise StackUnderflowError(
                f"RET with empty stack at PC=0x{self.program_counter - 2:03X}"
            )
        self.stack_pointer -= 1
        self.program_counter = int(self.stack[self.stack_pointer])

    # 1nnn / 2nnn
    def _op_jp(self, ins: Instruction):
        self.program_counter = ins.nnn

    def _op_call(self, ins: Instruction):
        if self.stack_pointer >= STACK_SIZE:
            raise StackOverflowError(
                f"Stack overflow at PC=0x{self.program_counter - 2:03X}"
            )
        self.stack[self.stack_pointer] = self.program_counter
        self.stack_pointer += 1
        self.program_counter = ins.nnn

    # Conditional skips
    def _op_se_byte(self, ins: Instruction):
        self._skip_if(self._v(ins.x) == ins.kk)

    def _op_sne_byte(self, ins: Instruction):
        self._skip_if(self._v(ins.x) != ins.kk)

    def _op_se_reg(self, ins: Instruction):
        self._skip_if(self._v(ins.x) == self._v(ins.y))

    def _op_sne_reg(self, ins: Instruction):
        self._skip_if(self._v(ins.x) != self._v(ins.y))

    # Register loads
    def _op_ld_byte(self, ins: Instruction):
        self._set_v(ins.x, ins.kk)

    def _op_add_byte(self, ins: Instruction):
        self._set_v(ins.x, self._v(ins.x) + ins.kk)

    # 8xyN arithmetic/logic. Operands are read before VF is written.
    def _op_ld_reg(self, ins: Instruction):
        self._set_v(ins.x, self._v(ins.y))

    def _op_or(self, ins: Instruction):
        self._set_v(ins.x, self._v(ins.x) | self._v(ins.y))

    def _op_and(self, ins: Instruction):
        self._set_v(ins.x, self._v(ins.x) & self._v(ins.y))

    def _op_xor(self, ins: Instruction):
        self._set_v(ins.x, self._v(ins.x) ^ self._v(ins.y))

    def _op_add_reg(self, ins: Instruction):
        result = self._v(ins.x) + self._v(ins.y)
        self._set_v(ins.x, result)
        self._set_v(FLAG_REGISTER, 1 if result > 0xFF else 0)

    def _op_sub(self, ins: Instruction):
        vx_val = self._v(ins.x)
        vy_val = self._v(ins.y)
        self._set_v(ins.x, vx_val - vy_val)
        self._set_v(FLAG_REGISTER, 1 if vx_val >= vy_val else 0)

    def _op_shr(self, ins: Instruction):
        vx_val = self._v(ins.x)
        self._set_v(ins.x, vx_val >> 1)
        self._set_v(FLAG_REGISTER, vx_val & 0x1)

    def _op_subn(self, ins: Instruction):
        vx_val = self._v(ins.x)
        vy_val = self._v(ins.y)
        self._set_v(ins.x, vy_val - vx_val)
        self._set_v(FLAG_REGISTER, 1 if vy_val >= vx_val else 0)

    def _op_shl(self, ins: Instruction):
        vx_val = self._v(ins.x)
        self._set_v(ins.x, vx_val << 1)
        self._set_v(FLAG_REGISTER, (vx_val & 0x80) >> 7)

    # Index register and jumps
    def _op_ld_i(self, ins: Instruction):
        self.index_register = ins.nnn

    def _op_jp_v0(self, ins: Instruction):
        self.program_counter = ins.nnn + self._v(0)

    def _op_rnd(self, ins: Instruction):
        random_byte = int(self.rng.integers(0, 256))
        self._set_v(ins.x, random_byte & ins.kk)

    def _op_drw(self, ins: Instruction):
        """Draw an n-row sprite from memory[I] at (Vx, Vy), wrapping at the edges"""
        vx = self._v(ins.x)
        vy = self._v(ins.y)
        collision = False

        for row in range(ins.n):
            sprite_byte = self._read(self.index_register + row)
            pixel_y = (vy + row) % DISPLAY_HEIGHT

            for col in range(8):
                if sprite_byte & (0x80 >> col):
                    pixel_x = (vx + col) % DISPLAY_WIDTH
                    if self.display[pixel_y, pixel_x]:
                        collision = True
                    self.display[pixel_y, pixel_x] = not self.display[pixel_y, pixel_x]

        self._set_v(FLAG_REGISTER, 1 if collision else 0)

    # ExKK keypad
    def _op_skp(self, ins: Instruction):
        key = self._check_key(self._v(ins.x))
        self._skip_if(bool(self.keypad[key]))

    def _op_sknp(self, ins: Instruction):
        key = self._check_key(self._v(ins.x))
        self._skip_if(not self.keypad[key])

    # FxKK timers, index and memory
    def _op_ld_vx_dt(self, ins: Instruction):
        self._set_v(ins.x, self.delay_timer)

    def _op_ld_vx_k(self, ins: Instruction):
        key = self._first_pressed_key()
        if key is not None:
            self._set_v(ins.x, key)
            return
        # Park PC on this instruction until a key arrives
        self.waiting_for_key = True
        self.key_register = ins.x
        self.program_counter -= 2

    def _op_ld_dt_vx(self, ins: Instruction):
        self.delay_timer = self._v(ins.x)

    def _op_ld_st_vx(self, ins: Instruction):
        self.sound_timer = self._v(ins.x)

    def _op_add_i(self, ins: Instruction):
        self.index_register = (self.index_register + self._v(ins.x)) & 0xFFFF

    def _op_ld_f(self, ins: Instruction):
        self.index_register = FONT_START + FONT_GLYPH_SIZE * self._v(ins.x)

    def _op_ld_b(self, ins: Instruction):
        value = self._v(ins.x)
        self._write(self.index_register, value // 100)
        self._write(self.index_register + 1, (value // 10) % 10)
        self._write(self.index_register + 2, value % 10)

    def _op_ld_mem_vx(self, ins: Instruction):
        for i in range(ins.x + 1):
            self._write(self.index_register + i, self._v(i))

    def _op_ld_vx_mem(self, ins: Instruction):
        for i in range(ins.x + 1):
            self._set_v(i, self._read(self.index_register + i))


def read_rom(path: str) -> bytes:
    """Load a ROM file"""
    with open(path, 'rb') as f:
        return f.read()

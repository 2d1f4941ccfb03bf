"""
CHIP-8 instruction decoding
Turns a 16-bit instruction word into a tagged Instruction once, so the
machine only ever executes well-formed variants.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import DecodeError


class Op(Enum):
    NOP = "NOP"
    CLS = "CLS"
    RET = "RET"
    JP = "JP"
    CALL = "CALL"
    SE_BYTE = "SE_BYTE"
    SNE_BYTE = "SNE_BYTE"
    SE_REG = "SE_REG"
    LD_BYTE = "LD_BYTE"
    ADD_BYTE = "ADD_BYTE"
    LD_REG = "LD_REG"
    OR = "OR"
    AND = "AND"
    XOR = "XOR"
    ADD_REG = "ADD_REG"
    SUB = "SUB"
    SHR = "SHR"
    SUBN = "SUBN"
    SHL = "SHL"
    SNE_REG = "SNE_REG"
    LD_I = "LD_I"
    JP_V0 = "JP_V0"
    RND = "RND"
    DRW = "DRW"
    SKP = "SKP"
    SKNP = "SKNP"
    LD_VX_DT = "LD_VX_DT"
    LD_VX_K = "LD_VX_K"
    LD_DT_VX = "LD_DT_VX"
    LD_ST_VX = "LD_ST_VX"
    ADD_I = "ADD_I"
    LD_F = "LD_F"
    LD_B = "LD_B"
    LD_MEM_VX = "LD_MEM_VX"
    LD_VX_MEM = "LD_VX_MEM"


@dataclass(frozen=True)
class Instruction:
    """A decoded CHIP-8 instruction"""
    op: Op
    word: int
    x: int
    y: int
    n: int
    kk: int
    nnn: int

    def __str__(self) -> str:
        return f"{self.op.value} (0x{self.word:04X})"


# 8xyN arithmetic/logic group, keyed by the low nibble
_ALU_OPS = {
    0x0: Op.LD_REG,
    0x1: Op.OR,
    0x2: Op.AND,
    0x3: Op.XOR,
    0x4: Op.ADD_REG,
    0x5: Op.SUB,
    0x6: Op.SHR,
    0x7: Op.SUBN,
    0xE: Op.SHL,
}

# ExKK key group
_KEY_OPS = {
    0x9E: Op.SKP,
    0xA1: Op.SKNP,
}

# FxKK timer/memory group
_MISC_OPS = {
    0x07: Op.LD_VX_DT,
    0x0A: Op.LD_VX_K,
    0x15: Op.LD_DT_VX,
    0x18: Op.LD_ST_VX,
    0x1E: Op.ADD_I,
    0x29: Op.LD_F,
    0x33: Op.LD_B,
    0x55: Op.LD_MEM_VX,
    0x65: Op.LD_VX_MEM,
}

# Opcode classes whose variant is fixed by the top nibble alone
_CLASS_OPS = {
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_BYTE,
    0x4: Op.SNE_BYTE,
    0x6: Op.LD_BYTE,
    0x7: Op.ADD_BYTE,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
}


def _classify(word: int) -> Op:
    opcode = (word & 0xF000) >> 12
    n = word & 0x000F
    kk = word & 0x00FF

    if word == 0x0000:
        return Op.NOP
    if word == 0x00E0:
        return Op.CLS
    if word == 0x00EE:
        return Op.RET
    if opcode in _CLASS_OPS:
        return _CLASS_OPS[opcode]
    if opcode == 0x5 and n == 0:
        return Op.SE_REG
    if opcode == 0x9 and n == 0:
        return Op.SNE_REG
    if opcode == 0x8 and n in _ALU_OPS:
        return _ALU_OPS[n]
    if opcode == 0xE and kk in _KEY_OPS:
        return _KEY_OPS[kk]
    if opcode == 0xF and kk in _MISC_OPS:
        return _MISC_OPS[kk]
    raise DecodeError(word)


def decode(word: int) -> Instruction:
    """
    Decode a 16-bit instruction word

    Args:
        word: Big-endian instruction word (0x0000-0xFFFF)

    Returns:
        Instruction with the opcode variant and every operand field extracted

    Raises:
        DecodeError: if the word matches no known opcode (0nnn SYS calls
        other than 0000, 00E0 and 00EE included)
    """
    word = int(word) & 0xFFFF
    return Instruction(
        op=_classify(word),
        word=word,
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        n=word & 0x000F,
        kk=word & 0x00FF,
        nnn=word & 0x0FFF,
    )

"""Intcode instruction set: opcodes, parameter modes, decoded instructions."""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple, Union

# =============================================================================
# Constants
# =============================================================================

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1

# Opcodes
OP_ADD    = 1
OP_MUL    = 2
OP_INPUT  = 3
OP_OUTPUT = 4
OP_JUMP_IF_TRUE  = 5
OP_JUMP_IF_FALSE = 6
OP_LESS_THAN = 7
OP_EQUALS    = 8
OP_ADJUST_RELATIVE_BASE = 9
OP_HALT = 99


class Mode(IntEnum):
    """Parameter addressing mode, one decimal digit per operand."""
    POSITION = 0
    IMMEDIATE = 1
    RELATIVE = 2


# Operand kinds: READ operands are dereferenced, WRITE operands stay addresses.
READ = "read"
WRITE = "write"

OPERANDS = {
    OP_ADD: (READ, READ, WRITE),
    OP_MUL: (READ, READ, WRITE),
    OP_INPUT: (WRITE,),
    OP_OUTPUT: (READ,),
    OP_JUMP_IF_TRUE: (READ, READ),
    OP_JUMP_IF_FALSE: (READ, READ),
    OP_LESS_THAN: (READ, READ, WRITE),
    OP_EQUALS: (READ, READ, WRITE),
    OP_ADJUST_RELATIVE_BASE: (READ,),
    OP_HALT: (),
}

MNEMONICS = {
    OP_ADD: "ADD",
    OP_MUL: "MUL",
    OP_INPUT: "IN",
    OP_OUTPUT: "OUT",
    OP_JUMP_IF_TRUE: "JNZ",
    OP_JUMP_IF_FALSE: "JZ",
    OP_LESS_THAN: "LT",
    OP_EQUALS: "EQ",
    OP_ADJUST_RELATIVE_BASE: "ARB",
    OP_HALT: "HALT",
}

# =============================================================================
# Exceptions
# =============================================================================

class IntcodeException(Exception):
    """Base exception for all Intcode errors."""
    pass


class InvalidInstruction(IntcodeException):
    """Raised when the word at the pointer is not a valid instruction."""
    pass


class InvalidMode(InvalidInstruction):
    """Raised for an unknown mode digit or an immediate-mode write operand."""
    pass


class AddressError(IntcodeException):
    """Raised when a negative address is read or written."""
    pass


class CellOverflow(IntcodeException):
    """Raised when a value written to memory does not fit a signed 64-bit cell."""
    pass


class MemoryLimitExceeded(IntcodeException):
    """Raised when an address is past a caller-supplied memory limit."""
    pass


class ProtocolError(IntcodeException):
    """Raised when the caller drives the machine out of turn."""
    pass


class InputExhausted(ProtocolError):
    """Raised when the program needs input and none was supplied."""
    pass


class StepLimitExceeded(IntcodeException):
    """Raised when a call exceeds its caller-supplied step budget."""
    pass

# =============================================================================
# Instruction ADT
# =============================================================================

@dataclass(frozen=True)
class Add:
    """mem[dst] = a + b"""
    a: int
    b: int
    dst: int


@dataclass(frozen=True)
class Multiply:
    """mem[dst] = a * b"""
    a: int
    b: int
    dst: int


@dataclass(frozen=True)
class Input:
    """mem[dst] = next queued input."""
    dst: int


@dataclass(frozen=True)
class Output:
    """Emit a value to the caller."""
    value: int


@dataclass(frozen=True)
class JumpIfTrue:
    condition: int
    target: int


@dataclass(frozen=True)
class JumpIfFalse:
    condition: int
    target: int


@dataclass(frozen=True)
class LessThan:
    a: int
    b: int
    dst: int


@dataclass(frozen=True)
class Equals:
    a: int
    b: int
    dst: int


@dataclass(frozen=True)
class AdjustRelativeBase:
    offset: int


@dataclass(frozen=True)
class Halt:
    pass


Instruction = Union[
    Add, Multiply, Input, Output, JumpIfTrue, JumpIfFalse,
    LessThan, Equals, AdjustRelativeBase, Halt,
]

# =============================================================================
# Decoding
# =============================================================================

def split_word(word: int) -> Tuple[int, List[Mode]]:
    """
    Split an instruction word into its opcode and parameter modes.

    The opcode is the low two decimal digits. The remaining digits are modes,
    the one nearest the opcode belonging to the first operand. Operands past
    the last digit default to Mode.POSITION, so the returned list may be
    shorter than the opcode's arity.

    Raises:
        InvalidInstruction: If the word is zero, negative or has an unknown opcode
        InvalidMode: If any mode digit is not 0, 1 or 2
    """
    if word == 0:
        raise InvalidInstruction("Instruction word is zero (uninitialized code reached)")
    if word < 0:
        raise InvalidInstruction(f"Negative instruction word {word}")

    opcode = word % 100
    if opcode == OP_HALT:
        return OP_HALT, []
    if opcode not in OPERANDS:
        raise InvalidInstruction(f"Unknown opcode {opcode} in word {word}")

    modes = []
    digits = word // 100
    while digits:
        digit = digits % 10
        try:
            modes.append(Mode(digit))
        except ValueError:
            raise InvalidMode(f"Unknown parameter mode {digit} in word {word}") from None
        digits //= 10
    return opcode, modes


def decode(memory, pointer: int, relative_base: int) -> Tuple[Instruction, int]:
    """
    Decode the instruction at `pointer`.

    Args:
        memory: Anything with a growing read(addr) method, normally Memory
        pointer: Address of the instruction word
        relative_base: Current relative base register

    Returns:
        Tuple of (instruction, address just past the instruction)

    Raises:
        InvalidInstruction: If the word is malformed
        InvalidMode: If a mode digit is unknown or an address operand is immediate
        AddressError: If an operand resolves to a negative address
    """
    word = memory.read(pointer)
    opcode, modes = split_word(word)
    if opcode == OP_HALT:
        return Halt(), pointer + 1

    cursor = pointer + 1
    operands = []
    for index, kind in enumerate(OPERANDS[opcode]):
        mode = modes[index] if index < len(modes) else Mode.POSITION
        literal = memory.read(cursor)

        match mode:
            case Mode.POSITION:
                address = literal
            case Mode.RELATIVE:
                address = relative_base + literal
            case Mode.IMMEDIATE:
                if kind == WRITE:
                    raise InvalidMode(
                        f"Immediate mode for write operand {index + 1} of word {word} at {pointer}"
                    )
                address = None

        if kind == WRITE:
            if address < 0:
                raise AddressError(f"Negative write address {address} in word {word} at {pointer}")
            operands.append(address)
        elif address is None:
            operands.append(literal)
        else:
            operands.append(memory.read(address))
        cursor += 1

    match opcode:
        case _ if opcode == OP_ADD:
            return Add(*operands), cursor
        case _ if opcode == OP_MUL:
            return Multiply(*operands), cursor
        case _ if opcode == OP_INPUT:
            return Input(*operands), cursor
        case _ if opcode == OP_OUTPUT:
            return Output(*operands), cursor
        case _ if opcode == OP_JUMP_IF_TRUE:
            return JumpIfTrue(*operands), cursor
        case _ if opcode == OP_JUMP_IF_FALSE:
            return JumpIfFalse(*operands), cursor
        case _ if opcode == OP_LESS_THAN:
            return LessThan(*operands), cursor
        case _ if opcode == OP_EQUALS:
            return Equals(*operands), cursor
        case _ if opcode == OP_ADJUST_RELATIVE_BASE:
            return AdjustRelativeBase(*operands), cursor
        case _:
            raise InvalidInstruction(f"Unknown opcode {opcode} at {pointer}")

# =============================================================================
# Disassembly
# =============================================================================

def _format_operand(mode: Mode, literal: int) -> str:
    match mode:
        case Mode.POSITION:
            return f"[{literal}]"
        case Mode.IMMEDIATE:
            return str(literal)
        case Mode.RELATIVE:
            return f"[rb{literal:+d}]"


def disassemble(program: List[int]) -> List[str]:
    """
    Render a static listing of a program, one line per instruction.

    Decoding is linear from address 0, so data cells that happen to look like
    instructions are listed as instructions. Words that do not decode (or whose
    operands run past the end) are listed as DATA and skipped one cell at a time.
    """
    lines = []
    offset = 0

    while offset < len(program):
        word = program[offset]
        try:
            opcode, modes = split_word(word)
        except InvalidInstruction:
            lines.append(f"{offset:5d}: DATA {word}")
            offset += 1
            continue

        arity = len(OPERANDS[opcode])
        if offset + arity >= len(program):
            lines.append(f"{offset:5d}: DATA {word}")
            offset += 1
            continue

        operands = []
        for index in range(arity):
            mode = modes[index] if index < len(modes) else Mode.POSITION
            operands.append(_format_operand(mode, program[offset + 1 + index]))
        text = MNEMONICS[opcode]
        if operands:
            text += " " + ", ".join(operands)
        lines.append(f"{offset:5d}: {text}")
        offset += 1 + arity

    return lines

"""
Enumeration-based test generation for the Intcode machine.

This module provides exhaustive test generation by systematically enumerating
all programs within bounded model spaces. Unlike probabilistic fuzzing,
enumeration provides guaranteed coverage of the bounded model: every opcode
with every legal mode combination, and every class of malformed instruction.
"""

import itertools
from typing import Iterator, List

from intcode.isa import (
    OPERANDS, READ, WRITE, Mode,
    OP_INPUT, OP_OUTPUT, OP_JUMP_IF_TRUE, OP_JUMP_IF_FALSE, OP_HALT,
)
from .expression import (
    Expr, Const, Input, Add, Mul, LessThan, Equals, Select,
    INT32_MIN, INT32_MAX, compile_expr, count_inputs, expected_outputs,
)
from .fuzzer import ProgramCase


# ============================================================
# Configuration
# ============================================================

# Interesting constants for boundary value analysis
BOUNDARY_CONSTANTS = [
    0,           # Zero (false, and the JumpIfFalse trigger)
    1,           # One (true)
    -1,          # Negative
    8,           # Small value
    99,          # Looks like HALT when stored in code
    INT32_MAX,   # 32-bit max
    INT32_MIN,   # 32-bit min
]

# Minimal interesting constants for smaller test suites
MINIMAL_CONSTANTS = [0, 1, -1, 8]

READ_MODES = [Mode.POSITION, Mode.IMMEDIATE, Mode.RELATIVE]
WRITE_MODES = [Mode.POSITION, Mode.RELATIVE]

# Values placed in the data cells read by each operand
OPERAND_VALUES = [7, -3, 0]


def encode_word(opcode: int, modes: List[Mode]) -> int:
    """Build an instruction word from an opcode and per-operand modes."""
    word = opcode
    for index, mode in enumerate(modes):
        word += int(mode) * 10 ** (index + 2)
    return word


# ============================================================
# Expression Enumeration
# ============================================================

def enumerate_expressions(depth: int, constants: List[int]) -> Iterator[Expr]:
    """
    Exhaustively enumerate all expressions up to given depth.

    Args:
        depth: Maximum expression tree depth (0 = leaves only)
        constants: List of constant values to use

    Yields:
        All possible expressions within the depth bound

    Example:
        depth=0: [Const(0), Const(1), ..., Input()]
        depth=1: all leaves + Add(leaf, leaf), ..., Select(leaf, leaf, leaf)
    """
    if depth == 0:
        for c in constants:
            yield Const(c)
        yield Input()
    else:
        sub_exprs = list(enumerate_expressions(depth - 1, constants))

        for left in sub_exprs:
            for right in sub_exprs:
                yield Add(left, right)
                yield Mul(left, right)
                yield LessThan(left, right)
                yield Equals(left, right)

        for condition, then, otherwise in itertools.product(sub_exprs, repeat=3):
            yield Select(condition, then, otherwise)

        for c in constants:
            yield Const(c)
        yield Input()


def enumerate_expression_programs(max_depth: int,
                                  constants: List[int] = MINIMAL_CONSTANTS) -> Iterator[ProgramCase]:
    """
    Enumerate all expression-based programs up to given depth.

    Input leaves read 1, 2, 3, ... in order, so each case carries enough inputs
    for the widest branch.
    """
    for depth in range(max_depth + 1):
        for expr in enumerate_expressions(depth, constants):
            inputs = tuple(range(1, count_inputs(expr) + 1))
            yield ProgramCase(
                program=tuple(compile_expr(expr)),
                inputs=inputs,
                expected=expected_outputs(expr, inputs),
            )


# ============================================================
# Addressing Mode Coverage
# ============================================================

def _mode_program(opcode: int, modes: List[Mode]) -> ProgramCase:
    """
    Build a program running one instruction, then printing its data cells.

    Layout:
        109 DATA             relative base -> data area
        word lit...          the instruction under test
        4 DATA+k ...         output every data cell
        99
        data cells

    Position and relative operands both address DATA + index; immediate
    operands carry the value directly. Jump targets always point at the next
    instruction, so taken and not-taken branches both reach the outputs.
    """
    kinds = OPERANDS[opcode]
    arity = len(kinds)
    continuation = 2 + 1 + arity
    data = continuation + 2 * arity + 1

    cells = []
    literals = []
    for index, (kind, mode) in enumerate(zip(kinds, modes)):
        if opcode in (OP_JUMP_IF_TRUE, OP_JUMP_IF_FALSE) and index == 1:
            value = continuation
        elif kind == WRITE:
            value = 0
        else:
            value = OPERAND_VALUES[index]
        cells.append(value)
        literals.append(value if mode == Mode.IMMEDIATE else (index if mode == Mode.RELATIVE else data + index))

    program = [109, data, encode_word(opcode, modes)] + literals
    for index in range(arity):
        program += [OP_OUTPUT, data + index]
    program.append(OP_HALT)
    program += cells

    inputs = (42,) if opcode == OP_INPUT else ()
    return ProgramCase(program=tuple(program), inputs=inputs)


def enumerate_mode_programs() -> Iterator[ProgramCase]:
    """
    Enumerate every opcode with every legal combination of parameter modes.

    Immediate mode is never generated for write operands.
    """
    for opcode, kinds in OPERANDS.items():
        if opcode == OP_HALT:
            continue
        choices = [READ_MODES if kind == READ else WRITE_MODES for kind in kinds]
        for modes in itertools.product(*choices):
            yield _mode_program(opcode, list(modes))


# ============================================================
# Malformed Programs
# ============================================================

def enumerate_malformed_programs() -> Iterator[ProgramCase]:
    """
    Enumerate programs whose first instruction is malformed.

    Yields:
        Programs that should raise InvalidInstruction before any output
    """
    padding = [0, 0, 0, OP_HALT]

    # Zero and negative words
    yield ProgramCase(program=(0, OP_HALT))
    yield ProgramCase(program=(-1, OP_HALT))
    yield ProgramCase(program=(-99, OP_HALT))

    # Every unknown two-digit opcode
    for opcode in range(10, 99):
        yield ProgramCase(program=tuple([opcode] + padding))

    # Unknown mode digits in each operand position of a three-operand opcode
    for position, digit in itertools.product(range(3), range(3, 10)):
        yield ProgramCase(program=tuple([1 + digit * 10 ** (position + 2)] + padding))

    # Immediate mode on write operands
    for opcode, kinds in OPERANDS.items():
        for index, kind in enumerate(kinds):
            if kind == WRITE:
                modes = [Mode.POSITION] * index + [Mode.IMMEDIATE]
                yield ProgramCase(program=tuple([encode_word(opcode, modes)] + padding), inputs=(1,))


def enumerate_underflow_programs() -> Iterator[ProgramCase]:
    """
    Enumerate programs that resolve a negative address.

    Yields:
        Programs that should raise AddressError
    """
    yield ProgramCase(program=(OP_OUTPUT, -1, OP_HALT))
    yield ProgramCase(program=(204, -5, OP_HALT))
    yield ProgramCase(program=(1101, 1, 1, -1, OP_HALT))
    yield ProgramCase(program=(21101, 1, 1, -3, OP_HALT))
    yield ProgramCase(program=(203, -1, OP_HALT), inputs=(5,))
    yield ProgramCase(program=(1105, 1, -7))


# ============================================================
# Comprehensive Test Suites
# ============================================================

def generate_comprehensive_suite(max_expr_depth: int = 1) -> Iterator[ProgramCase]:
    """
    Generate comprehensive exhaustive test suite with deduplication.

    Combines expression enumeration with mode coverage and malformed programs,
    removing any duplicates to ensure each case is unique.

    Args:
        max_expr_depth: Maximum expression tree depth (1-2 recommended;
            Select makes depth 2 large)
    """
    seen = set()

    sources = [
        enumerate_expression_programs(max_depth=max_expr_depth, constants=BOUNDARY_CONSTANTS),
        enumerate_mode_programs(),
        enumerate_malformed_programs(),
        enumerate_underflow_programs(),
    ]
    for case in itertools.chain.from_iterable(sources):
        key = (case.program, case.inputs)
        if key not in seen:
            seen.add(key)
            yield case

"""Expression tree ADT compiled to Intcode programs with a known result."""
from __future__ import annotations
from dataclasses import dataclass
from random import Random
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union

from intcode.isa import (
    INT64_MIN, INT64_MAX,
    OP_ADD, OP_MUL, OP_LESS_THAN, OP_EQUALS, OP_HALT,
    CellOverflow, InputExhausted,
)


INT32_MIN = -(1 << 31)
INT32_MAX = (1 << 31) - 1

# Pre-encoded instruction words for the stack discipline below.
# The relative base is the stack pointer: [rb-1] is the top of the stack.
PUSH_CONST = 21101     # ADD imm, imm -> [rb+0]
PUSH_INPUT = 203       # IN  -> [rb+0]
OUTPUT_TOP = 204       # OUT [rb-1]
ADJUST_SP  = 109       # ARB imm
BINARY_TOP = 22200     # op [rb-2], [rb-1] -> [rb-2]
JUMP_IF_ZERO_TOP = 1206  # JZ [rb+0], imm
JUMP_ALWAYS = 1105       # JNZ 1, imm


def _default_const_generator(rng: Random) -> int:
    """Default constant generator: random signed 32-bit integer."""
    return rng.randint(INT32_MIN, INT32_MAX)


@dataclass(frozen=True)
class Const:
    """A signed 32-bit constant."""
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int):
            raise TypeError(f"Const value must be int, got {type(self.value)}")
        if self.value < INT32_MIN or self.value > INT32_MAX:
            raise ValueError(f"Const value must be in [{INT32_MIN}, {INT32_MAX}], got {self.value}")


@dataclass(frozen=True)
class Input:
    """The next value from the machine's input queue."""
    pass


@dataclass(frozen=True)
class Add:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Mul:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class LessThan:
    """1 if left < right else 0."""
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Equals:
    """1 if left == right else 0."""
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Select:
    """`then` if condition is non-zero, else `otherwise`. Only one branch runs."""
    condition: Expr
    then: Expr
    otherwise: Expr


Expr = Union[Const, Input, Add, Mul, LessThan, Equals, Select]

BINARY_OPCODES = {Add: OP_ADD, Mul: OP_MUL, LessThan: OP_LESS_THAN, Equals: OP_EQUALS}


# =============================================================================
# Evaluation
# =============================================================================

def count_inputs(expr: Expr) -> int:
    """Upper bound on the number of inputs an expression can consume."""
    match expr:
        case Const():
            return 0
        case Input():
            return 1
        case Select(condition=condition, then=then, otherwise=otherwise):
            return count_inputs(condition) + max(count_inputs(then), count_inputs(otherwise))
        case Add(left=left, right=right) | Mul(left=left, right=right) \
                | LessThan(left=left, right=right) | Equals(left=left, right=right):
            return count_inputs(left) + count_inputs(right)
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


def evaluate(expr: Expr, inputs: Iterable[int] = ()) -> int:
    """
    Evaluate an expression, reading Input leaves from `inputs` left to right.

    Arithmetic is checked against the signed 64-bit cell range, so an
    expression overflows exactly when its compiled program does.

    Raises:
        InputExhausted: If the expression reads more inputs than supplied
        CellOverflow: If a sum or product leaves the 64-bit range
    """
    return _evaluate(expr, iter(inputs))


def expected_outputs(expr: Expr, inputs: Iterable[int] = ()) -> Optional[Tuple[int, ...]]:
    """Outputs of the compiled program, or None if it overflows."""
    try:
        return (evaluate(expr, inputs),)
    except CellOverflow:
        return None


def _checked(value: int) -> int:
    if not (INT64_MIN <= value <= INT64_MAX):
        raise CellOverflow(f"Intermediate value {value} does not fit in 64 bits")
    return value


def _evaluate(expr: Expr, inputs: Iterator[int]) -> int:
    match expr:
        case Const(value=val):
            return val
        case Input():
            try:
                return next(inputs)
            except StopIteration:
                raise InputExhausted("Expression reads more inputs than supplied") from None
        case Add(left=left, right=right):
            return _checked(_evaluate(left, inputs) + _evaluate(right, inputs))
        case Mul(left=left, right=right):
            return _checked(_evaluate(left, inputs) * _evaluate(right, inputs))
        case LessThan(left=left, right=right):
            return 1 if _evaluate(left, inputs) < _evaluate(right, inputs) else 0
        case Equals(left=left, right=right):
            return 1 if _evaluate(left, inputs) == _evaluate(right, inputs) else 0
        case Select(condition=condition, then=then, otherwise=otherwise):
            if _evaluate(condition, inputs) != 0:
                return _evaluate(then, inputs)
            return _evaluate(otherwise, inputs)
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


# =============================================================================
# Compilation (Expr -> Intcode)
# =============================================================================

def compile_expr_to_code(expr: Expr, base: int) -> List[int]:
    """
    Compile an expression to code that pushes its value on the stack.

    `base` is the address the first emitted cell will live at; jump targets
    in Select are absolute.

    Examples:
        Const(5)                -> [21101, 5, 0, 0, 109, 1]
        Add(Const(3), Const(4)) -> push 3, push 4, [22201, -2, -1, -2], [109, -1]
    """
    match expr:
        case Const(value=val):
            return [PUSH_CONST, val, 0, 0, ADJUST_SP, 1]
        case Input():
            return [PUSH_INPUT, 0, ADJUST_SP, 1]
        case Select(condition=condition, then=then, otherwise=otherwise):
            code = compile_expr_to_code(condition, base)
            code += [ADJUST_SP, -1]
            jump_to_else = len(code) + 2
            code += [JUMP_IF_ZERO_TOP, 0, None]
            code += compile_expr_to_code(then, base + len(code))
            jump_to_end = len(code) + 2
            code += [JUMP_ALWAYS, 1, None]
            code[jump_to_else] = base + len(code)
            code += compile_expr_to_code(otherwise, base + len(code))
            code[jump_to_end] = base + len(code)
            return code
        case Add(left=left, right=right) | Mul(left=left, right=right) \
                | LessThan(left=left, right=right) | Equals(left=left, right=right):
            code = compile_expr_to_code(left, base)
            code += compile_expr_to_code(right, base + len(code))
            code += [BINARY_TOP + BINARY_OPCODES[type(expr)], -2, -1, -2, ADJUST_SP, -1]
            return code
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


def compile_expr(expr: Expr) -> List[int]:
    """
    Compile an expression to a complete program that outputs its value and halts.

    The stack lives in scratch memory just past the end of the program, so
    running it grows memory and uses relative addressing throughout.
    """
    body = compile_expr_to_code(expr, base=2)
    tail = [OUTPUT_TOP, -1, OP_HALT]
    stack_base = 2 + len(body) + len(tail)
    return [ADJUST_SP, stack_base] + body + tail


# =============================================================================
# Random Expression Generation
# =============================================================================

def random_expr(rng: Random, max_depth: int = 3,
                const_generator: Callable[[Random], int] = _default_const_generator) -> Expr:
    """
    Generate a random expression tree.

    At each level, randomly chooses between:
    - Const (35% probability)
    - Input (10% probability)
    - Add, Mul (15% each)
    - LessThan, Equals (8% each)
    - Select (9% probability)

    When max_depth reaches 0, only generates leaves to ensure termination.

    Args:
        rng: Random number generator (use Random(seed) for reproducibility)
        max_depth: Maximum depth of the expression tree
        const_generator: Callable that generates constant values.
                         Defaults to random signed 32-bit integers.
    """
    if max_depth <= 0:
        return Input() if rng.random() < 0.2 else Const(const_generator(rng))

    choice = rng.random()

    def sub() -> Expr:
        return random_expr(rng, max_depth - 1, const_generator)

    if choice < 0.35:
        return Const(const_generator(rng))
    elif choice < 0.45:
        return Input()
    elif choice < 0.60:
        return Add(sub(), sub())
    elif choice < 0.75:
        return Mul(sub(), sub())
    elif choice < 0.83:
        return LessThan(sub(), sub())
    elif choice < 0.91:
        return Equals(sub(), sub())
    else:
        return Select(sub(), sub(), sub())

"""
Differential fuzzer for the Intcode machine.

Generates programs and runs each one two ways:
- batch: IntcodeMachine.run(inputs) with every input queued up front
- interactive: tick() in a loop, answering each input request with provide_input()

Both drivers must agree on outputs, final memory and error class. Programs
compiled from expression trees are also checked against the expression's
evaluated value.
"""

from dataclasses import dataclass
from enum import Enum
import logging
from random import Random
from typing import Callable, Optional, Tuple

from intcode.isa import (
    IntcodeException, InputExhausted, StepLimitExceeded,
    OPERANDS, READ, Mode, OP_HALT,
    OP_ADD, OP_MUL, OP_INPUT, OP_OUTPUT, OP_JUMP_IF_TRUE, OP_JUMP_IF_FALSE,
    OP_LESS_THAN, OP_EQUALS, OP_ADJUST_RELATIVE_BASE,
    disassemble,
)
from intcode.loader import format_program
from intcode.machine import IntcodeMachine, OutputReady, AwaitingInput, Halted
from .expression import random_expr, compile_expr, count_inputs, expected_outputs, INT32_MIN, INT32_MAX

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

# Structure-aware generation probabilities
PROB_ARITHMETIC = 0.30
PROB_COMPARE = 0.15
PROB_INPUT = 0.12
PROB_OUTPUT = 0.20
PROB_JUMP = 0.10
PROB_ADJUST = 0.10
PROB_INVALID = 0.03

PROB_NEGATIVE_ADDRESS = 0.03

# Mixed strategy probabilities (equal weight)
PROB_RANDOM_STRATEGY = 0.25
PROB_STRUCTURED_STRATEGY = 0.25
PROB_EXPRESSION_DEFAULT = 0.25
PROB_EXPRESSION_FULL_RANGE = 0.25

# Words the random generator favours over plain integers
WORD_PALETTE = [1, 2, 3, 4, 5, 6, 7, 8, 9, 99, 101, 1001, 1101, 104, 109, 203, 204, 1105, 1106, 21101, 22201]


@dataclass
class GeneratorConfig:
    """Configuration for program generators."""
    max_length: int = 20              # For random generator
    max_instructions: int = 10        # For structured generator
    max_depth: int = 3                # For expression generator
    max_steps: int = 10_000           # Budget per execution
    max_memory: int = 1 << 16         # Memory cells per execution


DEFAULT_CONFIG = GeneratorConfig()


@dataclass(frozen=True)
class ProgramCase:
    """A program, the inputs to run it with, and the outputs it must produce if known."""
    program: Tuple[int, ...]
    inputs: Tuple[int, ...] = ()
    expected: Optional[Tuple[int, ...]] = None


# =============================================================================
# Instruction Selection
# =============================================================================

class InstructionChoice(Enum):
    """Enum for instruction families in structure-aware generation."""
    ARITHMETIC = "arithmetic"
    COMPARE = "compare"
    INPUT = "input"
    OUTPUT = "output"
    JUMP = "jump"
    ADJUST = "adjust"
    INVALID = "invalid"


OPCODES_BY_CHOICE = {
    InstructionChoice.ARITHMETIC: [OP_ADD, OP_MUL],
    InstructionChoice.COMPARE: [OP_LESS_THAN, OP_EQUALS],
    InstructionChoice.INPUT: [OP_INPUT],
    InstructionChoice.OUTPUT: [OP_OUTPUT],
    InstructionChoice.JUMP: [OP_JUMP_IF_TRUE, OP_JUMP_IF_FALSE],
    InstructionChoice.ADJUST: [OP_ADJUST_RELATIVE_BASE],
}


def choose_instruction(rng: Random) -> InstructionChoice:
    """Choose instruction family based on configured probabilities."""
    weights = [
        (InstructionChoice.ARITHMETIC, int(PROB_ARITHMETIC * 100)),
        (InstructionChoice.COMPARE, int(PROB_COMPARE * 100)),
        (InstructionChoice.INPUT, int(PROB_INPUT * 100)),
        (InstructionChoice.OUTPUT, int(PROB_OUTPUT * 100)),
        (InstructionChoice.JUMP, int(PROB_JUMP * 100)),
        (InstructionChoice.ADJUST, int(PROB_ADJUST * 100)),
        (InstructionChoice.INVALID, int(PROB_INVALID * 100)),
    ]
    choices, probs = zip(*weights)
    return rng.choices(choices, weights=probs)[0]


# =============================================================================
# Program Generators
# =============================================================================

def generate_random_program(rng: Random, max_length: int = DEFAULT_CONFIG.max_length) -> ProgramCase:
    """Generate random cells, half of them drawn from common instruction words."""
    length = rng.randint(1, max_length)
    program = tuple(
        rng.choice(WORD_PALETTE) if rng.random() < 0.5 else rng.randint(-5, max_length + 5)
        for _ in range(length)
    )
    inputs = tuple(rng.randint(-10, 10) for _ in range(rng.randint(0, 3)))
    return ProgramCase(program=program, inputs=inputs)


def _random_operand(rng: Random, mode: Mode, span: int) -> int:
    if mode == Mode.IMMEDIATE:
        return rng.randint(-10, span)
    if rng.random() < PROB_NEGATIVE_ADDRESS:
        return rng.randint(-5, -1)
    return rng.randint(0, span)


def generate_structured_program(rng: Random, max_instructions: int = DEFAULT_CONFIG.max_instructions) -> ProgramCase:
    """
    Generate well-formed instructions with random legal modes, ending in HALT.

    Operands address cells within a few words of the program, so programs
    read and overwrite their own code and scratch cells past the end. With
    some probability an invalid word is emitted instead and generation stops.
    One input is queued per input instruction.
    """
    span = max_instructions * 4 + 8
    program = []
    inputs = []

    for _ in range(rng.randint(1, max_instructions)):
        choice = choose_instruction(rng)

        if choice == InstructionChoice.INVALID:
            program.append(rng.choice([0, rng.randint(10, 98), 301, 11101, 103]))
            break

        opcode = rng.choice(OPCODES_BY_CHOICE[choice])
        kinds = OPERANDS[opcode]
        modes = [
            rng.choice(list(Mode) if kind == READ else [Mode.POSITION, Mode.RELATIVE])
            for kind in kinds
        ]
        word = opcode + sum(int(mode) * 10 ** (index + 2) for index, mode in enumerate(modes))
        program.append(word)
        program.extend(_random_operand(rng, mode, span) for mode in modes)

        if opcode == OP_INPUT:
            inputs.append(rng.randint(-100, 100))

    program.append(OP_HALT)
    return ProgramCase(program=tuple(program), inputs=tuple(inputs))


def generate_expression_program(
    rng: Random,
    max_depth: int = DEFAULT_CONFIG.max_depth,
    max_value: Optional[int] = None
) -> ProgramCase:
    """
    Generate a program compiled from a random expression tree.

    The result is always a well-formed, terminating program, and the expected
    output is known from evaluating the expression (unless it overflows).

    Args:
        rng: Random number generator
        max_depth: Maximum depth of the expression tree
        max_value: Maximum magnitude for random constants. If None, uses the
                   default list [-1..9, INT32_MIN, INT32_MAX].
    """
    if max_value is None:
        const_values = [*range(-1, 10), INT32_MIN, INT32_MAX]

        def const_generator(r: Random) -> int:
            return r.choice(const_values)
    else:
        def const_generator(r: Random) -> int:
            return r.randint(-max_value, max_value)

    expr = random_expr(rng, max_depth=max_depth, const_generator=const_generator)
    inputs = tuple(rng.randint(-10, 10) for _ in range(count_inputs(expr)))
    return ProgramCase(
        program=tuple(compile_expr(expr)),
        inputs=inputs,
        expected=expected_outputs(expr, inputs),
    )


def generate_mixed_strategy_program(rng: Random, max_instructions: int = DEFAULT_CONFIG.max_instructions) -> ProgramCase:
    """
    Generate a program using a randomly selected strategy:
    1. Random cells
    2. Structure-aware instructions (with potential malformed words)
    3. Expression program with default constants
    4. Expression program with full signed 32-bit range
    """
    strategy_roll = rng.random()

    if strategy_roll < PROB_RANDOM_STRATEGY:
        return generate_random_program(rng)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY:
        return generate_structured_program(rng, max_instructions=max_instructions)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY + PROB_EXPRESSION_DEFAULT:
        return generate_expression_program(rng, max_depth=DEFAULT_CONFIG.max_depth, max_value=None)
    else:
        return generate_expression_program(rng, max_depth=DEFAULT_CONFIG.max_depth, max_value=INT32_MAX)


# Generator registry for dispatch
GENERATORS: dict[str, Callable[[Random], ProgramCase]] = {
    "random": generate_random_program,
    "structured": generate_structured_program,
    "expression": generate_expression_program,
    "mixed": generate_mixed_strategy_program,
}


# =============================================================================
# Execution Results
# =============================================================================

@dataclass(frozen=True)
class ExecutionResult:
    """Base class for execution results - used as a union type."""


@dataclass(frozen=True)
class ExceptionThrown(ExecutionResult):
    reason: str


@dataclass(frozen=True)
class Crash(ExecutionResult):
    reason: str


@dataclass(frozen=True)
class Success(ExecutionResult):
    outputs: Tuple[int, ...]
    memory: Tuple[int, ...] = ()


def execute_batch(case: ProgramCase, max_steps: Optional[int] = DEFAULT_CONFIG.max_steps,
                  max_memory: Optional[int] = DEFAULT_CONFIG.max_memory) -> ExecutionResult:
    """Run a case with all inputs queued up front."""
    machine = IntcodeMachine(case.program, max_memory=max_memory)
    try:
        outputs = machine.run(case.inputs, max_steps=max_steps)
        return Success(tuple(outputs), tuple(machine.memory))
    except IntcodeException as e:
        return ExceptionThrown(type(e).__name__)
    except Exception as e:
        return Crash(f"batch run raised exception: {repr(e)}")


def execute_interactive(case: ProgramCase, max_steps: Optional[int] = DEFAULT_CONFIG.max_steps,
                        max_memory: Optional[int] = DEFAULT_CONFIG.max_memory) -> ExecutionResult:
    """Run a case with tick(), supplying each input only when it is requested."""
    machine = IntcodeMachine(case.program, max_memory=max_memory)
    pending = list(case.inputs)
    outputs = []
    try:
        while True:
            remaining = None if max_steps is None else max(max_steps - machine.steps, 0)
            match machine.tick(max_steps=remaining):
                case OutputReady(value=value):
                    outputs.append(value)
                case AwaitingInput(address=address):
                    if not pending:
                        raise InputExhausted(f"No input left for address {address}")
                    machine.provide_input(pending.pop(0))
                case Halted():
                    return Success(tuple(outputs), tuple(machine.memory))
    except IntcodeException as e:
        return ExceptionThrown(type(e).__name__)
    except Exception as e:
        return Crash(f"interactive run raised exception: {repr(e)}")


def compare_results(expected: ExecutionResult, actual: ExecutionResult) -> bool:
    """
    Compare execution results for equivalence.

    Returns True if results match, considering:
    - Crashes match any crash (regardless of message)
    - Exceptions match only exceptions of the same class
    - Success only matches with identical outputs and memory
    """
    return type(expected) == type(actual) and (isinstance(expected, Crash) or expected == actual)


def check_oracle(case: ProgramCase, result: ExecutionResult) -> bool:
    """True if the case has no known outputs or the result produced them."""
    if case.expected is None:
        return True
    return isinstance(result, Success) and result.outputs == case.expected


# =============================================================================
# Statistics Tracking
# =============================================================================

@dataclass
class FuzzingStatistics:
    """Tracks fuzzing run statistics."""
    total_tests: int = 0
    bugs_found: int = 0
    crashes: int = 0
    rejected_programs: int = 0
    step_limited: int = 0

    @property
    def completed_tests(self) -> int:
        return self.total_tests - self.rejected_programs - self.step_limited

    @property
    def correct_tests(self) -> int:
        return self.total_tests - self.bugs_found

    @property
    def bug_rate(self) -> float:
        return (self.bugs_found / self.total_tests * 100) if self.total_tests > 0 else 0.0

    def record_test(self, batch_result: ExecutionResult, interactive_result: ExecutionResult, results_match: bool) -> None:
        """Record results of a single test."""
        self.total_tests += 1

        if isinstance(batch_result, ExceptionThrown):
            if batch_result.reason == StepLimitExceeded.__name__:
                self.step_limited += 1
            else:
                self.rejected_programs += 1

        if isinstance(batch_result, Crash) or isinstance(interactive_result, Crash):
            self.crashes += 1

        if not results_match:
            self.bugs_found += 1

    def print_summary(self) -> None:
        """Print formatted summary of results."""
        print("\n" + "=" * 60)
        print("Fuzzer Summary")
        print("-" * 40)
        print(f"Total tests run:           {self.total_tests}")
        print(f"Rejected programs:         {self.rejected_programs}")
        print(f"Step limit reached:        {self.step_limited}")
        print(f"Ran to halt:               {self.completed_tests}")
        print(f"Mismatches found:          {self.bugs_found}")
        print(f"Crashes:                   {self.crashes}")
        print(f"Correct:                   {self.correct_tests}")

        if self.bugs_found > 0:
            print(f"Mismatch rate:          {self.bug_rate:.1f}%")
        else:
            print("\nNo mismatches detected!")


# =============================================================================
# Bug Reporting
# =============================================================================

def report_bug(test_num: int, case: ProgramCase, expected: ExecutionResult, actual: ExecutionResult) -> None:
    """Print detailed mismatch report."""
    print(f"\nTest {test_num}: Mismatch found")
    print(f"  Program: {format_program(case.program)}")
    for line in disassemble(list(case.program)):
        print(f"    {line}")
    print(f"  Inputs:      {list(case.inputs)}")
    if case.expected is not None:
        print(f"  Oracle:      {list(case.expected)}")
    print(f"  Batch:       {expected}")
    print(f"  Interactive: {actual}")


def print_header(num_tests: int, generator: str, max_steps: Optional[int]) -> None:
    """Print fuzzer run header."""
    print(f"Intcode Fuzzer - Running {num_tests} tests")
    print(f"Generator: {generator}")
    print(f"Step budget: {max_steps if max_steps is not None else 'unlimited'}")
    print("=" * 60)


# =============================================================================
# Fuzzer Main Logic
# =============================================================================

def run_single_test(
    case: ProgramCase,
    max_steps: Optional[int] = DEFAULT_CONFIG.max_steps
) -> tuple[ExecutionResult, ExecutionResult, bool]:
    """
    Run a single fuzzing test case.

    Returns:
        Tuple of (batch_result, interactive_result, results_match), where a
        match also requires the batch result to satisfy the case's oracle
    """
    batch_result = execute_batch(case, max_steps)
    interactive_result = execute_interactive(case, max_steps)
    matches = compare_results(batch_result, interactive_result) and check_oracle(case, batch_result)
    return batch_result, interactive_result, matches


def run_fuzzer(
    num_tests: int = 1000,
    seed: Optional[int] = None,
    generator: str = "random",
    max_steps: Optional[int] = DEFAULT_CONFIG.max_steps
) -> FuzzingStatistics:
    """
    Run the fuzzer for a specified number of tests.

    Args:
        num_tests: Number of random test cases to generate
        seed: Random seed for reproducibility
        generator: Generator type: "random", "structured", "expression", or "mixed"
        max_steps: Instruction budget per execution

    Returns:
        FuzzingStatistics object with results
    """
    rng = Random(seed)
    generator_func = GENERATORS.get(generator, generate_random_program)

    stats = FuzzingStatistics()
    print_header(num_tests, generator, max_steps)

    for i in range(num_tests):
        case = generator_func(rng)
        batch_result, interactive_result, matches = run_single_test(case, max_steps)
        logger.debug("Test %d: %s -> %s", i + 1, format_program(case.program), batch_result)

        stats.record_test(batch_result, interactive_result, matches)

        if not matches:
            report_bug(i + 1, case, batch_result, interactive_result)

    stats.print_summary()
    return stats


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Differential fuzzer for the Intcode machine")
    parser.add_argument(
        "-n", "--num-tests",
        type=int,
        default=1000,
        help="Number of random test cases to run (default: 1000)"
    )
    parser.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility"
    )
    parser.add_argument(
        "-g", "--generator",
        type=str,
        default="random",
        choices=list(GENERATORS),
        help="Generator type: 'random', 'structured', 'expression', or 'mixed' (default: random)"
    )
    parser.add_argument(
        "-m", "--max-steps",
        type=int,
        default=DEFAULT_CONFIG.max_steps,
        help="Instruction budget per execution (default: %(default)s)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every decoded instruction"
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    run_fuzzer(
        num_tests=args.num_tests,
        seed=args.seed,
        generator=args.generator,
        max_steps=args.max_steps
    )

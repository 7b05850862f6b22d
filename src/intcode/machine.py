"""
Intcode execution engine.

An IntcodeMachine owns its memory, instruction pointer, relative base and input
queue. It runs synchronously when called and returns an explicit event at each
suspension point (an output, or an input instruction with nothing queued), so
the caller decides when to resume.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Union

from intcode.isa import (
    INT64_MIN, INT64_MAX,
    AddressError, CellOverflow, MemoryLimitExceeded,
    InputExhausted, ProtocolError, StepLimitExceeded,
    Add, Multiply, Input, Output, JumpIfTrue, JumpIfFalse,
    LessThan, Equals, AdjustRelativeBase, Halt, Instruction,
    decode,
)

logger = logging.getLogger(__name__)


def check_cell(value: int, where: str) -> int:
    """Return `value` if it is an integer that fits a signed 64-bit cell."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"Cell value for {where} must be an int, got {type(value).__name__}")
    if not (INT64_MIN <= value <= INT64_MAX):
        raise CellOverflow(f"Value {value} for {where} does not fit in 64 bits")
    return value

# =============================================================================
# Memory
# =============================================================================

class Memory:
    """
    Densely indexed cells that zero-extend on any access past the end.

    Growth is unbounded unless a `limit` is given, in which case any address
    at or past it raises MemoryLimitExceeded.
    """

    def __init__(self, cells: Iterable[int] = (), limit: Optional[int] = None):
        self._cells: List[int] = [check_cell(value, f"cell {addr}") for addr, value in enumerate(cells)]
        self._limit = limit

    def __len__(self) -> int:
        return len(self._cells)

    def _ensure(self, addr: int) -> None:
        if addr < 0:
            raise AddressError(f"Negative address {addr}")
        if addr >= len(self._cells):
            if self._limit is not None and addr >= self._limit:
                raise MemoryLimitExceeded(f"Address {addr} is past the memory limit of {self._limit} cells")
            logger.debug("Growing memory from %d to %d cells", len(self._cells), addr + 1)
            self._cells.extend([0] * (addr + 1 - len(self._cells)))

    def read(self, addr: int) -> int:
        self._ensure(addr)
        return self._cells[addr]

    def write(self, addr: int, value: int) -> None:
        check_cell(value, f"address {addr}")
        self._ensure(addr)
        self._cells[addr] = value

    def to_list(self) -> List[int]:
        return self._cells.copy()

# =============================================================================
# Events and state
# =============================================================================

class Status(Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    HALTED = "halted"


@dataclass(frozen=True)
class OutputReady:
    """The program emitted a value."""
    value: int


@dataclass(frozen=True)
class AwaitingInput:
    """The program is blocked on an input instruction writing to `address`."""
    address: int


@dataclass(frozen=True)
class Halted:
    """The program has halted; no further instructions will run."""
    pass


Event = Union[OutputReady, AwaitingInput, Halted]


@dataclass
class MachineState:
    """Point-in-time copy of everything a machine owns."""
    memory: List[int]
    pointer: int
    relative_base: int
    status: Status
    inputs: List[int] = field(default_factory=list)
    awaiting_address: Optional[int] = None
    last_output: Optional[int] = None
    steps: int = 0

# =============================================================================
# Engine
# =============================================================================

class IntcodeMachine:
    """
    Fetch-decode-execute loop over a private copy of a program.

    Two ways to drive it:
        run(inputs)  - batch: feed all inputs, collect every output until halt
        tick()       - interactive: run to the next output, input wait or halt

    Example:
        machine = IntcodeMachine(parse_program("3,0,4,0,99"))
        machine.tick()            # AwaitingInput(address=0)
        machine.provide_input(7)
        machine.tick()            # OutputReady(value=7)
        machine.tick()            # Halted()
    """

    def __init__(self, program: Sequence[int], max_memory: Optional[int] = None):
        self._memory = Memory(program, limit=max_memory)
        self._pointer = 0
        self._relative_base = 0
        self._status = Status.RUNNING
        self._inputs = deque()
        self._awaiting_address: Optional[int] = None
        self._last_output: Optional[int] = None
        self._steps = 0

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def pointer(self) -> int:
        return self._pointer

    @property
    def relative_base(self) -> int:
        return self._relative_base

    @property
    def status(self) -> Status:
        return self._status

    @property
    def steps(self) -> int:
        """Number of instructions executed so far."""
        return self._steps

    @property
    def last_output(self) -> Optional[int]:
        return self._last_output

    @property
    def awaiting_address(self) -> Optional[int]:
        return self._awaiting_address

    @property
    def memory(self) -> List[int]:
        """Copy of the current memory cells."""
        return self._memory.to_list()

    def finished(self) -> bool:
        return self._status is Status.HALTED

    def peek(self, addr: int) -> int:
        return self._memory.read(addr)

    def poke(self, addr: int, value: int) -> None:
        self._memory.write(addr, value)

    def snapshot(self) -> MachineState:
        return MachineState(
            memory=self._memory.to_list(),
            pointer=self._pointer,
            relative_base=self._relative_base,
            status=self._status,
            inputs=list(self._inputs),
            awaiting_address=self._awaiting_address,
            last_output=self._last_output,
            steps=self._steps,
        )

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def feed(self, *values: int) -> None:
        """Queue input values, consumed oldest first by input instructions."""
        if not values:
            return
        if self._status is Status.HALTED:
            raise ProtocolError("Cannot feed input to a halted machine")
        self._inputs.extend([check_cell(value, "input") for value in values])
        if self._status is Status.AWAITING_INPUT:
            # The pointer still sits on the blocked input instruction.
            self._status = Status.RUNNING
            self._awaiting_address = None

    def provide_input(self, value: int) -> None:
        """
        Answer a pending input request.

        The value is written to the awaited address straight away and the
        pointer moves past the input instruction, completing it as one step.

        Raises:
            ProtocolError: If the machine is not awaiting input
            TypeError: If `value` is not an int
            CellOverflow: If `value` does not fit in 64 bits
        """
        if self._status is not Status.AWAITING_INPUT:
            raise ProtocolError(f"Input {value} supplied while machine is {self._status.value}")
        self._memory.write(self._awaiting_address, value)
        self._pointer += 2
        self._steps += 1
        self._status = Status.RUNNING
        self._awaiting_address = None

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def step(self) -> Optional[Event]:
        """
        Execute exactly one instruction.

        Returns:
            The event the instruction produced, or None if execution simply
            moved on

        Raises:
            InvalidInstruction: If the word at the pointer is malformed
            AddressError: If an operand resolves to a negative address
        """
        if self._status is Status.HALTED:
            return Halted()

        instr, next_pointer = decode(self._memory, self._pointer, self._relative_base)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%5d (rb=%d): %s", self._pointer, self._relative_base, instr)

        event = self._execute(instr, next_pointer)
        if not isinstance(event, AwaitingInput):
            self._steps += 1
        return event

    def _execute(self, instr: Instruction, next_pointer: int) -> Optional[Event]:
        memory = self._memory

        match instr:
            case Add(a=a, b=b, dst=dst):
                memory.write(dst, a + b)

            case Multiply(a=a, b=b, dst=dst):
                memory.write(dst, a * b)

            case Input(dst=dst):
                if not self._inputs:
                    logger.debug("Awaiting input for address %d at %d", dst, self._pointer)
                    self._status = Status.AWAITING_INPUT
                    self._awaiting_address = dst
                    return AwaitingInput(dst)
                # Dequeue only after the write succeeds
                memory.write(dst, self._inputs[0])
                self._inputs.popleft()
                self._status = Status.RUNNING
                self._awaiting_address = None

            case Output(value=value):
                self._pointer = next_pointer
                self._last_output = value
                return OutputReady(value)

            case JumpIfTrue(condition=condition, target=target):
                if condition != 0:
                    next_pointer = target

            case JumpIfFalse(condition=condition, target=target):
                if condition == 0:
                    next_pointer = target

            case LessThan(a=a, b=b, dst=dst):
                memory.write(dst, 1 if a < b else 0)

            case Equals(a=a, b=b, dst=dst):
                memory.write(dst, 1 if a == b else 0)

            case AdjustRelativeBase(offset=offset):
                self._relative_base = check_cell(self._relative_base + offset, "relative base")

            case Halt():
                logger.debug("Halted at %d after %d steps", self._pointer, self._steps + 1)
                self._status = Status.HALTED
                return Halted()

        self._pointer = next_pointer
        return None

    def _advance(self, max_steps: Optional[int]) -> Event:
        if self._status is Status.HALTED:
            return Halted()

        deadline = None if max_steps is None else self._steps + max_steps
        while True:
            if deadline is not None and self._steps >= deadline:
                raise StepLimitExceeded(
                    f"No output, input wait or halt within {max_steps} steps (pointer {self._pointer})"
                )
            event = self.step()
            if event is not None:
                return event

    def tick(self, max_steps: Optional[int] = None) -> Event:
        """
        Run until the next output, input wait or halt.

        Calling tick() on a machine blocked on input with nothing queued
        returns AwaitingInput again without side effects; on a halted machine
        it returns Halted().

        Args:
            max_steps: Optional budget of instructions for this call

        Raises:
            StepLimitExceeded: If the budget runs out first
        """
        return self._advance(max_steps)

    def run(self, inputs: Iterable[int] = (), max_steps: Optional[int] = None) -> List[int]:
        """
        Run to halt, feeding `inputs` in order, and return every output.

        Args:
            inputs: Values for input instructions, consumed oldest first
            max_steps: Optional budget of instructions for the whole call

        Returns:
            Outputs in emission order (empty if the machine had already halted)

        Raises:
            InputExhausted: If the program needs more input than was supplied
            StepLimitExceeded: If the budget runs out before halt
        """
        if self._status is Status.HALTED:
            return []
        self.feed(*inputs)

        deadline = None if max_steps is None else self._steps + max_steps
        outputs: List[int] = []
        while True:
            remaining = None if deadline is None else max(deadline - self._steps, 0)
            match self._advance(remaining):
                case OutputReady(value=value):
                    outputs.append(value)
                case AwaitingInput(address=address):
                    raise InputExhausted(
                        f"Program requested input for address {address} at {self._pointer} "
                        f"but no inputs remain"
                    )
                case Halted():
                    return outputs

    def run_until_output(self, inputs: Iterable[int] = (), max_steps: Optional[int] = None) -> Optional[int]:
        """
        Queue `inputs` and run to the next output.

        Returns:
            The output value, or None once the machine has halted

        Raises:
            InputExhausted: If the program needs input and none is queued
        """
        if self._status is Status.HALTED:
            return None
        self.feed(*inputs)

        match self._advance(max_steps):
            case OutputReady(value=value):
                return value
            case AwaitingInput(address=address):
                raise InputExhausted(f"Program requested input for address {address} at {self._pointer}")
            case Halted():
                return None

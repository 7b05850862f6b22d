"""Intcode: a suspendable virtual machine over a flat array of integer cells."""

from .isa import (
    # Constants
    INT64_MIN, INT64_MAX,
    OP_ADD, OP_MUL, OP_INPUT, OP_OUTPUT, OP_JUMP_IF_TRUE, OP_JUMP_IF_FALSE,
    OP_LESS_THAN, OP_EQUALS, OP_ADJUST_RELATIVE_BASE, OP_HALT,
    Mode,
    # Instructions
    Add, Multiply, Input, Output, JumpIfTrue, JumpIfFalse,
    LessThan, Equals, AdjustRelativeBase, Halt, Instruction,
    # Exceptions
    IntcodeException, InvalidInstruction, InvalidMode, AddressError,
    CellOverflow, MemoryLimitExceeded,
    ProtocolError, InputExhausted, StepLimitExceeded,
    # Decoding
    split_word, decode, disassemble,
)

from .machine import (
    Memory, Status, MachineState,
    OutputReady, AwaitingInput, Halted, Event,
    IntcodeMachine,
)

from .loader import ProgramFormatError, parse_program, format_program

from .chain import run_series, run_feedback_loop

__version__ = "0.1.0"

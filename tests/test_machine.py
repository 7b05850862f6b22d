"""
Tests for the Intcode execution engine.

Run with: uv run --extra test pytest tests/test_machine.py
"""

import logging

import pytest

from intcode import (
    IntcodeMachine, Memory, MachineState, Status, parse_program,
    OutputReady, AwaitingInput, Halted,
    InvalidInstruction, InvalidMode, AddressError, CellOverflow, MemoryLimitExceeded,
    ProtocolError, InputExhausted, StepLimitExceeded,
)


QUINE = "109,1,204,-1,1001,100,1,100,1008,100,16,101,1006,101,0,99"
COMPARE_TO_EIGHT = (
    "3,21,1008,21,8,20,1005,20,22,107,8,21,20,1006,20,31,1106,0,36,98,0,0,1002,21,125,20,"
    "4,20,1105,1,46,104,999,1105,1,46,1101,1000,1,20,4,20,1105,1,46,98,99"
)


def run(text, inputs=()):
    return IntcodeMachine(parse_program(text)).run(list(inputs))


def final_memory(text):
    machine = IntcodeMachine(parse_program(text))
    machine.run()
    return machine.memory


# =============================================================================
# Memory
# =============================================================================

def test_memory_grows_on_read_and_write():
    memory = Memory([1, 2, 3])
    assert memory.read(10) == 0
    assert len(memory) == 11

    memory.write(20, 5)
    assert len(memory) == 21
    assert memory.read(20) == 5
    assert memory.to_list()[:3] == [1, 2, 3]


def test_memory_rejects_negative_address():
    memory = Memory([1, 2, 3])
    with pytest.raises(AddressError):
        memory.read(-1)
    with pytest.raises(AddressError):
        memory.write(-1, 0)


def test_memory_rejects_values_wider_than_64_bits():
    memory = Memory([0])
    memory.write(0, (1 << 63) - 1)
    memory.write(0, -(1 << 63))
    with pytest.raises(CellOverflow):
        memory.write(0, 1 << 63)


def test_memory_limit_applies_only_to_growth():
    memory = Memory([0] * 8, limit=4)
    assert memory.read(7) == 0
    with pytest.raises(MemoryLimitExceeded):
        memory.read(8)


# =============================================================================
# Batch execution
# =============================================================================

def test_add_and_multiply_terminal_memory():
    assert final_memory("1,0,0,0,99") == [2, 0, 0, 0, 99]
    assert final_memory("2,3,0,3,99") == [2, 3, 0, 6, 99]
    assert final_memory("2,4,4,5,99,0") == [2, 4, 4, 5, 99, 9801]
    assert final_memory("1,1,1,4,99,5,6,0,99") == [30, 1, 1, 4, 2, 5, 6, 0, 99]


def test_input_output():
    assert run("3,0,4,0,99", [1]) == [1]


def test_equal_to():
    assert run("3,9,8,9,10,9,4,9,99,-1,8", [8]) == [1]
    assert run("3,9,8,9,10,9,4,9,99,-1,8", [10]) == [0]
    assert run("3,3,1108,-1,8,3,4,3,99", [8]) == [1]
    assert run("3,3,1108,-1,8,3,4,3,99", [10]) == [0]


def test_less_than():
    assert run("3,9,7,9,10,9,4,9,99,-1,8", [7]) == [1]
    assert run("3,9,7,9,10,9,4,9,99,-1,8", [9]) == [0]
    assert run("3,3,1107,-1,8,3,4,3,99", [7]) == [1]
    assert run("3,3,1107,-1,8,3,4,3,99", [9]) == [0]


def test_branching():
    assert run("3,12,6,12,15,1,13,14,13,4,13,99,-1,0,1,9", [0]) == [0]
    assert run("3,12,6,12,15,1,13,14,13,4,13,99,-1,0,1,9", [-1]) == [1]
    assert run("3,3,1105,-1,9,1101,0,0,12,4,12,99,1", [0]) == [0]
    assert run("3,3,1105,-1,9,1101,0,0,12,4,12,99,1", [-1]) == [1]


def test_compare_to_eight():
    assert run(COMPARE_TO_EIGHT, [0]) == [999]
    assert run(COMPARE_TO_EIGHT, [8]) == [1000]
    assert run(COMPARE_TO_EIGHT, [20]) == [1001]


def test_quine():
    assert run(QUINE) == parse_program(QUINE)


def test_sixteen_digit_output():
    outputs = run("1102,34915192,34915192,7,4,7,99,0")
    assert len(outputs) == 1
    assert len(str(outputs[0])) == 16


def test_large_number():
    assert run("104,1125899906842624,99") == [1125899906842624]


def test_relative_base():
    # rb = 5, so [rb-3] is address 2, which holds the output instruction itself
    assert run("109,5,204,-3,99") == [204]


def test_writes_past_program_end_grow_memory():
    machine = IntcodeMachine(parse_program("1101,5,6,100,4,100,99"))
    assert machine.run() == [11]
    assert len(machine.memory) == 101
    assert machine.peek(100) == 11


def test_reads_past_program_end_are_zero():
    assert run("4,50,99") == [0]


def test_halt_ignores_mode_digits():
    machine = IntcodeMachine([1199, 4, 0])
    assert machine.run() == []
    assert machine.finished()


def test_run_copies_program():
    program = parse_program("1,0,0,0,99")
    machine = IntcodeMachine(program)
    machine.run()
    assert program == [1, 0, 0, 0, 99]
    assert machine.memory == [2, 0, 0, 0, 99]


def test_poke_before_run():
    machine = IntcodeMachine(parse_program("1,0,0,3,99"))
    machine.poke(1, 4)
    machine.poke(2, 4)
    machine.run()
    assert machine.peek(3) == 198


def test_run_on_halted_machine_returns_nothing():
    machine = IntcodeMachine(parse_program("104,7,99"))
    assert machine.run() == [7]
    assert machine.run() == []
    assert machine.run([1, 2]) == []


# =============================================================================
# Errors
# =============================================================================

def test_malformed_programs():
    with pytest.raises(InvalidInstruction, match="zero"):
        run("0")
    with pytest.raises(InvalidInstruction, match="Unknown opcode"):
        run("42,0,0,0,99")
    with pytest.raises(InvalidInstruction, match="Negative"):
        run("-3,0,99")
    with pytest.raises(InvalidMode):
        run("301,0,99")
    with pytest.raises(InvalidMode):
        run("11101,1,1,0,99")


def test_negative_addresses():
    with pytest.raises(AddressError):
        run("4,-1,99")
    with pytest.raises(AddressError):
        run("204,-1,99")
    with pytest.raises(AddressError):
        run("1101,1,1,-4,99")
    with pytest.raises(AddressError):
        run("1105,1,-2")


def test_arithmetic_overflow():
    with pytest.raises(CellOverflow):
        run("1102,4294967296,4294967296,0,99")


def test_initial_cells_must_fit_64_bits():
    with pytest.raises(CellOverflow):
        IntcodeMachine([104, 1 << 70, 99])
    with pytest.raises(CellOverflow):
        Memory([0, -(1 << 63) - 1])
    with pytest.raises(TypeError):
        IntcodeMachine([104, 1.5, 99])


def test_relative_base_must_fit_64_bits():
    machine = IntcodeMachine([109, 1 << 62, 109, 1 << 62, 99])
    with pytest.raises(CellOverflow):
        machine.run()
    assert machine.relative_base == 1 << 62
    assert machine.pointer == 2


def test_input_values_are_checked():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))
    with pytest.raises(CellOverflow):
        machine.feed(1 << 63)
    with pytest.raises(TypeError):
        machine.feed(2, 1.5)
    assert machine.snapshot().inputs == []

    assert machine.tick() == AwaitingInput(address=0)
    with pytest.raises(TypeError):
        machine.provide_input(1.5)
    with pytest.raises(CellOverflow):
        machine.provide_input(1 << 63)
    assert machine.status is Status.AWAITING_INPUT
    assert machine.steps == 0

    machine.provide_input(-1)
    assert machine.tick() == OutputReady(-1)


def test_failed_input_write_keeps_queued_value():
    machine = IntcodeMachine(parse_program("3,50,4,50,99"), max_memory=10)
    machine.feed(7, 8)
    with pytest.raises(MemoryLimitExceeded):
        machine.tick()
    state = machine.snapshot()
    assert state.inputs == [7, 8]
    assert state.pointer == 0
    assert state.steps == 0

    # The same program succeeds once memory may grow
    machine = IntcodeMachine(parse_program("3,50,4,50,99"))
    machine.feed(7, 8)
    assert machine.tick() == OutputReady(7)
    assert machine.snapshot().inputs == [8]


def test_batch_input_exhausted():
    with pytest.raises(InputExhausted):
        run("3,0,3,0,99", [1])


def test_step_limit():
    machine = IntcodeMachine(parse_program("1105,1,0"))
    with pytest.raises(StepLimitExceeded):
        machine.run(max_steps=100)
    assert machine.steps == 100

    with pytest.raises(StepLimitExceeded):
        machine.tick(max_steps=5)
    assert machine.steps == 105


def test_step_limit_counts_whole_run():
    program = parse_program("104,1,104,2,104,3,99")
    assert IntcodeMachine(program).run(max_steps=4) == [1, 2, 3]
    with pytest.raises(StepLimitExceeded):
        IntcodeMachine(program).run(max_steps=3)


# =============================================================================
# Interactive execution
# =============================================================================

def test_tick_events():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))

    assert machine.tick() == AwaitingInput(address=0)
    assert machine.status is Status.AWAITING_INPUT
    assert machine.awaiting_address == 0

    machine.provide_input(7)
    assert machine.status is Status.RUNNING
    assert machine.tick() == OutputReady(value=7)
    assert machine.last_output == 7
    assert not machine.finished()

    assert machine.tick() == Halted()
    assert machine.finished()
    assert machine.tick() == Halted()


def test_tick_while_blocked_has_no_effect():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))
    first = machine.tick()
    before = machine.snapshot()
    assert machine.tick() == first
    assert machine.snapshot() == before
    assert machine.pointer == 0


def test_provide_input_out_of_turn():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))
    with pytest.raises(ProtocolError):
        machine.provide_input(1)

    machine.tick()
    machine.provide_input(1)
    with pytest.raises(ProtocolError):
        machine.provide_input(2)


def test_feed_resumes_blocked_machine():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))
    assert isinstance(machine.tick(), AwaitingInput)
    machine.feed(9)
    assert machine.status is Status.RUNNING
    assert machine.tick() == OutputReady(9)
    with pytest.raises(ProtocolError):
        machine.provide_input(3)


def test_feed_after_halt():
    machine = IntcodeMachine([99])
    machine.tick()
    with pytest.raises(ProtocolError):
        machine.feed(1)


def test_run_until_output():
    machine = IntcodeMachine(parse_program("3,0,4,0,104,2,99"))
    assert machine.run_until_output([5]) == 5
    assert machine.run_until_output() == 2
    assert machine.run_until_output() is None
    assert machine.run_until_output([1]) is None

    with pytest.raises(InputExhausted):
        IntcodeMachine(parse_program("3,0,99")).run_until_output()


def test_step_executes_one_instruction():
    machine = IntcodeMachine(parse_program("1101,2,3,5,4,5,99"))
    assert machine.step() is None
    assert machine.pointer == 4
    assert machine.peek(5) == 5
    assert machine.step() == OutputReady(5)
    assert machine.step() == Halted()
    assert machine.steps == 3


@pytest.mark.parametrize("text, inputs", [
    ("3,9,8,9,10,9,4,9,99,-1,8", [8]),
    ("3,15,3,16,1002,16,10,16,1,16,15,15,4,15,99,0,0", [4, 0]),
    (COMPARE_TO_EIGHT, [20]),
    ("3,0,4,0,3,0,4,0,3,0,4,0,99", [1, -2, 3]),
])
def test_tick_driven_matches_batch(text, inputs):
    program = parse_program(text)
    expected = IntcodeMachine(program).run(inputs)

    machine = IntcodeMachine(program)
    pending = list(inputs)
    outputs = []
    while not machine.finished():
        match machine.tick():
            case OutputReady(value=value):
                outputs.append(value)
            case AwaitingInput():
                machine.provide_input(pending.pop(0))
            case Halted():
                pass

    assert outputs == expected
    assert pending == []


def test_snapshot_is_independent_copy():
    machine = IntcodeMachine(parse_program("3,0,4,0,99"))
    machine.feed(4, 5)
    assert machine.tick() == OutputReady(4)

    state = machine.snapshot()
    assert isinstance(state, MachineState)
    assert state.memory == [4, 0, 4, 0, 99]
    assert state.pointer == 4
    assert state.inputs == [5]
    assert state.status is Status.RUNNING
    assert state.last_output == 4

    state.memory[0] = 123
    state.inputs.clear()
    assert machine.peek(0) == 4
    assert machine.snapshot().inputs == [5]


def test_debug_logging_traces_instructions(caplog):
    with caplog.at_level(logging.DEBUG, logger="intcode.machine"):
        IntcodeMachine(parse_program("104,1,99")).run()
    messages = [record.getMessage() for record in caplog.records]
    assert any("Output(value=1)" in message for message in messages)
    assert any("Halted" in message for message in messages)

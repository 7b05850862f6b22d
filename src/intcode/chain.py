"""
Drive several machines running the same program as a chain.

Each machine is seeded with its own phase value, then a signal is threaded
from one machine's output to the next machine's input.
"""

import logging
from typing import List, Optional, Sequence

from intcode.isa import InputExhausted, ProtocolError
from intcode.machine import IntcodeMachine, OutputReady, AwaitingInput, Halted

logger = logging.getLogger(__name__)


def run_series(program: Sequence[int], phases: Sequence[int], signal: int = 0,
               max_steps: Optional[int] = None) -> int:
    """
    Run one machine per phase to completion, left to right.

    Each machine gets [phase, signal] as its inputs; its last output becomes
    the signal for the next machine.

    Raises:
        ProtocolError: If a machine halts without producing any output
    """
    for index, phase in enumerate(phases):
        outputs = IntcodeMachine(program).run([phase, signal], max_steps=max_steps)
        if not outputs:
            raise ProtocolError(f"Machine {index} (phase {phase}) halted without output")
        signal = outputs[-1]
    return signal


def run_feedback_loop(program: Sequence[int], phases: Sequence[int], signal: int = 0,
                      max_steps: Optional[int] = None) -> int:
    """
    Run machines in a ring until every one of them has halted.

    The signal goes into the first machine, each output is fed to the next
    machine, and the last machine's output wraps around to the first.
    A machine that has halted passes the signal it was given on unchanged, so
    the next machine may receive a value it emitted itself in an earlier round.

    Args:
        program: Program loaded into every machine
        phases: One phase value per machine, fed before any signal
        signal: Initial signal for the first machine
        max_steps: Optional instruction budget for each tick

    Returns:
        The last signal emitted before the ring halted

    Raises:
        ProtocolError: If a machine asks for more input than the ring supplies
    """
    machines: List[IntcodeMachine] = []
    for phase in phases:
        machine = IntcodeMachine(program)
        machine.feed(phase)
        machines.append(machine)

    rounds = 0
    while not all(machine.finished() for machine in machines):
        rounds += 1
        for index, machine in enumerate(machines):
            if machine.finished():
                continue
            machine.feed(signal)
            match machine.tick(max_steps=max_steps):
                case OutputReady(value=value):
                    signal = value
                case AwaitingInput(address=address):
                    raise InputExhausted(
                        f"Machine {index} stalled waiting for input at address {address} in round {rounds}"
                    )
                case Halted():
                    pass

    logger.debug("Feedback loop of %d machines halted after %d rounds", len(machines), rounds)
    return signal

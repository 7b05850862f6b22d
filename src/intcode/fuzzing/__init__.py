"""Fuzzing framework for the Intcode machine."""

from .fuzzer import (
    ProgramCase,
    ExecutionResult, Success, ExceptionThrown, Crash,
    FuzzingStatistics,
    execute_batch, execute_interactive,
    run_fuzzer,
)

from .expression import (
    Expr, Const, Input, Add, Mul, LessThan, Equals, Select,
    INT32_MIN, INT32_MAX,
    compile_expr_to_code,
    compile_expr,
    count_inputs,
    evaluate,
    expected_outputs,
    random_expr,
)

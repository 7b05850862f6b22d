"""Program text <-> memory cells."""

from typing import Iterable, List

from intcode.isa import IntcodeException, INT64_MIN, INT64_MAX


class ProgramFormatError(IntcodeException, ValueError):
    """Raised when program text is not a comma-separated list of integers."""
    pass


def parse_program(text: str) -> List[int]:
    """
    Parse comma-separated base-10 integers into initial memory cells.

    Whitespace around the whole text and around each field is ignored.

    Raises:
        ProgramFormatError: On an empty field, a non-integer field, or a value
            outside the signed 64-bit range
    """
    cells = []
    for index, field in enumerate(text.strip().split(",")):
        field = field.strip()
        if not field:
            raise ProgramFormatError(f"Empty field at position {index}")
        try:
            value = int(field, 10)
        except ValueError:
            raise ProgramFormatError(f"Field {index} is not an integer: {field!r}") from None
        if not (INT64_MIN <= value <= INT64_MAX):
            raise ProgramFormatError(f"Field {index} out of 64-bit range: {value}")
        cells.append(value)
    return cells


def format_program(cells: Iterable[int]) -> str:
    return ",".join(str(cell) for cell in cells)

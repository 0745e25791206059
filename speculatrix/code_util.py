"""Functions meant mostly for development."""

import sys
from typing import TextIO


def format_string_map(data: dict[str, str]) -> list[str]:
    """Lines of `key : value`, with keys right-aligned to the longest one."""
    width = max((len(key) for key in data), default=0)
    return [f"{key:>{width}} : {value}" for key, value in data.items()]


def print_string_map(data: dict[str, str], file: TextIO | None = None) -> None:
    file = file or sys.stdout
    for line in format_string_map(data):
        print(line, file=file)

"""Core domain types shared by the chat and tool layers."""

from .ranges import LineRange, merge_line_ranges
from .script_text import add_line_numbers, strip_code_fence, strip_line_numbers

__all__ = [
    "LineRange",
    "add_line_numbers",
    "merge_line_ranges",
    "strip_code_fence",
    "strip_line_numbers",
]

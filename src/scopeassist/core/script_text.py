"""Helpers for numbered script text exchanged with the model.

Scripts are sent to the model as ``"NN | code"`` lines so it can refer to
line numbers. Models often echo that numbering (and a markdown fence) back
when writing a script; :func:`strip_line_numbers` undoes both.
"""

from __future__ import annotations

import re

__all__ = ["add_line_numbers", "strip_code_fence", "strip_line_numbers"]

_CODE_FENCE_RE = re.compile(r"^\s*```[\w+#.-]*[ \t]*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)
_NUMBERED_LINE_RE = re.compile(r"^(?P<number>\s*\d+) \|(?: (?P<code>.*)|(?P<empty>))$", re.DOTALL)


def add_line_numbers(text: str) -> str:
    """Prefix each line with its 1-based number, right-aligned to a common width."""

    lines = text.split("\n")
    width = len(str(len(lines)))
    return "".join(f"{index:>{width}} | {line}\n" for index, line in enumerate(lines, start=1))


def strip_code_fence(text: str) -> str:
    """Remove one surrounding markdown code fence, keeping the body verbatim."""

    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group("body")
    return text


def strip_line_numbers(text: str | None) -> str:
    """Remove ``"NN | "`` prefixes when every non-empty line carries one.

    A surrounding code fence is removed first. Text whose numbering is
    inconsistent, or that has fewer than two lines, is returned as is.
    """

    if text is None:
        return ""
    cleaned = strip_code_fence(text)
    lines = cleaned.split("\n")
    if len(lines) < 2:
        return cleaned

    prefix_width: int | None = None
    stripped: list[str] = []
    for line in lines:
        if not line:
            stripped.append("")
            continue
        match = _NUMBERED_LINE_RE.match(line)
        if match is None:
            return cleaned
        width = len(match.group("number"))
        if prefix_width is None:
            prefix_width = width
        elif width != prefix_width:
            return cleaned
        stripped.append(match.group("code") or "")
    if prefix_width is None:
        return cleaned
    # add_line_numbers terminates every line, so drop the empty tail it leaves.
    if not lines[-1]:
        stripped.pop()
    return "\n".join(stripped)

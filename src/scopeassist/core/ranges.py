"""Structured helpers for representing selected line spans."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(slots=True, frozen=True)
class LineRange(Sequence[int]):
    """Inclusive span of lines inside a source document.

    Both ends are non-negative and ``end >= start``; a reversed span raises
    :class:`ValueError` instead of being reordered.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        start = self._coerce_index(self.start, "start")
        end = self._coerce_index(self.end, "end")
        if end < start:
            raise ValueError(f"LineRange end ({end}) must not precede start ({start})")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @staticmethod
    def _coerce_index(value: Any, label: str) -> int:
        if isinstance(value, bool):
            raise ValueError(f"LineRange {label} must be an integer")
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"LineRange {label} must be an integer") from exc
        if number < 0:
            raise ValueError(f"LineRange {label} must be non-negative")
        return number

    def __len__(self) -> int:
        return 2

    def __getitem__(self, index: int | slice) -> int | tuple[int, ...]:
        if isinstance(index, slice):
            return self.to_tuple()[index]
        if index == 0:
            return self.start
        if index == 1:
            return self.end
        raise IndexError("LineRange index out of range")

    def __iter__(self) -> Iterator[int]:
        yield self.start
        yield self.end

    def __str__(self) -> str:
        return self.label

    @property
    def label(self) -> str:
        """Return the ``start-end`` notation used in rendered context."""

        return f"{self.start}-{self.end}"

    @property
    def line_count(self) -> int:
        """Return the number of lines covered by the span (inclusive)."""

        return (self.end - self.start) + 1

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_value(cls, value: Any) -> LineRange:
        """Coerce ``value`` into a :class:`LineRange`.

        Accepts another range, a ``{"start": .., "end": ..}`` mapping, a
        two-item sequence or the ``"3-8"`` label notation.
        """

        if isinstance(value, LineRange):
            return value
        if value is None:
            raise ValueError("LineRange value is required")
        if isinstance(value, str):
            head, sep, tail = value.strip().partition("-")
            if not sep:
                return cls(head, head)
            return cls(head.strip(), tail.strip())
        if isinstance(value, Mapping):
            start = value.get("start")
            end = value.get("end")
            if start is None or end is None:
                raise ValueError("LineRange mappings require start and end keys")
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, bytes):
            seq = list(value)
            if len(seq) != 2:
                raise ValueError("LineRange sequences must have exactly two entries")
            return cls(seq[0], seq[1])
        raise TypeError("Unsupported LineRange input")


def merge_line_ranges(ranges: Iterable[LineRange]) -> tuple[LineRange, ...]:
    """Fold ``ranges`` into the minimal sorted set of disjoint spans.

    Overlapping spans and spans separated by a gap of zero lines
    (``3-5`` followed by ``6-8``) collapse into a single span.
    """

    ordered = sorted(ranges, key=lambda span: (span.start, span.end))
    if not ordered:
        return ()

    merged: list[LineRange] = []
    current = ordered[0]
    for upcoming in ordered[1:]:
        if current.end >= upcoming.start - 1:
            current = LineRange(current.start, max(current.end, upcoming.end))
        else:
            merged.append(current)
            current = upcoming
    merged.append(current)
    return tuple(merged)


__all__ = ["LineRange", "merge_line_ranges"]

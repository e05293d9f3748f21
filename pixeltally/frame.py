"""
Named time series stored as a sorted matrix.

A Frame maps a row name to a fixed-width list of integer counters, one per
time bucket. Rows are kept sorted by name so lookups are a binary search and
serialization order is deterministic.
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Iterator, List, Optional, Tuple

_name = attrgetter("name")


@dataclass
class Row:
    """One named series; ``values[i]`` is the count for bucket ``i``."""

    name: str
    values: List[int] = field(default_factory=list)

    def get(self, i: int) -> int:
        """Read a bucket, treating anything out of range as zero."""
        if i < 0 or i >= len(self.values):
            return 0
        return self.values[i]

    def last(self, n: int) -> int:
        """Sum of the last ``n`` buckets."""
        size = len(self.values)
        return sum(self.get(size - 1 - i) for i in range(n))

    def total(self) -> int:
        return sum(self.values)


class Frame:
    """
    Sorted collection of Rows sharing one width.

    Usage:
        frame = Frame()
        frame.grow(24)
        frame.row("/about").values[13] += 1
    """

    def __init__(self, width: Optional[int] = None):
        self._rows: List[Row] = []
        self._width = width

    @property
    def width(self) -> int:
        """Number of buckets in every row."""
        if self._width is None:
            return len(self._rows[0].values) if self._rows else 0
        return self._width

    @property
    def rows(self) -> List[Row]:
        return self._rows

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, name: str) -> bool:
        return self.find(name)[1]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return self._rows == other._rows

    def __repr__(self) -> str:
        return f"Frame(width={self.width}, rows={self._rows!r})"

    def find(self, name: str) -> Tuple[int, bool]:
        """
        Binary search for a row.

        Returns:
            (index, found). When not found, index is the insertion point.
        """
        i = bisect_left(self._rows, name, key=_name)
        return i, i < len(self._rows) and self._rows[i].name == name

    def row(self, name: str) -> Row:
        """Return the named row, inserting a zero-filled one if missing."""
        i, found = self.find(name)
        if not found:
            self._rows.insert(i, Row(name, [0] * self.width))
        return self._rows[i]

    def get(self, name: str) -> Optional[Row]:
        i, found = self.find(name)
        return self._rows[i] if found else None

    def delete(self, name: str) -> bool:
        i, found = self.find(name)
        if found:
            del self._rows[i]
        return found

    def grow(self, width: int) -> None:
        """
        Resize every row to ``width`` buckets.

        New buckets are zero. Shrinking drops trailing buckets for good.
        """
        if width < 0:
            raise ValueError(f"Invalid frame width: {width}")
        if width == self.width:
            return
        self._width = width
        for row in self._rows:
            missing = width - len(row.values)
            if missing > 0:
                row.values.extend([0] * missing)
            else:
                del row.values[width:]

    def top(self, n: int, last: Optional[int] = None) -> List[Tuple[str, int]]:
        """Rows ranked by total (or by their last ``last`` buckets), highest first."""
        ranked = [
            (row.name, row.total() if last is None else row.last(last))
            for row in self._rows
        ]
        ranked = [item for item in ranked if item[1] > 0]
        ranked.sort(key=lambda item: (-item[1], item[0]))
        return ranked[:n]

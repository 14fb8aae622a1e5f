'''Growable numpy storage and the per-corner attribute channels built on it.'''

from dataclasses import dataclass, field

import numpy as np


class GrowableArray:
    """Append-only numpy buffer with amortized doubling.

    width == 0 stores scalars (shape (N,)), otherwise rows of shape (N, width).
    """

    def __init__(self, width: int = 3, dtype=np.float64, capacity: int = 8):
        self._tail = () if width == 0 else (width,)
        self._data = np.zeros((max(capacity, 1),) + self._tail, dtype=dtype)
        self._count = 0

    @classmethod
    def from_array(cls, values, width: int = 3, dtype=np.float64) -> "GrowableArray":
        result = cls(width, dtype, capacity=len(values))
        result.extend(values)
        return result

    @property
    def width(self) -> int:
        return self._tail[0] if self._tail else 0

    @property
    def dtype(self):
        return self._data.dtype

    def __len__(self) -> int:
        return self._count

    def _ensure_capacity(self, n: int) -> None:
        if n <= len(self._data):
            return
        new_data = np.zeros((max(n, 2 * len(self._data)),) + self._tail, dtype=self._data.dtype)
        new_data[: self._count] = self._data[: self._count]
        self._data = new_data

    def append(self, value) -> int:
        """Appends one entry and returns its index."""
        self._ensure_capacity(self._count + 1)
        self._data[self._count] = value
        self._count += 1
        return self._count - 1

    def extend(self, values) -> int:
        """Appends many entries and returns the index of the first."""
        values = np.asarray(values, dtype=self._data.dtype).reshape((-1,) + self._tail)
        first = self._count
        self._ensure_capacity(self._count + len(values))
        self._data[first : first + len(values)] = values
        self._count += len(values)
        return first

    def view(self) -> np.ndarray:
        """The live entries. Writes through to the buffer."""
        return self._data[: self._count]

    def is_valid_index(self, i: int) -> bool:
        return 0 <= i < self._count

    def __getitem__(self, i: int):
        if not self.is_valid_index(i):
            raise IndexError(f"index {i} out of range for {self._count} entries")
        value = self._data[i]
        return value.copy() if self._tail else value.item()

    def __setitem__(self, i: int, value) -> None:
        if not self.is_valid_index(i):
            raise IndexError(f"index {i} out of range for {self._count} entries")
        self._data[i] = value

    def truncate(self, n: int) -> None:
        if 0 <= n < self._count:
            self._count = n

    def replace(self, values) -> None:
        """Replaces every entry with values."""
        self._count = 0
        self.extend(values)

    def copy(self) -> "GrowableArray":
        return GrowableArray.from_array(self.view(), self.width, self._data.dtype)

    def is_almost_equal(self, other: "GrowableArray", tol: float = 1e-10) -> bool:
        if len(self) != len(other):
            return False
        return bool(np.allclose(self.view(), other.view(), atol=tol))


@dataclass
class AttributeChannel:
    """Optional corner attribute: the data array and its per-corner indices.

    A channel is present or absent as a whole, data and index never separate.
    """

    data: GrowableArray
    index: list[int] = field(default_factory=list)

    @classmethod
    def create(cls, width: int, dtype=np.float64) -> "AttributeChannel":
        return cls(GrowableArray(width, dtype))

    def is_valid_index(self, i: int) -> bool:
        return self.data.is_valid_index(i)

    def copy(self) -> "AttributeChannel":
        return AttributeChannel(self.data.copy(), list(self.index))

    def is_almost_equal(self, other: "AttributeChannel", tol: float = 1e-10) -> bool:
        return self.index == other.index and self.data.is_almost_equal(other.data, tol)


# Channel name -> (row width, dtype)
CHANNEL_LAYOUT = {
    "normal": (3, np.float64),
    "param": (2, np.float64),
    "color": (0, np.uint32),
}

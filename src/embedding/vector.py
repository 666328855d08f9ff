# src/embedding/vector.py — v1
"""Embedding vector value type backed by a float32 numpy array."""

from __future__ import annotations

from typing import Iterable

import numpy as np


class Embedding:
    """Opaque embedding vector tagged with the wire model that produced it."""

    __slots__ = ("model", "_values")

    def __init__(self, model: str, values: Iterable[float] | np.ndarray | None = None) -> None:
        self.model = model
        self._values = np.zeros(0, dtype=np.float32)
        if values is not None:
            self.set_from_floats(values)

    def set_from_floats(self, values: Iterable[float] | np.ndarray) -> None:
        """Replace the stored values (copied and converted to float32)."""
        array = np.asarray(list(values) if not isinstance(values, np.ndarray) else values,
                           dtype=np.float32)
        if array.ndim != 1:
            raise ValueError(f"Expected 1D vector, got {array.ndim}D")
        self._values = array.copy()

    def to_floats(self) -> list[float]:
        return [float(v) for v in self._values]

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the underlying array."""
        return self._values.copy()

    @property
    def dimension(self) -> int:
        return int(self._values.shape[0])

    def __len__(self) -> int:
        return self.dimension

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Embedding):
            return NotImplemented
        return self.model == other.model and np.array_equal(self._values, other._values)

    def __repr__(self) -> str:
        return f"Embedding(model={self.model!r}, dimension={self.dimension})"

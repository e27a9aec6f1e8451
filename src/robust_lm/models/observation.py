"""Observation and dataset models"""

from dataclasses import dataclass, field
from typing import Iterator, List, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Observation:
    """A single (x, y) pair identified by its row index"""
    index: int
    x: float
    y: float


@dataclass(frozen=True)
class Dataset:
    """
    Ordered collection of observations

    The underlying frame has columns ``x`` and ``y`` and is indexed by the
    observation row index. Derived datasets keep the original row indices so
    fits on different variants can be joined by observation.
    """
    name: str
    data: pd.DataFrame = field(repr=False)

    def __post_init__(self):
        missing = [col for col in ('x', 'y') if col not in self.data.columns]
        if missing:
            raise ValueError(f"Dataset '{self.name}' missing columns: {missing}")

        frame = self.data[['x', 'y']].astype(float).copy()
        frame.index.name = 'obs'
        object.__setattr__(self, 'data', frame)

    @classmethod
    def from_arrays(cls, name: str, x: Sequence[float], y: Sequence[float]) -> 'Dataset':
        """Build a dataset from parallel x and y arrays"""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        if x.shape != y.shape:
            raise ValueError(f"x and y must have the same length ({len(x)} != {len(y)})")
        return cls(name=name, data=pd.DataFrame({'x': x, 'y': y}))

    @property
    def n(self) -> int:
        return len(self.data)

    @property
    def x(self) -> np.ndarray:
        return self.data['x'].to_numpy(copy=True)

    @property
    def y(self) -> np.ndarray:
        return self.data['y'].to_numpy(copy=True)

    @property
    def indices(self) -> np.ndarray:
        return self.data.index.to_numpy(copy=True)

    def observations(self) -> Iterator[Observation]:
        for idx, row in self.data.iterrows():
            yield Observation(index=int(idx), x=float(row['x']), y=float(row['y']))

    def to_frame(self) -> pd.DataFrame:
        """Return a copy of the data with the row index as a column"""
        return self.data.reset_index()

    def with_values(self, name: str, y_values: Sequence[float], rows: Sequence[int]) -> 'Dataset':
        """Return a new dataset with y overwritten at the given row positions"""
        frame = self.data.copy()
        positions = list(rows)
        if len(positions) != len(y_values):
            raise ValueError("rows and y_values must have the same length")
        frame.iloc[positions, frame.columns.get_loc('y')] = list(y_values)
        return Dataset(name=name, data=frame)

    def without(self, name: str, indices: Sequence[int]) -> 'Dataset':
        """Return a new dataset with the given observation indices removed"""
        drop: List[int] = [int(i) for i in indices]
        unknown = set(drop) - set(self.data.index)
        if unknown:
            raise ValueError(f"Unknown observation indices: {sorted(unknown)}")
        return Dataset(name=name, data=self.data.drop(index=drop))

    def __len__(self) -> int:
        return self.n

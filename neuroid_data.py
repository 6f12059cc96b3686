"""
Training data containers.

A ``DataSet`` is an ordered list of ``DataSetRow`` objects with fixed input
and (for supervised sets) desired-output dimensions.  Rows are validated on
insertion so learning rules can rely on the sizes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np

from neuroid_foundation import PersistenceError, VectorSizeMismatchError

logger = logging.getLogger("neuroid.data")


class DataSetRow:
    """One training pattern.

    Args:
        input: Input vector.
        desired_output: Target vector; ``None`` for unsupervised rows.
        label: Optional name of the pattern.
    """

    def __init__(
        self,
        input: Sequence[float],
        desired_output: Optional[Sequence[float]] = None,
        label: Optional[str] = None,
    ):
        if input is None:
            raise ValueError("Row input can't be None")
        self.input = np.asarray(input, dtype=np.float64).ravel()
        self.desired_output = (
            None if desired_output is None
            else np.asarray(desired_output, dtype=np.float64).ravel()
        )
        self.label = label

    @property
    def is_supervised(self) -> bool:
        return self.desired_output is not None

    def to_list(self) -> List[float]:
        values = self.input.tolist()
        if self.desired_output is not None:
            values.extend(self.desired_output.tolist())
        return values

    def __repr__(self) -> str:
        if self.desired_output is None:
            return f"DataSetRow({self.input.tolist()})"
        return f"DataSetRow({self.input.tolist()} -> {self.desired_output.tolist()})"


class DataSet:
    """Ordered collection of rows with fixed dimensions.

    Args:
        input_size: Length of every input vector.
        output_size: Length of every desired output; 0 for an unsupervised set.
        label: Optional name.
    """

    def __init__(self, input_size: int, output_size: int = 0, label: Optional[str] = None):
        if input_size <= 0:
            raise ValueError("Input size must be greater than zero")
        if output_size < 0:
            raise ValueError("Output size can't be negative")
        self.input_size = input_size
        self.output_size = output_size
        self.label = label
        self.column_names: Optional[List[str]] = None
        self._rows: List[DataSetRow] = []

    @property
    def is_supervised(self) -> bool:
        return self.output_size > 0

    @property
    def rows(self) -> List[DataSetRow]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[DataSetRow]:
        return iter(list(self._rows))

    def __getitem__(self, index: int) -> DataSetRow:
        return self._rows[index]

    def is_empty(self) -> bool:
        return not self._rows

    def add_row(
        self,
        row: Union[DataSetRow, Sequence[float]],
        desired_output: Optional[Sequence[float]] = None,
    ) -> DataSetRow:
        """Append a row (or build one from ``row`` and ``desired_output``).

        Raises:
            ValueError: ``row`` is None.
            VectorSizeMismatchError: Input or desired output has the wrong
                length, or a supervised set gets a row without desired output.
        """
        if row is None:
            raise ValueError("Training row can't be None")
        if not isinstance(row, DataSetRow):
            row = DataSetRow(row, desired_output)

        if row.input.shape[0] != self.input_size:
            raise VectorSizeMismatchError(
                f"Input vector size {row.input.shape[0]} does not match data set input size {self.input_size}"
            )
        if self.is_supervised:
            if row.desired_output is None or row.desired_output.shape[0] != self.output_size:
                size = 0 if row.desired_output is None else row.desired_output.shape[0]
                raise VectorSizeMismatchError(
                    f"Desired output size {size} does not match data set output size {self.output_size}"
                )
        self._rows.append(row)
        return row

    def get_row_at(self, index: int) -> DataSetRow:
        return self._rows[index]

    def remove_row_at(self, index: int) -> DataSetRow:
        return self._rows.pop(index)

    def clear(self) -> None:
        self._rows.clear()

    def shuffle(self, rng: Optional[np.random.Generator] = None) -> None:
        """Shuffle the rows in place."""
        rng = rng if rng is not None else np.random.default_rng()
        order = rng.permutation(len(self._rows))
        self._rows = [self._rows[i] for i in order]

    def input_matrix(self) -> np.ndarray:
        return np.array([row.input for row in self._rows], dtype=np.float64).reshape(-1, self.input_size)

    def output_matrix(self) -> np.ndarray:
        if not self.is_supervised:
            raise ValueError("Unsupervised data set has no desired outputs")
        return np.array([row.desired_output for row in self._rows], dtype=np.float64).reshape(-1, self.output_size)

    @classmethod
    def create_from_file(
        cls,
        path: Union[str, Path],
        input_size: int,
        output_size: int = 0,
        delimiter: str = ",",
        skip_header: bool = False,
    ) -> "DataSet":
        """Load a delimited text file with one row per line.

        The first ``input_size`` columns are the input, the next
        ``output_size`` the desired output.  With ``skip_header`` the first
        line becomes ``column_names``.
        """
        path = Path(path).expanduser()
        column_names = None
        try:
            if skip_header:
                with open(path) as f:
                    column_names = [c.strip() for c in f.readline().split(delimiter)]
            data = np.loadtxt(path, delimiter=delimiter, ndmin=2, skiprows=1 if skip_header else 0)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to read data set from {path}") from exc

        if data.size and data.shape[1] != input_size + output_size:
            raise VectorSizeMismatchError(
                f"File has {data.shape[1]} columns, expected {input_size + output_size}"
            )

        data_set = cls(input_size, output_size, label=path.stem)
        data_set.column_names = column_names
        for values in data:
            desired = values[input_size:] if output_size else None
            data_set.add_row(DataSetRow(values[:input_size], desired))
        logger.info("Loaded %d rows from %s", len(data_set), path)
        return data_set

    def __repr__(self) -> str:
        name = self.label or "DataSet"
        return f"{name}(rows={len(self._rows)}, input={self.input_size}, output={self.output_size})"


class SubSampling:
    """Split a data set into random subsets.

    Args:
        sizes: Fractions of the data set for each subset (summing to at most
            1), or a single int ``k`` for ``k`` equal folds.
        allow_repeat: Draw every subset independently from the whole set, so
            a row may land in more than one subset.  Fractions may then sum
            past 1.
        rng: Generator used for the permutation.
    """

    def __init__(
        self,
        sizes: Union[int, Sequence[float]],
        allow_repeat: bool = False,
        rng: Optional[np.random.Generator] = None,
    ):
        if isinstance(sizes, int):
            if sizes < 1:
                raise ValueError("Number of subsets must be positive")
            self.sizes: List[float] = [1.0 / sizes] * sizes
        else:
            self.sizes = [float(s) for s in sizes]
            if any(s <= 0 or s > 1.0 for s in self.sizes):
                raise ValueError(f"Subset fractions must be in (0, 1]: {self.sizes}")
            if not allow_repeat and sum(self.sizes) > 1.0 + 1e-9:
                raise ValueError(f"Subset fractions sum past 1 without repetition: {self.sizes}")
        self.allow_repeat = allow_repeat
        self.rng = rng if rng is not None else np.random.default_rng()

    def _subset(self, data_set: DataSet, rows: List[DataSetRow], indices: Sequence[int]) -> DataSet:
        subset = DataSet(data_set.input_size, data_set.output_size)
        subset.column_names = data_set.column_names
        for i in indices:
            subset.add_row(rows[i])
        return subset

    def sample(self, data_set: DataSet) -> List[DataSet]:
        rows = data_set.rows
        if self.allow_repeat:
            return [
                self._subset(data_set, rows, self.rng.permutation(len(rows))[: int(round(f * len(rows)))])
                for f in self.sizes
            ]

        order = self.rng.permutation(len(rows))
        subsets: List[DataSet] = []
        start = 0
        for index, fraction in enumerate(self.sizes):
            if index == len(self.sizes) - 1 and abs(sum(self.sizes) - 1.0) < 1e-9:
                stop = len(rows)
            else:
                stop = start + int(round(fraction * len(rows)))
            subsets.append(self._subset(data_set, rows, order[start:stop]))
            start = stop
        return subsets

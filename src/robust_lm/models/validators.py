"""Data validation functions"""

import numpy as np
from typing import List, Tuple

from .observation import Dataset


class DataValidator:
    """Centralized data validation"""

    MIN_OBSERVATIONS = 2
    MIN_DISTINCT_X = 2

    @classmethod
    def validate_dataset(cls, dataset: Dataset) -> Tuple[bool, List[str]]:
        """
        Check a dataset for problems that make a regression fit impossible

        Returns:
            (is_valid, list of error messages)
        """
        errors = []

        if dataset.n < cls.MIN_OBSERVATIONS:
            errors.append(
                f"Need at least {cls.MIN_OBSERVATIONS} observations, got {dataset.n}"
            )

        x = dataset.x
        y = dataset.y

        if not np.all(np.isfinite(x)) or not np.all(np.isfinite(y)):
            errors.append("Non-finite values in x or y")

        distinct_x = len(np.unique(x[np.isfinite(x)]))
        if dataset.n >= cls.MIN_OBSERVATIONS and distinct_x < cls.MIN_DISTINCT_X:
            errors.append(
                f"Need at least {cls.MIN_DISTINCT_X} distinct x values, got {distinct_x}"
            )

        return len(errors) == 0, errors

    @classmethod
    def require_fittable(cls, dataset: Dataset) -> None:
        """Raise ValueError if the dataset cannot support a straight-line fit"""
        is_valid, errors = cls.validate_dataset(dataset)
        if not is_valid:
            raise ValueError(f"Degenerate dataset '{dataset.name}': " + "; ".join(errors))

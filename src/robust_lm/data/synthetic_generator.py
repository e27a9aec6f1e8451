"""Generate simulated bivariate data with injected outliers"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd

from ..models.observation import Dataset

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Parameters for the bivariate normal simulation"""
    n: int = 100
    rho: float = 0.6
    mean: Tuple[float, float] = (0.0, 0.0)
    seed: int = 3
    outlier_values: Tuple[float, ...] = (8.0, 7.5)
    dataset_names: Dict[str, str] = field(default_factory=lambda: {
        'clean': 'clean',
        'outlier': 'outlier',
        'outlier_dropped': 'outlier_dropped'
    })

    def __post_init__(self):
        if self.n < 2:
            raise ValueError(f"Sample size must be at least 2, got {self.n}")
        if not -1.0 < self.rho < 1.0:
            raise ValueError(f"Correlation must lie in (-1, 1), got {self.rho}")
        if len(self.mean) != 2:
            raise ValueError("Mean vector must have two entries")
        if len(self.outlier_values) > self.n:
            raise ValueError("More outlier values than observations")
        self.mean = tuple(float(m) for m in self.mean)
        self.outlier_values = tuple(float(v) for v in self.outlier_values)

    @property
    def covariance(self) -> np.ndarray:
        return np.array([[1.0, self.rho], [self.rho, 1.0]])


class SyntheticDataGenerator:
    """
    Simulate correlated (x, y) samples

    Draws from a bivariate normal with unit variances, sorts by x ascending,
    and derives an outlier variant by overwriting y in the smallest-x rows.
    """

    def __init__(self, config: SimulationConfig = None):
        self.config = config or SimulationConfig()

    def _rng(self) -> np.random.Generator:
        # Fresh generator per call so repeated calls return identical data
        return np.random.default_rng(self.config.seed)

    def generate_clean(self) -> Dataset:
        """Draw the clean dataset"""
        cfg = self.config
        draws = self._rng().multivariate_normal(
            mean=np.asarray(cfg.mean), cov=cfg.covariance, size=cfg.n
        )

        frame = (
            pd.DataFrame({'x': draws[:, 0], 'y': draws[:, 1]})
            .sort_values('x', kind='mergesort')
            .reset_index(drop=True)
        )

        logger.debug(f"Simulated {cfg.n} observations (rho={cfg.rho:.2f}, seed={cfg.seed})")
        return Dataset(name=cfg.dataset_names['clean'], data=frame)

    def inject_outliers(self,
                        dataset: Dataset,
                        values: Sequence[float] = None,
                        name: str = None) -> Dataset:
        """
        Overwrite y in the first rows of a dataset

        Args:
            dataset: Source dataset, sorted by x
            values: Replacement y values (default: configured outlier values)
            name: Name of the derived dataset

        Returns:
            New dataset differing from the source only in the first len(values) rows
        """
        values = self.config.outlier_values if values is None else tuple(values)
        if len(values) > dataset.n:
            raise ValueError(
                f"Cannot inject {len(values)} outliers into {dataset.n} observations"
            )
        name = name or self.config.dataset_names['outlier']
        return dataset.with_values(name, values, rows=range(len(values)))

    def drop_rows(self,
                  dataset: Dataset,
                  indices: Sequence[int],
                  name: str = None) -> Dataset:
        """Remove observations by index, keeping the remaining row indices"""
        name = name or self.config.dataset_names['outlier_dropped']
        return dataset.without(name, indices)

    def outlier_indices(self, dataset: Dataset) -> list:
        """Observation indices that receive injected values"""
        count = len(self.config.outlier_values)
        return [int(i) for i in dataset.indices[:count]]

    def generate_complete_dataset(self) -> Dict[str, Dataset]:
        """
        Generate all dataset variants

        Returns dict with:
        - 'clean': simulated data
        - 'outlier': clean data with injected extreme y values
        - 'outlier_dropped': outlier data with the injected rows removed
        """
        clean = self.generate_clean()
        outlier = self.inject_outliers(clean)
        dropped = self.drop_rows(outlier, self.outlier_indices(outlier))

        summary = ", ".join(f"{d.name} (n={d.n})" for d in (clean, outlier, dropped))
        logger.info(f"Generated datasets: {summary}")

        return {
            'clean': clean,
            'outlier': outlier,
            'outlier_dropped': dropped
        }

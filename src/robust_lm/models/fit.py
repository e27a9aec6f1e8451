"""Model fit record shared by the frequentist and Bayesian fitters"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd


class Family(str, Enum):
    """Likelihood family of a fitted model"""
    OLS = "ols"
    GAUSSIAN = "gaussian"
    STUDENT = "student"
    STUDENT_FIXED = "student_fixed"


class InfluenceKind(str, Enum):
    """Kind of per-observation influence score"""
    COOKS_DISTANCE = "cooks_distance"
    PARETO_K = "pareto_k"


COEFFICIENT_COLUMNS = ['parameter', 'estimate', 'lower', 'upper']


@dataclass(frozen=True)
class ModelFit:
    """
    One fitted configuration: dataset + likelihood family + priors

    ``coefficients`` holds one row per parameter with the point estimate and
    the 95% interval. ``influence`` holds one score per observation, aligned
    with ``observation_index``.
    """
    model_name: str
    dataset_name: str
    family: Family
    coefficients: pd.DataFrame = field(repr=False)
    observation_index: np.ndarray = field(repr=False)
    influence: np.ndarray = field(repr=False)
    influence_kind: InfluenceKind
    score_name: str
    score: float
    score_se: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        missing = [c for c in COEFFICIENT_COLUMNS if c not in self.coefficients.columns]
        if missing:
            raise ValueError(f"Coefficient table missing columns: {missing}")
        if len(self.influence) != len(self.observation_index):
            raise ValueError(
                f"Influence scores ({len(self.influence)}) do not match "
                f"observations ({len(self.observation_index)})"
            )
        object.__setattr__(self, 'family', Family(self.family))
        object.__setattr__(self, 'influence_kind', InfluenceKind(self.influence_kind))

    def estimate(self, parameter: str) -> float:
        """Point estimate for a single parameter"""
        row = self.coefficients[self.coefficients['parameter'] == parameter]
        if row.empty:
            raise KeyError(f"Model '{self.model_name}' has no parameter '{parameter}'")
        return float(row['estimate'].iloc[0])

    @property
    def slope(self) -> float:
        return self.estimate('slope')

    @property
    def intercept(self) -> float:
        return self.estimate('intercept')

    def influence_series(self) -> pd.Series:
        return pd.Series(self.influence, index=pd.Index(self.observation_index, name='obs'),
                         name=self.influence_kind.value)

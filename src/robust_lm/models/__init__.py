"""Data models for robust-lm"""

from .observation import Observation, Dataset
from .fit import ModelFit, Family, InfluenceKind
from .validators import DataValidator

__all__ = [
    'Observation',
    'Dataset',
    'ModelFit',
    'Family',
    'InfluenceKind',
    'DataValidator'
]

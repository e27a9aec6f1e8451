"""
robust-lm: influential observations in simple linear regression

Compares least squares with Bayesian Gaussian and Student-t fits on
simulated data with injected outliers, using Cook's distance and
PSIS-LOO Pareto-k diagnostics.
"""

__version__ = "0.1.0"

from .models import Dataset, ModelFit, Family, InfluenceKind
from .data import SyntheticDataGenerator, SimulationConfig
from .algorithms import OLSRegression, BayesianRegression, SamplerConfig
from .outliers import InfluenceDetector, LOOAnalyzer, compare_loo
from .config import AnalysisConfig, ModelSpec, load_config

__all__ = [
    'Dataset',
    'ModelFit',
    'Family',
    'InfluenceKind',
    'SyntheticDataGenerator',
    'SimulationConfig',
    'OLSRegression',
    'BayesianRegression',
    'SamplerConfig',
    'InfluenceDetector',
    'LOOAnalyzer',
    'compare_loo',
    'AnalysisConfig',
    'ModelSpec',
    'load_config'
]

"""Analysis configuration: simulation, sampler and model list"""

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .algorithms.priors import PRIOR_SETS
from .algorithms.sampler import SamplerConfig
from .data.synthetic_generator import SimulationConfig
from .models.fit import Family

logger = logging.getLogger(__name__)

DATASET_KEYS = ('clean', 'outlier', 'outlier_dropped')


@dataclass
class ModelSpec:
    """One model to fit in the comparison"""
    name: str
    dataset: str
    family: str = Family.GAUSSIAN.value
    prior_set: str = 'weakly_informative'
    priors: Dict[str, str] = field(default_factory=dict)
    nu: Optional[float] = None

    def __post_init__(self):
        if self.dataset not in DATASET_KEYS:
            raise ValueError(
                f"Model '{self.name}': unknown dataset '{self.dataset}'. "
                f"Available: {list(DATASET_KEYS)}"
            )
        self.family = Family(self.family).value
        if self.prior_set not in PRIOR_SETS:
            raise ValueError(
                f"Model '{self.name}': unknown prior set '{self.prior_set}'. "
                f"Available: {list(PRIOR_SETS)}"
            )
        if self.nu is not None and self.family != Family.STUDENT_FIXED.value:
            raise ValueError(f"Model '{self.name}': nu applies only to student_fixed")

    @property
    def is_bayesian(self) -> bool:
        return self.family != Family.OLS.value


def default_models() -> List[ModelSpec]:
    """Standard comparison: OLS on every dataset plus the Bayesian variants"""
    return [
        ModelSpec('ols_clean', 'clean', family='ols'),
        ModelSpec('ols_outlier', 'outlier', family='ols'),
        ModelSpec('ols_outlier_dropped', 'outlier_dropped', family='ols'),
        ModelSpec('gaussian_clean', 'clean'),
        ModelSpec('gaussian_outlier_default', 'outlier', prior_set='default'),
        ModelSpec('gaussian_outlier', 'outlier'),
        ModelSpec('student_outlier', 'outlier', family='student'),
        ModelSpec('student_fixed_outlier', 'outlier', family='student_fixed', nu=4.0),
        ModelSpec('gaussian_outlier_dropped', 'outlier_dropped'),
    ]


@dataclass
class AnalysisConfig:
    """Complete configuration for a comparison run"""
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    models: List[ModelSpec] = field(default_factory=default_models)
    reference_model: str = 'ols_clean'
    reloo: bool = False
    output_dir: Optional[str] = None

    def __post_init__(self):
        names = [m.name for m in self.models]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate model names: {duplicates}")
        if self.models and self.reference_model not in names:
            raise ValueError(f"Reference model '{self.reference_model}' is not in the model list")

    def bayesian_models(self) -> List[ModelSpec]:
        return [m for m in self.models if m.is_bayesian]

    def ols_models(self) -> List[ModelSpec]:
        return [m for m in self.models if not m.is_bayesian]


def _check_keys(section: str, data: Dict[str, Any], cls) -> None:
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {unknown}")


def config_from_dict(data: Optional[Dict[str, Any]]) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a plain mapping

    Missing sections fall back to defaults; unknown keys raise ValueError.
    """
    data = dict(data or {})
    _check_keys('config', data, AnalysisConfig)

    simulation = dict(data.pop('simulation', None) or {})
    _check_keys('simulation', simulation, SimulationConfig)
    for key in ('mean', 'outlier_values'):
        if key in simulation:
            simulation[key] = tuple(simulation[key])

    sampler = dict(data.pop('sampler', None) or {})
    _check_keys('sampler', sampler, SamplerConfig)

    kwargs = dict(data)
    kwargs['simulation'] = SimulationConfig(**simulation)
    kwargs['sampler'] = SamplerConfig(**sampler)

    if 'models' in data:
        models = []
        for i, spec in enumerate(data['models'] or []):
            _check_keys(f'models[{i}]', spec, ModelSpec)
            models.append(ModelSpec(**spec))
        kwargs['models'] = models

    return AnalysisConfig(**kwargs)


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """Load configuration from a YAML or JSON file"""
    p = Path(path)
    text = p.read_text()
    data = yaml.safe_load(text) if p.suffix in {'.yaml', '.yml'} else json.loads(text)
    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Configuration in {p} must be a mapping")

    config = config_from_dict(data)
    logger.debug(f"Loaded configuration from {p} ({len(config.models)} models)")
    return config

"""Prior distributions for regression parameters"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import numpy as np
from scipy import stats

from ..models.observation import Dataset

_PRIOR_PATTERN = re.compile(r'^\s*([a-z_]+)\s*(?:\((.*)\))?\s*$')

# family -> (number of arguments, scipy frozen-distribution factory)
_FAMILIES = {
    'normal': (2, lambda mu, s: stats.norm(loc=mu, scale=s)),
    'student_t': (3, lambda df, mu, s: stats.t(df, loc=mu, scale=s)),
    'cauchy': (2, lambda mu, s: stats.cauchy(loc=mu, scale=s)),
    'gamma': (2, lambda shape, rate: stats.gamma(shape, scale=1.0 / rate)),
    'exponential': (1, lambda rate: stats.expon(scale=1.0 / rate)),
    'flat': (0, None),
}


@dataclass(frozen=True)
class Prior:
    """
    A prior density in brms-style notation, e.g. ``normal(0, 10)``

    Priors on bounded parameters (sigma, nu) are truncated below at ``lower``;
    the normalizing constant of the truncation is dropped because it does not
    depend on the parameter.
    """
    family: str
    args: Tuple[float, ...] = ()
    lower: Optional[float] = None

    def __post_init__(self):
        if self.family not in _FAMILIES:
            raise ValueError(
                f"Unknown prior family '{self.family}'. "
                f"Available: {sorted(_FAMILIES)}"
            )
        n_args = _FAMILIES[self.family][0]
        if len(self.args) != n_args:
            raise ValueError(
                f"Prior '{self.family}' takes {n_args} arguments, got {len(self.args)}"
            )
        object.__setattr__(self, 'args', tuple(float(a) for a in self.args))

    @classmethod
    def parse(cls, text: str, lower: Optional[float] = None) -> 'Prior':
        """Parse a prior from a string such as ``student_t(3, 0, 2.5)``"""
        match = _PRIOR_PATTERN.match(text)
        if not match:
            raise ValueError(f"Cannot parse prior '{text}'")
        family, arg_text = match.groups()
        args = ()
        if arg_text and arg_text.strip():
            try:
                args = tuple(float(a) for a in arg_text.split(','))
            except ValueError:
                raise ValueError(f"Non-numeric prior argument in '{text}'") from None
        return cls(family=family, args=args, lower=lower)

    @property
    def is_flat(self) -> bool:
        return self.family == 'flat'

    def _frozen(self):
        return _FAMILIES[self.family][1](*self.args)

    def logpdf(self, value: Union[float, np.ndarray]) -> np.ndarray:
        """Log density up to a constant; -inf below the lower bound"""
        value = np.asarray(value, dtype=float)
        if self.is_flat:
            out = np.zeros_like(value)
        else:
            out = self._frozen().logpdf(value)
        if self.lower is not None:
            out = np.where(value < self.lower, -np.inf, out)
        return out

    def __str__(self) -> str:
        if self.is_flat:
            return 'flat'
        args = ', '.join(f"{a:g}" for a in self.args)
        return f"{self.family}({args})"


SIGMA_LOWER = 0.0
NU_LOWER = 1.0


@dataclass(frozen=True)
class PriorSet:
    """Priors for intercept, slope, residual scale and degrees of freedom"""
    intercept: Prior
    slope: Prior
    sigma: Prior
    nu: Prior = field(default_factory=lambda: Prior.parse('gamma(2, 0.1)', lower=NU_LOWER))
    name: str = 'custom'

    def as_dict(self) -> Dict[str, str]:
        return {
            'intercept': str(self.intercept),
            'slope': str(self.slope),
            'sigma': str(self.sigma),
            'nu': str(self.nu)
        }

    def with_overrides(self, overrides: Optional[Dict[str, str]] = None) -> 'PriorSet':
        """Return a copy with individual priors replaced from strings"""
        if not overrides:
            return self
        values = {
            'intercept': self.intercept,
            'slope': self.slope,
            'sigma': self.sigma,
            'nu': self.nu
        }
        lowers = {'intercept': None, 'slope': None, 'sigma': SIGMA_LOWER, 'nu': NU_LOWER}
        for key, text in overrides.items():
            if key not in values:
                raise ValueError(f"Unknown parameter '{key}' in prior overrides")
            values[key] = Prior.parse(text, lower=lowers[key])
        return PriorSet(name=f"{self.name}+custom", **values)


def weakly_informative_priors() -> PriorSet:
    """normal(0, 10) on coefficients, half-cauchy(0, 1) on sigma"""
    return PriorSet(
        intercept=Prior.parse('normal(0, 10)'),
        slope=Prior.parse('normal(0, 10)'),
        sigma=Prior.parse('cauchy(0, 1)', lower=SIGMA_LOWER),
        name='weakly_informative'
    )


def default_priors(dataset: Dataset) -> PriorSet:
    """
    Data-scaled defaults

    Intercept: student_t(3, median(y), max(2.5, mad(y)))
    Slope: flat
    Sigma: half student_t(3, 0, max(2.5, mad(y)))
    """
    y = dataset.y
    scale = max(2.5, float(stats.median_abs_deviation(y, scale='normal')))
    center = float(np.median(y))
    return PriorSet(
        intercept=Prior('student_t', (3, round(center, 1), round(scale, 1))),
        slope=Prior('flat'),
        sigma=Prior('student_t', (3, 0, round(scale, 1)), lower=SIGMA_LOWER),
        name='default'
    )


PRIOR_SETS = ('default', 'weakly_informative')


def get_prior_set(name: str,
                  dataset: Dataset,
                  overrides: Optional[Dict[str, str]] = None) -> PriorSet:
    """Look up a named prior set and apply overrides"""
    if name == 'default':
        priors = default_priors(dataset)
    elif name == 'weakly_informative':
        priors = weakly_informative_priors()
    else:
        raise ValueError(f"Unknown prior set '{name}'. Available: {list(PRIOR_SETS)}")
    return priors.with_overrides(overrides)

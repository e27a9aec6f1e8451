"""Likelihood families for the Bayesian regression"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np
from scipy import stats

from ..models.fit import Family


class LikelihoodFamily(ABC):
    """
    Observation model for ``y ~ D(intercept + slope * x, sigma, ...)``

    Parameters are sampled on an unconstrained scale. ``transform`` maps
    unconstrained draws to the natural scale and ``log_jacobian`` returns the
    matching log-determinant term.
    """

    family: Family
    parameter_names: List[str]

    @property
    def dim(self) -> int:
        return len(self.parameter_names)

    @abstractmethod
    def pointwise_log_likelihood(self,
                                 params: Dict[str, np.ndarray],
                                 x: np.ndarray,
                                 y: np.ndarray) -> np.ndarray:
        """Log density of each y, shape (draws, n)"""

    @abstractmethod
    def sample_outcomes(self,
                        params: Dict[str, np.ndarray],
                        x: np.ndarray,
                        rng: np.random.Generator) -> np.ndarray:
        """Posterior predictive draws, shape (draws, len(x))"""

    def transform(self, theta: np.ndarray) -> Dict[str, np.ndarray]:
        """Map unconstrained draws (..., dim) to named natural-scale arrays"""
        params = {
            'intercept': theta[..., 0],
            'slope': theta[..., 1],
            'sigma': np.exp(theta[..., 2])
        }
        return params

    def inverse_transform(self, params: Dict[str, float]) -> np.ndarray:
        return np.array([params['intercept'], params['slope'], np.log(params['sigma'])])

    def log_jacobian(self, theta: np.ndarray) -> np.ndarray:
        # d sigma / d log sigma = sigma
        return theta[..., 2]

    @staticmethod
    def linear_predictor(params: Dict[str, np.ndarray], x: np.ndarray) -> np.ndarray:
        intercept = np.asarray(params['intercept'])[..., None]
        slope = np.asarray(params['slope'])[..., None]
        return intercept + slope * x


class GaussianLikelihood(LikelihoodFamily):
    """Normal errors"""

    family = Family.GAUSSIAN
    parameter_names = ['intercept', 'slope', 'sigma']

    def pointwise_log_likelihood(self, params, x, y):
        mu = self.linear_predictor(params, x)
        sigma = np.asarray(params['sigma'])[..., None]
        return stats.norm.logpdf(y, loc=mu, scale=sigma)

    def sample_outcomes(self, params, x, rng):
        mu = self.linear_predictor(params, x)
        sigma = np.asarray(params['sigma'])[..., None]
        return mu + sigma * rng.standard_normal(mu.shape)


class StudentTLikelihood(LikelihoodFamily):
    """
    Student-t errors with estimated degrees of freedom

    nu is bounded below by 1 and sampled as log(nu - 1).
    """

    family = Family.STUDENT
    parameter_names = ['intercept', 'slope', 'sigma', 'nu']

    NU_LOWER = 1.0

    def transform(self, theta):
        params = super().transform(theta)
        params['nu'] = self.NU_LOWER + np.exp(theta[..., 3])
        return params

    def inverse_transform(self, params):
        base = super().inverse_transform(params)
        return np.append(base, np.log(params['nu'] - self.NU_LOWER))

    def log_jacobian(self, theta):
        return theta[..., 2] + theta[..., 3]

    def _nu(self, params):
        return np.asarray(params['nu'])[..., None]

    def pointwise_log_likelihood(self, params, x, y):
        mu = self.linear_predictor(params, x)
        sigma = np.asarray(params['sigma'])[..., None]
        return stats.t.logpdf(y, self._nu(params), loc=mu, scale=sigma)

    def sample_outcomes(self, params, x, rng):
        mu = self.linear_predictor(params, x)
        sigma = np.asarray(params['sigma'])[..., None]
        nu = np.broadcast_to(self._nu(params), mu.shape)
        return mu + sigma * rng.standard_t(nu)


class FixedNuStudentTLikelihood(StudentTLikelihood):
    """Student-t errors with degrees of freedom held at a constant"""

    family = Family.STUDENT_FIXED
    parameter_names = ['intercept', 'slope', 'sigma']

    def __init__(self, nu: float = 4.0):
        if nu <= 0:
            raise ValueError(f"Degrees of freedom must be positive, got {nu}")
        self.nu = float(nu)

    def transform(self, theta):
        return LikelihoodFamily.transform(self, theta)

    def inverse_transform(self, params):
        return LikelihoodFamily.inverse_transform(self, params)

    def log_jacobian(self, theta):
        return LikelihoodFamily.log_jacobian(self, theta)

    def _nu(self, params):
        return self.nu


def make_likelihood(family: str, nu: Optional[float] = None) -> LikelihoodFamily:
    """Build a likelihood family from its name"""
    family = Family(family)
    if family == Family.GAUSSIAN:
        return GaussianLikelihood()
    if family == Family.STUDENT:
        return StudentTLikelihood()
    if family == Family.STUDENT_FIXED:
        return FixedNuStudentTLikelihood(nu if nu is not None else 4.0)
    raise ValueError(f"Family '{family.value}' is not a Bayesian likelihood")

"""Regression fitters"""

from .regression import OLSRegression, RegressionResults
from .bayesian import BayesianRegression, BayesianResults
from .likelihoods import (
    GaussianLikelihood,
    StudentTLikelihood,
    FixedNuStudentTLikelihood,
    make_likelihood
)
from .priors import Prior, PriorSet, get_prior_set
from .sampler import MetropolisSampler, SamplerConfig, ConvergenceWarning

__all__ = [
    'OLSRegression',
    'RegressionResults',
    'BayesianRegression',
    'BayesianResults',
    'GaussianLikelihood',
    'StudentTLikelihood',
    'FixedNuStudentTLikelihood',
    'make_likelihood',
    'Prior',
    'PriorSet',
    'get_prior_set',
    'MetropolisSampler',
    'SamplerConfig',
    'ConvergenceWarning'
]

"""Bayesian straight-line regression with Gaussian or Student-t errors"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Optional, Any, Union
from dataclasses import dataclass, field

from ..models.observation import Dataset
from ..models.fit import ModelFit, Family, InfluenceKind
from ..models.validators import DataValidator
from .likelihoods import LikelihoodFamily, make_likelihood
from .priors import PriorSet, get_prior_set
from .regression import OLSRegression
from .sampler import MetropolisSampler, SamplerConfig, SamplerResult, diagnose, warn_unconverged

logger = logging.getLogger(__name__)


@dataclass
class BayesianResults:
    """Posterior draws and summaries from a Bayesian fit"""
    family: Family
    priors: PriorSet
    draws: Dict[str, np.ndarray]  # parameter -> (chains, draws)
    log_likelihood: np.ndarray  # (chains, draws, n)
    summary: pd.DataFrame
    num_observations: int
    observation_index: np.ndarray
    converged: bool
    sampler_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def num_draws(self) -> int:
        first = next(iter(self.draws.values()))
        return first.size

    def flat_draws(self) -> Dict[str, np.ndarray]:
        return {name: values.reshape(-1) for name, values in self.draws.items()}

    def posterior_mean(self, parameter: str) -> float:
        return float(self.draws[parameter].mean())


class BayesianRegression:
    """
    Posterior sampling for ``y = intercept + slope * x + e``

    The error distribution is chosen by ``family``:
    - 'gaussian': normal errors with scale sigma
    - 'student': Student-t errors, degrees of freedom nu estimated
    - 'student_fixed': Student-t errors, nu held at a constant
    """

    def __init__(self,
                 family: Union[str, Family] = Family.GAUSSIAN,
                 priors: Optional[PriorSet] = None,
                 prior_set: str = 'weakly_informative',
                 prior_overrides: Optional[Dict[str, str]] = None,
                 nu: Optional[float] = None,
                 sampler_config: Optional[SamplerConfig] = None,
                 credible_level: float = 0.95):
        """
        Initialize Bayesian regression

        Args:
            family: Likelihood family name
            priors: Explicit priors; overrides prior_set when given
            prior_set: Named prior set ('default' or 'weakly_informative')
            prior_overrides: Parameter -> prior string replacements
            nu: Fixed degrees of freedom for 'student_fixed'
            sampler_config: Sampler settings
            credible_level: Coverage of the reported credible intervals
        """
        if not 0 < credible_level < 1:
            raise ValueError(f"credible_level must be in (0, 1), got {credible_level}")

        self.likelihood: LikelihoodFamily = make_likelihood(family, nu=nu)
        self.family = self.likelihood.family
        self.nu = nu
        self.explicit_priors = priors
        self.prior_set = prior_set
        self.prior_overrides = prior_overrides or {}
        self.sampler_config = sampler_config or SamplerConfig()
        self.credible_level = credible_level

        self.priors: Optional[PriorSet] = None
        self.dataset: Optional[Dataset] = None
        self.results: Optional[BayesianResults] = None

    def clone(self, seed: Optional[int] = None) -> 'BayesianRegression':
        """Unfitted copy with the same configuration"""
        config = self.sampler_config
        if seed is not None:
            config = SamplerConfig(**{**config.__dict__, 'seed': seed})
        return BayesianRegression(
            family=self.family,
            priors=self.explicit_priors,
            prior_set=self.prior_set,
            prior_overrides=self.prior_overrides,
            nu=self.nu,
            sampler_config=config,
            credible_level=self.credible_level
        )

    def _resolve_priors(self, dataset: Dataset) -> PriorSet:
        if self.explicit_priors is not None:
            return self.explicit_priors.with_overrides(self.prior_overrides)
        return get_prior_set(self.prior_set, dataset, self.prior_overrides)

    def log_posterior(self, theta: np.ndarray) -> np.ndarray:
        """Unnormalized log posterior on the unconstrained scale, (chains, dim) -> (chains,)"""
        params = self.likelihood.transform(theta)
        x = self.dataset.x
        y = self.dataset.y

        with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
            log_lik = self.likelihood.pointwise_log_likelihood(params, x, y).sum(axis=-1)
            log_prior = (
                self.priors.intercept.logpdf(params['intercept'])
                + self.priors.slope.logpdf(params['slope'])
                + self.priors.sigma.logpdf(params['sigma'])
            )
            if 'nu' in params:
                log_prior = log_prior + self.priors.nu.logpdf(params['nu'])

        total = log_lik + log_prior + self.likelihood.log_jacobian(theta)
        return np.where(np.isnan(total), -np.inf, total)

    def _starting_values(self, dataset: Dataset):
        """Start chains around the least-squares solution"""
        ols = OLSRegression().fit(dataset)

        sigma = ols.sigma if np.isfinite(ols.sigma) and ols.sigma > 0 else 1.0
        start = {
            'intercept': ols.intercept,
            'slope': ols.slope,
            'sigma': sigma,
            'nu': 10.0
        }
        coef_scale = np.where(
            np.isfinite(ols.standard_errors) & (ols.standard_errors > 0),
            ols.standard_errors,
            1.0
        )
        scale = [coef_scale[0], coef_scale[1], 0.1]
        if 'nu' in self.likelihood.parameter_names:
            scale.append(0.5)

        return self.likelihood.inverse_transform(start), np.asarray(scale)

    def fit(self, dataset: Dataset, label: Optional[str] = None) -> BayesianResults:
        """
        Sample from the posterior

        Args:
            dataset: Dataset with x and y
            label: Name used in log and warning messages

        Returns:
            BayesianResults with draws, summaries and pointwise log-likelihood
        """
        DataValidator.require_fittable(dataset)
        label = label or f"{self.family.value}:{dataset.name}"

        self.dataset = dataset
        self.priors = self._resolve_priors(dataset)

        logger.info(
            f"Fitting {label} ({self.family.value} likelihood, priors: {self.priors.name})"
        )

        initial, initial_scale = self._starting_values(dataset)
        config = self.sampler_config
        extensions = 0
        while True:
            sample = MetropolisSampler(config).sample(self.log_posterior, initial, initial_scale)
            draws = self._natural_scale_draws(sample)
            diagnostics = diagnose(draws, rhat_threshold=config.rhat_threshold, min_ess=config.min_ess)
            if diagnostics['converged'] or extensions >= config.max_extensions:
                break

            extensions += 1
            config = config.extended()
            logger.info(
                f"{label}: {'; '.join(diagnostics['problems'])}; resampling with "
                f"warmup={config.warmup}, thin={config.thin}"
            )

        if not diagnostics['converged']:
            warn_unconverged(label, diagnostics['problems'])

        log_likelihood = self._pointwise_log_likelihood(draws, dataset)
        summary = self._summarize(draws, diagnostics)

        sampler_info = dict(sample.info)
        sampler_info.update({
            'acceptance_rate': sample.acceptance_rate,
            'extensions': extensions,
            'problems': diagnostics['problems']
        })

        self.results = BayesianResults(
            family=self.family,
            priors=self.priors,
            draws=draws,
            log_likelihood=log_likelihood,
            summary=summary,
            num_observations=dataset.n,
            observation_index=dataset.indices,
            converged=diagnostics['converged'],
            sampler_info=sampler_info
        )

        return self.results

    def _natural_scale_draws(self, sample: SamplerResult) -> Dict[str, np.ndarray]:
        params = self.likelihood.transform(sample.draws)
        return {name: np.asarray(params[name]) for name in self.likelihood.parameter_names}

    def _pointwise_log_likelihood(self, draws: Dict[str, np.ndarray], dataset: Dataset) -> np.ndarray:
        n_chains, n_draws = draws['intercept'].shape
        flat = {name: values.reshape(-1) for name, values in draws.items()}
        log_lik = self.likelihood.pointwise_log_likelihood(flat, dataset.x, dataset.y)
        return log_lik.reshape(n_chains, n_draws, dataset.n)

    def _summarize(self, draws: Dict[str, np.ndarray], diagnostics: Dict[str, Any]) -> pd.DataFrame:
        """Posterior mean, sd, credible interval, R-hat and ESS per parameter"""
        tail = (1 - self.credible_level) / 2
        rows = []
        for name, values in draws.items():
            flat = values.reshape(-1)
            rows.append({
                'parameter': name,
                'estimate': float(flat.mean()),
                'sd': float(flat.std(ddof=1)),
                'lower': float(np.quantile(flat, tail)),
                'upper': float(np.quantile(flat, 1 - tail)),
                'rhat': diagnostics['rhat'][name],
                'ess_bulk': diagnostics['ess_bulk'][name]
            })
        return pd.DataFrame(rows)

    def _require_fit(self):
        if self.results is None:
            raise ValueError("Must fit model before using the posterior")

    def fitted(self, x: np.ndarray) -> pd.DataFrame:
        """
        Posterior mean and credible band of intercept + slope * x

        Args:
            x: Predictor values

        Returns:
            DataFrame with x, estimate, lower, upper
        """
        self._require_fit()
        x = np.asarray(x, dtype=float)
        flat = self.results.flat_draws()
        mu = self.likelihood.linear_predictor(flat, x)
        return self._band(x, mu)

    def predict(self, x: np.ndarray, seed: Optional[int] = None) -> pd.DataFrame:
        """
        Posterior predictive band for new observations at x

        Args:
            x: Predictor values
            seed: Seed for the predictive draws

        Returns:
            DataFrame with x, estimate, lower, upper
        """
        self._require_fit()
        x = np.asarray(x, dtype=float)
        rng = np.random.default_rng(seed)
        y_rep = self.likelihood.sample_outcomes(self.results.flat_draws(), x, rng)
        return self._band(x, y_rep)

    def _band(self, x: np.ndarray, values: np.ndarray) -> pd.DataFrame:
        tail = (1 - self.credible_level) / 2
        return pd.DataFrame({
            'x': x,
            'estimate': values.mean(axis=0),
            'lower': np.quantile(values, tail, axis=0),
            'upper': np.quantile(values, 1 - tail, axis=0)
        })

    def posterior_draws(self) -> pd.DataFrame:
        """Long-format draws with chain and iteration columns"""
        self._require_fit()
        frames = []
        for name, values in self.results.draws.items():
            n_chains, n_draws = values.shape
            frames.append(pd.DataFrame({
                'chain': np.repeat(np.arange(n_chains), n_draws),
                'iteration': np.tile(np.arange(n_draws), n_chains),
                'parameter': name,
                'value': values.reshape(-1)
            }))
        return pd.concat(frames, ignore_index=True)

    def to_model_fit(self, model_name: str, loo_result) -> ModelFit:
        """
        Package the fit as a ModelFit with Pareto-k as influence

        Args:
            model_name: Identifier for the fit
            loo_result: LOOResult computed from this fit
        """
        self._require_fit()
        coefficients = self.results.summary[['parameter', 'estimate', 'lower', 'upper']].copy()
        if self.family == Family.STUDENT_FIXED:
            coefficients = pd.concat([coefficients, pd.DataFrame([{
                'parameter': 'nu',
                'estimate': self.likelihood.nu,
                'lower': self.likelihood.nu,
                'upper': self.likelihood.nu
            }])], ignore_index=True)

        return ModelFit(
            model_name=model_name,
            dataset_name=self.dataset.name,
            family=self.family,
            coefficients=coefficients,
            observation_index=self.results.observation_index,
            influence=loo_result.pareto_k,
            influence_kind=InfluenceKind.PARETO_K,
            score_name='elpd_loo',
            score=loo_result.elpd_loo,
            score_se=loo_result.se,
            details={
                'priors': self.priors.as_dict(),
                'prior_set': self.priors.name,
                'converged': self.results.converged,
                'p_loo': loo_result.p_loo,
                'looic': loo_result.looic,
                'pointwise_elpd': loo_result.pointwise['elpd_loo'].to_numpy(),
                'summary': self.results.summary
            }
        )

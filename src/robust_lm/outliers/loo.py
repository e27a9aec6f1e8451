"""Approximate leave-one-out cross-validation for Bayesian fits"""

import logging
import warnings
import numpy as np
import pandas as pd
from scipy.special import logsumexp
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from ..algorithms.bayesian import BayesianRegression, BayesianResults
from ..algorithms.sampler import ConvergenceWarning, effective_sample_size
from ..models.observation import Dataset
from .detection import BAD_THRESHOLD, influence_band
from .psis import psis

logger = logging.getLogger(__name__)


@dataclass
class LOOResult:
    """PSIS-LOO estimates for one fitted model"""
    elpd_loo: float
    se: float
    p_loo: float
    looic: float
    pareto_k: np.ndarray
    pointwise: pd.DataFrame  # obs, elpd_loo, lppd, p_loo, pareto_k, band, reloo
    num_draws: int
    reloo_indices: List[int] = field(default_factory=list)

    @property
    def num_observations(self) -> int:
        return len(self.pareto_k)

    def band_counts(self) -> pd.Series:
        """Number of observations in each Pareto-k band"""
        bands = ['good', 'ok', 'bad', 'very bad']
        return self.pointwise['band'].value_counts().reindex(bands, fill_value=0)

    def bad_observations(self, threshold: float = BAD_THRESHOLD) -> List[int]:
        mask = self.pointwise['pareto_k'] >= threshold
        return [int(i) for i in self.pointwise.loc[mask, 'obs']]


def relative_efficiency(log_likelihood: np.ndarray) -> np.ndarray:
    """
    Relative efficiency of exp(log-likelihood) draws per observation

    Args:
        log_likelihood: Shape (chains, draws, n)

    Returns:
        r_eff with shape (n,), ESS divided by the total number of draws
    """
    n_chains, n_draws, n_obs = log_likelihood.shape
    total = n_chains * n_draws
    r_eff = np.ones(n_obs)

    for i in range(n_obs):
        values = log_likelihood[:, :, i]
        # Scale before exponentiating to avoid underflow
        lik = np.exp(values - values.max())
        ess = effective_sample_size(lik, split=False, rank=False)
        if np.isfinite(ess) and ess > 0:
            r_eff[i] = ess / total

    return r_eff


class LOOAnalyzer:
    """
    Compute PSIS-LOO diagnostics for a fitted BayesianRegression

    Observations whose Pareto-k reaches ``reloo_threshold`` can be refit
    exactly (``reloo=True``): the model is refit without the observation and
    its pointwise elpd is replaced by the held-out log predictive density.
    """

    def __init__(self,
                 reloo: bool = False,
                 reloo_threshold: float = BAD_THRESHOLD):
        """
        Initialize analyzer

        Args:
            reloo: Refit the model for observations with high Pareto-k
            reloo_threshold: Pareto-k at or above which to refit
        """
        self.reloo = reloo
        self.reloo_threshold = reloo_threshold

    def compute(self, results: BayesianResults) -> LOOResult:
        """
        PSIS-LOO from posterior draws

        Args:
            results: Bayesian fit with pointwise log-likelihood

        Returns:
            LOOResult
        """
        log_lik = results.log_likelihood
        n_chains, n_draws, n_obs = log_lik.shape
        flat = log_lik.reshape(n_chains * n_draws, n_obs)

        r_eff = relative_efficiency(log_lik)
        log_weights, pareto_k = psis(-flat, r_eff)

        elpd_i = logsumexp(flat + log_weights, axis=0)
        lppd_i = logsumexp(flat, axis=0) - np.log(flat.shape[0])

        pointwise = pd.DataFrame({
            'obs': results.observation_index,
            'elpd_loo': elpd_i,
            'lppd': lppd_i,
            'p_loo': lppd_i - elpd_i,
            'pareto_k': pareto_k,
            'band': influence_band(pareto_k),
            'reloo': False
        })

        result = self._aggregate(pointwise, flat.shape[0])

        n_bad = int(np.sum(pareto_k >= BAD_THRESHOLD))
        if n_bad:
            logger.info(f"{n_bad} observation(s) with Pareto-k >= {BAD_THRESHOLD:.1f}")

        return result

    def _aggregate(self, pointwise: pd.DataFrame, num_draws: int,
                   reloo_indices: Optional[List[int]] = None) -> LOOResult:
        elpd_i = pointwise['elpd_loo'].to_numpy()
        n_obs = len(elpd_i)
        elpd = float(elpd_i.sum())
        se = float(np.sqrt(n_obs * np.var(elpd_i, ddof=1))) if n_obs > 1 else np.nan

        return LOOResult(
            elpd_loo=elpd,
            se=se,
            p_loo=float(pointwise['p_loo'].sum()),
            looic=-2 * elpd,
            pareto_k=pointwise['pareto_k'].to_numpy(),
            pointwise=pointwise,
            num_draws=num_draws,
            reloo_indices=list(reloo_indices or [])
        )

    def analyze(self, model: BayesianRegression, dataset: Optional[Dataset] = None) -> LOOResult:
        """
        PSIS-LOO for a fitted model, with optional exact refits

        Args:
            model: Fitted BayesianRegression
            dataset: Dataset the model was fit to (default: model.dataset)

        Returns:
            LOOResult
        """
        if model.results is None:
            raise ValueError("Must fit model before computing LOO")
        dataset = dataset or model.dataset

        result = self.compute(model.results)
        if not self.reloo:
            return result

        targets = result.bad_observations(self.reloo_threshold)
        if not targets:
            return result

        logger.info(f"Refitting {len(targets)} observation(s) with exact leave-one-out")
        pointwise = result.pointwise.copy()

        for obs in targets:
            held_out = dataset.data.loc[[obs]]
            reduced = dataset.without(f"{dataset.name}_minus_{obs}", [obs])
            refit = model.clone()
            with warnings.catch_warnings():
                warnings.simplefilter('ignore', ConvergenceWarning)
                refit_results = refit.fit(reduced, label=f"reloo {obs}")

            flat = refit_results.flat_draws()
            log_lik = refit.likelihood.pointwise_log_likelihood(
                flat, held_out['x'].to_numpy(), held_out['y'].to_numpy()
            )[:, 0]
            elpd_exact = float(logsumexp(log_lik) - np.log(len(log_lik)))

            row = pointwise['obs'] == obs
            pointwise.loc[row, 'elpd_loo'] = elpd_exact
            pointwise.loc[row, 'p_loo'] = pointwise.loc[row, 'lppd'] - elpd_exact
            pointwise.loc[row, 'reloo'] = True

        return self._aggregate(pointwise, result.num_draws, reloo_indices=targets)


def compare_loo(results: Dict[str, LOOResult]) -> pd.DataFrame:
    """
    Rank models by elpd_loo

    Models must have been fit to the same observations. The best model has
    elpd_diff 0; se_diff is the standard error of the pointwise difference.

    Args:
        results: Model name -> LOOResult

    Returns:
        DataFrame sorted best first
    """
    if not results:
        raise ValueError("No LOO results to compare")

    sizes = {name: res.num_observations for name, res in results.items()}
    if len(set(sizes.values())) > 1:
        raise ValueError(f"Models were fit to different numbers of observations: {sizes}")

    ranked = sorted(results.items(), key=lambda item: item[1].elpd_loo, reverse=True)
    best_name, best = ranked[0]
    best_pointwise = best.pointwise['elpd_loo'].to_numpy()
    n_obs = len(best_pointwise)

    rows = []
    for name, res in ranked:
        diff = res.pointwise['elpd_loo'].to_numpy() - best_pointwise
        se_diff = float(np.sqrt(n_obs * np.var(diff, ddof=1))) if name != best_name else 0.0
        rows.append({
            'model': name,
            'elpd_loo': res.elpd_loo,
            'se': res.se,
            'elpd_diff': res.elpd_loo - best.elpd_loo,
            'se_diff': se_diff,
            'p_loo': res.p_loo,
            'looic': res.looic,
            'max_pareto_k': float(np.max(res.pareto_k)),
            'n_bad_k': int(np.sum(res.pareto_k >= BAD_THRESHOLD))
        })

    return pd.DataFrame(rows)

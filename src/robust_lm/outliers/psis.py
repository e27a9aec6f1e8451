"""Pareto-smoothed importance sampling"""

import numpy as np
from scipy.special import logsumexp
from typing import Optional, Tuple

# Weakly informative prior on the Pareto shape, as in Vehtari et al. (2024)
_PRIOR_K_WEIGHT = 10
_PRIOR_K_CENTER = 0.5
_MIN_TAIL_LENGTH = 5


def gpd_fit(tail: np.ndarray) -> Tuple[float, float]:
    """
    Estimate generalized Pareto shape k and scale sigma

    Uses the empirical Bayes estimator of Zhang & Stephens (2009) with the
    shape shrunk toward 0.5.

    Args:
        tail: Exceedances over the threshold, sorted ascending

    Returns:
        (k, sigma)
    """
    n = len(tail)
    prior_bs = 3
    m_est = 30 + int(np.sqrt(n))

    b_ary = 1 - np.sqrt(m_est / (np.arange(1, m_est + 1, dtype=float) - 0.5))
    b_ary /= prior_bs * tail[int(n / 4 + 0.5) - 1]
    b_ary += 1 / tail[-1]

    k_ary = np.log1p(-b_ary[:, None] * tail).mean(axis=1)
    len_scale = n * (np.log(-(b_ary / k_ary)) - k_ary - 1)
    weights = 1 / np.exp(len_scale - len_scale[:, None]).sum(axis=1)

    # Drop negligible weights for numerical stability
    real = weights >= 10 * np.finfo(float).eps
    weights = weights[real]
    b_ary = b_ary[real]
    weights /= weights.sum()

    b_post = np.sum(b_ary * weights)
    k_post = np.log1p(-b_post * tail).mean()
    sigma = -k_post / b_post
    k_post = (n * k_post + _PRIOR_K_WEIGHT * _PRIOR_K_CENTER) / (n + _PRIOR_K_WEIGHT)

    return float(k_post), float(sigma)


def gpd_quantile(probs: np.ndarray, k: float, sigma: float) -> np.ndarray:
    """Inverse CDF of the generalized Pareto distribution with location 0"""
    if sigma <= 0:
        return np.full_like(probs, np.nan)
    if abs(k) < np.finfo(float).eps:
        return -sigma * np.log1p(-probs)
    return sigma * np.expm1(-k * np.log1p(-probs)) / k


def tail_length(num_draws: int, r_eff: float = 1.0) -> int:
    """Number of largest ratios used for the Pareto fit"""
    return int(np.ceil(min(0.2 * num_draws, 3 * np.sqrt(num_draws / r_eff))))


def psis_smooth(log_ratios: np.ndarray, r_eff: float = 1.0) -> Tuple[np.ndarray, float]:
    """
    Pareto-smooth one vector of log importance ratios

    Args:
        log_ratios: Raw log ratios, shape (draws,)
        r_eff: Relative efficiency of the draws

    Returns:
        (normalized smoothed log weights, Pareto shape k)
    """
    log_weights = np.array(log_ratios, dtype=float)
    n = len(log_weights)
    log_weights -= log_weights.max()

    m = tail_length(n, r_eff)
    order = np.argsort(log_weights)
    cutoff = max(log_weights[order[-m - 1]], np.log(np.finfo(float).tiny))
    exp_cutoff = np.exp(cutoff)

    tail_idx = np.flatnonzero(log_weights > cutoff)
    k = np.inf

    if len(tail_idx) >= _MIN_TAIL_LENGTH:
        tail_order = np.argsort(log_weights[tail_idx])
        sorted_idx = tail_idx[tail_order]
        exceedances = np.exp(log_weights[sorted_idx]) - exp_cutoff
        k, sigma = gpd_fit(exceedances)

        if np.isfinite(k):
            probs = (np.arange(len(sorted_idx)) + 0.5) / len(sorted_idx)
            smoothed = np.log(gpd_quantile(probs, k, sigma) + exp_cutoff)
            log_weights[sorted_idx] = smoothed
            # Truncate at the raw maximum, which is 0 after the shift
            log_weights[log_weights > 0] = 0

    log_weights -= logsumexp(log_weights)
    return log_weights, k


def psis(log_ratios: np.ndarray, r_eff: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pareto-smooth log ratios for every observation

    Args:
        log_ratios: Shape (draws, n)
        r_eff: Relative efficiency per observation, shape (n,)

    Returns:
        (smoothed log weights with shape (draws, n), Pareto k with shape (n,))
    """
    log_ratios = np.asarray(log_ratios, dtype=float)
    n_obs = log_ratios.shape[1]
    if r_eff is None:
        r_eff = np.ones(n_obs)

    log_weights = np.empty_like(log_ratios)
    pareto_k = np.empty(n_obs)
    for i in range(n_obs):
        log_weights[:, i], pareto_k[i] = psis_smooth(log_ratios[:, i], r_eff[i])

    return log_weights, pareto_k

"""Adaptive random-walk Metropolis sampler and convergence diagnostics"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from scipy import stats

logger = logging.getLogger(__name__)


class ConvergenceWarning(UserWarning):
    """Raised through warnings.warn when chains look unconverged"""


@dataclass
class SamplerConfig:
    """Configuration for the Metropolis sampler"""
    chains: int = 4
    warmup: int = 1500
    draws: int = 1000
    thin: int = 5
    seed: Optional[int] = 1234
    target_accept: float = 0.3
    adapt_window: int = 50
    rhat_threshold: float = 1.01
    min_ess: float = 100.0
    max_init_attempts: int = 100
    max_extensions: int = 1

    def __post_init__(self):
        if self.chains < 1:
            raise ValueError(f"Need at least one chain, got {self.chains}")
        if self.draws < 4:
            raise ValueError(f"Need at least 4 draws per chain, got {self.draws}")
        if self.warmup < 0:
            raise ValueError(f"Warmup must be non-negative, got {self.warmup}")
        if self.thin < 1:
            raise ValueError(f"thin must be at least 1, got {self.thin}")
        if self.max_extensions < 0:
            raise ValueError(f"max_extensions must be non-negative, got {self.max_extensions}")
        if not 0 < self.target_accept < 1:
            raise ValueError(f"target_accept must be in (0, 1), got {self.target_accept}")

    def extended(self) -> 'SamplerConfig':
        """Same settings with warmup and thinning doubled"""
        return replace(self, warmup=max(2 * self.warmup, 2 * self.adapt_window), thin=2 * self.thin)


@dataclass
class SamplerResult:
    """Post-warmup draws on the unconstrained scale"""
    draws: np.ndarray  # (chains, draws, dim)
    acceptance_rate: np.ndarray  # (chains,)
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def num_chains(self) -> int:
        return self.draws.shape[0]

    @property
    def num_draws(self) -> int:
        return self.draws.shape[1]

    def flat(self) -> np.ndarray:
        """Draws with chains stacked, shape (chains * draws, dim)"""
        return self.draws.reshape(-1, self.draws.shape[-1])


class MetropolisSampler:
    """
    Multi-chain random-walk Metropolis with warmup adaptation

    All chains advance together so one call to the log density evaluates
    every chain. During warmup the proposal covariance is re-estimated from
    the second half of the warmup history every ``adapt_window`` iterations,
    and a per-chain step scale follows a Robbins-Monro update toward
    ``target_accept``. Covariance updates stop after the first
    ``COVARIANCE_ADAPT_FRACTION`` of warmup. Post-warmup draws keep every
    ``thin``-th iteration.
    """

    COVARIANCE_ADAPT_FRACTION = 0.8

    def __init__(self, config: Optional[SamplerConfig] = None):
        self.config = config or SamplerConfig()

    def sample(self,
               log_density: Callable[[np.ndarray], np.ndarray],
               initial: np.ndarray,
               initial_scale: np.ndarray) -> SamplerResult:
        """
        Run the sampler

        Args:
            log_density: Maps (chains, dim) to (chains,) unnormalized log posterior
            initial: Starting point, shape (dim,)
            initial_scale: Rough posterior scale per dimension, shape (dim,)

        Returns:
            SamplerResult with post-warmup draws
        """
        cfg = self.config
        rng = np.random.default_rng(cfg.seed)

        initial = np.asarray(initial, dtype=float)
        initial_scale = np.asarray(initial_scale, dtype=float)
        dim = initial.shape[0]
        n_chains = cfg.chains

        theta, logp = self._initialize(log_density, initial, initial_scale, rng)

        cov = np.diag(initial_scale ** 2)
        chol = np.linalg.cholesky(cov)
        log_step = np.full(n_chains, np.log(2.38 / np.sqrt(dim)))

        # The last part of warmup tunes only the step scale for the final covariance
        cov_adapt_end = int(cfg.warmup * self.COVARIANCE_ADAPT_FRACTION)
        last_update = 0

        history = np.empty((n_chains, cfg.warmup, dim))
        out = np.empty((n_chains, cfg.draws, dim))
        accepted = np.zeros(n_chains)

        def step(scale):
            z = rng.standard_normal((n_chains, dim))
            proposal = theta + scale[:, None] * z.dot(chol.T)
            logp_prop = log_density(proposal)

            log_ratio = np.nan_to_num(logp_prop - logp, nan=-np.inf)
            accept = np.log(rng.uniform(size=n_chains)) < log_ratio
            theta[accept] = proposal[accept]
            logp[accept] = logp_prop[accept]
            return accept, log_ratio

        for it in range(cfg.warmup):
            _, log_ratio = step(np.exp(log_step))
            history[:, it] = theta

            accept_prob = np.exp(np.minimum(log_ratio, 0.0))
            log_step += (accept_prob - cfg.target_accept) / (it - last_update + 1) ** 0.6

            done = it + 1
            if (done % cfg.adapt_window == 0 and done >= 2 * cfg.adapt_window
                    and done <= cov_adapt_end):
                recent = history[:, done // 2:done].reshape(-1, dim)
                new_cov = np.cov(recent, rowvar=False) + 1e-8 * np.eye(dim)
                try:
                    chol = np.linalg.cholesky(new_cov)
                    last_update = done
                except np.linalg.LinAlgError:
                    logger.debug(f"Skipping covariance update at iteration {done}")

        # Chains share one step scale after warmup
        scale = np.full(n_chains, np.exp(np.mean(log_step)))
        for it in range(cfg.draws * cfg.thin):
            accept, _ = step(scale)
            accepted += accept
            if (it + 1) % cfg.thin == 0:
                out[:, it // cfg.thin] = theta

        acceptance_rate = accepted / (cfg.draws * cfg.thin)
        info = {
            'chains': n_chains,
            'warmup': cfg.warmup,
            'draws': cfg.draws,
            'thin': cfg.thin,
            'seed': cfg.seed,
            'step_scale': scale,
            'mean_acceptance': float(acceptance_rate.mean())
        }

        logger.debug(f"Sampling finished, mean acceptance {info['mean_acceptance']:.2f}")
        return SamplerResult(draws=out, acceptance_rate=acceptance_rate, info=info)

    def _initialize(self, log_density, initial, initial_scale, rng):
        """Jitter the starting point per chain until every chain has finite density"""
        n_chains = self.config.chains
        theta = initial + 0.5 * initial_scale * rng.standard_normal((n_chains, len(initial)))
        logp = log_density(theta)

        for _ in range(self.config.max_init_attempts):
            bad = ~np.isfinite(logp)
            if not bad.any():
                return theta, logp
            theta[bad] = initial + 0.5 * initial_scale * rng.standard_normal((bad.sum(), len(initial)))
            logp[bad] = log_density(theta[bad])

        if not np.all(np.isfinite(logp)):
            raise ValueError("Could not find starting values with finite log posterior")
        return theta, logp


def _autocovariance(x: np.ndarray) -> np.ndarray:
    """Autocovariance of each row via FFT"""
    n = x.shape[-1]
    centered = x - x.mean(axis=-1, keepdims=True)
    nfft = 2 ** int(np.ceil(np.log2(2 * n)))
    spectrum = np.fft.rfft(centered, n=nfft)
    acov = np.fft.irfft(spectrum * np.conjugate(spectrum), n=nfft)[..., :n]
    return acov / n


def _split_chains(x: np.ndarray) -> np.ndarray:
    """Split each chain in half, (chains, draws) -> (2 * chains, draws // 2)"""
    half = x.shape[1] // 2
    return np.concatenate([x[:, :half], x[:, -half:]], axis=0)


def _rank_normalize(x: np.ndarray) -> np.ndarray:
    ranks = stats.rankdata(x, method='average').reshape(x.shape)
    return stats.norm.ppf((ranks - 0.375) / (x.size + 0.25))


def _basic_rhat(x: np.ndarray) -> float:
    n = x.shape[1]
    chain_var = x.var(axis=1, ddof=1)
    within = chain_var.mean()
    between = n * x.mean(axis=1).var(ddof=1)
    if within == 0:
        return np.nan
    var_hat = (n - 1) / n * within + between / n
    return float(np.sqrt(var_hat / within))


def rhat(x: np.ndarray) -> float:
    """
    Rank-normalized split R-hat

    Args:
        x: Draws of one quantity, shape (chains, draws)

    Returns:
        max of bulk and folded split R-hat
    """
    x = np.asarray(x, dtype=float)
    if x.shape[1] < 4:
        return np.nan
    split = _split_chains(x)
    bulk = _basic_rhat(_rank_normalize(split))
    folded = np.abs(split - np.median(split))
    tail = _basic_rhat(_rank_normalize(folded))
    return float(np.nanmax([bulk, tail]))


def effective_sample_size(x: np.ndarray, split: bool = True, rank: bool = True) -> float:
    """
    Multi-chain effective sample size using Geyer's initial monotone sequence

    Args:
        x: Draws of one quantity, shape (chains, draws)
        split: Split chains in half before computing
        rank: Rank-normalize first (bulk ESS)
    """
    x = np.asarray(x, dtype=float)
    if split:
        x = _split_chains(x)
    if rank:
        x = _rank_normalize(x)

    m, n = x.shape
    if n < 4:
        return np.nan

    acov = _autocovariance(x)
    chain_mean = x.mean(axis=1)
    mean_var = acov[:, 0].mean() * n / (n - 1)
    var_plus = mean_var * (n - 1) / n
    if m > 1:
        var_plus += chain_mean.var(ddof=1)
    if var_plus <= 0:
        return float(m * n)

    rho_hat = np.zeros(n)
    rho_hat_even = 1.0
    rho_hat[0] = rho_hat_even
    rho_hat_odd = 1.0 - (mean_var - acov[:, 1].mean()) / var_plus
    rho_hat[1] = rho_hat_odd

    t = 1
    while t < n - 3 and (rho_hat_even + rho_hat_odd) > 0:
        rho_hat_even = 1.0 - (mean_var - acov[:, t + 1].mean()) / var_plus
        rho_hat_odd = 1.0 - (mean_var - acov[:, t + 2].mean()) / var_plus
        if rho_hat_even + rho_hat_odd >= 0:
            rho_hat[t + 1] = rho_hat_even
            rho_hat[t + 2] = rho_hat_odd
        t += 2

    max_t = t - 2
    if rho_hat_even > 0:
        rho_hat[max_t + 1] = rho_hat_even

    # Initial monotone sequence
    t = 1
    while t <= max_t - 2:
        if rho_hat[t + 1] + rho_hat[t + 2] > rho_hat[t - 1] + rho_hat[t]:
            rho_hat[t + 1] = (rho_hat[t - 1] + rho_hat[t]) / 2.0
            rho_hat[t + 2] = rho_hat[t + 1]
        t += 2

    ess = m * n
    tau_hat = -1.0 + 2.0 * np.sum(rho_hat[:max_t + 1]) + np.sum(rho_hat[max_t + 1:max_t + 2])
    tau_hat = max(tau_hat, 1.0 / np.log10(ess))
    return float(ess / tau_hat)


def diagnose(draws: Dict[str, np.ndarray],
             rhat_threshold: float = 1.01,
             min_ess: float = 100.0) -> Dict[str, Any]:
    """
    Compute R-hat and bulk ESS per parameter

    Args:
        draws: Parameter name -> array of shape (chains, draws)
        rhat_threshold: Largest acceptable R-hat
        min_ess: Smallest acceptable bulk ESS

    Returns:
        Dict with per-parameter 'rhat' and 'ess_bulk', a 'converged' flag
        and the list of 'problems' found
    """
    rhats = {}
    ess = {}
    problems = []

    for name, values in draws.items():
        if values.shape[0] > 1:
            rhats[name] = rhat(values)
        else:
            rhats[name] = np.nan
        ess[name] = effective_sample_size(values)

        if np.isfinite(rhats[name]) and rhats[name] > rhat_threshold:
            problems.append(f"{name}: R-hat {rhats[name]:.3f} > {rhat_threshold}")
        if np.isfinite(ess[name]) and ess[name] < min_ess:
            problems.append(f"{name}: bulk ESS {ess[name]:.0f} < {min_ess:.0f}")

    return {'rhat': rhats, 'ess_bulk': ess, 'converged': not problems, 'problems': problems}


def warn_unconverged(label: str, problems: List[str]):
    """Log and emit ConvergenceWarning for a list of diagnostic problems"""
    message = f"Sampler for '{label}' may not have converged: " + "; ".join(problems)
    logger.warning(message)
    warnings.warn(message, ConvergenceWarning, stacklevel=3)


def check_convergence(draws: Dict[str, np.ndarray],
                      rhat_threshold: float = 1.01,
                      min_ess: float = 100.0,
                      label: str = 'model') -> Dict[str, Any]:
    """Diagnose the draws and warn on poor mixing"""
    report = diagnose(draws, rhat_threshold=rhat_threshold, min_ess=min_ess)
    if report['problems']:
        warn_unconverged(label, report['problems'])
    return report

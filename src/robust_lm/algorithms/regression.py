"""Ordinary least squares regression of y on x"""

import logging
import numpy as np
import pandas as pd
from scipy import stats
from typing import Dict, Optional, Tuple, Any
from dataclasses import dataclass

from ..models.observation import Dataset
from ..models.fit import ModelFit, Family, InfluenceKind
from ..models.validators import DataValidator

logger = logging.getLogger(__name__)

PARAMETER_NAMES = ['intercept', 'slope']


@dataclass
class RegressionResults:
    """Results from OLS regression"""
    coefficients: np.ndarray
    standard_errors: np.ndarray
    t_values: np.ndarray
    p_values: np.ndarray
    conf_int: np.ndarray  # shape (2, 2): rows are parameters, columns lower/upper
    residuals: np.ndarray
    fitted_values: np.ndarray
    leverage: np.ndarray
    sigma: float
    r_squared: float
    log_likelihood: float
    aic: float
    num_observations: int
    df_residual: int
    observation_index: np.ndarray
    convergence_info: Dict[str, Any]

    @property
    def intercept(self) -> float:
        return float(self.coefficients[0])

    @property
    def slope(self) -> float:
        return float(self.coefficients[1])


class OLSRegression:
    """
    Least-squares fit of ``y = intercept + slope * x + e``

    Gaussian errors are assumed for standard errors, intervals and the
    log-likelihood used in AIC.
    """

    def __init__(self, confidence_level: float = 0.95):
        """
        Initialize regression model

        Args:
            confidence_level: Coverage of the reported confidence intervals
        """
        if not 0 < confidence_level < 1:
            raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")
        self.confidence_level = confidence_level
        self.results: Optional[RegressionResults] = None
        self.dataset: Optional[Dataset] = None

    def fit(self, dataset: Dataset) -> RegressionResults:
        """
        Fit the regression model

        Args:
            dataset: Dataset with x and y

        Returns:
            RegressionResults object
        """
        DataValidator.require_fittable(dataset)

        X, y = self._build_design_matrix(dataset)
        n, k = X.shape

        coefficients, residuals, convergence = self._perform_regression(X, y)
        leverage = self._calculate_leverage(X)

        df_residual = n - k
        if df_residual > 0:
            sigma_squared = float(np.dot(residuals, residuals) / df_residual)
        else:
            # Exact fit through two points
            sigma_squared = np.nan

        standard_errors = self._calculate_standard_errors(X, sigma_squared)

        with np.errstate(divide='ignore', invalid='ignore'):
            t_values = coefficients / standard_errors
        if df_residual > 0:
            p_values = 2 * stats.t.sf(np.abs(t_values), df_residual)
            t_crit = stats.t.ppf(0.5 + self.confidence_level / 2, df_residual)
        else:
            p_values = np.full(k, np.nan)
            t_crit = np.nan
        conf_int = np.column_stack([
            coefficients - t_crit * standard_errors,
            coefficients + t_crit * standard_errors
        ])

        log_likelihood = self._calculate_log_likelihood(residuals)
        # intercept, slope and sigma
        aic = 2 * (k + 1) - 2 * log_likelihood

        self.dataset = dataset
        self.results = RegressionResults(
            coefficients=coefficients,
            standard_errors=standard_errors,
            t_values=t_values,
            p_values=p_values,
            conf_int=conf_int,
            residuals=residuals,
            fitted_values=y - residuals,
            leverage=leverage,
            sigma=float(np.sqrt(sigma_squared)),
            r_squared=self._calculate_r_squared(y, residuals),
            log_likelihood=log_likelihood,
            aic=aic,
            num_observations=n,
            df_residual=df_residual,
            observation_index=dataset.indices,
            convergence_info=convergence
        )

        logger.debug(
            f"OLS on '{dataset.name}': intercept={coefficients[0]:.3f} "
            f"slope={coefficients[1]:.3f} sigma={self.results.sigma:.3f}"
        )

        return self.results

    def _build_design_matrix(self, dataset: Dataset) -> Tuple[np.ndarray, np.ndarray]:
        """Design matrix with an intercept column and the predictor"""
        x = dataset.x
        X = np.column_stack([np.ones_like(x), x])
        return X, dataset.y

    def _perform_regression(self,
                            X: np.ndarray,
                            y: np.ndarray) -> Tuple[np.ndarray, np.ndarray, Dict]:
        """Solve the least-squares problem; returns coefficients, residuals, info"""
        coefficients, _, rank, singular_values = np.linalg.lstsq(X, y, rcond=None)
        residuals = y - X.dot(coefficients)

        convergence_info = {
            'rank': int(rank),
            'converged': int(rank) == X.shape[1],
            'condition_number': float(singular_values[0] / singular_values[-1])
        }

        return coefficients, residuals, convergence_info

    def _calculate_leverage(self, X: np.ndarray) -> np.ndarray:
        """Diagonal of the hat matrix X (X'X)^-1 X'"""
        XtX_inv = np.linalg.inv(X.T.dot(X))
        return np.einsum('ij,jk,ik->i', X, XtX_inv, X)

    def _calculate_standard_errors(self, X: np.ndarray, sigma_squared: float) -> np.ndarray:
        """Calculate standard errors of coefficients"""
        XtX_inv = np.linalg.inv(X.T.dot(X))
        return np.sqrt(np.diag(XtX_inv) * sigma_squared)

    def _calculate_log_likelihood(self, residuals: np.ndarray) -> float:
        """Gaussian log-likelihood at the maximum likelihood variance"""
        n = len(residuals)
        rss = float(np.dot(residuals, residuals))
        if rss == 0:
            return np.inf
        return float(-0.5 * n * (np.log(2 * np.pi) + np.log(rss / n) + 1))

    def _calculate_r_squared(self, y: np.ndarray, residuals: np.ndarray) -> float:
        """Calculate R-squared statistic"""
        ss_res = np.sum(residuals ** 2)
        ss_tot = np.sum((y - np.mean(y)) ** 2)

        if ss_tot == 0:
            return 0.0

        return float(1 - (ss_res / ss_tot))

    def coefficient_table(self) -> pd.DataFrame:
        """Point estimates, standard errors and confidence intervals"""
        if self.results is None:
            raise ValueError("Must fit model before getting coefficients")

        res = self.results
        return pd.DataFrame({
            'parameter': PARAMETER_NAMES,
            'estimate': res.coefficients,
            'std_error': res.standard_errors,
            't_value': res.t_values,
            'p_value': res.p_values,
            'lower': res.conf_int[:, 0],
            'upper': res.conf_int[:, 1]
        })

    def predict(self, x: np.ndarray) -> pd.DataFrame:
        """
        Fitted line with confidence band for the mean

        Args:
            x: Predictor values

        Returns:
            DataFrame with x, estimate, lower, upper
        """
        if self.results is None:
            raise ValueError("Must fit model before predicting")

        x = np.asarray(x, dtype=float)
        X_new = np.column_stack([np.ones_like(x), x])
        X = np.column_stack([np.ones(self.dataset.n), self.dataset.x])
        XtX_inv = np.linalg.inv(X.T.dot(X))

        estimate = X_new.dot(self.results.coefficients)
        se_mean = self.results.sigma * np.sqrt(np.einsum('ij,jk,ik->i', X_new, XtX_inv, X_new))
        if self.results.df_residual > 0:
            t_crit = stats.t.ppf(0.5 + self.confidence_level / 2, self.results.df_residual)
        else:
            t_crit = np.nan

        return pd.DataFrame({
            'x': x,
            'estimate': estimate,
            'lower': estimate - t_crit * se_mean,
            'upper': estimate + t_crit * se_mean
        })

    def to_model_fit(self,
                     model_name: str,
                     cooks_distance: np.ndarray) -> ModelFit:
        """
        Package the fit as a ModelFit with Cook's distance as influence

        Args:
            model_name: Identifier for the fit
            cooks_distance: One Cook's distance per observation
        """
        if self.results is None:
            raise ValueError("Must fit model before building a ModelFit")

        table = self.coefficient_table()
        sigma_row = pd.DataFrame([{
            'parameter': 'sigma',
            'estimate': self.results.sigma,
            'lower': np.nan,
            'upper': np.nan
        }])
        coefficients = pd.concat(
            [table[['parameter', 'estimate', 'lower', 'upper']], sigma_row],
            ignore_index=True
        )

        return ModelFit(
            model_name=model_name,
            dataset_name=self.dataset.name,
            family=Family.OLS,
            coefficients=coefficients,
            observation_index=self.results.observation_index,
            influence=np.asarray(cooks_distance, dtype=float),
            influence_kind=InfluenceKind.COOKS_DISTANCE,
            score_name='aic',
            score=self.results.aic,
            details={
                'r_squared': self.results.r_squared,
                'std_errors': dict(zip(PARAMETER_NAMES, self.results.standard_errors)),
                'log_likelihood': self.results.log_likelihood
            }
        )

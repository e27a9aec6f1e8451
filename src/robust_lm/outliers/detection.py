"""Influence diagnostics for least-squares fits"""

import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Set, Tuple
from dataclasses import dataclass

from ..algorithms.regression import RegressionResults
from ..models.observation import Dataset

# Shape-scale cutoffs shared by Cook's distance and Pareto-k reporting
GOOD_THRESHOLD = 0.5
BAD_THRESHOLD = 0.7
VERY_BAD_THRESHOLD = 1.0


@dataclass
class OutlierResult:
    """Results from influence-based outlier detection"""
    outlier_indices: Set[int]  # Observation indices flagged as influential
    outlier_scores: Dict[int, float]  # Index -> Cook's distance
    outlier_reasons: Dict[int, List[str]]  # Index -> list of reasons
    influence: pd.DataFrame  # Per-observation leverage, residuals, Cook's distance
    statistics: Dict[str, float]  # Summary statistics
    thresholds: Dict[str, float]  # Thresholds used


class InfluenceDetector:
    """
    Detect influential observations in a straight-line OLS fit

    Methods include:
    - Cook's distance: Influence of each observation on the coefficients
    - Leverage: Unusual predictor values
    - Studentized residuals: Standardized residuals
    """

    def __init__(self,
                 cooks_threshold: Optional[float] = None,
                 leverage_threshold: float = 3.0,
                 residual_threshold: float = 3.0):
        """
        Initialize influence detector

        Args:
            cooks_threshold: Cook's distance cutoff (default: 4/n)
            leverage_threshold: Threshold for leverage (times mean leverage p/n)
            residual_threshold: Threshold for studentized residuals (std devs)
        """
        self.cooks_threshold = cooks_threshold
        self.leverage_threshold = leverage_threshold
        self.residual_threshold = residual_threshold

    def cooks_distance(self, regression_results: RegressionResults) -> np.ndarray:
        """
        Cook's distance for every observation

        D_i = e_i^2 / (p * s^2) * h_i / (1 - h_i)^2
        """
        residuals = regression_results.residuals
        leverage = regression_results.leverage
        k = len(regression_results.coefficients)
        mse = regression_results.sigma ** 2

        with np.errstate(divide='ignore', invalid='ignore'):
            cooks = residuals ** 2 / (k * mse) * leverage / (1 - leverage) ** 2

        return cooks

    def studentized_residuals(self, regression_results: RegressionResults) -> np.ndarray:
        """Internally studentized residuals e_i / (s * sqrt(1 - h_i))"""
        with np.errstate(divide='ignore', invalid='ignore'):
            return regression_results.residuals / (
                regression_results.sigma * np.sqrt(1 - regression_results.leverage)
            )

    def detect_outliers(self,
                        regression_results: RegressionResults,
                        dataset: Optional[Dataset] = None) -> OutlierResult:
        """
        Detect influential observations using multiple methods

        Args:
            regression_results: Fitted OLS results
            dataset: Optional source dataset, used to attach x and y

        Returns:
            OutlierResult with detected outliers and reasons
        """
        n = regression_results.num_observations
        k = len(regression_results.coefficients)
        index = regression_results.observation_index

        cooks = self.cooks_distance(regression_results)
        student = self.studentized_residuals(regression_results)
        leverage = regression_results.leverage

        cooks_cutoff = self.cooks_threshold if self.cooks_threshold is not None else 4.0 / n
        leverage_cutoff = self.leverage_threshold * k / n

        outlier_indices = set()
        outlier_scores = {}
        outlier_reasons = {}

        cooks_outliers = self._flag(index, cooks > cooks_cutoff)
        residual_outliers = self._flag(index, np.abs(student) > self.residual_threshold)
        leverage_outliers = self._flag(index, leverage > leverage_cutoff)

        for reason, flagged in (("High Cook's distance", cooks_outliers),
                                ("Large studentized residual", residual_outliers),
                                ("High leverage", leverage_outliers)):
            outlier_indices.update(flagged)
            for idx in flagged:
                outlier_reasons.setdefault(idx, []).append(reason)

        cooks_by_index = dict(zip(index.tolist(), cooks.tolist()))
        for idx in outlier_indices:
            outlier_scores[idx] = cooks_by_index[idx]

        influence = pd.DataFrame({
            'obs': index,
            'leverage': leverage,
            'residual': regression_results.residuals,
            'studentized_residual': student,
            'cooks_distance': cooks
        })
        if dataset is not None:
            influence = influence.merge(dataset.to_frame(), on='obs', how='left')
        influence['influential'] = influence['obs'].isin(outlier_indices)

        statistics = {
            'total_observations': n,
            'total_outliers': len(outlier_indices),
            'outlier_rate': len(outlier_indices) / n if n > 0 else 0,
            'cooks_outliers': len(cooks_outliers),
            'residual_outliers': len(residual_outliers),
            'leverage_outliers': len(leverage_outliers),
            'max_cooks_distance': float(np.nanmax(cooks)) if n > 0 else np.nan,
            'above_bad_threshold': int(np.sum(cooks >= BAD_THRESHOLD))
        }

        thresholds = {
            'cooks_distance': cooks_cutoff,
            'cooks_bad': BAD_THRESHOLD,
            'leverage': leverage_cutoff,
            'studentized_residual': self.residual_threshold
        }

        return OutlierResult(
            outlier_indices=outlier_indices,
            outlier_scores=outlier_scores,
            outlier_reasons=outlier_reasons,
            influence=influence,
            statistics=statistics,
            thresholds=thresholds
        )

    @staticmethod
    def _flag(index: np.ndarray, mask: np.ndarray) -> Set[int]:
        return {int(i) for i in index[mask]}

    def get_clean_data(self,
                       dataset: Dataset,
                       outlier_result: OutlierResult,
                       name: Optional[str] = None) -> Dataset:
        """
        Return dataset with flagged observations removed

        Args:
            dataset: Original dataset
            outlier_result: Results from outlier detection
            name: Name of the returned dataset

        Returns:
            Dataset without the flagged observations
        """
        return dataset.without(name or f"{dataset.name}_clean",
                               sorted(outlier_result.outlier_indices))

    def summarize_outliers(self, outlier_result: OutlierResult) -> pd.DataFrame:
        """
        Create summary report of outliers

        Args:
            outlier_result: Results from outlier detection

        Returns:
            DataFrame with outlier summary
        """
        reason_counts = {}
        for reasons in outlier_result.outlier_reasons.values():
            for reason in reasons:
                reason_counts[reason] = reason_counts.get(reason, 0) + 1

        summary_data = [
            {'Category': 'Overall', 'Metric': 'Total Observations',
             'Value': outlier_result.statistics['total_observations']},
            {'Category': 'Overall', 'Metric': 'Total Outliers',
             'Value': outlier_result.statistics['total_outliers']},
            {'Category': 'Overall', 'Metric': 'Outlier Rate',
             'Value': f"{outlier_result.statistics['outlier_rate']:.2%}"},
            {'Category': 'Overall', 'Metric': "Max Cook's Distance",
             'Value': round(outlier_result.statistics['max_cooks_distance'], 4)}
        ]

        for reason, count in reason_counts.items():
            summary_data.append({'Category': 'By Reason', 'Metric': reason, 'Value': count})

        for threshold_name, threshold_value in outlier_result.thresholds.items():
            summary_data.append({
                'Category': 'Thresholds',
                'Metric': threshold_name,
                'Value': threshold_value
            })

        return pd.DataFrame(summary_data)


def influence_band(scores: np.ndarray) -> np.ndarray:
    """
    Classify shape-scale influence scores into severity bands

    good: k < 0.5, ok: 0.5 <= k < 0.7, bad: 0.7 <= k < 1, very bad: k >= 1.
    NaN scores are labelled 'undefined'.
    """
    scores = np.asarray(scores, dtype=float)
    bands = np.full(scores.shape, 'very bad', dtype=object)
    bands[scores < VERY_BAD_THRESHOLD] = 'bad'
    bands[scores < BAD_THRESHOLD] = 'ok'
    bands[scores < GOOD_THRESHOLD] = 'good'
    bands[np.isnan(scores)] = 'undefined'
    return bands

"""Unit tests for influence-based outlier detection"""

import pytest
import numpy as np

from robust_lm.outliers import InfluenceDetector, OutlierResult, influence_band
from robust_lm.algorithms.regression import OLSRegression


class TestInfluenceDetector:
    """Test Cook's distance and outlier flags"""

    @pytest.fixture
    def outlier_results(self, outlier_dataset):
        return OLSRegression().fit(outlier_dataset)

    def test_cooks_distance_formula(self, line_dataset):
        """Cook's distance matches the deletion definition"""
        model = OLSRegression()
        results = model.fit(line_dataset)
        cooks = InfluenceDetector().cooks_distance(results)

        # D_i = sum((yhat - yhat_(i))^2) / (p * s^2)
        X = np.column_stack([np.ones(line_dataset.n), line_dataset.x])
        i = 5
        keep = np.arange(line_dataset.n) != i
        beta_i, *_ = np.linalg.lstsq(X[keep], line_dataset.y[keep], rcond=None)
        expected = np.sum((X @ results.coefficients - X @ beta_i) ** 2) / (2 * results.sigma ** 2)

        assert cooks[i] == pytest.approx(expected)

    def test_detect_injected_outliers(self, outlier_dataset, outlier_results):
        """Injected rows have the largest Cook's distance"""
        detector = InfluenceDetector()
        result = detector.detect_outliers(outlier_results, outlier_dataset)

        assert isinstance(result, OutlierResult)
        assert {0, 1} <= result.outlier_indices
        assert "High Cook's distance" in result.outlier_reasons[0]
        assert result.statistics['max_cooks_distance'] > 0.7
        assert result.statistics['above_bad_threshold'] >= 1

        top = result.influence.sort_values('cooks_distance', ascending=False)['obs'].iloc[0]
        assert top in (0, 1)

    def test_influence_frame(self, outlier_dataset, outlier_results):
        result = InfluenceDetector().detect_outliers(outlier_results, outlier_dataset)
        frame = result.influence

        assert list(frame.columns) == [
            'obs', 'leverage', 'residual', 'studentized_residual',
            'cooks_distance', 'x', 'y', 'influential'
        ]
        assert len(frame) == outlier_dataset.n
        assert frame.loc[frame['obs'] == 0, 'y'].iloc[0] == 8.0

    def test_clean_data_below_bad_threshold(self, clean_dataset):
        results = OLSRegression().fit(clean_dataset)
        result = InfluenceDetector().detect_outliers(results)

        assert result.statistics['max_cooks_distance'] < 0.7
        assert result.statistics['above_bad_threshold'] == 0

    def test_custom_threshold(self, outlier_results):
        detector = InfluenceDetector(cooks_threshold=10.0, leverage_threshold=100, residual_threshold=100)
        result = detector.detect_outliers(outlier_results)

        assert result.thresholds['cooks_distance'] == 10.0
        assert result.outlier_indices == set()

    def test_get_clean_data(self, outlier_dataset, outlier_results):
        detector = InfluenceDetector()
        result = detector.detect_outliers(outlier_results)
        cleaned = detector.get_clean_data(outlier_dataset, result)

        assert cleaned.name == 'outlier_clean'
        assert cleaned.n == outlier_dataset.n - len(result.outlier_indices)
        assert 0 not in cleaned.indices

    def test_summarize_outliers(self, outlier_results):
        detector = InfluenceDetector()
        summary = detector.summarize_outliers(detector.detect_outliers(outlier_results))

        assert set(summary['Category']) >= {'Overall', 'By Reason', 'Thresholds'}
        total = summary[summary['Metric'] == 'Total Observations']['Value'].iloc[0]
        assert total == 100


class TestInfluenceBand:
    """Test severity bands"""

    def test_band_edges(self):
        bands = influence_band(np.array([0.1, 0.5, 0.69, 0.7, 0.99, 1.0, 3.0]))
        assert list(bands) == ['good', 'ok', 'ok', 'bad', 'bad', 'very bad', 'very bad']

    def test_nan_and_inf(self):
        bands = influence_band(np.array([np.nan, np.inf]))
        assert list(bands) == ['undefined', 'very bad']

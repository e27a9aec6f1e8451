"""Unit tests for data models"""

import pytest
import numpy as np
import pandas as pd

from robust_lm.models import (
    Observation, Dataset, ModelFit, Family, InfluenceKind, DataValidator
)


class TestDataset:
    """Test Dataset model"""

    def test_from_arrays(self):
        """Test building a dataset from arrays"""
        ds = Dataset.from_arrays("toy", [1, 2, 3], [2.0, 4.0, 6.0])

        assert ds.name == "toy"
        assert ds.n == 3
        assert len(ds) == 3
        np.testing.assert_array_equal(ds.x, [1.0, 2.0, 3.0])
        np.testing.assert_array_equal(ds.indices, [0, 1, 2])
        assert ds.data.index.name == 'obs'

    def test_mismatched_lengths(self):
        """Test x and y length mismatch"""
        with pytest.raises(ValueError, match="same length"):
            Dataset.from_arrays("bad", [1, 2, 3], [1, 2])

    def test_missing_columns(self):
        """Test frame without y column"""
        with pytest.raises(ValueError, match="missing columns"):
            Dataset(name="bad", data=pd.DataFrame({'x': [1.0, 2.0]}))

    def test_arrays_are_copies(self):
        """Mutating returned arrays must not change the dataset"""
        ds = Dataset.from_arrays("toy", [1, 2], [3, 4])
        x = ds.x
        x[0] = 100
        assert ds.x[0] == 1.0

    def test_observations(self):
        """Test iterating observations"""
        ds = Dataset.from_arrays("toy", [1, 2], [3, 4])
        obs = list(ds.observations())

        assert obs[0] == Observation(index=0, x=1.0, y=3.0)
        assert obs[1].index == 1

    def test_to_frame(self):
        """Test frame export keeps the index as a column"""
        ds = Dataset.from_arrays("toy", [1, 2], [3, 4])
        frame = ds.to_frame()

        assert list(frame.columns) == ['obs', 'x', 'y']

    def test_with_values(self):
        """Test overwriting y at row positions"""
        ds = Dataset.from_arrays("toy", [1, 2, 3], [1, 2, 3])
        changed = ds.with_values("changed", [10.0], rows=[0])

        assert changed.name == "changed"
        np.testing.assert_array_equal(changed.y, [10.0, 2.0, 3.0])
        np.testing.assert_array_equal(changed.x, ds.x)
        # Source untouched
        np.testing.assert_array_equal(ds.y, [1.0, 2.0, 3.0])

    def test_without_keeps_indices(self):
        """Test dropping rows keeps the remaining row indices"""
        ds = Dataset.from_arrays("toy", [1, 2, 3, 4], [1, 2, 3, 4])
        reduced = ds.without("reduced", [0, 2])

        assert reduced.n == 2
        np.testing.assert_array_equal(reduced.indices, [1, 3])

    def test_without_unknown_index(self):
        """Test dropping an index that does not exist"""
        ds = Dataset.from_arrays("toy", [1, 2], [1, 2])
        with pytest.raises(ValueError, match="Unknown observation"):
            ds.without("reduced", [5])


class TestModelFit:
    """Test ModelFit record"""

    @pytest.fixture
    def coefficients(self):
        return pd.DataFrame({
            'parameter': ['intercept', 'slope', 'sigma'],
            'estimate': [0.1, 0.6, 0.8],
            'lower': [-0.1, 0.4, 0.7],
            'upper': [0.3, 0.8, 0.9]
        })

    def test_creation(self, coefficients):
        """Test creating a fit record"""
        fit = ModelFit(
            model_name="m",
            dataset_name="clean",
            family="gaussian",
            coefficients=coefficients,
            observation_index=np.arange(3),
            influence=np.array([0.1, 0.2, 0.9]),
            influence_kind="pareto_k",
            score_name="elpd_loo",
            score=-120.0,
            score_se=8.0
        )

        assert fit.family == Family.GAUSSIAN
        assert fit.influence_kind == InfluenceKind.PARETO_K
        assert fit.slope == pytest.approx(0.6)
        assert fit.intercept == pytest.approx(0.1)
        assert fit.estimate('sigma') == pytest.approx(0.8)

        series = fit.influence_series()
        assert series.index.name == 'obs'
        assert series.name == 'pareto_k'
        assert series.loc[2] == pytest.approx(0.9)

    def test_unknown_parameter(self, coefficients):
        """Test looking up a missing parameter"""
        fit = ModelFit("m", "clean", Family.OLS, coefficients, np.arange(2),
                       np.zeros(2), InfluenceKind.COOKS_DISTANCE, "aic", 10.0)
        with pytest.raises(KeyError):
            fit.estimate('nu')

    def test_length_mismatch(self, coefficients):
        """Influence must align with observations"""
        with pytest.raises(ValueError, match="do not match"):
            ModelFit("m", "clean", Family.OLS, coefficients, np.arange(3),
                     np.zeros(2), InfluenceKind.COOKS_DISTANCE, "aic", 10.0)

    def test_missing_coefficient_columns(self, coefficients):
        with pytest.raises(ValueError, match="missing columns"):
            ModelFit("m", "clean", Family.OLS, coefficients.drop(columns='upper'),
                     np.arange(2), np.zeros(2), InfluenceKind.COOKS_DISTANCE, "aic", 10.0)

    def test_invalid_family(self, coefficients):
        with pytest.raises(ValueError):
            ModelFit("m", "clean", "laplace", coefficients, np.arange(2),
                     np.zeros(2), InfluenceKind.COOKS_DISTANCE, "aic", 10.0)


class TestDataValidator:
    """Test data validation"""

    def test_valid_dataset(self, line_dataset):
        is_valid, errors = DataValidator.validate_dataset(line_dataset)
        assert is_valid
        assert errors == []

    def test_too_few_observations(self):
        ds = Dataset.from_arrays("one", [1.0], [2.0])
        is_valid, errors = DataValidator.validate_dataset(ds)

        assert not is_valid
        assert any("at least 2 observations" in e for e in errors)

    def test_constant_x(self):
        ds = Dataset.from_arrays("flat", [1.0, 1.0, 1.0], [1.0, 2.0, 3.0])
        is_valid, errors = DataValidator.validate_dataset(ds)

        assert not is_valid
        assert any("distinct x" in e for e in errors)

    def test_non_finite(self):
        ds = Dataset.from_arrays("nan", [1.0, 2.0, 3.0], [1.0, np.nan, 3.0])
        is_valid, errors = DataValidator.validate_dataset(ds)

        assert not is_valid
        assert any("Non-finite" in e for e in errors)

    def test_require_fittable_raises(self):
        ds = Dataset.from_arrays("flat", [1.0, 1.0], [1.0, 2.0])
        with pytest.raises(ValueError, match="Degenerate dataset 'flat'"):
            DataValidator.require_fittable(ds)

"""Unit tests for Bayesian regression"""

import warnings

import pytest
import numpy as np

from robust_lm.algorithms import (
    BayesianRegression, BayesianResults, OLSRegression, SamplerConfig, ConvergenceWarning
)
from robust_lm.models import Dataset, Family, InfluenceKind
from robust_lm.outliers import LOOAnalyzer


@pytest.fixture
def small_config():
    return SamplerConfig(chains=4, warmup=400, draws=600, seed=99)


def quiet_fit(model, dataset):
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', ConvergenceWarning)
        return model.fit(dataset)


class TestBayesianRegression:
    """Test posterior sampling"""

    def test_results_structure(self, gaussian_clean_model, clean_dataset):
        results = gaussian_clean_model.results

        assert isinstance(results, BayesianResults)
        assert results.family == Family.GAUSSIAN
        assert set(results.draws) == {'intercept', 'slope', 'sigma'}
        assert results.draws['slope'].shape == (4, 1000)
        assert results.log_likelihood.shape == (4, 1000, clean_dataset.n)
        assert results.num_draws == 4000
        np.testing.assert_array_equal(results.observation_index, clean_dataset.indices)

    def test_summary(self, gaussian_clean_model):
        summary = gaussian_clean_model.results.summary

        assert list(summary.columns) == ['parameter', 'estimate', 'sd', 'lower', 'upper', 'rhat', 'ess_bulk']
        assert list(summary['parameter']) == ['intercept', 'slope', 'sigma']
        assert np.all(summary['lower'] < summary['estimate'])
        assert np.all(summary['estimate'] < summary['upper'])
        assert np.all(summary['rhat'] < 1.05)

    def test_matches_least_squares(self, gaussian_clean_model, clean_dataset):
        """Weak priors give a posterior centered on the OLS fit"""
        ols = OLSRegression().fit(clean_dataset)
        results = gaussian_clean_model.results

        assert results.posterior_mean('slope') == pytest.approx(ols.slope, abs=0.05)
        assert results.posterior_mean('intercept') == pytest.approx(ols.intercept, abs=0.05)
        assert results.posterior_mean('sigma') == pytest.approx(ols.sigma, rel=0.1)

    def test_sigma_positive(self, gaussian_clean_model):
        assert np.all(gaussian_clean_model.results.draws['sigma'] > 0)

    def test_student_parameters(self, student_outlier_model):
        results = student_outlier_model.results

        assert results.family == Family.STUDENT
        assert 'nu' in results.draws
        assert np.all(results.draws['nu'] > 1)
        # Two gross outliers push nu toward heavy tails
        assert results.posterior_mean('nu') < 15

    def test_fitted_band(self, gaussian_clean_model):
        grid = np.linspace(-2, 2, 11)
        band = gaussian_clean_model.fitted(grid)

        assert list(band.columns) == ['x', 'estimate', 'lower', 'upper']
        assert np.all(band['lower'] < band['estimate'])
        assert np.all(band['estimate'] < band['upper'])

    def test_predict_wider_than_fitted(self, gaussian_clean_model):
        grid = np.linspace(-2, 2, 5)
        mean_band = gaussian_clean_model.fitted(grid)
        pred_band = gaussian_clean_model.predict(grid, seed=1)

        mean_width = (mean_band['upper'] - mean_band['lower']).to_numpy()
        pred_width = (pred_band['upper'] - pred_band['lower']).to_numpy()
        assert np.all(pred_width > mean_width)

    def test_posterior_draws_long_format(self, gaussian_clean_model):
        draws = gaussian_clean_model.posterior_draws()

        assert list(draws.columns) == ['chain', 'iteration', 'parameter', 'value']
        assert len(draws) == 3 * 4000
        assert set(draws['chain']) == {0, 1, 2, 3}

    def test_to_model_fit(self, gaussian_clean_model):
        loo = LOOAnalyzer().analyze(gaussian_clean_model)
        fit = gaussian_clean_model.to_model_fit('gaussian_clean', loo)

        assert fit.influence_kind == InfluenceKind.PARETO_K
        assert fit.score_name == 'elpd_loo'
        assert fit.score == pytest.approx(loo.elpd_loo)
        assert fit.score_se == pytest.approx(loo.se)
        assert fit.details['prior_set'] == 'weakly_informative'
        assert fit.details['priors']['sigma'] == 'cauchy(0, 1)'
        assert len(fit.details['pointwise_elpd']) == 100

    def test_unfitted(self):
        model = BayesianRegression()
        with pytest.raises(ValueError, match="Must fit model"):
            model.fitted(np.zeros(3))
        with pytest.raises(ValueError, match="Must fit model"):
            model.posterior_draws()

    def test_clone(self, gaussian_clean_model):
        copy = gaussian_clean_model.clone(seed=5)

        assert copy.results is None
        assert copy.family == gaussian_clean_model.family
        assert copy.sampler_config.seed == 5
        assert copy.sampler_config.draws == gaussian_clean_model.sampler_config.draws

    def test_invalid_credible_level(self):
        with pytest.raises(ValueError):
            BayesianRegression(credible_level=0)

    def test_degenerate_dataset(self):
        ds = Dataset.from_arrays("flat", [1.0, 1.0, 1.0], [1.0, 2.0, 3.0])
        with pytest.raises(ValueError, match="Degenerate"):
            BayesianRegression().fit(ds)

    def test_fixed_nu(self, line_dataset, small_config):
        model = BayesianRegression(family='student_fixed', nu=4, sampler_config=small_config)
        results = quiet_fit(model, line_dataset)
        loo = LOOAnalyzer().analyze(model)
        fit = model.to_model_fit('student4', loo)

        assert set(results.draws) == {'intercept', 'slope', 'sigma'}
        assert fit.estimate('nu') == 4.0
        assert fit.family == Family.STUDENT_FIXED
        assert fit.slope == pytest.approx(2.0, abs=0.2)

    def test_prior_override_shrinks(self, line_dataset):
        """A tight prior on the slope pulls it toward zero"""
        config = SamplerConfig(chains=4, warmup=1500, draws=500, seed=99)
        model = BayesianRegression(prior_overrides={'slope': 'normal(0, 0.1)'},
                                   sampler_config=config)
        results = quiet_fit(model, line_dataset)

        assert results.posterior_mean('slope') < 1.0
        assert model.priors.name == 'weakly_informative+custom'

    def test_default_prior_set(self, line_dataset, small_config):
        model = BayesianRegression(prior_set='default', sampler_config=small_config)
        results = quiet_fit(model, line_dataset)

        assert results.priors.name == 'default'
        assert results.priors.slope.is_flat
        assert results.posterior_mean('slope') == pytest.approx(2.0, abs=0.2)

    def test_reproducible(self, line_dataset, small_config):
        a = quiet_fit(BayesianRegression(sampler_config=small_config), line_dataset)
        b = quiet_fit(BayesianRegression(sampler_config=small_config), line_dataset)
        np.testing.assert_array_equal(a.draws['slope'], b.draws['slope'])

    def test_default_config_converges(self, clean_dataset):
        """The shipped sampler settings pass their own diagnostics"""
        model = BayesianRegression()
        with warnings.catch_warnings():
            warnings.simplefilter('error', ConvergenceWarning)
            results = model.fit(clean_dataset)

        assert results.converged
        assert results.sampler_info['problems'] == []
        assert (results.summary['rhat'] <= 1.01).all()
        assert (results.summary['ess_bulk'] >= 100).all()

    def test_unconverged_fit_is_resampled(self, line_dataset):
        """Failing diagnostics trigger a longer run before the warning"""
        config = SamplerConfig(chains=2, warmup=100, draws=100, seed=3, min_ess=1e6)
        model = BayesianRegression(sampler_config=config)

        with pytest.warns(ConvergenceWarning, match="may not have converged"):
            results = model.fit(line_dataset)

        assert not results.converged
        assert results.sampler_info['extensions'] == 1
        assert results.sampler_info['warmup'] == 200
        assert results.sampler_info['thin'] == 10
        assert results.num_draws == 200

    def test_no_resampling_when_disabled(self, line_dataset):
        config = SamplerConfig(chains=2, warmup=100, draws=100, seed=3,
                               min_ess=1e6, max_extensions=0)
        model = BayesianRegression(sampler_config=config)

        with pytest.warns(ConvergenceWarning):
            results = model.fit(line_dataset)

        assert results.sampler_info['extensions'] == 0
        assert results.sampler_info['warmup'] == 100

"""End-to-end tests of the robust regression comparison"""

import json
import warnings

import pytest
import numpy as np
import pandas as pd

from robust_lm.algorithms import ConvergenceWarning, SamplerConfig
from robust_lm.config import AnalysisConfig
from robust_lm.data import SyntheticDataGenerator, SimulationConfig
from robust_lm.pipeline import RobustRegressionPipeline


@pytest.fixture(scope="module")
def default_run():
    """Default comparison, all nine models, with every warning recorded"""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = RobustRegressionPipeline(AnalysisConfig()).run(pipeline_id="e2e")
    return result, caught


@pytest.fixture(scope="module")
def run_result(default_run):
    return default_run[0]


@pytest.fixture(scope="module")
def tables(run_result):
    return run_result.output("compare")


def _slope(tables, model):
    slopes = tables['slopes'].set_index('model')
    return slopes.loc[model, 'slope']


class TestEndToEnd:
    """Robustness and influence properties on the simulated data"""

    def test_pipeline_succeeds(self, run_result):
        assert run_result.status == "success"
        assert run_result.error_summary == []
        assert run_result.metrics['steps_succeeded'] == len(run_result.step_results)

    def test_default_sampler_converges(self, default_run):
        result, caught = default_run
        messages = [str(w.message) for w in caught if issubclass(w.category, ConvergenceWarning)]

        assert messages == []
        for model in result.output("bayes")["models"].values():
            assert model.results.converged

    def test_simulation_reproducible(self):
        first = SyntheticDataGenerator(SimulationConfig(seed=3)).generate_complete_dataset()
        second = SyntheticDataGenerator(SimulationConfig(seed=3)).generate_complete_dataset()

        for key in first:
            pd.testing.assert_frame_equal(first[key].data, second[key].data)
            assert np.array_equal(first[key].y, second[key].y)

    def test_clean_data_has_no_dominant_observation(self, tables):
        influence = tables['influence']
        clean = influence[influence['dataset'] == 'clean']

        assert set(clean['kind']) == {'cooks_distance', 'pareto_k'}
        assert (clean['score'] < 0.7).all()

    def test_outliers_flagged_under_gaussian(self, tables):
        influence = tables['influence']
        gaussian = influence[influence['model'] == 'gaussian_outlier']

        assert gaussian['score'].max() > 0.7
        top = gaussian.sort_values('score', ascending=False).iloc[0]
        assert int(top['obs']) in (0, 1)

    def test_cooks_distance_flags_outliers(self, tables):
        influence = tables['influence']
        ols = influence[influence['model'] == 'ols_outlier'].set_index('obs')

        assert ols.loc[[0, 1], 'score'].max() == ols['score'].max()

    def test_student_closer_than_gaussian(self, tables):
        clean = _slope(tables, 'ols_clean')

        student = abs(_slope(tables, 'student_outlier') - clean)
        gaussian = abs(_slope(tables, 'gaussian_outlier') - clean)
        assert student < gaussian

        fixed = abs(_slope(tables, 'student_fixed_outlier') - clean)
        assert fixed < gaussian

    def test_dropping_outliers_moves_slope_back(self, tables):
        clean = _slope(tables, 'gaussian_clean')

        dropped = abs(_slope(tables, 'gaussian_outlier_dropped') - clean)
        kept = abs(_slope(tables, 'gaussian_outlier') - clean)
        assert dropped < kept

    def test_ols_slope_shift(self, tables):
        slopes = tables['slopes'].set_index('model')

        assert slopes.loc['ols_clean', 'rel_deviation'] == 0.0
        assert slopes.loc['ols_outlier', 'rel_deviation'] > 0.5

    def test_loo_comparison_prefers_student(self, tables):
        loo = tables['loo']
        outlier = loo[loo['dataset'] == 'outlier'].reset_index(drop=True)

        assert outlier.iloc[0]['elpd_diff'] == 0.0
        assert outlier.iloc[0]['model'] in ('student_outlier', 'student_fixed_outlier')
        assert (outlier['elpd_diff'] <= 0).all()

    def test_written_outputs(self, temp_data_dir):
        """Report step writes tables and figures for a reduced run"""
        config = AnalysisConfig()
        config = AnalysisConfig(
            simulation=config.simulation,
            sampler=SamplerConfig(chains=2, warmup=300, draws=300, seed=8),
            models=[m for m in config.models if m.family in ('ols', 'student')]
        )
        result = RobustRegressionPipeline(config, output_dir=temp_data_dir).run()

        assert result.status == "success"
        summary = json.loads((temp_data_dir / 'summary.json').read_text())
        assert summary['slopes']['ols_clean'] == pytest.approx(
            _slope(result.output('compare'), 'ols_clean')
        )
        assert (temp_data_dir / 'figures' / 'curves_outlier.png').exists()

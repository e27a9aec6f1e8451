"""Unit tests for comparison figures"""

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from robust_lm.algorithms import OLSRegression
from robust_lm.outliers import InfluenceDetector
from robust_lm.reporting import (
    plot_coefficients, plot_influence, plot_regression_curves, plot_cooks_distance, save_all
)
from robust_lm.reporting.style import save_figure, color_for, PALETTE


@pytest.fixture
def coefficient_table():
    rows = []
    for model, slope in (('ols', 0.6), ('gaussian', 0.2), ('student', 0.55)):
        rows.append({'model': model, 'dataset': 'd', 'family': 'x', 'parameter': 'intercept',
                     'estimate': 0.0, 'lower': -0.2, 'upper': 0.2})
        rows.append({'model': model, 'dataset': 'd', 'family': 'x', 'parameter': 'slope',
                     'estimate': slope, 'lower': slope - 0.1, 'upper': slope + 0.1})
    return pd.DataFrame(rows)


@pytest.fixture
def influence_table():
    obs = np.arange(10)
    return pd.DataFrame({
        'model': ['a'] * 10 + ['b'] * 10,
        'dataset': 'd',
        'kind': ['cooks_distance'] * 10 + ['pareto_k'] * 10,
        'obs': np.concatenate([obs, obs]),
        'x': 0.0,
        'y': 0.0,
        'score': np.linspace(0, 1.2, 20),
        'band': ['good'] * 8 + ['ok'] * 4 + ['bad'] * 4 + ['very bad'] * 4
    })


class TestPlots:
    """Each plot returns a matplotlib figure"""

    def teardown_method(self):
        plt.close('all')

    def test_coefficients(self, coefficient_table):
        fig = plot_coefficients(coefficient_table, reference={'slope': 0.6})

        assert isinstance(fig, Figure)
        assert len(fig.axes) == 2

    def test_coefficients_missing_parameter(self, coefficient_table):
        with pytest.raises(ValueError):
            plot_coefficients(coefficient_table, parameters=('nu',))

    def test_coefficients_nan_interval(self, coefficient_table):
        coefficient_table.loc[0, ['lower', 'upper']] = np.nan
        assert isinstance(plot_coefficients(coefficient_table), Figure)

    def test_influence(self, influence_table):
        fig = plot_influence(influence_table)
        visible = [ax for ax in fig.axes if ax.get_visible()]
        assert len(visible) == 2

    def test_influence_empty(self, influence_table):
        with pytest.raises(ValueError):
            plot_influence(influence_table.iloc[0:0])

    def test_regression_curves(self, outlier_dataset):
        model = OLSRegression()
        model.fit(outlier_dataset)
        grid = np.linspace(outlier_dataset.x.min(), outlier_dataset.x.max(), 20)

        fig = plot_regression_curves(outlier_dataset, {'ols': model.predict(grid)}, highlight=[0, 1])
        ax = fig.axes[0]
        assert ax.get_title() == 'outlier'
        labels = [t.get_text() for t in ax.get_legend().get_texts()]
        assert set(labels) == {'data', 'injected', 'ols'}

    def test_cooks_distance(self, outlier_dataset):
        results = OLSRegression().fit(outlier_dataset)
        influence = InfluenceDetector().detect_outliers(results).influence

        fig = plot_cooks_distance(influence)
        assert fig.axes[0].get_ylabel() == "Cook's distance"
        labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
        assert "4/n = 0.040" in labels

    def test_cooks_distance_custom_threshold(self, outlier_dataset):
        results = OLSRegression().fit(outlier_dataset)
        influence = InfluenceDetector().detect_outliers(results).influence

        fig = plot_cooks_distance(influence, threshold=0.5)
        labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
        assert "cutoff = 0.500" in labels
        assert not any(label.startswith("4/n") for label in labels)

    def test_save_all(self, temp_data_dir, influence_table):
        paths = save_all({'influence': plot_influence(influence_table)}, temp_data_dir / 'figs')

        assert paths['influence'] == temp_data_dir / 'figs' / 'influence.png'
        assert paths['influence'].exists()

    def test_save_figure_formats(self, temp_data_dir):
        fig, _ = plt.subplots()
        path = save_figure(fig, temp_data_dir / 'empty', formats=('png', 'pdf'))

        assert path.suffix == '.png'
        assert (temp_data_dir / 'empty.pdf').exists()

    def test_color_cycle(self):
        assert color_for(0) == PALETTE[0]
        assert color_for(len(PALETTE)) == PALETTE[0]

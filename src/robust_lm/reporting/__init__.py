"""Comparison tables and figures"""

from .comparison import ModelComparator
from .plots import (
    plot_coefficients,
    plot_influence,
    plot_regression_curves,
    plot_cooks_distance,
    save_all
)

__all__ = [
    'ModelComparator',
    'plot_coefficients',
    'plot_influence',
    'plot_regression_curves',
    'plot_cooks_distance',
    'save_all'
]

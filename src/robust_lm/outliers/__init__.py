"""Influence and leave-one-out diagnostics"""

from .detection import InfluenceDetector, OutlierResult, influence_band
from .psis import psis, psis_smooth, gpd_fit
from .loo import LOOAnalyzer, LOOResult, compare_loo, relative_efficiency

__all__ = [
    'InfluenceDetector',
    'OutlierResult',
    'influence_band',
    'psis',
    'psis_smooth',
    'gpd_fit',
    'LOOAnalyzer',
    'LOOResult',
    'compare_loo',
    'relative_efficiency'
]

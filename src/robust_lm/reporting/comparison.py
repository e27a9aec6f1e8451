"""Join model fits into comparison tables"""

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from ..models.fit import ModelFit, InfluenceKind
from ..models.observation import Dataset
from ..outliers.detection import BAD_THRESHOLD, influence_band

logger = logging.getLogger(__name__)


class ModelComparator:
    """
    Collect ModelFits and build comparison tables

    Fits are keyed by model name; influence scores are joined to the
    source data by observation index.
    """

    def __init__(self, datasets: Optional[Dict[str, Dataset]] = None):
        """
        Initialize comparator

        Args:
            datasets: Dataset name -> Dataset, used to attach x and y
        """
        self.datasets: Dict[str, Dataset] = {}
        for dataset in (datasets or {}).values():
            self.add_dataset(dataset)
        self.fits: Dict[str, ModelFit] = {}

    def add_dataset(self, dataset: Dataset):
        self.datasets[dataset.name] = dataset

    def add(self, fit: ModelFit):
        """Register a fit; model names must be unique"""
        if fit.model_name in self.fits:
            raise ValueError(f"Duplicate model name '{fit.model_name}'")
        self.fits[fit.model_name] = fit

    def add_all(self, fits: Iterable[ModelFit]):
        for fit in fits:
            self.add(fit)

    def _selected(self, models: Optional[List[str]]) -> List[ModelFit]:
        if models is None:
            return list(self.fits.values())
        missing = [m for m in models if m not in self.fits]
        if missing:
            raise KeyError(f"Unknown models: {missing}")
        return [self.fits[m] for m in models]

    def coefficient_table(self, models: Optional[List[str]] = None) -> pd.DataFrame:
        """Long table: model, dataset, family, parameter, estimate, lower, upper"""
        frames = []
        for fit in self._selected(models):
            frame = fit.coefficients[['parameter', 'estimate', 'lower', 'upper']].copy()
            frame.insert(0, 'family', fit.family.value)
            frame.insert(0, 'dataset', fit.dataset_name)
            frame.insert(0, 'model', fit.model_name)
            frames.append(frame)

        if not frames:
            return pd.DataFrame(columns=['model', 'dataset', 'family', 'parameter',
                                         'estimate', 'lower', 'upper'])
        return pd.concat(frames, ignore_index=True)

    def influence_table(self, models: Optional[List[str]] = None) -> pd.DataFrame:
        """
        One row per observation per fit

        Columns: model, dataset, kind, obs, x, y, score, band
        """
        frames = []
        for fit in self._selected(models):
            frame = pd.DataFrame({
                'model': fit.model_name,
                'dataset': fit.dataset_name,
                'kind': fit.influence_kind.value,
                'obs': fit.observation_index,
                'score': fit.influence,
                'band': influence_band(fit.influence)
            })

            dataset = self.datasets.get(fit.dataset_name)
            if dataset is not None:
                frame = frame.merge(dataset.to_frame(), on='obs', how='left')
            else:
                frame['x'] = np.nan
                frame['y'] = np.nan
            frames.append(frame[['model', 'dataset', 'kind', 'obs', 'x', 'y', 'score', 'band']])

        if not frames:
            return pd.DataFrame(columns=['model', 'dataset', 'kind', 'obs', 'x', 'y', 'score', 'band'])
        return pd.concat(frames, ignore_index=True)

    def loo_table(self) -> pd.DataFrame:
        """
        elpd_loo comparison within each dataset

        Bayesian fits on the same dataset are ranked by elpd_loo; elpd_diff
        and se_diff are relative to the best model on that dataset.
        """
        rows = []
        bayes = [f for f in self.fits.values() if f.influence_kind == InfluenceKind.PARETO_K]
        by_dataset: Dict[str, List[ModelFit]] = {}
        for fit in bayes:
            by_dataset.setdefault(fit.dataset_name, []).append(fit)

        for dataset_name, fits in by_dataset.items():
            fits = sorted(fits, key=lambda f: f.score, reverse=True)
            best = fits[0]
            best_pointwise = best.details['pointwise_elpd']
            n_obs = len(best_pointwise)
            for fit in fits:
                diff = fit.details['pointwise_elpd'] - best_pointwise
                se_diff = 0.0 if fit is best else float(np.sqrt(n_obs * np.var(diff, ddof=1)))
                rows.append({
                    'dataset': dataset_name,
                    'model': fit.model_name,
                    'family': fit.family.value,
                    'elpd_loo': fit.score,
                    'se': fit.score_se,
                    'elpd_diff': fit.score - best.score,
                    'se_diff': se_diff,
                    'p_loo': fit.details.get('p_loo'),
                    'looic': fit.details.get('looic'),
                    'max_pareto_k': float(np.max(fit.influence)),
                    'n_bad_k': int(np.sum(fit.influence >= BAD_THRESHOLD))
                })

        columns = ['dataset', 'model', 'family', 'elpd_loo', 'se', 'elpd_diff', 'se_diff',
                   'p_loo', 'looic', 'max_pareto_k', 'n_bad_k']
        return pd.DataFrame(rows, columns=columns)

    def slope_table(self, reference_model: str) -> pd.DataFrame:
        """
        Each fit's slope against a reference fit's slope

        Args:
            reference_model: Model whose slope is the reference (e.g. the clean-data fit)
        """
        if reference_model not in self.fits:
            raise KeyError(f"Unknown reference model '{reference_model}'")
        reference = self.fits[reference_model].slope

        rows = []
        for fit in self.fits.values():
            deviation = fit.slope - reference
            rows.append({
                'model': fit.model_name,
                'dataset': fit.dataset_name,
                'family': fit.family.value,
                'slope': fit.slope,
                'reference_slope': reference,
                'abs_deviation': abs(deviation),
                'rel_deviation': abs(deviation) / abs(reference) if reference != 0 else np.inf
            })
        return pd.DataFrame(rows).sort_values('abs_deviation', ignore_index=True)

    def influence_summary(self) -> pd.DataFrame:
        """Per model: maximum score and count per severity band"""
        table = self.influence_table()
        if table.empty:
            return pd.DataFrame()
        counts = (
            table.groupby(['model', 'band']).size()
            .unstack(fill_value=0)
            .reindex(columns=['good', 'ok', 'bad', 'very bad'], fill_value=0)
        )
        summary = table.groupby('model').agg(
            dataset=('dataset', 'first'),
            kind=('kind', 'first'),
            max_score=('score', 'max')
        )
        return summary.join(counts).reset_index()

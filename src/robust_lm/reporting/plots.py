"""Comparison figures: coefficients, influence scores, regression curves."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from matplotlib.lines import Line2D

from ..models.observation import Dataset
from ..outliers.detection import BAD_THRESHOLD, GOOD_THRESHOLD, VERY_BAD_THRESHOLD
from .style import (
    BAND_COLORS,
    STYLE,
    clean_axis,
    color_for,
    new_figure,
    save_figure,
    set_axis_labels,
)


def plot_coefficients(
    coefficients: pd.DataFrame,
    parameters: Sequence[str] = ("intercept", "slope"),
    reference: Mapping[str, float] | None = None,
) -> Figure:
    """Forest plot: one panel per parameter, one row per model.

    ``coefficients`` is the long table from ``ModelComparator.coefficient_table``.
    ``reference`` optionally maps parameter name to a value drawn as a
    dashed vertical line.
    """
    parameters = [p for p in parameters if p in set(coefficients["parameter"])]
    if not parameters:
        raise ValueError("No requested parameters present in coefficient table")

    models = list(dict.fromkeys(coefficients["model"]))
    fig, axes = new_figure("wide", 1, len(parameters), sharey=True, squeeze=False)

    for ax, parameter in zip(axes[0], parameters):
        subset = coefficients[coefficients["parameter"] == parameter].set_index("model")
        for pos, model in enumerate(models):
            if model not in subset.index:
                continue
            row = subset.loc[model]
            color = color_for(pos)
            if np.isfinite(row["lower"]) and np.isfinite(row["upper"]):
                ax.hlines(pos, row["lower"], row["upper"], color=color, linewidth=STYLE.LINEWIDTH)
            ax.plot(row["estimate"], pos, "o", color=color, markersize=STYLE.MARKERSIZE + 1)

        if reference and parameter in reference:
            ax.axvline(reference[parameter], color="0.4", linestyle="--", linewidth=1.0)

        ax.set_yticks(range(len(models)))
        ax.set_yticklabels(models)
        ax.invert_yaxis()
        clean_axis(ax)
        set_axis_labels(ax, parameter, "", title=parameter)

    fig.tight_layout()
    return fig


def plot_influence(influence: pd.DataFrame, x_column: str = "obs") -> Figure:
    """Per-observation influence scores, one panel per model.

    ``influence`` is the table from ``ModelComparator.influence_table``.
    Reference lines mark the 0.5 / 0.7 / 1.0 band edges.
    """
    models = list(dict.fromkeys(influence["model"]))
    if not models:
        raise ValueError("Influence table is empty")

    ncols = min(3, len(models))
    nrows = int(np.ceil(len(models) / ncols))
    fig, axes = plt.subplots(
        nrows, ncols,
        figsize=(4.0 * ncols, 3.2 * nrows),
        sharey=True, squeeze=False,
    )

    for ax, model in zip(axes.flat, models):
        subset = influence[influence["model"] == model]
        colors = [BAND_COLORS.get(b, BAND_COLORS["undefined"]) for b in subset["band"]]
        ax.scatter(subset[x_column], subset["score"], c=colors,
                   s=STYLE.MARKERSIZE * 4, alpha=STYLE.ALPHA_POINTS)
        for level in (GOOD_THRESHOLD, BAD_THRESHOLD, VERY_BAD_THRESHOLD):
            ax.axhline(level, color="0.5", linestyle=":", linewidth=0.9)
        kind = subset["kind"].iloc[0].replace("_", " ")
        clean_axis(ax)
        set_axis_labels(ax, x_column, kind, title=model)

    for ax in list(axes.flat)[len(models):]:
        ax.set_visible(False)

    handles = [
        Line2D([0], [0], marker="o", linestyle="", color=color, label=band)
        for band, color in BAND_COLORS.items() if band != "undefined"
    ]
    fig.legend(handles=handles, loc="upper center", ncol=len(handles), frameon=False)
    fig.tight_layout(rect=(0, 0, 1, 0.93))
    return fig


def plot_regression_curves(
    dataset: Dataset,
    curves: Mapping[str, pd.DataFrame],
    highlight: Sequence[int] = (),
    title: str | None = None,
) -> Figure:
    """Raw data with each model's fitted line and 95% band.

    Args:
        dataset: Points to draw
        curves: Model name -> DataFrame with x, estimate, lower, upper
        highlight: Observation indices drawn in a contrasting marker
        title: Axis title (default: dataset name)
    """
    fig, ax = new_figure("single")
    frame = dataset.to_frame()
    mask = frame["obs"].isin(list(highlight))

    ax.scatter(frame.loc[~mask, "x"], frame.loc[~mask, "y"], s=STYLE.MARKERSIZE * 3,
               color="0.35", alpha=STYLE.ALPHA_POINTS, label="data")
    if mask.any():
        ax.scatter(frame.loc[mask, "x"], frame.loc[mask, "y"], s=STYLE.MARKERSIZE * 6,
                   marker="D", color="#D55E00", label="injected")

    for pos, (name, curve) in enumerate(curves.items()):
        color = color_for(pos)
        ax.fill_between(curve["x"], curve["lower"], curve["upper"],
                        color=color, alpha=STYLE.ALPHA_BAND, linewidth=0)
        ax.plot(curve["x"], curve["estimate"], color=color,
                linewidth=STYLE.LINEWIDTH, label=name)

    clean_axis(ax)
    set_axis_labels(ax, "x", "y", title=title or dataset.name)
    ax.legend(fontsize=STYLE.BASE_FONTSIZE - 2, frameon=False)
    fig.tight_layout()
    return fig


def plot_cooks_distance(influence: pd.DataFrame, threshold: float | None = None) -> Figure:
    """Stem plot of Cook's distance for one OLS fit.

    Args:
        influence: Table with ``obs`` and ``cooks_distance`` columns
            (``OutlierResult.influence``)
        threshold: Flagging cutoff to draw (default: 4/n)
    """
    fig, ax = new_figure("single")
    n = len(influence)
    if threshold is None:
        cutoff, cutoff_label = 4.0 / n, "4/n"
    else:
        cutoff, cutoff_label = threshold, "cutoff"

    markerline, stemlines, baseline = ax.stem(influence["obs"], influence["cooks_distance"])
    plt.setp(stemlines, color="0.45", linewidth=1.0)
    plt.setp(markerline, color="#0072B2", markersize=STYLE.MARKERSIZE - 1)
    plt.setp(baseline, color="0.7", linewidth=0.8)

    ax.axhline(cutoff, color="#E69F00", linestyle="--", linewidth=1.0, label=f"{cutoff_label} = {cutoff:.3f}")
    ax.axhline(BAD_THRESHOLD, color="#D55E00", linestyle=":", linewidth=1.0,
               label=f"{BAD_THRESHOLD}")

    clean_axis(ax)
    set_axis_labels(ax, "obs", "Cook's distance")
    ax.legend(fontsize=STYLE.BASE_FONTSIZE - 2, frameon=False)
    fig.tight_layout()
    return fig


def save_all(figures: Dict[str, Figure], output_dir: str | Path) -> Dict[str, Path]:
    """Save named figures under ``output_dir`` and close them."""
    output_dir = Path(output_dir)
    return {name: save_figure(fig, output_dir / name) for name, fig in figures.items()}

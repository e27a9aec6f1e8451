"""Shared plotting style and save helpers"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure

OUTPUT_FORMATS: tuple[str, ...] = ("png",)
FIGURE_DPI = 150


@dataclass(frozen=True)
class StyleConfig:
    BASE_FONTSIZE: float = 11.0
    TITLE_FONTSIZE: float = 13.0
    LABEL_FONTSIZE: float = 11.0
    LINEWIDTH: float = 1.8
    MARKERSIZE: float = 5.0
    ALPHA_POINTS: float = 0.7
    ALPHA_BAND: float = 0.18
    GRID_ALPHA: float = 0.20
    FIGSIZE_SINGLE: tuple[float, float] = (7.0, 4.2)
    FIGSIZE_WIDE: tuple[float, float] = (10.0, 4.2)


STYLE = StyleConfig()

# Colorblind-safe cycle (Okabe-Ito)
PALETTE: tuple[str, ...] = (
    "#0072B2", "#D55E00", "#009E73", "#CC79A7",
    "#E69F00", "#56B4E9", "#F0E442", "#000000",
)

BAND_COLORS = {
    "good": "#009E73",
    "ok": "#E69F00",
    "bad": "#D55E00",
    "very bad": "#8B0000",
    "undefined": "#7F7F7F",
}


def color_for(index: int) -> str:
    """Stable color for the i-th series."""
    return PALETTE[index % len(PALETTE)]


def new_figure(kind: str = "single", nrows: int = 1, ncols: int = 1, **kwargs):
    """Create a figure with the standard size for its kind."""
    size = STYLE.FIGSIZE_WIDE if kind == "wide" else STYLE.FIGSIZE_SINGLE
    return plt.subplots(nrows, ncols, figsize=size, **kwargs)


def clean_axis(ax: Axes, grid: bool = True) -> None:
    """Remove top/right spines and apply a light grid."""
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    if grid:
        ax.grid(True, alpha=STYLE.GRID_ALPHA)
    ax.tick_params(labelsize=STYLE.BASE_FONTSIZE - 1)


def set_axis_labels(ax: Axes, xlabel: str, ylabel: str, title: str | None = None) -> None:
    ax.set_xlabel(xlabel, fontsize=STYLE.LABEL_FONTSIZE)
    ax.set_ylabel(ylabel, fontsize=STYLE.LABEL_FONTSIZE)
    if title:
        ax.set_title(title, fontsize=STYLE.TITLE_FONTSIZE)


def save_figure(
    fig: Figure,
    savepath_base: str | Path,
    formats: Sequence[str] = OUTPUT_FORMATS,
    dpi: int = FIGURE_DPI,
    *,
    close: bool = True,
) -> Path:
    """Save a figure to each format using one extensionless base path."""
    base = Path(savepath_base)
    base.parent.mkdir(parents=True, exist_ok=True)
    for ext in formats:
        fig.savefig(
            str(base.with_suffix(f".{ext}")),
            dpi=dpi if ext == "png" else None,
            bbox_inches="tight",
            pad_inches=0.12,
        )
    if close:
        plt.close(fig)
    return base.with_suffix(f".{formats[0]}")

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

# Headless plotting (CI-friendly)
import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt

from .thresholds import logistic_pdf


def set_grayscale_style() -> None:
    """Apply a simple grayscale, title-free plotting style."""

    matplotlib.rcParams["image.cmap"] = "Greys"
    matplotlib.rcParams["text.color"] = "0.0"
    matplotlib.rcParams["axes.labelcolor"] = "0.0"
    matplotlib.rcParams["xtick.color"] = "0.0"
    matplotlib.rcParams["ytick.color"] = "0.0"
    matplotlib.rcParams["grid.color"] = "0.5"
    matplotlib.rcParams["axes.edgecolor"] = "0.2"


def save_figure(fig: plt.Figure, base_path: str, *, dpi: int = 600) -> None:
    """Save figure as high-res PNG + vector PDF.

    Parameters
    ----------
    base_path:
        File path without extension.
    dpi:
        PNG resolution.
    """

    Path(base_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(base_path + ".png", dpi=dpi, bbox_inches="tight")
    fig.savefig(base_path + ".pdf", bbox_inches="tight")
    plt.close(fig)


def density_partition(
    thresholds: Sequence[float],
    *,
    labels: Sequence[str],
    base_path: str,
    xlim: Tuple[float, float] = (-8.0, 8.0),
    figsize: Tuple[float, float] = (6.0, 3.6),
    dpi: int = 600,
) -> None:
    """Standard logistic density with the cut-points marked."""

    set_grayscale_style()
    th = np.asarray(thresholds, dtype=float)
    grid = np.linspace(xlim[0], xlim[1], 600)
    dens = logistic_pdf(grid)

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(grid, dens, color="0.0", linewidth=1.2)

    # Alternate shading between adjacent cut-points.
    edges = np.concatenate([[xlim[0]], np.clip(th, xlim[0], xlim[1]), [xlim[1]]])
    for j in range(len(edges) - 1):
        mask = (grid >= edges[j]) & (grid <= edges[j + 1])
        ax.fill_between(grid[mask], 0.0, dens[mask], color="0.55" if j % 2 else "0.8", linewidth=0)
        mid = 0.5 * (edges[j] + edges[j + 1])
        if j < len(labels):
            ax.text(mid, float(dens.max()) * 1.04, str(labels[j]), ha="center", va="bottom", fontsize=9)

    for t in th:
        ax.axvline(t, color="0.2", linestyle="--", linewidth=0.8)

    ax.set_xlim(*xlim)
    ax.set_ylim(0.0, float(dens.max()) * 1.18)
    ax.set_xlabel("Latent variable (standard logistic)")
    ax.set_ylabel("Density")
    save_figure(fig, base_path, dpi=dpi)


def cumulative_overlay(
    overlay: pd.DataFrame,
    *,
    base_path: str,
    figsize: Tuple[float, float] = (5.5, 4.0),
    dpi: int = 600,
) -> None:
    """Empirical P(Y <= j) with Wilson CIs vs the fitted cumulative probabilities.

    `overlay` is the output of `pipeline.cumulative_overlay_table`.
    """

    set_grayscale_style()
    fig, ax = plt.subplots(figsize=figsize)

    markers = {0: "o", 1: "s"}
    for i, (level, sub) in enumerate(overlay.groupby("exposed", sort=True)):
        sub = sub.sort_values("threshold")
        x = sub["threshold"].to_numpy(dtype=float) + (0.08 if i else -0.08)
        emp = sub["empirical"].to_numpy(dtype=float)
        yerr = np.vstack([emp - sub["lo"].to_numpy(dtype=float), sub["hi"].to_numpy(dtype=float) - emp])
        yerr = np.clip(yerr, 0.0, None)
        ax.errorbar(
            x,
            emp,
            yerr=yerr,
            fmt=markers.get(int(level), "^"),
            color="0.0",
            markerfacecolor="white" if i else "0.0",
            capsize=3,
            elinewidth=1.0,
            label=f"empirical, exposed={int(level)}",
        )
        ax.plot(
            sub["threshold"].to_numpy(dtype=float),
            sub["model"].to_numpy(dtype=float),
            color="0.35",
            linestyle="-" if i else "--",
            linewidth=1.0,
            label=f"model, exposed={int(level)}",
        )

    ax.set_xlabel("Threshold j")
    ax.set_ylabel("P(Y <= j)")
    ax.set_xticks(sorted(overlay["threshold"].unique()))
    ax.set_ylim(0.0, 1.0)
    ax.grid(axis="y", alpha=0.3)
    ax.legend(frameon=False, fontsize=8)
    save_figure(fig, base_path, dpi=dpi)


def threshold_slopes(
    slopes: pd.DataFrame,
    *,
    term: str,
    pooled: Optional[float],
    base_path: str,
    figsize: Tuple[float, float] = (5.0, 3.8),
    dpi: int = 600,
) -> None:
    """Per-threshold binary-logit slope (+/- 1.96 SE) for one covariate."""

    set_grayscale_style()
    sub = slopes[slopes["term"] == term].sort_values("threshold")
    x = sub["threshold"].to_numpy(dtype=float)
    y = sub["coef"].to_numpy(dtype=float)
    half = 1.96 * sub["se"].to_numpy(dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    ax.errorbar(x, y, yerr=half, fmt="o", color="0.25", ecolor="0.0", elinewidth=1.0, capsize=3, capthick=1.0)
    if pooled is not None and np.isfinite(pooled):
        ax.axhline(float(pooled), color="0.4", linestyle="--", linewidth=0.9)

    ax.set_xlabel("Threshold j (binary split Y <= j)")
    ax.set_ylabel(f"Slope for {term} (log cumulative odds ratio)")
    ax.set_xticks(x)
    ax.grid(axis="y", alpha=0.3)
    save_figure(fig, base_path, dpi=dpi)


def bar_with_error(
    labels: Sequence[str],
    values: Sequence[float],
    yerr: Optional[np.ndarray],
    *,
    xlabel: str,
    ylabel: str,
    base_path: str,
    rotation: float = 0.0,
    ylim: Optional[Tuple[float, float]] = None,
    figsize: Tuple[float, float] = (5.5, 4.0),
    dpi: int = 600,
) -> None:
    """Single bar chart (grayscale), optional symmetric/asymmetric error bars."""

    set_grayscale_style()

    vals = np.asarray(values, dtype=float)
    idx = np.arange(len(vals))

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(idx, vals, color="0.25", edgecolor="0.25")

    if yerr is not None:
        ax.errorbar(
            idx,
            vals,
            yerr=yerr,
            fmt="none",
            ecolor="0.0",
            elinewidth=1.0,
            capsize=3,
            capthick=1.0,
        )

    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_xticks(idx)
    ax.set_xticklabels(list(labels), rotation=rotation, ha="right" if rotation else "center")
    if ylim is not None:
        ax.set_ylim(*ylim)

    ax.grid(axis="y", alpha=0.3)

    save_figure(fig, base_path, dpi=dpi)

"""
Paper figures for GAM marginal effects.

Each panel: observed samples as points, marginal mean as a line, confidence
band as a shaded ribbon. Two panels share one y axis so the effect sizes of
two covariates can be compared directly.
"""

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from gam_errors import InvalidArgument
from gam_transforms import parse_term_name


FIG_DPI = 300
POINT_ALPHA = 0.35
BAND_ALPHA = 0.25
LINE_COLOR = "#1b4f72"
POINT_COLOR = "0.45"

COVARIATE_LABELS = {
    "Turb": "Turbidity (NTU)",
    "Chl": "Chlorophyll a (µg/L)",
    "Temp": "Water temperature (°C)",
    "Sal": "Salinity (ppt)",
    "Discharge": "River discharge (m³/s)",
    "Fish": "Fish abundance",
    "Density": "Zooplankton density (ind/m³)",
    "Diversity": "Shannon diversity (H')",
    "TaxonDensity": "Density (ind/m³)",
}


def pretty_covariate_name(col: str) -> str:
    """
    Paper-friendly axis label.
      'Turb'      -> 'Turbidity (NTU)'
      'log(Turb)' -> 'Turbidity (NTU)'  (axes are always on the natural scale)
      'my_var'    -> 'my var'
    """
    col, _ = parse_term_name(col)
    return COVARIATE_LABELS.get(col, col.replace("_", " "))


def plot_marginal_panel(
    ax,
    observations: pd.DataFrame,
    grid: pd.DataFrame,
    covariate: str,
    response: str,
    log_x: bool = False,
    title: str | None = None,
    color: str = LINE_COLOR,
):
    """Scatter of observed samples + marginal mean line + confidence band."""
    for c in (covariate, "mean", "lower_bound", "upper_bound"):
        if c not in grid.columns:
            raise InvalidArgument(f"Grid is missing column '{c}'")
    for c in (covariate, response):
        if c not in observations.columns:
            raise InvalidArgument(f"Observations are missing column '{c}'")

    obs = observations[[covariate, response]].dropna()
    ax.scatter(obs[covariate], obs[response], s=12, alpha=POINT_ALPHA, color=POINT_COLOR, linewidths=0)
    ax.fill_between(grid[covariate], grid["lower_bound"], grid["upper_bound"], alpha=BAND_ALPHA, color=color, linewidth=0)
    ax.plot(grid[covariate], grid["mean"], color=color, linewidth=1.8)

    if log_x:
        ax.set_xscale("log")
    ax.set_xlabel(pretty_covariate_name(covariate))
    if title:
        ax.set_title(title, loc="left", fontsize=10)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    return ax


def plot_two_panel_comparison(
    observations: pd.DataFrame,
    left: tuple,
    right: tuple,
    response: str,
    ylabel: str | None = None,
    log_y: bool = False,
    outfile: str | None = None,
    figsize=(8, 3.6),
):
    """
    left / right: (covariate, grid) or (covariate, grid, log_x).
    Returns the figure; saves it when outfile is given.
    """
    fig, axes = plt.subplots(nrows=1, ncols=2, sharey=True, figsize=figsize, constrained_layout=True)

    for ax, spec, tag in zip(axes, (left, right), ("(a)", "(b)")):
        covariate, grid = spec[0], spec[1]
        log_x = bool(spec[2]) if len(spec) > 2 else False
        plot_marginal_panel(ax, observations, grid, covariate, response, log_x=log_x, title=tag)

    axes[0].set_ylabel(ylabel or pretty_covariate_name(response))
    if log_y:
        axes[0].set_yscale("symlog", linthresh=1.0)

    if outfile:
        fig.savefig(outfile, dpi=FIG_DPI)
    return fig


def plot_faceted_grids(
    stacked: pd.DataFrame,
    observations: pd.DataFrame,
    response: str,
    ncols: int = 2,
    outfile: str | None = None,
):
    """
    One panel per covariate from stack_marginal_grids() output, shared y axis.
    """
    covariates = list(dict.fromkeys(stacked["covariate"].astype(str)))
    if not covariates:
        raise InvalidArgument("Nothing to plot: stacked grid table is empty")
    ncols = max(1, min(ncols, len(covariates)))
    nrows = int(np.ceil(len(covariates) / ncols))

    fig, axes = plt.subplots(
        nrows=nrows, ncols=ncols, sharey=True,
        figsize=(4 * ncols, 3.4 * nrows), constrained_layout=True, squeeze=False,
    )
    flat = axes.ravel()
    for ax, cov in zip(flat, covariates):
        part = stacked[stacked["covariate"].astype(str) == cov].rename(columns={"value": cov})
        plot_marginal_panel(ax, observations, part, cov, response)
    for ax in flat[len(covariates):]:
        ax.set_visible(False)
    for row in axes:
        row[0].set_ylabel(pretty_covariate_name(response))

    if outfile:
        fig.savefig(outfile, dpi=FIG_DPI)
    return fig

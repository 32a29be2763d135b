"""
Marginal prediction grids for plotting GAM effects one covariate at a time.

The grid is evenly spaced on the NATURAL covariate scale, also when the model
term is log(covariate): the figure's x axis is untransformed, and log spacing
would crowd the points at the low end of that axis.
"""

import numbers

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from gam_errors import InvalidArgument, ModelQueryError
from gam_transforms import check_domain, forward, inverse, parse_term_name, term_name


GRID_COLUMNS = ["mean", "lower_bound", "upper_bound"]
STACKED_COLUMNS = ["covariate", "value"] + GRID_COLUMNS


def _check_point_count(point_count) -> int:
    if isinstance(point_count, bool) or not isinstance(point_count, numbers.Integral):
        raise InvalidArgument(f"point_count must be an integer >= 2, got {point_count!r}")
    if point_count < 2:
        raise InvalidArgument(f"point_count must be an integer >= 2, got {point_count}")
    return int(point_count)


def covariate_range(data: pd.DataFrame, covariate_name: str) -> tuple[float, float]:
    """Observed (min, max) of a numeric column, ignoring NaN."""
    if covariate_name not in data.columns:
        raise InvalidArgument(f"Column '{covariate_name}' not found in data")
    col = data[covariate_name]
    if not is_numeric_dtype(col) or is_bool_dtype(col):
        raise InvalidArgument(f"Column '{covariate_name}' is not numeric (dtype={col.dtype})")
    x = col.to_numpy(dtype=float)
    x = x[np.isfinite(x)]
    if x.size == 0:
        raise InvalidArgument(f"Column '{covariate_name}' has no finite values")
    return float(x.min()), float(x.max())


def build_marginal_grid(
    data: pd.DataFrame,
    covariate_name: str,
    model,
    point_count: int = 25,
    covariate_log_transformed: bool = False,
    response_log_transformed: bool = True,
    confidence_level: float = 0.95,
) -> pd.DataFrame:
    """
    Marginal means of `model` along `covariate_name`, ready for plotting.

    Parameters
    ----------
    data : observation table the model was fit on (only used for the range)
    covariate_name : numeric column; the model term is `covariate_name`, or
        `log(covariate_name)` when covariate_log_transformed is True
    model : fitted model exposing marginal_means(term, points, width, scale)
    point_count : number of grid points (>= 2), endpoints included
    covariate_log_transformed : model term is the natural log of the covariate
    response_log_transformed : model was fit on a transformed response; the
        returned mean/bounds are back-transformed to the natural scale
    confidence_level : two-sided level of the bounds

    Returns
    -------
    DataFrame with columns [covariate_name, mean, lower_bound, upper_bound],
    one row per grid point, ascending covariate. `attrs` records the
    confidence level, queried term and response scale.
    """
    return _marginal_grid(
        data, covariate_name, model,
        point_count=point_count,
        covariate_transform="log" if covariate_log_transformed else "none",
        response_log_transformed=response_log_transformed,
        confidence_level=confidence_level,
    )


def _marginal_grid(
    data: pd.DataFrame,
    covariate_name: str,
    model,
    point_count: int,
    covariate_transform: str,
    response_log_transformed: bool,
    confidence_level: float,
) -> pd.DataFrame:
    """build_marginal_grid for any named covariate transform (none/log/log1p)."""
    point_count = _check_point_count(point_count)
    if not 0 < confidence_level < 1:
        raise InvalidArgument(f"confidence_level must be in (0, 1), got {confidence_level!r}")

    min_val, max_val = covariate_range(data, covariate_name)
    grid = np.linspace(min_val, max_val, point_count)

    check_domain([min_val], covariate_transform, covariate_name)
    term = term_name(covariate_name, covariate_transform)
    eval_points = forward(grid, covariate_transform)

    scale = "response" if response_log_transformed else "link"
    try:
        est = model.marginal_means(term, eval_points, width=confidence_level, scale=scale)
    except (ModelQueryError, InvalidArgument):
        raise
    except (KeyError, ValueError, IndexError) as e:
        raise ModelQueryError(f"Model could not evaluate term '{term}': {e}") from e

    if len(est) != point_count:
        raise ModelQueryError(
            f"Model returned {len(est)} marginal means for term '{term}', expected {point_count}"
        )

    values = est[GRID_COLUMNS].to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise ModelQueryError(f"Model returned non-finite marginal means for term '{term}'")

    # collaborator answered on the transformed scale: back-transform here
    if response_log_transformed and est.attrs.get("scale", "link") != "response":
        how = getattr(model, "response_transform", "none")
        values = inverse(values, how if how != "none" else "log")

    out = pd.DataFrame(values, columns=GRID_COLUMNS)
    out.insert(0, covariate_name, inverse(eval_points, covariate_transform))
    out.attrs["confidence_level"] = confidence_level
    out.attrs["term"] = term
    out.attrs["response_scale"] = "response" if response_log_transformed else est.attrs.get("scale", "link")
    return out


def model_term_transform(model, covariate_name: str) -> str:
    """Transform ('none', 'log', 'log1p') of the model term built on `covariate_name`."""
    for name in model.term_names:
        column, how = parse_term_name(name)
        if column == covariate_name:
            return how
    raise ModelQueryError(
        f"Model has no term built on column '{covariate_name}'. "
        f"Available terms: {', '.join(model.term_names)}"
    )


def build_marginal_grids(
    data: pd.DataFrame,
    model,
    covariates: list[str],
    point_count: int = 25,
    response_log_transformed: bool = True,
    confidence_level: float = 0.95,
) -> dict:
    """
    One grid per covariate -> {covariate: grid}.
    Each covariate's transform is read from the model's own term list.
    """
    grids = {}
    for cov in covariates:
        grids[cov] = _marginal_grid(
            data, cov, model,
            point_count=point_count,
            covariate_transform=model_term_transform(model, cov),
            response_log_transformed=response_log_transformed,
            confidence_level=confidence_level,
        )
    return grids


def stack_marginal_grids(grids: dict) -> pd.DataFrame:
    """
    {covariate: grid} -> long table (covariate, value, mean, lower_bound, upper_bound)
    for faceted plotting. Keeps the mapping order and each grid's row order.
    """
    frames = []
    for cov, grid in grids.items():
        part = grid.rename(columns={cov: "value"})[["value"] + GRID_COLUMNS].copy()
        part.insert(0, "covariate", cov)
        frames.append(part)
    if not frames:
        return pd.DataFrame(columns=STACKED_COLUMNS)
    out = pd.concat(frames, ignore_index=True)
    out["covariate"] = pd.Categorical(out["covariate"], categories=list(grids), ordered=True)
    return out

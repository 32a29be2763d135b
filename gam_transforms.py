"""
Scale transforms used for GAM covariates and responses.

A model term is always addressed by an explicit name built here:
    "Turb"         -> untransformed covariate
    "log(Turb)"    -> natural log of the covariate
    "log1p(Turb)"  -> log(1 + covariate)
The same function builds the name at fit time and at query time, so a
mismatch between how a model was fit and how it is queried shows up as an
unknown term instead of a silently different curve.
"""

import re

import numpy as np
import pandas as pd

from gam_errors import InvalidArgument


TRANSFORMS = {
    "none": (lambda x: x, lambda x: x),
    "log": (np.log, np.exp),
    "log1p": (np.log1p, np.expm1),
}

_TERM_RE = re.compile(r"^(log1p|log)\((.+)\)$")


def check_transform(how: str) -> str:
    if how not in TRANSFORMS:
        raise InvalidArgument(
            f"Unknown transform '{how}'. Expected one of: {', '.join(TRANSFORMS)}"
        )
    return how


def forward(x, how: str) -> np.ndarray:
    """Apply a named transform to x (returns a float array)."""
    fn, _ = TRANSFORMS[check_transform(how)]
    return fn(np.asarray(x, dtype=float))


def inverse(x, how: str) -> np.ndarray:
    """Back-transform x from the model scale to the natural scale."""
    _, fn = TRANSFORMS[check_transform(how)]
    return fn(np.asarray(x, dtype=float))


def check_domain(x, how: str, label: str) -> None:
    """
    Raise InvalidArgument if x cannot be transformed with `how`.
    log needs x > 0, log1p needs x > -1.
    """
    check_transform(how)
    x = np.asarray(x, dtype=float)
    x = x[np.isfinite(x)]
    if x.size == 0:
        return
    if how == "log" and np.min(x) <= 0:
        raise InvalidArgument(
            f"'{label}' has non-positive values (min={np.min(x):.4g}); log transform is undefined."
        )
    if how == "log1p" and np.min(x) <= -1:
        raise InvalidArgument(
            f"'{label}' has values <= -1 (min={np.min(x):.4g}); log1p transform is undefined."
        )


def term_name(column: str, how: str = "none") -> str:
    check_transform(how)
    if how == "none":
        return column
    return f"{how}({column})"


def parse_term_name(name: str) -> tuple[str, str]:
    """Inverse of term_name: 'log(Turb)' -> ('Turb', 'log')."""
    m = _TERM_RE.match(name)
    if m is None:
        return name, "none"
    return m.group(2), m.group(1)


def suggest_transform(x) -> str:
    """
    Transform to TRY for a covariate or response, based on its skew.
    Returns one of 'none', 'log', 'log1p'.
    Zooplankton densities are usually right-skewed with zeros -> log1p;
    turbidity/chlorophyll are right-skewed and strictly positive -> log.
    """
    x = np.asarray(x, dtype=float)
    x = x[np.isfinite(x)]
    if len(x) < 20:
        return "none"

    skew = float(pd.Series(x).skew())
    minv = float(np.min(x))

    if skew < 1:
        return "none"
    if minv > 0:
        return "log"
    if minv >= 0:
        return "log1p"
    # right skew with negatives: nothing in the log family applies
    return "none"

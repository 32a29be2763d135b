"""
GAM fitting and marginal-mean queries (pyGAM).

Model layout
    response_transform(y) ~ s(term_1) + s(term_2) + ... + f(random_effect)

- each covariate term is a TermSpec: a column, an optional log/log1p transform,
  and a smooth (pyGAM s) or linear (pyGAM l) basis
- the year random effect is a pyGAM factor term f(); its default l2 penalty
  shrinks the level effects towards zero, which is the ridge form of a
  random intercept
- smoothing penalties are picked with LinearGAM.gridsearch over LAM_GRID

Marginal means follow the usual reference-grid recipe: the focal term is set
to each requested point, other numeric terms are held at their reference
value, and the model-matrix rows are averaged over the random-effect levels
(equal weights). Standard errors come from the coefficient covariance.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype
from scipy import stats

from pygam import LinearGAM, s, l, f

from gam_errors import InvalidArgument, ModelQueryError
from gam_transforms import check_domain, check_transform, forward, inverse, term_name
from observations import complete_cases


N_SPLINES = 10
LAM_GRID = np.logspace(-3, 3, 15)
TERM_KINDS = ("smooth", "linear")


@dataclass(frozen=True)
class TermSpec:
    column: str
    transform: str = "none"
    kind: str = "smooth"
    n_splines: int = N_SPLINES

    @property
    def name(self) -> str:
        return term_name(self.column, self.transform)


def _as_term(t) -> TermSpec:
    if isinstance(t, TermSpec):
        return t
    if isinstance(t, str):
        return TermSpec(t)
    raise InvalidArgument(f"Expected a column name or TermSpec, got {t!r}")


class AdditiveModel:
    """
    A fitted LinearGAM plus everything needed to query it by term name.
    Read-only after fit_gam() returns it.
    """

    def __init__(self, gam, response, response_transform, terms, random_effect, levels, data):
        self.gam = gam
        self.response = response
        self.response_transform = response_transform
        self.terms = list(terms)
        self.random_effect = random_effect
        self.levels = list(levels)
        self.data = data
        self.reference = {
            t.name: float(forward(data[t.column].astype(float).mean(), t.transform))
            for t in self.terms
        }

    def __repr__(self):
        rhs = " + ".join(self.term_names + ([f"re({self.random_effect})"] if self.random_effect else []))
        lhs = term_name(self.response, self.response_transform)
        return f"<AdditiveModel {lhs} ~ {rhs} (n={self.n})>"

    @property
    def n(self) -> int:
        return len(self.data)

    @property
    def term_names(self) -> list[str]:
        return [t.name for t in self.terms]

    def term(self, name: str) -> TermSpec:
        for t in self.terms:
            if t.name == name:
                return t
        raise ModelQueryError(
            f"Model for '{self.response}' has no term '{name}'. "
            f"Available terms: {', '.join(self.term_names)}"
        )

    def design_matrix(self, df: pd.DataFrame) -> np.ndarray:
        """Columns in model order: transformed terms, then random-effect codes."""
        cols = [forward(df[t.column], t.transform) for t in self.terms]
        if self.random_effect:
            codes = pd.Categorical(df[self.random_effect], categories=self.levels).codes
            cols.append(codes.astype(float))
        return np.column_stack(cols)

    def _reference_rows(self, focal_index: int, points: np.ndarray) -> tuple[np.ndarray, int]:
        """
        One row per (point, random-effect level), point-major.
        Non-focal numeric terms sit at their reference value.
        """
        n_levels = max(len(self.levels), 1) if self.random_effect else 1
        base = np.array([self.reference[t.name] for t in self.terms], dtype=float)
        if self.random_effect:
            base = np.append(base, 0.0)

        X = np.tile(base, (len(points) * n_levels, 1))
        X[:, focal_index] = np.repeat(points, n_levels)
        if self.random_effect:
            X[:, -1] = np.tile(np.arange(n_levels, dtype=float), len(points))
        return X, n_levels

    def marginal_means(self, term: str, points, width: float = 0.95, scale: str = "link") -> pd.DataFrame:
        """
        Estimated marginal means of the response along one term.

        term   : term name exactly as stored ("Turb", "log(Turb)", ...)
        points : evaluation points on the term's own (possibly log) scale
        width  : two-sided confidence level
        scale  : "link" -> transformed-response scale the model was fit on
                 "response" -> back-transformed with the inverse response transform

        Returns columns point, mean, lower_bound, upper_bound; attrs carry
        the scale and confidence level.
        """
        if scale not in ("link", "response"):
            raise InvalidArgument(f"scale must be 'link' or 'response', got {scale!r}")
        if not 0 < width < 1:
            raise InvalidArgument(f"width must be in (0, 1), got {width!r}")

        spec = self.term(term)
        focal_index = self.terms.index(spec)

        points = np.asarray(points, dtype=float).ravel()
        if points.size == 0:
            raise ModelQueryError(f"No evaluation points given for term '{term}'")
        if not np.all(np.isfinite(points)):
            raise ModelQueryError(f"Non-finite evaluation points for term '{term}'")

        X, n_levels = self._reference_rows(focal_index, points)
        try:
            modelmat = self.gam._modelmat(X)
        except ValueError as e:
            raise ModelQueryError(f"Could not build model matrix for term '{term}': {e}") from e

        # averaged linear function per point (averages over random-effect levels)
        L = modelmat.toarray().reshape(len(points), n_levels, -1).mean(axis=1)
        cov = self.gam.statistics_["cov"]
        lp = L @ self.gam.coef_
        var = np.clip((L @ cov * L).sum(axis=1), 0, None)
        se = np.sqrt(var)

        df_resid = max(self.gam.statistics_["n_samples"] - self.gam.statistics_["edof"], 1.0)
        tcrit = stats.t.ppf(1 - (1 - width) / 2, df=df_resid)
        mean, lower, upper = lp, lp - tcrit * se, lp + tcrit * se

        if scale == "response":
            mean = inverse(mean, self.response_transform)
            lower = inverse(lower, self.response_transform)
            upper = inverse(upper, self.response_transform)

        if not (np.all(np.isfinite(mean)) and np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
            raise ModelQueryError(f"Model returned non-finite marginal means for term '{term}'")

        out = pd.DataFrame({
            "point": points,
            "mean": mean,
            "lower_bound": lower,
            "upper_bound": upper,
        })
        out.attrs["scale"] = scale
        out.attrs["confidence_level"] = width
        out.attrs["term"] = term
        return out

    def predict(self, df: pd.DataFrame, scale: str = "response") -> np.ndarray:
        """Conditional predictions for observed rows (uses each row's own year)."""
        yhat = self.gam.predict(self.design_matrix(df))
        return inverse(yhat, self.response_transform) if scale == "response" else yhat

    def term_statistics(self) -> pd.DataFrame:
        """
        One row per model term with pyGAM's approximate p-value.
        p-values are approximate when lambda is estimated (gridsearch): treat
        them as a screening aid next to the effect shape.
        """
        st = self.gam.statistics_
        pvals = list(st.get("p_values", []))
        names = self.term_names + ([f"re({self.random_effect})"] if self.random_effect else [])

        rows = []
        for i, name in enumerate(names):
            rows.append({
                "response": term_name(self.response, self.response_transform),
                "term": name,
                "p_value_approx": float(pvals[i]) if i < len(pvals) else np.nan,
                "edof": float(st.get("edof", np.nan)),
                "pseudo_r2": float(st.get("pseudo_r2", {}).get("explained_deviance", np.nan)),
                "aic": float(st.get("AIC", np.nan)),
                "n": self.n,
            })
        return pd.DataFrame(rows)


def build_pygam_terms(terms: list[TermSpec], include_random_effect: bool):
    """
    pyGAM term list matching AdditiveModel.design_matrix column order:
      [term_0, term_1, ..., random_effect_codes]
    """
    gam_terms = None
    for j, t in enumerate(terms):
        term = s(j, n_splines=t.n_splines) if t.kind == "smooth" else l(j)
        gam_terms = term if gam_terms is None else gam_terms + term
    if include_random_effect:
        gam_terms = gam_terms + f(len(terms))
    return gam_terms


def fit_gam(
    data: pd.DataFrame,
    response: str,
    terms,
    random_effect: str | None = "Year",
    response_transform: str = "none",
    lam_grid=LAM_GRID,
) -> AdditiveModel:
    """
    Fit response_transform(response) ~ sum of smooth terms + f(random_effect).

    Rows with any missing modeled column are dropped first.
    Raises InvalidArgument on missing/non-numeric columns or transform-domain
    violations (e.g. log of a zero turbidity).
    """
    terms = [_as_term(t) for t in terms]
    if not terms:
        raise InvalidArgument("At least one covariate term is required")
    check_transform(response_transform)
    for t in terms:
        check_transform(t.transform)
        if t.kind not in TERM_KINDS:
            raise InvalidArgument(f"Term kind must be one of {TERM_KINDS}, got {t.kind!r}")
    names = [t.name for t in terms]
    if len(set(names)) != len(names):
        raise InvalidArgument(f"Duplicate model terms: {names}")

    cols = [response] + [t.column for t in terms]
    if random_effect:
        cols.append(random_effect)
    cols = list(dict.fromkeys(cols))
    missing = [c for c in cols if c not in data.columns]
    if missing:
        raise InvalidArgument(f"Data is missing model columns: {missing}")
    for c in [response] + [t.column for t in terms]:
        if not is_numeric_dtype(data[c]):
            raise InvalidArgument(f"Column '{c}' is not numeric (dtype={data[c].dtype})")

    df = complete_cases(data, cols)
    if df.empty:
        raise InvalidArgument(f"No complete rows for {response} ~ {', '.join(names)}")

    check_domain(df[response], response_transform, response)
    for t in terms:
        check_domain(df[t.column], t.transform, t.column)

    levels = []
    if random_effect:
        cat = df[random_effect].astype("category").cat.remove_unused_categories()
        levels = list(cat.cat.categories)
        if len(levels) < 2:
            print(f"[WARN] {random_effect} has {len(levels)} level(s) for {response}; fitting without random effect")
            random_effect, levels = None, []

    model = AdditiveModel(
        gam=None,
        response=response,
        response_transform=response_transform,
        terms=terms,
        random_effect=random_effect,
        levels=levels,
        data=df,
    )
    X = model.design_matrix(df)
    y = forward(df[response], response_transform)

    gam = LinearGAM(build_pygam_terms(terms, include_random_effect=bool(random_effect)))
    gam.gridsearch(X, y, lam=lam_grid, progress=False)
    model.gam = gam
    return model


def fit_by_group(
    data: pd.DataFrame,
    group_column: str,
    response: str,
    terms,
    min_rows: int = 30,
    **fit_kwargs,
) -> dict:
    """
    One model per group (e.g. per taxon in a long-format table).

    Plain loop over the group keys -> {key: AdditiveModel}. Groups with too
    few complete rows, or whose response is all zero, are reported and skipped.
    """
    if group_column not in data.columns:
        raise InvalidArgument(f"Data has no group column '{group_column}'")

    terms = [_as_term(t) for t in terms]
    needed = [response] + [t.column for t in terms]
    if fit_kwargs.get("random_effect", "Year"):
        needed.append(fit_kwargs.get("random_effect", "Year"))
    needed = list(dict.fromkeys(needed))
    missing = [c for c in needed if c not in data.columns]
    if missing:
        raise InvalidArgument(f"Data is missing model columns: {missing}")

    groups = data[group_column]
    if isinstance(groups.dtype, pd.CategoricalDtype):
        keys = [k for k in groups.cat.categories if (groups == k).any()]
    else:
        keys = sorted(groups.dropna().unique())

    models = {}
    for key in keys:
        sub = data[groups == key]
        n = int(sub[needed].notna().all(axis=1).sum())
        if n < min_rows:
            print(f"[WARN] Skipping {response} for {group_column}={key}: only n={n}")
            continue
        if (sub[response].fillna(0) == 0).all():
            print(f"[WARN] Skipping {response} for {group_column}={key}: all values are 0")
            continue
        models[key] = fit_gam(sub, response, terms, **fit_kwargs)
        print(f"[INFO] Fitted {models[key]!r} for {group_column}={key}")
    return models

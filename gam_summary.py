"""
Summary tables for a batch of fitted GAMs.

- per-term GAM statistics (approximate p-values, edof, pseudo R2, AIC)
- partial Spearman correlations (Pingouin): response ~ covariate | other covariates
Both tables get a Benjamini-Hochberg FDR column (statsmodels).
"""

import numpy as np
import pandas as pd
import pingouin as pg
from statsmodels.stats.multitest import multipletests

from gam_errors import InvalidArgument
from observations import complete_cases


def fdr_adjust(pvals) -> np.ndarray:
    """BH-adjusted p-values; NaN entries stay NaN."""
    p = np.asarray(pvals, dtype=float)
    adj = np.full(len(p), np.nan)
    mask = np.isfinite(p)
    if mask.any():
        adj[mask] = multipletests(p[mask], method="fdr_bh")[1]
    return adj


def model_summary_table(models: dict) -> pd.DataFrame:
    """
    models: {key: AdditiveModel} (key = response name, taxon, ...)
    One row per (key, term). The random-effect row is kept but excluded from
    the FDR family.
    """
    frames = []
    for key, model in models.items():
        st = model.term_statistics()
        st.insert(0, "model", key)
        frames.append(st)
    if not frames:
        return pd.DataFrame()

    res = pd.concat(frames, ignore_index=True)
    is_re = res["term"].str.startswith("re(")
    res["p_value_fdr_approx"] = np.nan
    res.loc[~is_re, "p_value_fdr_approx"] = fdr_adjust(res.loc[~is_re, "p_value_approx"])
    return res


def _pval_column(pc: pd.DataFrame) -> str:
    # pingouin renamed "p-val" -> "p_val" in newer releases
    for c in ("p-val", "p_val"):
        if c in pc.columns:
            return c
    raise KeyError(f"No p-value column in pingouin output: {list(pc.columns)}")


def partial_spearman_table(data: pd.DataFrame, response: str, covariates: list[str]) -> pd.DataFrame:
    """
    For each covariate: Spearman correlation with the response, controlling for
    the remaining covariates. Uses complete cases over response + covariates.
    """
    if len(covariates) == 0:
        raise InvalidArgument("At least one covariate is required")
    df = complete_cases(data, [response] + list(covariates))

    rows = []
    for cov in covariates:
        controls = [c for c in covariates if c != cov]
        if controls:
            pc = pg.partial_corr(data=df, x=cov, y=response, covar=controls, method="spearman")
        else:
            pc = pg.corr(df[cov], df[response], method="spearman")
        rows.append({
            "response": response,
            "covariate": cov,
            "controls": ", ".join(controls),
            "n": int(pc["n"].iloc[0]),
            "partial_spearman_rho": float(pc["r"].iloc[0]),
            "partial_spearman_p": float(pc[_pval_column(pc)].iloc[0]),
        })

    res = pd.DataFrame(rows)
    res["partial_spearman_p_fdr"] = fdr_adjust(res["partial_spearman_p"])
    return res

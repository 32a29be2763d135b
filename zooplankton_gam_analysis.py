"""
Script: zooplankton_gam_analysis.py

Goal
- Relate estuarine zooplankton density / diversity (and per-taxon densities)
  to water-quality covariates: turbidity, chlorophyll, temperature, salinity.
- Methods:
  1) GAMs (pyGAM): transform(response) ~ s(covariates...) + f(Year)
  2) Marginal means along one covariate at a time (other covariates at their
     mean, years averaged) with 95% confidence bands
  3) Partial Spearman correlations (Pingouin) as a model-free cross-check
  4) Two-panel comparison figures with a shared y axis

Outputs
- gam_term_summary.csv, partial_spearman_summary.csv
- marginal_grids_long.csv (all grids, long format)
- figures/ : one two-panel PNG per (response, panel pair), one per taxon
"""

import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from gam_figures import plot_two_panel_comparison
from gam_models import TermSpec, fit_by_group, fit_gam
from gam_summary import model_summary_table, partial_spearman_table
from gam_transforms import suggest_transform
from marginal_grid import build_marginal_grids, stack_marginal_grids
from observations import load_observations, taxa_long


# ----------------------------
# USER SETTINGS
# ----------------------------

DATA_CSV = os.environ.get("ZOOP_DATA_CSV", "data/estuary_zooplankton.csv")
OUT_DIR = os.environ.get("ZOOP_OUT_DIR", "output")

# Covariates and how they enter every model (log for right-skewed positives)
COVARIATE_TERMS = [
    TermSpec("Turb", transform="log"),
    TermSpec("Chl", transform="log"),
    TermSpec("Temp"),
    TermSpec("Sal"),
]

# Response -> transform of the dependent variable
RESPONSES = {
    "Density": "log1p",
    "Diversity": "none",
}

# Pairs of covariates shown side by side (shared y axis)
PANEL_PAIRS = [("Turb", "Chl"), ("Temp", "Sal")]

# Per-taxon density columns (wide in the CSV)
TAXA = ["Acartia", "Eurytemora", "Pseudodiaptomus", "Bosmina", "Neomysis"]
TAXON_MIN_ROWS = 30

RANDOM_EFFECT = "Year"
POINT_COUNT = 25
CONFIDENCE_LEVEL = 0.95


# ----------------------------
# HELPERS
# ----------------------------

def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def safe_filename(s: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in s)


def report_transforms(df: pd.DataFrame, cols: list[str]) -> None:
    """Print the transform each column's distribution suggests next to the one configured."""
    configured = {t.column: t.transform for t in COVARIATE_TERMS}
    configured.update(RESPONSES)
    for c in cols:
        if c in df.columns:
            print(f"[INFO] {c}: configured={configured.get(c, 'none')}, suggested={suggest_transform(df[c])}")


def figures_for_model(df, model, key: str, response: str, fig_dir: str) -> pd.DataFrame:
    covs = [t.column for t in COVARIATE_TERMS]
    log_covs = {t.column for t in COVARIATE_TERMS if t.transform == "log"}
    grids = build_marginal_grids(
        model.data, model, covs,
        point_count=POINT_COUNT,
        response_log_transformed=model.response_transform != "none",
        confidence_level=CONFIDENCE_LEVEL,
    )

    for left, right in PANEL_PAIRS:
        outfile = os.path.join(fig_dir, safe_filename(f"marginal_{key}__{left}_{right}.png"))
        fig = plot_two_panel_comparison(
            df,
            (left, grids[left], left in log_covs),
            (right, grids[right], right in log_covs),
            response=response,
            outfile=outfile,
        )
        plt.close(fig)
        print(f"[INFO] Saved {outfile}")

    stacked = stack_marginal_grids(grids)
    stacked.insert(0, "model", key)
    return stacked


# ----------------------------
# MAIN
# ----------------------------

def main():
    ensure_dir(OUT_DIR)
    fig_dir = os.path.join(OUT_DIR, "figures")
    ensure_dir(fig_dir)

    df = load_observations(DATA_CSV, extra_numeric=TAXA)
    print(f"[INFO] Loaded {len(df)} samples from {DATA_CSV}")

    covs = [t.column for t in COVARIATE_TERMS]
    report_transforms(df, covs + list(RESPONSES))

    models = {}
    spearman = []
    for response, how in RESPONSES.items():
        models[response] = fit_gam(
            df, response, COVARIATE_TERMS,
            random_effect=RANDOM_EFFECT,
            response_transform=how,
        )
        print(f"[INFO] Fitted {models[response]!r}")
        spearman.append(partial_spearman_table(df, response, covs))

    # Per-taxon models: long format, one model per taxon
    taxa = [t for t in TAXA if t in df.columns]
    if taxa:
        id_cols = [c for c in ["Station", "Date", RANDOM_EFFECT] + covs if c in df.columns]
        long = taxa_long(df, taxa, id_columns=id_cols)
        taxon_models = fit_by_group(
            long, "Taxon", "TaxonDensity", COVARIATE_TERMS,
            min_rows=TAXON_MIN_ROWS,
            random_effect=RANDOM_EFFECT,
            response_transform="log1p",
        )
        for taxon, m in taxon_models.items():
            models[f"TaxonDensity[{taxon}]"] = m
    else:
        print("[WARN] No per-taxon columns found; skipping taxon models")

    all_grids = []
    for key, model in models.items():
        obs = model.data
        all_grids.append(figures_for_model(obs, model, key, model.response, fig_dir))

    grids_csv = os.path.join(OUT_DIR, "marginal_grids_long.csv")
    pd.concat(all_grids, ignore_index=True).to_csv(grids_csv, index=False)

    terms_csv = os.path.join(OUT_DIR, "gam_term_summary.csv")
    model_summary_table(models).to_csv(terms_csv, index=False)

    spear_csv = os.path.join(OUT_DIR, "partial_spearman_summary.csv")
    pd.concat(spearman, ignore_index=True).to_csv(spear_csv, index=False)

    print("\n[INFO] Done")
    print(f"Marginal grids: {grids_csv}")
    print(f"GAM term summary: {terms_csv}")
    print(f"Partial Spearman summary: {spear_csv}")
    print(f"Figures: {fig_dir}")


if __name__ == "__main__":
    main()

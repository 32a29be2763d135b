"""
Shared pytest fixtures: a seeded synthetic estuary dataset and GAMs fit on it.
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from gam_models import TermSpec, fit_gam


TEST_LAM_GRID = np.logspace(-2, 2, 5)
YEARS = [2016, 2017, 2018, 2019]


def make_estuary_data(n: int = 160, seed: int = 7) -> pd.DataFrame:
    """Station-date samples with log-linear turbidity/chlorophyll effects on density."""
    rng = np.random.default_rng(seed)

    turb = rng.uniform(0.5, 120.0, n)
    turb[0], turb[1] = 0.5, 120.0
    chl = rng.lognormal(mean=1.0, sigma=0.6, size=n)
    temp = rng.uniform(8.0, 26.0, n)
    sal = rng.uniform(0.5, 30.0, n)

    years = np.repeat(YEARS, n // len(YEARS))
    months = rng.integers(1, 13, n)
    dates = pd.to_datetime([f"{y}-{m:02d}-15" for y, m in zip(years, months)])
    year_effect = dict(zip(YEARS, [-0.2, 0.1, 0.0, 0.15]))

    log_density = (
        3.0
        + 0.4 * np.log(turb)
        + 0.3 * np.log(chl)
        - 0.01 * (temp - 17.0) ** 2
        + np.array([year_effect[y] for y in years])
        + rng.normal(0, 0.25, n)
    )
    density = np.expm1(log_density)
    diversity = 1.2 + 0.03 * sal + 0.1 * np.log(turb) + rng.normal(0, 0.1, n)

    df = pd.DataFrame({
        "Station": pd.Categorical(rng.choice(["S1", "S2", "S3"], n)),
        "Date": dates,
        "Year": pd.Categorical(years),
        "Temp": temp,
        "Sal": sal,
        "Turb": turb,
        "Chl": chl,
        "Density": density,
        "Diversity": diversity,
        "Acartia": density * rng.uniform(0.3, 0.5, n),
        "Eurytemora": density * rng.uniform(0.1, 0.2, n),
        "Bosmina": np.zeros(n),
    })
    # zero-inflated counts, drawn last so the columns above keep their values
    df["Fish"] = (rng.poisson(3.0, n) * (rng.uniform(size=n) > 0.3)).astype(float)
    return df


@pytest.fixture(scope="session")
def estuary_df():
    return make_estuary_data()


@pytest.fixture(scope="session")
def density_model(estuary_df):
    """log1p(Density) ~ s(log(Turb)) + s(log(Chl)) + s(Temp) + f(Year)"""
    return fit_gam(
        estuary_df,
        "Density",
        [
            TermSpec("Turb", transform="log", n_splines=8),
            TermSpec("Chl", transform="log", n_splines=8),
            TermSpec("Temp", n_splines=8),
        ],
        random_effect="Year",
        response_transform="log1p",
        lam_grid=TEST_LAM_GRID,
    )


@pytest.fixture(scope="session")
def diversity_model(estuary_df):
    """Diversity ~ s(Turb) + s(Sal) + f(Year), identity response."""
    return fit_gam(
        estuary_df,
        "Diversity",
        [TermSpec("Turb", n_splines=8), TermSpec("Sal", n_splines=8)],
        random_effect="Year",
        response_transform="none",
        lam_grid=TEST_LAM_GRID,
    )


@pytest.fixture(scope="session")
def fish_model(estuary_df):
    """Diversity ~ s(log1p(Fish)) + s(Sal) + f(Year), identity response."""
    return fit_gam(
        estuary_df,
        "Diversity",
        [TermSpec("Fish", transform="log1p", n_splines=6), TermSpec("Sal", n_splines=8)],
        random_effect="Year",
        response_transform="none",
        lam_grid=TEST_LAM_GRID,
    )

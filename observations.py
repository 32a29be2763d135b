"""
Loading and shaping of the estuary monitoring table.

One row per sampled station-date. Raw export headers are renamed to the short
names used in model terms (Turb, Chl, Temp, Sal, ...).
"""

import pandas as pd

from gam_errors import InvalidArgument


COLUMN_RENAMES = {
    "Station ID": "Station",
    "Sample Date": "Date",
    "Water Temperature (C)": "Temp",
    "Salinity (ppt)": "Sal",
    "Turbidity (NTU)": "Turb",
    "Chlorophyll a (ug/L)": "Chl",
    "River Discharge (m3/s)": "Discharge",
    "Fish Abundance": "Fish",
    "Zooplankton Density (ind/m3)": "Density",
    "Shannon Diversity": "Diversity",
}

NUMERIC_COLS = ["Temp", "Sal", "Turb", "Chl", "Discharge", "Fish", "Density", "Diversity"]
CATEGORICAL_COLS = ["Station", "Season", "Year"]

SEASONS = {
    12: "winter", 1: "winter", 2: "winter",
    3: "spring", 4: "spring", 5: "spring",
    6: "summer", 7: "summer", 8: "summer",
    9: "autumn", 10: "autumn", 11: "autumn",
}


def season_from_month(month: int) -> str:
    try:
        return SEASONS[int(month)]
    except (KeyError, TypeError, ValueError):
        raise InvalidArgument(f"Not a calendar month: {month!r}") from None


def make_numeric(df: pd.DataFrame, cols: list[str]) -> pd.DataFrame:
    out = df.copy()
    for c in cols:
        out[c] = pd.to_numeric(out[c], errors="coerce")
    return out


def load_observations(
    path,
    renames: dict | None = None,
    date_column: str = "Date",
    numeric_cols: list[str] | None = None,
    extra_numeric: list[str] | None = None,
) -> pd.DataFrame:
    """
    Read the monitoring CSV and return a typed observation table.

    - renames raw headers (COLUMN_RENAMES by default)
    - parses `date_column` and derives Year / Season when they are missing
    - coerces numeric columns (unparseable cells -> NaN, never strings)
    - casts Station / Season / Year to pandas categoricals
    """
    df = pd.read_csv(path)
    df = df.rename(columns=COLUMN_RENAMES if renames is None else renames)

    if date_column in df.columns:
        df[date_column] = pd.to_datetime(df[date_column], errors="coerce")
        if "Year" not in df.columns:
            df["Year"] = df[date_column].dt.year
        if "Season" not in df.columns:
            months = df[date_column].dt.month
            df["Season"] = months.map(SEASONS)

    numeric = list(NUMERIC_COLS if numeric_cols is None else numeric_cols)
    numeric += list(extra_numeric or [])
    present = [c for c in dict.fromkeys(numeric) if c in df.columns]
    df = make_numeric(df, present)

    for c in CATEGORICAL_COLS:
        if c in df.columns:
            df[c] = df[c].astype("category")

    return df


def complete_cases(df: pd.DataFrame, cols: list[str]) -> pd.DataFrame:
    """Rows where every column in `cols` is present (rows missing any are dropped)."""
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise InvalidArgument(f"Table is missing columns: {missing}")
    out = df.dropna(subset=list(cols)).copy()
    dropped = len(df) - len(out)
    if dropped:
        print(f"[INFO] Dropped {dropped} of {len(df)} rows with missing {', '.join(cols)}")
    return out


def taxa_long(
    df: pd.DataFrame,
    taxa: list[str],
    id_columns: list[str],
    taxon_col: str = "Taxon",
    value_col: str = "TaxonDensity",
) -> pd.DataFrame:
    """
    Wide per-taxon density columns -> one row per (sample, taxon).
    `id_columns` (station, date, year, covariates...) are repeated on every row.
    """
    missing = [c for c in list(taxa) + list(id_columns) if c not in df.columns]
    if missing:
        raise InvalidArgument(f"Table is missing columns: {missing}")
    long = df.melt(
        id_vars=list(id_columns),
        value_vars=list(taxa),
        var_name=taxon_col,
        value_name=value_col,
    )
    long[value_col] = pd.to_numeric(long[value_col], errors="coerce")
    long[taxon_col] = pd.Categorical(long[taxon_col], categories=list(taxa))
    return long

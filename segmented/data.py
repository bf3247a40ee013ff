"""
Loading, validating and generating monthly observation data.

Every analysis starts from one row per calendar month with the columns named
by a :class:`~segmented.config.ColumnSpec`. :func:`load_observations` checks
the data once, up front, so that the estimators can assume a clean series.
"""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from ._exceptions import DataValidationError
from .config import ColumnSpec

logger = logging.getLogger(__name__)


def load_observations(source: str | Path | pd.DataFrame, columns: ColumnSpec | None = None) -> pd.DataFrame:
    """
    Read and validate a monthly observation dataset.

    Parameters
    ----------
    source : str, Path or pd.DataFrame
        A CSV file, or a dataframe already in memory. A dataframe is copied,
        never modified.
    columns : ColumnSpec, optional
        Column names for each role. Defaults to ``ColumnSpec()``.

    Returns
    -------
    pd.DataFrame
        The observations sorted by the time column, with a fresh index.

    Raises
    ------
    DataValidationError
        If the data is empty, lacks a required column, or violates the
        observation invariants (see :func:`validate_observations`).
    """
    columns = columns or ColumnSpec()
    if isinstance(source, pd.DataFrame):
        data = source.copy()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        data = pd.read_csv(path)

    data = validate_observations(data, columns)
    n_post = int(data[columns.intervention].sum())
    logger.info(
        "Loaded %d monthly observations (%d pre-intervention, %d post-intervention)",
        len(data), len(data) - n_post, n_post,
    )
    return data


def validate_observations(data: pd.DataFrame, columns: ColumnSpec) -> pd.DataFrame:
    """Check the observation invariants and return the data sorted by time."""
    if data.empty:
        raise DataValidationError("Dataset is empty.")

    missing = [c for c in columns.required if c not in data.columns]
    if missing:
        raise DataValidationError(
            f"Missing required columns: {missing}. Available columns: {list(data.columns)}"
        )

    with_nulls = [c for c in columns.required if data[c].isna().any()]
    if with_nulls:
        raise DataValidationError(f"Columns contain missing values: {with_nulls}")

    non_numeric = [c for c in columns.required if not pd.api.types.is_numeric_dtype(data[c])]
    if non_numeric:
        raise DataValidationError(f"Columns must be numeric: {non_numeric}")

    data = data.sort_values(columns.time).reset_index(drop=True)

    T = columns.time
    if data[T].duplicated().any():
        dupes = sorted(data.loc[data[T].duplicated(), T].unique().tolist())
        raise DataValidationError(f"Time index '{T}' has duplicate values: {dupes}")

    check_counts(data[columns.outcome], columns.outcome)

    for col in (columns.population, columns.standardized_population):
        if (data[col] <= 0).any():
            raise DataValidationError(f"Population column '{col}' must be strictly positive.")

    month = data[columns.month]
    if ((month < 1) | (month > 12)).any():
        raise DataValidationError(f"Month column '{columns.month}' must lie between 1 and 12.")

    check_indicator(data[columns.intervention], columns.intervention)
    return data


def check_counts(values: pd.Series, name: str) -> None:
    """Raise unless every value is a non-negative whole number."""
    arr = values.to_numpy(dtype=float)
    if (arr < 0).any():
        raise DataValidationError(f"Outcome '{name}' contains negative counts.")
    if not np.allclose(arr, np.round(arr)):
        raise DataValidationError(f"Outcome '{name}' must contain whole-number counts.")


def check_indicator(values: pd.Series, name: str) -> None:
    """
    Raise unless ``values`` is a 0/1 indicator that never switches back.

    ``values`` must already be in time order.
    """
    vals = set(values.unique())
    if not vals <= {0, 1}:
        raise DataValidationError(f"Intervention '{name}' must be binary (0/1). Found: {sorted(vals)}")
    if (np.diff(values.to_numpy(dtype=float)) < 0).any():
        raise DataValidationError(
            f"Intervention '{name}' switches back from 1 to 0. "
            f"The indicator must be 0 before the intervention and 1 from then on."
        )


# ── Harmonic seasonal terms ───────────────────────────────────────────────────

def harmonic_terms(month: str, pairs: int) -> list[str]:
    """Column names created by :func:`add_harmonics`, in design-matrix order."""
    names = []
    for k in range(1, pairs + 1):
        names += [f"{month}_sin{k}", f"{month}_cos{k}"]
    return names


def add_harmonics(data: pd.DataFrame, month: str, pairs: int, period: int = 12) -> pd.DataFrame:
    """
    Return a copy of ``data`` with ``pairs`` sine/cosine pairs of ``month``.

    For k = 1..pairs the columns ``{month}_sin{k}`` and ``{month}_cos{k}``
    hold ``sin(2πk·month/period)`` and ``cos(2πk·month/period)``.
    """
    if pairs == 0:
        return data.copy()
    angle = 2 * np.pi * data[month].to_numpy(dtype=float) / period
    new_cols = {}
    for k in range(1, pairs + 1):
        new_cols[f"{month}_sin{k}"] = np.sin(k * angle)
        new_cols[f"{month}_cos{k}"] = np.cos(k * angle)
    return data.assign(**new_cols)


# ── Prediction grid ───────────────────────────────────────────────────────────

def make_prediction_grid(
    n_pre: int,
    n_post: int,
    standardized_population: float,
    columns: ColumnSpec | None = None,
    resolution: int = 1,
    period: int = 12,
    start_month: int = 1,
) -> pd.DataFrame:
    """
    Build a covariate grid for smooth or counterfactual predictions.

    The grid covers ``n_pre`` months before and ``n_post`` months after a
    hypothetical intervention, with ``resolution`` points per month. Time
    runs ``1/resolution, 2/resolution, ...`` and the intervention indicator
    is 1 where time exceeds ``n_pre``. The month column cycles with the
    time index starting at ``start_month`` and is fractional when
    ``resolution > 1``.

    Both population columns hold ``standardized_population`` on every row.
    """
    columns = columns or ColumnSpec()
    if n_pre < 1 or n_post < 0:
        raise ValueError("n_pre must be positive and n_post non-negative.")
    if resolution < 1:
        raise ValueError("resolution must be a positive integer.")
    if standardized_population <= 0:
        raise ValueError("standardized_population must be positive.")

    k = np.arange(1, (n_pre + n_post) * resolution + 1)
    time = k / resolution
    month = (((start_month - 1) * resolution + k - 1) % (period * resolution) + 1) / resolution

    return pd.DataFrame({
        columns.time: time,
        columns.month: month,
        columns.intervention: (time > n_pre).astype(int),
        columns.population: float(standardized_population),
        columns.standardized_population: float(standardized_population),
    })


# ── Synthetic data ────────────────────────────────────────────────────────────

def simulate_series(
    n_months: int = 60,
    intervention_month: int = 37,
    baseline_rate: float = 0.0018,
    rate_ratio: float = 0.9,
    trend: float = 1.002,
    slope_change: float = 1.0,
    seasonal_amplitude: float = 0.0,
    population: float = 370_000,
    start_year: int = 2002,
    start_month: int = 1,
    columns: ColumnSpec | None = None,
    seed: int = 0,
) -> pd.DataFrame:
    """
    Draw a monthly count series from a known Poisson process.

    The expected count in month ``t`` (1-based) is::

        stdpop_t * baseline_rate * trend**t * rate_ratio**I_t
                 * slope_change**(I_t * (t - t0)) * exp(a * sin(2π month_t / 12))

    where ``I_t = 1`` from ``t0 = intervention_month`` onward and ``a`` is
    ``seasonal_amplitude``. ``rate_ratio`` is thus the step at the first
    post-intervention month, which is where :class:`~segmented.PoissonITS`
    reports it, so fitted rate ratios can be checked against ``rate_ratio``,
    ``trend`` and ``slope_change`` directly.
    """
    columns = columns or ColumnSpec()
    if not 1 < intervention_month <= n_months:
        raise ValueError("intervention_month must fall inside the series, after the first month.")

    rng = np.random.default_rng(seed)
    t = np.arange(1, n_months + 1)
    offset = start_month - 1 + t - 1
    month = offset % 12 + 1
    year = start_year + offset // 12
    indicator = (t >= intervention_month).astype(int)

    stdpop = population * (1 + 0.0005 * t)
    pop = np.round(stdpop * 1.03)
    log_mu = (
        np.log(stdpop)
        + np.log(baseline_rate)
        + np.log(trend) * t
        + np.log(rate_ratio) * indicator
        + np.log(slope_change) * indicator * (t - intervention_month)
        + seasonal_amplitude * np.sin(2 * np.pi * month / 12)
    )
    outcome = rng.poisson(np.exp(log_mu))

    return pd.DataFrame({
        columns.year: year,
        columns.month: month,
        columns.time: t,
        columns.outcome: outcome,
        columns.intervention: indicator,
        columns.population: pop,
        columns.standardized_population: stdpop,
    })

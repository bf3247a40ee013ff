from __future__ import annotations

import pandas as pd

from ._exceptions import DataValidationError

STATISTICS = ["n", "mean", "std", "median", "iqr", "min", "max"]


def _iqr(values: pd.Series) -> float:
    return float(values.quantile(0.75) - values.quantile(0.25))


def _summarise(data: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    rows = {}
    for col in columns:
        values = data[col]
        rows[col] = {
            "n": int(values.count()),
            "mean": float(values.mean()),
            "std": float(values.std(ddof=1)),
            "median": float(values.median()),
            "iqr": _iqr(values),
            "min": float(values.min()),
            "max": float(values.max()),
        }
    table = pd.DataFrame.from_dict(rows, orient="index", columns=STATISTICS)
    table.index.name = "variable"
    return table


def describe(data: pd.DataFrame, columns: list[str] | None = None, by: str | None = None) -> pd.DataFrame:
    """
    Summary statistics for each numeric column.

    Parameters
    ----------
    data : pd.DataFrame
        The observations.
    columns : list of str, optional
        Columns to summarise. Defaults to every numeric column except ``by``.
    by : str, optional
        Partition rows by this column first, typically the intervention
        indicator to compare the pre- and post-intervention periods.

    Returns
    -------
    pd.DataFrame
        One row per variable (or per ``(by value, variable)`` pair when
        ``by`` is set) with columns ``n, mean, std, median, iqr, min, max``.
        ``std`` is the sample standard deviation; ``iqr`` is Q3 − Q1.

    Raises
    ------
    DataValidationError
        If ``data`` is empty or a requested column does not exist.
    """
    if data.empty:
        raise DataValidationError("Cannot describe an empty dataset.")

    if columns is None:
        columns = [
            c for c in data.columns
            if c != by and pd.api.types.is_numeric_dtype(data[c])
        ]
    missing = [c for c in list(columns) + ([by] if by else []) if c not in data.columns]
    if missing:
        raise DataValidationError(f"Columns not found in dataframe: {missing}")

    if by is None:
        return _summarise(data, list(columns))

    parts = {key: _summarise(group, list(columns)) for key, group in data.groupby(by, sort=True)}
    table = pd.concat(parts, names=[by, "variable"])
    return table

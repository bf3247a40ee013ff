"""
Residual diagnostics for fitted count models.

All functions are read-only: they take residuals (or a fitted result) and
return numbers, never touching the model itself. Serial correlation found
here is something to report, not to correct: it means the standard errors
of the fit are likely too small.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.tsa.stattools import acf, pacf

logger = logging.getLogger(__name__)


def _as_series(residuals) -> np.ndarray:
    values = np.asarray(residuals, dtype=float)
    if values.ndim != 1 or values.size == 0:
        raise ValueError("Residuals must be a non-empty one-dimensional sequence.")
    if not np.isfinite(values).all():
        raise ValueError("Residuals contain non-finite values.")
    if np.ptp(values) == 0:
        raise ValueError("Residuals are constant; autocorrelation is undefined.")
    return values


def autocorrelation(residuals, max_lag: int) -> pd.Series:
    """
    Sample autocorrelation function at lags ``0 .. max_lag``.

    Uses the standard (biased) estimator: the lag-h autocovariance divided
    by the lag-0 variance, both normalised by n. Lag 0 is exactly 1.

    Raises
    ------
    ``ValueError``
        If the residuals are empty or constant, or ``max_lag`` is not in
        ``1 .. n - 1``.
    """
    values = _as_series(residuals)
    n = values.size
    if not 1 <= max_lag < n:
        raise ValueError(f"max_lag must be between 1 and {n - 1} for {n} residuals. Got {max_lag}.")
    result = acf(values, nlags=max_lag, fft=False)
    return pd.Series(result, index=pd.RangeIndex(max_lag + 1, name="lag"), name="acf")


def partial_autocorrelation(residuals, max_lag: int) -> pd.Series:
    """
    Sample partial autocorrelation function at lags ``0 .. max_lag``.

    Computed by the Durbin-Levinson recursion on the same biased
    autocovariances as :func:`autocorrelation`.

    Raises
    ------
    ``ValueError``
        If the residuals are empty or constant, or ``max_lag`` is not in
        ``1 .. n // 2 - 1``.
    """
    values = _as_series(residuals)
    n = values.size
    if not 1 <= max_lag < n // 2:
        raise ValueError(
            f"max_lag must be between 1 and {n // 2 - 1} for {n} residuals. Got {max_lag}."
        )
    result = pacf(values, nlags=max_lag, method="ldb")
    return pd.Series(result, index=pd.RangeIndex(max_lag + 1, name="lag"), name="pacf")


def confidence_band(n: int, alpha: float = 0.05) -> float:
    """Half-width of the white-noise band for a correlogram of ``n`` points."""
    return float(stats.norm.ppf(1 - alpha / 2) / np.sqrt(n))


def significant_lags(correlations: pd.Series, n: int, alpha: float = 0.05) -> list[int]:
    """Lags (excluding 0) whose correlation falls outside the white-noise band."""
    band = confidence_band(n, alpha)
    beyond = correlations[(correlations.index > 0) & (correlations.abs() > band)]
    return [int(lag) for lag in beyond.index]


def ljung_box(residuals, lags: int) -> tuple[float, float]:
    """
    Ljung-Box portmanteau test for autocorrelation up to ``lags``.

    Returns ``(statistic, pvalue)``. A small p-value means the residuals are
    not consistent with white noise.
    """
    values = _as_series(residuals)
    if not 1 <= lags < values.size:
        raise ValueError(f"lags must be between 1 and {values.size - 1}. Got {lags}.")
    table = acorr_ljungbox(values, lags=[lags])
    row = table.iloc[-1]
    return float(row["lb_stat"]), float(row["lb_pvalue"])


def pearson_dispersion(result) -> float:
    """
    Pearson chi-square divided by residual degrees of freedom.

    Accepts an :class:`~segmented.ITSResult` or a statsmodels GLM result.
    Values well above 1 indicate overdispersion relative to the Poisson
    assumption.
    """
    res = getattr(result, "statsmodels_result", result)
    return float(res.pearson_chi2 / res.df_resid)

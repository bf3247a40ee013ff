import numpy as np
import pandas as pd
import pytest

from segmented import PoissonITS, autocorrelation, ljung_box, partial_autocorrelation, pearson_dispersion, simulate_series
from segmented.diagnostics import confidence_band, significant_lags


RNG = np.random.default_rng(42)
N = 500


def make_ar1(phi=0.7, n=N):
    """AR(1) series x_t = phi * x_{t-1} + e_t with standard normal shocks."""
    shocks = RNG.normal(size=n)
    x = np.empty(n)
    x[0] = shocks[0]
    for t in range(1, n):
        x[t] = phi * x[t - 1] + shocks[t]
    return x


class TestAutocorrelation:
    def test_lag_zero_is_exactly_one(self):
        acf = autocorrelation(RNG.normal(size=60), max_lag=12)
        assert acf.loc[0] == 1.0

    def test_returns_lags_zero_to_max(self):
        acf = autocorrelation(RNG.normal(size=60), max_lag=12)
        assert list(acf.index) == list(range(13))
        assert acf.index.name == "lag"

    def test_matches_biased_estimator(self):
        x = RNG.normal(size=40)
        acf = autocorrelation(x, max_lag=3)
        d = x - x.mean()
        expected = np.sum(d[2:] * d[:-2]) / np.sum(d * d)
        assert acf.loc[2] == pytest.approx(expected, rel=1e-10)

    def test_ar1_lag_one(self):
        acf = autocorrelation(make_ar1(0.7), max_lag=5)
        assert abs(acf.loc[1] - 0.7) < 0.1

    def test_constant_residuals_raise(self):
        with pytest.raises(ValueError, match="constant"):
            autocorrelation(np.ones(30), max_lag=5)

    def test_empty_residuals_raise(self):
        with pytest.raises(ValueError, match="non-empty"):
            autocorrelation([], max_lag=1)

    def test_max_lag_out_of_range_raises(self):
        with pytest.raises(ValueError, match="max_lag"):
            autocorrelation(RNG.normal(size=10), max_lag=10)
        with pytest.raises(ValueError, match="max_lag"):
            autocorrelation(RNG.normal(size=10), max_lag=0)

    def test_accepts_series(self):
        x = pd.Series(RNG.normal(size=50), index=range(100, 150))
        acf = autocorrelation(x, max_lag=4)
        assert acf.loc[0] == 1.0


class TestPartialAutocorrelation:
    def test_lag_one_equals_acf_lag_one(self):
        x = RNG.normal(size=80)
        acf = autocorrelation(x, max_lag=5)
        pacf = partial_autocorrelation(x, max_lag=5)
        assert pacf.loc[1] == pytest.approx(acf.loc[1], rel=1e-10)

    def test_ar1_cuts_off_after_lag_one(self):
        pacf = partial_autocorrelation(make_ar1(0.7), max_lag=5)
        assert abs(pacf.loc[1] - 0.7) < 0.1
        assert (pacf.loc[2:].abs() < 0.2).all()

    def test_max_lag_limited_to_half_sample(self):
        with pytest.raises(ValueError, match="max_lag"):
            partial_autocorrelation(RNG.normal(size=20), max_lag=10)


class TestBandsAndTests:
    def test_confidence_band(self):
        assert confidence_band(100) == pytest.approx(1.959964 / 10, rel=1e-5)

    def test_significant_lags_on_ar1(self):
        x = make_ar1(0.7)
        lags = significant_lags(autocorrelation(x, max_lag=5), len(x))
        assert 1 in lags
        assert 0 not in lags

    def test_ljung_box_detects_autocorrelation(self):
        stat, p = ljung_box(make_ar1(0.7), lags=10)
        assert stat > 0
        assert p < 0.01

    def test_ljung_box_lags_out_of_range(self):
        with pytest.raises(ValueError, match="lags"):
            ljung_box(RNG.normal(size=10), lags=10)

    def test_pearson_dispersion_accepts_result_or_statsmodels(self):
        result = PoissonITS().fit(simulate_series(seed=3))
        expected = result.statsmodels_result.pearson_chi2 / result.statsmodels_result.df_resid
        assert pearson_dispersion(result) == pytest.approx(expected)
        assert pearson_dispersion(result.statsmodels_result) == pytest.approx(expected)


class TestResidualDiagnostics:
    def test_result_delegates_to_diagnostics(self):
        result = PoissonITS(family="quasipoisson").fit(simulate_series(seed=5))
        acf = result.autocorrelation(12)
        pacf = result.partial_autocorrelation(12)

        assert acf.loc[0] == 1.0
        assert len(acf) == len(pacf) == 13
        pd.testing.assert_series_equal(acf, autocorrelation(result.resid_deviance, 12))

    def test_diagnostics_leave_fit_untouched(self):
        result = PoissonITS().fit(simulate_series(seed=5))
        params = result.statsmodels_result.params.copy()
        result.autocorrelation(12)
        result.partial_autocorrelation(12)
        result.ljung_box(12)
        pd.testing.assert_series_equal(result.statsmodels_result.params, params)

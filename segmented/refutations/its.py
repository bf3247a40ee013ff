from __future__ import annotations

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from ..data import add_harmonics
from ._check import INFERENCE, RefutationCheck, render_checks

_RCC_SEED = 54321
_RCC_COL = "_rcc"
_MAX_POISSON_DISPERSION = 1.5
_LJUNG_BOX_ALPHA = 0.05
_PLACEBO_Z = 1.96


def _refit(estimator, data: pd.DataFrame, **overrides):
    """Fit a copy of ``estimator`` with some settings replaced."""
    params = dict(
        outcome=estimator.outcome,
        intervention=estimator.intervention,
        time=estimator.time,
        offset=estimator.offset,
        family=estimator.family,
        harmonics=estimator.harmonics,
        period=estimator.period,
        month=estimator.month,
        slope_change=estimator.slope_change,
    )
    params.update(overrides)
    return type(estimator)(**params).fit(data)


def _check_overdispersion(result) -> RefutationCheck:
    """
    Compare the Pearson dispersion of the fit with the Poisson assumption.

    A quasi-Poisson fit already scales its standard errors by the estimated
    dispersion, so it passes. A Poisson fit passes only if the dispersion is
    close enough to 1 that its standard errors are trustworthy.
    """
    dispersion = result.pearson_dispersion
    if result.family == "quasipoisson":
        return RefutationCheck(
            name="Overdispersion",
            passed=True,
            detail=f"dispersion = {dispersion:.4f}, accounted for by quasi-Poisson standard errors",
            bears_on=INFERENCE,
        )

    passed = dispersion <= _MAX_POISSON_DISPERSION
    if passed:
        detail = f"dispersion = {dispersion:.4f}  (≤ {_MAX_POISSON_DISPERSION})"
    else:
        detail = (
            f"dispersion = {dispersion:.4f}  (> {_MAX_POISSON_DISPERSION})  "
            f"Counts vary more than a Poisson model allows; standard errors are "
            f"too small. Refit with family='quasipoisson'."
        )
    return RefutationCheck(name="Overdispersion", passed=passed, detail=detail, bears_on=INFERENCE)


def _check_residual_autocorrelation(result) -> RefutationCheck:
    """
    Ljung-Box test on the deviance residuals.

    Tests up to one seasonal period, or a fifth of the series if shorter.
    """
    lags = max(1, min(result._period, result.nobs // 5))
    statistic, pvalue = result.ljung_box(lags)

    passed = pvalue >= _LJUNG_BOX_ALPHA
    if passed:
        detail = f"Ljung-Box Q({lags}) = {statistic:.4f}, p = {pvalue:.4f}  (no evidence of serial correlation)"
    else:
        detail = (
            f"Ljung-Box Q({lags}) = {statistic:.4f}, p = {pvalue:.4f}  "
            f"Residuals are serially correlated; standard errors are likely "
            f"too small. Consider seasonal terms or an autoregressive adjustment."
        )
    return RefutationCheck(
        name="Residual autocorrelation", passed=passed, detail=detail, bears_on=INFERENCE,
    )


def _check_placebo_intervention(data: pd.DataFrame, estimator) -> RefutationCheck:
    """
    Refit on the pre-intervention months with a fake change at their midpoint.

    Nothing happened at the placebo date, so its step change should be
    within sampling error of zero. A significant placebo step suggests the
    model's trend is misspecified and the real estimate may be too.
    """
    pre = data[data[estimator.intervention] == 0].sort_values(estimator.time).reset_index(drop=True)
    n_params = len(estimator.terms) + 1
    if len(pre) < 2 * n_params:
        return RefutationCheck(
            name="Placebo intervention",
            passed=True,
            detail=(
                f"skipped: {len(pre)} pre-intervention months are too few "
                f"for {n_params} parameters"
            ),
        )

    midpoint = len(pre) // 2
    placebo = pre.assign(**{estimator.intervention: (np.arange(len(pre)) >= midpoint).astype(int)})
    result = _refit(estimator, placebo)
    bound = _PLACEBO_Z * result.std_err

    passed = abs(result.effect) <= bound
    if passed:
        detail = (
            f"placebo step = {result.effect:.4f}  (≤ {_PLACEBO_Z} SE = {bound:.4f})  "
            f"No change detected where none occurred, as expected."
        )
    else:
        detail = (
            f"placebo step = {result.effect:.4f}  (> {_PLACEBO_Z} SE = {bound:.4f})  "
            f"A step was detected in the pre-intervention period; the trend "
            f"model may be misspecified."
        )
    return RefutationCheck(name="Placebo intervention", passed=passed, detail=detail)


def _check_random_common_cause(
    data: pd.DataFrame,
    estimator,
    original_effect: float,
    original_se: float,
    intervention_time: float,
) -> RefutationCheck:
    """
    Add a random noise column as an extra regressor and refit.

    The noise is unrelated to the outcome, so the step change should not
    move by more than one standard error.
    """
    from ..estimators.poisson import step_contrast

    rng = np.random.default_rng(_RCC_SEED)

    col = _RCC_COL
    while col in data.columns:
        col = "_" + col

    frame = data.sort_values(estimator.time).reset_index(drop=True)
    frame = frame.assign(**{col: rng.normal(size=len(frame))})
    frame = add_harmonics(frame, estimator.month, estimator.harmonics, estimator.period)

    scale = "X2" if estimator.family == "quasipoisson" else None
    result = smf.glm(
        f"{estimator.formula} + {col}",
        data=frame,
        family=sm.families.Poisson(),
        offset=np.log(frame[estimator.offset].to_numpy(dtype=float)),
    ).fit(scale=scale)
    slope_term = f"{estimator.intervention}:{estimator.time}" if estimator.slope_change else None
    contrast = step_contrast(result, estimator.intervention, slope_term, intervention_time)
    new_effect = float(np.squeeze(contrast.effect))

    shift = abs(new_effect - original_effect)
    passed = shift <= original_se

    if passed:
        detail = f"estimate shifted by {shift:.4f}  (≤ 1 SE = {original_se:.4f})"
    else:
        detail = (
            f"estimate shifted by {shift:.4f}  (> 1 SE = {original_se:.4f})  "
            f"Adding a random common cause destabilised the step-change estimate."
        )
    return RefutationCheck(name="Random common cause", passed=passed, detail=detail)


class ITSRefutationReport:
    """
    Results of refutation checks run against an interrupted time series fit.

    Obtain via ``ITSResult.refute(data)``.

    Example::

        result = PoissonITS(family="quasipoisson", harmonics=2).fit(df)
        report = result.refute(df)
        print(report.summary())
    """

    def __init__(self, checks: list[RefutationCheck], intervention: str, outcome: str) -> None:
        self._checks = checks
        self._intervention = intervention
        self._outcome = outcome

    @property
    def checks(self) -> list[RefutationCheck]:
        """All checks, in the order they were run."""
        return list(self._checks)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self._checks)

    @property
    def failed_checks(self) -> list[RefutationCheck]:
        return [c for c in self._checks if not c.passed]

    def summary(self) -> str:
        return render_checks(f"ITS Refutation Report: {self._intervention} → {self._outcome}", self._checks)

    def __repr__(self) -> str:
        return self.summary()

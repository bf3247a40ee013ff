from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf

from .._exceptions import ConvergenceError, DataValidationError, ModelSpecificationError
from ..config import ColumnSpec
from ..data import add_harmonics, check_counts, harmonic_terms, make_prediction_grid
from ..refutations._check import Assumption

logger = logging.getLogger(__name__)

FAMILIES = ("poisson", "quasipoisson")

ITS_ASSUMPTIONS: list[Assumption] = [
    Assumption(
        "Continuity: the pre-intervention trend would have continued "
        "unchanged absent the intervention",
        testable=False,
    ),
    Assumption("No co-intervention: no other event changed the outcome at the same time", testable=False),
    Assumption("The standardized population offset captures the population at risk", testable=False),
    Assumption("Count variance is proportional to the mean (Poisson up to a dispersion factor)", testable=True),
    Assumption("Residuals are serially independent once trend and seasonality are modelled", testable=True),
]


def _aliased_term(exog: np.ndarray, names: list[str]) -> str | None:
    """First design column that is a linear combination of the ones before it."""
    rank = 0
    for j in range(exog.shape[1]):
        new_rank = np.linalg.matrix_rank(exog[:, : j + 1])
        if new_rank == rank:
            return names[j]
        rank = new_rank
    return None


def step_contrast(result, intervention: str, slope_term: str | None = None, at: float = 0.0):
    """
    Wald contrast for the log-rate step at time ``at``.

    Without a slope change the step is the indicator coefficient. With an
    ``intervention:time`` interaction the indicator coefficient is the level
    shift extrapolated to time 0, and the step at ``at`` is
    ``b_intervention + at * b_interaction``.
    """
    names = list(result.model.exog_names)
    weights = np.zeros((1, len(names)))
    weights[0, names.index(intervention)] = 1.0
    if slope_term is not None:
        weights[0, names.index(slope_term)] = at
    return result.t_test(weights)


class ITSResult:
    """
    The result of a segmented Poisson regression.

    The step change is on the log-rate scale and is evaluated at the first
    post-intervention month: exponentiated it is the rate ratio of the
    observed rate to the projected pre-intervention trend at that month.
    Without a slope change this is the indicator coefficient itself. The
    time coefficient, exponentiated, is the monthly compound growth factor
    of the rate.

    Fitted results are never modified; predictions, diagnostics and
    comparisons all read from the underlying statsmodels result.
    """

    def __init__(self, result, estimator: PoissonITS, data: pd.DataFrame) -> None:
        self._result = result
        self._estimator = estimator
        self._outcome = estimator.outcome
        self._intervention = estimator.intervention
        self._time = estimator.time
        self._offset = estimator.offset
        self._month = estimator.month
        self._family = estimator.family
        self._harmonics = estimator.harmonics
        self._period = estimator.period
        self._has_slope_change = estimator.slope_change

        indicator = data[self._intervention]
        self._n_pre = int((indicator == 0).sum())
        self._n_post = int((indicator == 1).sum())
        self._reference_population = float(data[self._offset].mean())
        self._start_month = int(data[self._month].iloc[0]) if self._month in data.columns else 1
        self._intervention_time = float(data.loc[indicator == 1, self._time].min())
        self._step = step_contrast(
            result,
            self._intervention,
            self._slope_term if self._has_slope_change else None,
            self._intervention_time,
        )

    # ── Step change ───────────────────────────────────────────────────────────

    @property
    def intervention_time(self) -> float:
        """Time index of the first post-intervention month, where the step is evaluated."""
        return self._intervention_time

    @property
    def effect(self) -> float:
        """Step change in the log rate at the first post-intervention month."""
        return float(np.squeeze(self._step.effect))

    @property
    def std_err(self) -> float:
        """Standard error of the step change, scaled by the dispersion."""
        return float(np.squeeze(self._step.sd))

    @property
    def conf_int(self) -> tuple[float, float]:
        """95% confidence interval for the step change (log scale)."""
        lo, hi = np.asarray(self._step.conf_int()).ravel()
        return (float(lo), float(hi))

    @property
    def pvalue(self) -> float:
        """p-value for the step change (``H0: no change in level``)."""
        return float(np.squeeze(self._step.pvalue))

    @property
    def rate_ratio(self) -> float:
        """
        Exponentiated step change: fitted over counterfactual rate at the
        first post-intervention month.
        """
        return float(np.exp(self.effect))

    @property
    def rate_ratio_conf_int(self) -> tuple[float, float]:
        """95% confidence interval for the rate ratio."""
        lo, hi = self.conf_int
        return (float(np.exp(lo)), float(np.exp(hi)))

    # ── Trend and slope change ────────────────────────────────────────────────

    @property
    def trend_ratio(self) -> float:
        """Monthly compound growth factor of the rate before the intervention."""
        return float(np.exp(self._result.params[self._time]))

    @property
    def _slope_term(self) -> str:
        return f"{self._intervention}:{self._time}"

    @property
    def slope_change(self) -> float | None:
        """Change in the log-rate slope after the intervention, or ``None`` if not modelled."""
        if not self._has_slope_change:
            return None
        return float(self._result.params[self._slope_term])

    @property
    def slope_change_ratio(self) -> float | None:
        """Exponentiated slope change, or ``None`` if not modelled."""
        change = self.slope_change
        return None if change is None else float(np.exp(change))

    # ── Fit statistics ────────────────────────────────────────────────────────

    @property
    def family(self) -> str:
        return self._family

    @property
    def formula(self) -> str:
        return self._estimator.formula

    @property
    def outcome(self) -> str:
        return self._outcome

    @property
    def offset(self) -> str:
        return self._offset

    @property
    def terms(self) -> list[str]:
        """Explanatory terms, excluding the intercept and the offset."""
        return [name for name in self._result.model.exog_names if name != "Intercept"]

    @property
    def nobs(self) -> int:
        return int(self._result.nobs)

    @property
    def df_resid(self) -> float:
        return float(self._result.df_resid)

    @property
    def deviance(self) -> float:
        return float(self._result.deviance)

    @property
    def dispersion(self) -> float:
        """
        Dispersion used for inference: 1 for Poisson, Pearson
        chi-square / residual df for quasi-Poisson.
        """
        return float(self._result.scale)

    @property
    def pearson_dispersion(self) -> float:
        """Pearson chi-square / residual df of this fit, whatever the family."""
        return float(self._result.pearson_chi2 / self._result.df_resid)

    @property
    def resid_deviance(self) -> pd.Series:
        """Deviance residuals in time order."""
        return pd.Series(np.asarray(self._result.resid_deviance), name="resid_deviance")

    def coefficient_table(self, exponentiate: bool = False, alpha: float = 0.05) -> pd.DataFrame:
        """
        Coefficients with standard errors, confidence bounds and p-values.

        With ``exponentiate=True`` the estimate and bounds are rate ratios
        (``exp`` of the log-scale values); standard errors and p-values are
        those of the log-scale coefficients.
        """
        res = self._result
        ci = res.conf_int(alpha=alpha)
        table = pd.DataFrame({
            "estimate": res.params,
            "std_err": res.bse,
            "lower": ci[0],
            "upper": ci[1],
            "pvalue": res.pvalues,
        })
        if exponentiate:
            cols = ["estimate", "lower", "upper"]
            table[cols] = np.exp(table[cols])
        return table

    @property
    def statsmodels_result(self):
        """The underlying statsmodels GLM result, for full diagnostics."""
        return self._result

    @property
    def assumptions(self) -> list[Assumption]:
        """Modelling assumptions required for a causal interpretation."""
        return list(ITS_ASSUMPTIONS)

    # ── Diagnostics ───────────────────────────────────────────────────────────

    def autocorrelation(self, max_lag: int) -> pd.Series:
        """ACF of the deviance residuals at lags 0..max_lag."""
        from ..diagnostics import autocorrelation
        return autocorrelation(self.resid_deviance, max_lag)

    def partial_autocorrelation(self, max_lag: int) -> pd.Series:
        """PACF of the deviance residuals at lags 0..max_lag."""
        from ..diagnostics import partial_autocorrelation
        return partial_autocorrelation(self.resid_deviance, max_lag)

    def ljung_box(self, lags: int) -> tuple[float, float]:
        """Ljung-Box ``(statistic, pvalue)`` on the deviance residuals."""
        from ..diagnostics import ljung_box
        return ljung_box(self.resid_deviance, lags)

    # ── Prediction ────────────────────────────────────────────────────────────

    def prediction_grid(self, resolution: int = 1, n_pre: int | None = None, n_post: int | None = None) -> pd.DataFrame:
        """
        Covariate grid matching the fitted series.

        Defaults to the observed numbers of pre- and post-intervention
        months, with the standardized population fixed at its observed mean.
        """
        return make_prediction_grid(
            n_pre=self._n_pre if n_pre is None else n_pre,
            n_post=self._n_post if n_post is None else n_post,
            standardized_population=self._reference_population,
            columns=self._estimator.columns,
            resolution=resolution,
            period=self._period,
            start_month=self._start_month,
        )

    def predict(self, grid: pd.DataFrame | None = None, per: float = 100_000) -> pd.Series:
        """
        Predicted outcome rate per ``per`` people for each row of ``grid``.

        The expected count ``exp(Xβ) · stdpop`` is divided by the observed
        mean standardized population, so rates on grids built with
        :meth:`prediction_grid` are in the same unit throughout.
        """
        if grid is None:
            grid = self.prediction_grid()
        missing = [c for c in self._estimator.covariates if c not in grid.columns]
        if missing:
            raise ValueError(f"Prediction grid is missing columns: {missing}")

        frame = add_harmonics(grid, self._month, self._harmonics, self._period)
        offset = np.log(frame[self._offset].to_numpy(dtype=float))
        expected = np.asarray(self._result.predict(frame, offset=offset))
        return pd.Series(expected / self._reference_population * per, index=grid.index, name="rate")

    def counterfactual(self, grid: pd.DataFrame | None = None, per: float = 100_000) -> pd.Series:
        """Predicted rate with the intervention switched off on every row."""
        if grid is None:
            grid = self.prediction_grid()
        return self.predict(grid.assign(**{self._intervention: 0}), per=per).rename("counterfactual")

    def deseasonalized(self, grid: pd.DataFrame | None = None, month: float = 6, per: float = 100_000) -> pd.Series:
        """Predicted rate with the month held at ``month`` to remove seasonal oscillation."""
        if grid is None:
            grid = self.prediction_grid()
        return self.predict(grid.assign(**{self._month: month}), per=per).rename("deseasonalized")

    def compare(self, other: ITSResult):
        """F-test of this model against a nested one. See :func:`segmented.compare`."""
        from ..comparison import compare
        return compare(self, other)

    # ── Reporting ─────────────────────────────────────────────────────────────

    def executive_summary(self) -> str:
        """Narrative explanation of the method, assumptions, and result."""
        from .._explain import explain_its
        return explain_its(self)

    def summary(self) -> str:
        """Concise summary of the step change, fit statistics, and coefficient table."""
        lo, hi = self.conf_int
        rr_lo, rr_hi = self.rate_ratio_conf_int
        lines = [
            "",
            f"Interrupted Time Series: {self._intervention} → {self._outcome}",
            f"  Family: {self._family}  |  offset: log({self._offset})",
            "─" * 60,
            f"  Step change (log)    : {self.effect:>10.4f}  at {self._time} = {self._intervention_time:g}",
            f"  95% CI               : [{lo:.4f}, {hi:.4f}]",
            f"  Rate ratio           : {self.rate_ratio:>10.4f}",
            f"  95% CI               : [{rr_lo:.4f}, {rr_hi:.4f}]",
            f"  Std. error           : {self.std_err:>10.4f}",
            f"  p-value              : {self.pvalue:>10.4f}",
            "",
            f"  Trend ratio / month  : {self.trend_ratio:>10.4f}",
        ]
        if self._has_slope_change:
            lines.append(f"  Slope change ratio   : {self.slope_change_ratio:>10.4f}")
        lines += [
            f"  Dispersion           : {self.dispersion:>10.4f}",
            f"  Pearson dispersion   : {self.pearson_dispersion:>10.4f}",
            f"  Deviance             : {self.deviance:>10.4f}  on {self.df_resid:.0f} df",
            "",
            "  Coefficients (rate ratios)",
            "  " + "┄" * 56,
        ]
        table = self.coefficient_table(exponentiate=True)
        for name, row in table.iterrows():
            lines.append(
                f"  {name:<22} {row['estimate']:>10.4f}  "
                f"[{row['lower']:.4f}, {row['upper']:.4f}]  p = {row['pvalue']:.4f}"
            )
        lines += [
            "",
            "  Assumptions",
            "  " + "┄" * 56,
        ]
        for a in ITS_ASSUMPTIONS:
            lines.append(f"  {a.fmt_tag()}  {a.name}")
        lines.append("")
        return "\n".join(lines)

    def refute(self, data: pd.DataFrame):
        """
        Run refutation checks against this fit.

        Currently runs:

        - **Overdispersion**: flags a Poisson fit whose Pearson dispersion
          suggests quasi-Poisson standard errors are needed.
        - **Residual autocorrelation**: Ljung-Box test on the deviance
          residuals.
        - **Placebo intervention**: refits on the pre-intervention months with
          a fake change at their midpoint. The placebo step should be near zero.
        - **Random common cause**: adds a random noise column as an extra
          regressor and checks that the step change does not shift by more
          than one standard error.

        Parameters
        ----------
        data : pd.DataFrame
            The same dataframe passed to ``fit()``.
        """
        from ..refutations.its import (
            ITSRefutationReport,
            _check_overdispersion,
            _check_placebo_intervention,
            _check_random_common_cause,
            _check_residual_autocorrelation,
        )
        checks = [
            _check_overdispersion(self),
            _check_residual_autocorrelation(self),
            _check_placebo_intervention(data, self._estimator),
            _check_random_common_cause(data, self._estimator, self.effect, self.std_err, self._intervention_time),
        ]
        return ITSRefutationReport(
            checks=checks,
            intervention=self._intervention,
            outcome=self._outcome,
        )

    def __repr__(self) -> str:
        return self.summary()


class PoissonITS:
    """
    Segmented Poisson regression for an interrupted time series.

    Models a monthly count as a rate over a population offset::

        log E[outcome] = log(offset) + b0 + b1 * intervention + b2 * time
                         [+ harmonic terms] [+ b3 * intervention:time]

    ``exp(b2)`` is the monthly growth factor of the underlying trend. Without
    the interaction ``exp(b1)`` is the rate ratio for the level change at the
    intervention; with it the step is reported at the first post-intervention
    month ``t0`` as ``exp(b1 + b3 * t0)``.

    Parameters
    ----------
    outcome, intervention, time, offset, month : str
        Column names. ``offset`` is the standardized population; its log
        enters the model with a coefficient fixed at 1.
    family : {"poisson", "quasipoisson"}
        ``"quasipoisson"`` keeps the Poisson point estimates and scales the
        standard errors by the Pearson dispersion.
    harmonics : int
        Number of sine/cosine pairs of ``month`` with base ``period`` used
        to adjust for seasonality. 0 fits no seasonal terms.
    slope_change : bool
        Add the ``intervention:time`` interaction, estimating a change in
        trend alongside the change in level.

    Example::

        result = PoissonITS(
            outcome="aces", intervention="smokban", offset="stdpop",
            family="quasipoisson", harmonics=2,
        ).fit(df)
        print(result.summary())
    """

    def __init__(
        self,
        outcome: str = "outcome",
        intervention: str = "intervention",
        time: str = "time",
        offset: str = "stdpop",
        family: str = "poisson",
        harmonics: int = 0,
        period: int = 12,
        month: str = "month",
        slope_change: bool = False,
    ) -> None:
        self.outcome = outcome
        self.intervention = intervention
        self.time = time
        self.offset = offset
        self.family = family
        self.harmonics = harmonics
        self.period = period
        self.month = month
        self.slope_change = slope_change
        self._validate_inputs()

    @classmethod
    def from_columns(cls, columns: ColumnSpec, **kwargs) -> PoissonITS:
        """Build an estimator from a :class:`~segmented.config.ColumnSpec`."""
        return cls(
            outcome=columns.outcome,
            intervention=columns.intervention,
            time=columns.time,
            offset=columns.standardized_population,
            month=columns.month,
            **kwargs,
        )

    def _validate_inputs(self) -> None:
        if self.family not in FAMILIES:
            raise ModelSpecificationError(f"family must be one of {FAMILIES}. Got '{self.family}'.")
        if self.harmonics < 0:
            raise ModelSpecificationError("harmonics must be a non-negative integer.")
        if self.period <= 0:
            raise ModelSpecificationError("period must be positive.")
        roles = [self.outcome, self.intervention, self.time, self.offset]
        if self.harmonics:
            roles.append(self.month)
        if len(set(roles)) < len(roles):
            raise ModelSpecificationError(
                "Outcome, intervention, time, offset and month must be different columns."
            )

    @property
    def columns(self) -> ColumnSpec:
        return ColumnSpec(
            month=self.month,
            time=self.time,
            outcome=self.outcome,
            intervention=self.intervention,
            population=self.offset,
            standardized_population=self.offset,
        )

    @property
    def covariates(self) -> list[str]:
        """Columns the design matrix is built from, excluding the outcome."""
        cols = [self.intervention, self.time, self.offset]
        if self.harmonics:
            cols.append(self.month)
        return cols

    @property
    def terms(self) -> list[str]:
        terms = [self.intervention, self.time] + harmonic_terms(self.month, self.harmonics)
        if self.slope_change:
            terms.append(f"{self.intervention}:{self.time}")
        return terms

    @property
    def formula(self) -> str:
        return f"{self.outcome} ~ " + " + ".join(self.terms)

    def fit(self, data: pd.DataFrame) -> ITSResult:
        """
        Fit the model by iteratively reweighted least squares.

        Parameters
        ----------
        data : pd.DataFrame
            One row per month. Rows are put in time order before fitting.

        Raises
        ------
        DataValidationError
            If a required column is missing or has missing values, the
            outcome has negative or fractional counts, or the offset column
            is not strictly positive.
        ModelSpecificationError
            If the design matrix is rank-deficient.
        ConvergenceError
            If IRLS does not converge.
        """
        for label, var in [
            ("Outcome", self.outcome),
            ("Intervention", self.intervention),
            ("Time", self.time),
            ("Offset", self.offset),
        ] + ([("Month", self.month)] if self.harmonics else []):
            if var not in data.columns:
                raise DataValidationError(f"{label} column '{var}' not found in dataframe.")
            if data[var].isna().any():
                raise DataValidationError(f"{label} column '{var}' contains missing values.")
        if data.empty:
            raise DataValidationError("Cannot fit a model to an empty dataset.")

        frame = data.sort_values(self.time).reset_index(drop=True)
        check_counts(frame[self.outcome], self.outcome)
        if (frame[self.offset] <= 0).any():
            raise DataValidationError(f"Offset column '{self.offset}' must be strictly positive.")
        frame = add_harmonics(frame, self.month, self.harmonics, self.period)

        logger.info("Fitting %s GLM: %s, offset log(%s)", self.family, self.formula, self.offset)
        model = smf.glm(
            self.formula,
            data=frame,
            family=sm.families.Poisson(),
            offset=np.log(frame[self.offset].to_numpy(dtype=float)),
        )

        aliased = _aliased_term(np.asarray(model.exog), list(model.exog_names))
        if aliased is not None:
            logger.error("Design matrix is rank-deficient at term '%s'", aliased)
            raise ModelSpecificationError(
                f"Design matrix is rank-deficient: '{aliased}' is collinear with the "
                f"preceding terms and has no estimable coefficient. A constant "
                f"intervention indicator or too many harmonics for the data are "
                f"typical causes."
            )

        scale = "X2" if self.family == "quasipoisson" else None
        result = model.fit(scale=scale)
        if not result.converged:
            logger.error("IRLS did not converge for %s", self.formula)
            raise ConvergenceError(f"IRLS did not converge when fitting '{self.formula}'.")

        logger.debug(
            "Fitted %s: deviance=%.4f on %d df, dispersion=%.4f",
            self.formula, result.deviance, result.df_resid, result.scale,
        )
        return ITSResult(result, self, frame)

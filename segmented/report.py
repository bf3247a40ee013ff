"""
The fixed interrupted time series analysis sequence.

:func:`run_analysis` validates the data, describes it, then fits four
nested models, each adding one refinement:

1. ``poisson``: step change and trend, Poisson errors.
2. ``quasipoisson``: same terms, standard errors scaled for overdispersion.
3. ``seasonal``: adds harmonic seasonal terms.
4. ``slope_change``: adds the intervention × time interaction.

Residual ACF/PACF are computed for models 2-4, model 3 is tested against
model 4 with an F-test, and model 3 supplies the fitted, counterfactual and
deseasonalized prediction curves. Any failure stops the run at that step.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager

import pandas as pd

from .comparison import FTestResult, compare
from .config import AnalysisConfig
from .data import load_observations
from .descriptive import describe
from .diagnostics import significant_lags
from .estimators.poisson import ITSResult, PoissonITS

logger = logging.getLogger(__name__)

MODEL_NAMES = ("poisson", "quasipoisson", "seasonal", "slope_change")


@contextmanager
def _step(name: str):
    logger.info("Step: %s", name)
    try:
        yield
    except Exception:
        logger.error("Analysis stopped at step: %s", name)
        raise


class AnalysisReport:
    """Every intermediate result of :func:`run_analysis`."""

    def __init__(
        self,
        config: AnalysisConfig,
        data: pd.DataFrame,
        description: pd.DataFrame,
        description_by_period: pd.DataFrame,
        models: dict[str, ITSResult],
        acf: dict[str, pd.Series],
        pacf: dict[str, pd.Series],
        slope_change_test: FTestResult,
        predictions: pd.DataFrame,
    ) -> None:
        self.config = config
        self.data = data
        self.description = description
        self.description_by_period = description_by_period
        self.models = models
        self.acf = acf
        self.pacf = pacf
        self.slope_change_test = slope_change_test
        self.predictions = predictions

    @property
    def overdispersion(self) -> float:
        """Pearson dispersion of the Poisson model."""
        return self.models["poisson"].pearson_dispersion

    def autocorrelated_lags(self, name: str) -> list[int]:
        """ACF lags of model ``name`` outside the white-noise band."""
        return significant_lags(self.acf[name], len(self.data), self.config.alpha)

    def summary(self) -> str:
        cols = self.config.columns
        lines = [
            "",
            f"Interrupted Time Series Analysis: {cols.intervention} → {cols.outcome}",
            "═" * 66,
            "",
            "Descriptive statistics",
            "─" * 66,
            self.description.to_string(float_format=lambda v: f"{v:.2f}"),
            "",
            f"By {cols.intervention}",
            "─" * 66,
            self.description_by_period.to_string(float_format=lambda v: f"{v:.2f}"),
            "",
            "Models (step rate ratio at the first post-intervention month)",
            "─" * 66,
        ]
        for name in MODEL_NAMES:
            m = self.models[name]
            lo, hi = m.rate_ratio_conf_int
            lines.append(
                f"  {name:<14} RR = {m.rate_ratio:.4f}  [{lo:.4f}, {hi:.4f}]  "
                f"dispersion = {m.dispersion:.4f}"
            )
        lines += [
            "",
            f"  Poisson overdispersion (Pearson χ²/df): {self.overdispersion:.4f}",
        ]
        for name in MODEL_NAMES[1:]:
            lags = self.autocorrelated_lags(name)
            lines.append(f"  {name:<14} residual ACF beyond band at lags: {lags or 'none'}")
        lines.append(self.slope_change_test.summary())
        for name in MODEL_NAMES:
            lines.append(self.models[name].summary())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


def _prediction_table(model: ITSResult, config: AnalysisConfig) -> pd.DataFrame:
    cols = config.columns
    grid = model.prediction_grid(resolution=config.grid_resolution)
    per, month = config.per, config.reference_month
    return pd.DataFrame({
        cols.time: grid[cols.time],
        cols.intervention: grid[cols.intervention],
        "fitted": model.predict(grid, per=per),
        "counterfactual": model.counterfactual(grid, per=per),
        "deseasonalized": model.deseasonalized(grid, month=month, per=per),
        "deseasonalized_counterfactual": model.deseasonalized(
            grid.assign(**{cols.intervention: 0}), month=month, per=per
        ),
    })


def run_analysis(data: pd.DataFrame, config: AnalysisConfig | None = None) -> AnalysisReport:
    """
    Run the full analysis sequence on one monthly dataset.

    Parameters
    ----------
    data : pd.DataFrame
        Monthly observations with the columns named in ``config.columns``.
    config : AnalysisConfig, optional
        Defaults to ``AnalysisConfig()``.

    Raises
    ------
    DataValidationError, ModelSpecificationError, ConvergenceError
        From whichever step fails; the run does not continue past it.
    """
    config = config or AnalysisConfig()
    cols = config.columns

    with _step("validate observations"):
        data = load_observations(data, cols)

    with _step("describe"):
        variables = cols.required
        description = describe(data, variables)
        description_by_period = describe(
            data, [c for c in variables if c != cols.intervention], by=cols.intervention,
        )

    models: dict[str, ITSResult] = {}
    specs = {
        "poisson": dict(family="poisson"),
        "quasipoisson": dict(family="quasipoisson"),
        "seasonal": dict(family="quasipoisson", harmonics=config.harmonics, period=config.period),
        "slope_change": dict(
            family="quasipoisson", harmonics=config.harmonics, period=config.period, slope_change=True,
        ),
    }
    for name, kwargs in specs.items():
        with _step(f"fit {name} model"):
            models[name] = PoissonITS.from_columns(cols, **kwargs).fit(data)

    dispersion = models["poisson"].pearson_dispersion
    if dispersion > 1:
        logger.warning("Poisson model is overdispersed (Pearson χ²/df = %.4f)", dispersion)

    max_lag = min(config.max_lag, len(data) // 2 - 1)
    if max_lag < config.max_lag:
        logger.warning("max_lag reduced from %d to %d for %d observations", config.max_lag, max_lag, len(data))

    acf, pacf = {}, {}
    with _step("residual autocorrelation"):
        for name in MODEL_NAMES[1:]:
            acf[name] = models[name].autocorrelation(max_lag)
            pacf[name] = models[name].partial_autocorrelation(max_lag)
            lags = significant_lags(acf[name], len(data), config.alpha)
            if lags:
                logger.warning("Residuals of the %s model are autocorrelated at lags %s", name, lags)

    with _step("compare seasonal and slope-change models"):
        slope_change_test = compare(models["seasonal"], models["slope_change"])

    with _step("predict"):
        predictions = _prediction_table(models["seasonal"], config)

    return AnalysisReport(
        config=config,
        data=data,
        description=description,
        description_by_period=description_by_period,
        models=models,
        acf=acf,
        pacf=pacf,
        slope_change_test=slope_change_test,
        predictions=predictions,
    )

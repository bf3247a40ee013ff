"""
F-test for nested quasi-likelihood models.

The convention is that of R's ``anova(restricted, full, test = "F")`` for
GLMs::

    F = ((D_restricted - D_full) / (df_restricted - df_full)) / phi_full

where ``D`` is the deviance, ``df`` the residual degrees of freedom and
``phi_full`` the dispersion of the larger model (the Pearson estimate for
quasi-Poisson, 1 for Poisson). ``F`` is referred to an F distribution with
``(df_restricted - df_full, df_full)`` degrees of freedom.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy import stats

from ._exceptions import ComparisonError

logger = logging.getLogger(__name__)

# Relative slack for IRLS convergence in the deviance difference
_DEVIANCE_TOL = 1e-6


@dataclass(frozen=True)
class FTestResult:
    """Outcome of :func:`compare`."""

    statistic: float
    pvalue: float
    df_num: float
    """Number of extra parameters in the larger model."""
    df_denom: float
    """Residual degrees of freedom of the larger model."""
    deviance_diff: float
    dispersion: float
    """Dispersion of the larger model used to scale the deviance difference."""
    restricted_terms: tuple[str, ...]
    full_terms: tuple[str, ...]

    @property
    def added_terms(self) -> list[str]:
        return [t for t in self.full_terms if t not in self.restricted_terms]

    def summary(self) -> str:
        lines = [
            "",
            "Nested Model F-test",
            "─" * 50,
            f"  Added terms          : {', '.join(self.added_terms)}",
            f"  Deviance reduction   : {self.deviance_diff:>10.4f}  on {self.df_num:.0f} df",
            f"  Dispersion           : {self.dispersion:>10.4f}",
            f"  F statistic          : {self.statistic:>10.4f}  on ({self.df_num:.0f}, {self.df_denom:.0f}) df",
            f"  p-value              : {self.pvalue:>10.4f}",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()


def _check_comparable(a, b) -> None:
    if a.family != b.family:
        raise ComparisonError(f"Models must share a family. Got '{a.family}' and '{b.family}'.")
    if a.outcome != b.outcome or a.offset != b.offset:
        raise ComparisonError("Models must share the same outcome and offset.")
    ra, rb = a.statsmodels_result.model, b.statsmodels_result.model
    if ra.endog.shape != rb.endog.shape or not np.array_equal(ra.endog, rb.endog):
        raise ComparisonError("Models must be fitted to the same observations.")
    if not np.allclose(ra.offset, rb.offset):
        raise ComparisonError("Models must be fitted with the same offset values.")


def _check_shared_columns(restricted, full) -> None:
    """Each design column of the smaller model must appear unchanged in the larger one."""
    r, f = restricted.statsmodels_result.model, full.statsmodels_result.model
    full_names = list(f.exog_names)
    for j, name in enumerate(r.exog_names):
        if not np.allclose(r.exog[:, j], f.exog[:, full_names.index(name)]):
            raise ComparisonError(
                f"Models are not nested: column '{name}' differs between the two designs. "
                f"Check that both models use the same seasonal period."
            )


def compare(model_a, model_b) -> FTestResult:
    """
    F-test of two nested models fitted to the same data.

    The models may be given in either order; the one with fewer residual
    degrees of freedom is treated as the larger model.

    Raises
    ------
    ComparisonError
        If the models differ in family, outcome, offset or observations, the
        smaller model's terms are not a strict subset of the larger's, a
        shared term is built from different values (e.g. a different
        seasonal period), or the larger model fits worse.
    """
    _check_comparable(model_a, model_b)

    if model_a.df_resid > model_b.df_resid:
        restricted, full = model_a, model_b
    else:
        restricted, full = model_b, model_a

    extra = set(full.terms) - set(restricted.terms)
    if not set(restricted.terms) < set(full.terms):
        raise ComparisonError(
            f"Models are not nested: {restricted.terms} is not a strict subset of {full.terms}."
        )
    _check_shared_columns(restricted, full)

    df_num = restricted.df_resid - full.df_resid
    df_denom = full.df_resid
    deviance_diff = restricted.deviance - full.deviance
    if deviance_diff < -_DEVIANCE_TOL * max(1.0, full.deviance):
        raise ComparisonError(
            f"Models are not nested: the larger model has the higher deviance "
            f"({full.deviance:.4f} > {restricted.deviance:.4f})."
        )
    deviance_diff = max(deviance_diff, 0.0)
    dispersion = full.dispersion
    statistic = deviance_diff / df_num / dispersion
    pvalue = float(stats.f.sf(statistic, df_num, df_denom))

    logger.info(
        "F-test for %s: F=%.4f on (%.0f, %.0f) df, p=%.4f",
        sorted(extra), statistic, df_num, df_denom, pvalue,
    )
    return FTestResult(
        statistic=float(statistic),
        pvalue=pvalue,
        df_num=float(df_num),
        df_denom=float(df_denom),
        deviance_diff=float(deviance_diff),
        dispersion=float(dispersion),
        restricted_terms=tuple(restricted.terms),
        full_terms=tuple(full.terms),
    )

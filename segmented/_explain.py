"""
Narrative explanation renderer for interrupted time series results.

:func:`explain_its` takes a fitted ``ITSResult`` and returns a formatted
multi-line string. ``ITSResult.executive_summary()`` calls it.
"""
from __future__ import annotations

_SEP = "━" * 66


# ── Shared helpers ─────────────────────────────────────────────────────────────

def _fmt_p(p: float) -> str:
    if p < 0.001:
        return "p < 0.001"
    return f"p = {p:.3f}"


def _fmt_ci(lo: float, hi: float) -> str:
    return f"[{lo:.4f}, {hi:.4f}]"


def _pct_phrase(ratio: float) -> str:
    change = (ratio - 1) * 100
    direction = "increase" if change >= 0 else "decrease"
    return f"a {abs(change):.1f}% {direction}"


# ── Section builders ───────────────────────────────────────────────────────────

def _model_section(result) -> str:
    I, T = result._intervention, result._time
    family_note = (
        "Standard errors are scaled by the Pearson dispersion estimate "
        f"({result.dispersion:.4f}) to allow for overdispersion (quasi-Poisson)."
        if result.family == "quasipoisson" else
        "Counts are assumed to be Poisson, with variance equal to the mean."
    )
    lines = [
        "METHOD",
        f"Segmented Poisson regression models the monthly rate of {result._outcome} "
        f"as a log-linear function of time ({T}) with a step at the intervention "
        f"({I}), using log({result._offset}) as an offset so that coefficients "
        f"act multiplicatively on the rate. {family_note}",
    ]
    if result._harmonics:
        pairs = result._harmonics
        lines.append(
            f"Seasonality is adjusted for with {pairs} sine/cosine "
            f"{'pair' if pairs == 1 else 'pairs'} of period {result._period}."
        )
    if result._has_slope_change:
        lines.append(
            f"An {I} × {T} interaction lets the trend change slope after the intervention."
        )
    return "\n".join(lines)


def _assumptions_section(assumptions: list) -> str:
    n = len(assumptions)
    n_u = sum(1 for a in assumptions if not a.testable)
    n_t = n - n_u
    lines = [
        "ASSUMPTIONS",
        f"{n_u} of the {n} required assumptions {'is' if n_u == 1 else 'are'} untestable "
        f"and must be justified on substantive grounds; {n_t} can be checked "
        f"with the residual diagnostics and refutation checks.",
        "",
    ]
    for a in assumptions:
        lines.append(f"  {a.fmt_tag()}  {a.name}")
    return "\n".join(lines)


# ── Method-specific explanation ────────────────────────────────────────────────

def _step_when(result) -> str:
    if result._has_slope_change:
        return f"At the first month after {result._intervention} ({result._time} = {result.intervention_time:g})"
    return f"Following {result._intervention}"


def explain_its(result) -> str:
    I, Y = result._intervention, result._outcome
    lo, hi = result.rate_ratio_conf_int

    result_lines = [
        "RESULT",
        f"{_step_when(result)}, the rate of {Y} shows {_pct_phrase(result.rate_ratio)} "
        f"relative to the pre-intervention trend (rate ratio = {result.rate_ratio:.4f}, "
        f"95% CI: {_fmt_ci(lo, hi)}, {_fmt_p(result.pvalue)}).",
        "",
        f"Before the intervention the rate changed by a factor of "
        f"{result.trend_ratio:.4f} per month.",
    ]
    if result._has_slope_change:
        result_lines.append(
            f"After the intervention the monthly trend was multiplied by a further "
            f"{result.slope_change_ratio:.4f}."
        )

    blocks = [
        "\n".join([_SEP, "Executive Summary — Interrupted Time Series",
                   f"  {I} → {Y}  |  family: {result.family}", _SEP]),
        _model_section(result),
        _assumptions_section(result.assumptions),
        "\n".join(result_lines),
        "\n".join([
            "CAVEATS",
            "The counterfactual is the pre-intervention trend projected forward. "
            "Any other change that coincides with the intervention is absorbed into "
            "the estimate. Residual autocorrelation, if present, makes the confidence "
            "interval too narrow; check the residual ACF/PACF before relying on it.",
        ]),
        _SEP,
    ]
    return "\n\n".join(blocks)

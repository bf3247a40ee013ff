from __future__ import annotations

from dataclasses import dataclass

INFERENCE = "inference"
ESTIMATE = "estimate"


@dataclass(frozen=True)
class Assumption:
    """
    A modelling assumption behind an interrupted time series estimate.

    ``ITSResult.assumptions`` lists them. Testable assumptions have a
    matching refutation check or diagnostic; the others rest on knowledge
    of the policy and the setting.
    """

    name: str
    testable: bool

    def fmt_tag(self) -> str:
        return "[  testable  ]" if self.testable else "[ untestable ]"


@dataclass(frozen=True)
class RefutationCheck:
    """
    Result of a single refutation check.

    ``bears_on`` says what a failure undermines: ``"inference"`` for checks
    on the residuals (the standard errors and p-values are unreliable) or
    ``"estimate"`` for checks that refit the model (the step change itself
    is fragile).
    """

    name: str
    passed: bool
    detail: str
    bears_on: str = ESTIMATE

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"

    def __repr__(self) -> str:
        return f"RefutationCheck({self.status!r}, {self.name!r})"


_SECTIONS = [
    (INFERENCE, "Residual checks (standard errors)"),
    (ESTIMATE, "Refit checks (step estimate)"),
]

_VERDICTS = {
    INFERENCE: "Confidence intervals and p-values are likely too narrow.",
    ESTIMATE: "The step change is sensitive to the model specification.",
}


def render_checks(title: str, checks: list[RefutationCheck]) -> str:
    """Checks grouped by what they bear on, followed by a verdict per group."""
    lines = ["", title, "─" * 50]
    for kind, heading in _SECTIONS:
        group = [c for c in checks if c.bears_on == kind]
        if not group:
            continue
        lines.append(f"  {heading}")
        for check in group:
            lines.append(f"    [{check.status}]  {check.name}: {check.detail}")
    lines.append("")

    failed = {c.bears_on for c in checks if not c.passed}
    if not failed:
        lines.append("  All checks passed.")
    for kind, _ in _SECTIONS:
        if kind in failed:
            lines.append(f"  {_VERDICTS[kind]}")
    lines.append("")
    return "\n".join(lines)

"""
Analysis configuration.

Estimators are configured through their constructor arguments. The report
pipeline in :mod:`segmented.report` takes a single :class:`AnalysisConfig`,
which can also be read from a YAML or JSON file::

    columns:
      outcome: aces
      intervention: smokban
    harmonics: 2
    max_lag: 24
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from ._exceptions import ConfigurationError


@dataclass(frozen=True)
class ColumnSpec:
    """Names of the dataset columns, one per role in the analysis."""

    year: str = "year"
    month: str = "month"
    time: str = "time"
    """Elapsed months since the start of the study, strictly increasing."""
    outcome: str = "outcome"
    """Monthly event count."""
    intervention: str = "intervention"
    """0 before the policy change, 1 at and after it."""
    population: str = "pop"
    standardized_population: str = "stdpop"
    """Rate denominator; its log enters every model as the offset."""

    @property
    def required(self) -> list[str]:
        return [getattr(self, f.name) for f in fields(self)]


@dataclass(frozen=True)
class AnalysisConfig:
    """Settings for the fixed four-model report sequence."""

    columns: ColumnSpec = field(default_factory=ColumnSpec)
    harmonics: int = 2
    """Number of sine/cosine pairs in the seasonal models."""
    period: int = 12
    max_lag: int = 24
    """Largest lag for residual ACF/PACF."""
    per: float = 100_000
    """Rates are expressed per this many people."""
    reference_month: float = 6
    """Month held fixed for deseasonalized predictions."""
    grid_resolution: int = 10
    """Prediction grid points per month."""
    alpha: float = 0.05

    def __post_init__(self) -> None:
        if self.harmonics < 1:
            raise ConfigurationError("harmonics must be at least 1 for the seasonal models.")
        if self.period < 2:
            raise ConfigurationError("period must be at least 2.")
        if self.max_lag < 1:
            raise ConfigurationError("max_lag must be a positive integer.")
        if self.per <= 0:
            raise ConfigurationError("per must be positive.")
        if not 0 < self.reference_month <= self.period:
            raise ConfigurationError(
                f"reference_month must lie in (0, {self.period}]. Got {self.reference_month}."
            )
        if self.grid_resolution < 1:
            raise ConfigurationError("grid_resolution must be a positive integer.")
        if not 0 < self.alpha < 1:
            raise ConfigurationError(f"alpha must lie in (0, 1). Got {self.alpha}.")


_INT_FIELDS = {"harmonics", "period", "max_lag", "grid_resolution"}
_FLOAT_FIELDS = {"per", "reference_month", "alpha"}


def _read(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_config(path: str | Path) -> AnalysisConfig:
    """
    Read an :class:`AnalysisConfig` from a YAML or JSON file.

    Unspecified fields keep their defaults. Unknown keys are rejected so that
    typos do not silently fall back to a default.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ConfigurationError
        If the file is not a mapping, has unknown keys, or has values of the
        wrong type.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    raw = _read(path)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration must be a mapping.")

    known = {f.name for f in fields(AnalysisConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}. Known keys: {sorted(known)}")

    kwargs: dict[str, Any] = {}
    columns = raw.get("columns") or {}
    if not isinstance(columns, dict):
        raise ConfigurationError("'columns' must be a mapping of role to column name.")
    column_roles = {f.name for f in fields(ColumnSpec)}
    bad_roles = sorted(set(columns) - column_roles)
    if bad_roles:
        raise ConfigurationError(f"Unknown column roles: {bad_roles}. Known roles: {sorted(column_roles)}")
    for role, name in columns.items():
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Column name for '{role}' must be a non-empty string.")
    kwargs["columns"] = replace(ColumnSpec(), **columns)

    for key in _INT_FIELDS & set(raw):
        value = raw[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"'{key}' must be an integer. Got {value!r}.")
        kwargs[key] = value
    for key in _FLOAT_FIELDS & set(raw):
        value = raw[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"'{key}' must be a number. Got {value!r}.")
        kwargs[key] = float(value)

    return AnalysisConfig(**kwargs)

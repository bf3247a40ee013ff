import logging

from ._exceptions import (
    ComparisonError,
    ConfigurationError,
    ConvergenceError,
    DataValidationError,
    ModelSpecificationError,
)
from .config import AnalysisConfig, ColumnSpec, load_config
from .data import add_harmonics, load_observations, make_prediction_grid, simulate_series
from .descriptive import describe
from .diagnostics import autocorrelation, partial_autocorrelation, ljung_box, pearson_dispersion
from .comparison import FTestResult, compare
from .estimators.poisson import PoissonITS, ITSResult
from .refutations import ITSRefutationReport, RefutationCheck
from .refutations._check import Assumption
from .report import AnalysisReport, run_analysis

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ColumnSpec", "AnalysisConfig", "load_config",
    "load_observations", "add_harmonics", "make_prediction_grid", "simulate_series",
    "describe",
    "autocorrelation", "partial_autocorrelation", "ljung_box", "pearson_dispersion",
    "compare", "FTestResult",
    "PoissonITS", "ITSResult",
    "ITSRefutationReport", "RefutationCheck", "Assumption",
    "run_analysis", "AnalysisReport",
    "DataValidationError", "ModelSpecificationError", "ConvergenceError",
    "ComparisonError", "ConfigurationError",
]

class DataValidationError(ValueError):
    """
    Raised when the observation data cannot be analysed as-is.

    Covers missing columns, negative or non-integer counts, non-positive
    populations, and an intervention indicator that is not a single
    0 → 1 switch over time.
    """
    pass


class ModelSpecificationError(ValueError):
    """
    Raised when a model cannot be set up on the data.

    The most common cause is a rank-deficient design matrix: a term that is
    a linear combination of the others (for example an intervention
    indicator that never changes) has no estimable coefficient.
    """
    pass


class ConvergenceError(RuntimeError):
    """Raised when the IRLS solver fails to converge."""
    pass


class ComparisonError(ValueError):
    """Raised when two fitted models are not nested and cannot be compared."""
    pass


class ConfigurationError(ValueError):
    """Raised when an analysis configuration is malformed."""
    pass

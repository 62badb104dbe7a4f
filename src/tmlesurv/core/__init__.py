"""Core utilities for tmlesurv.

This module provides shared infrastructure used across all analysis modules:
- exceptions: DomainError, InputShapeError and ConvergenceWarning
- engine: Dispatcher for detecting and handling Pandas vs Spark DataFrames
- validation: Input shape and schema checks
- reporting: Plain-language interpretation layer
"""

from tmlesurv.core.exceptions import DomainError, InputShapeError, ConvergenceWarning
from tmlesurv.core.engine import get_backend, is_pandas, is_spark, to_pandas
from tmlesurv.core.validation import (
    validate_input_schema,
    validate_survival_arrays,
    validate_grid_shape,
)
from tmlesurv.core.reporting import interpret_targeted_curve, median_survival_time

__all__ = [
    # Exceptions
    "DomainError",
    "InputShapeError",
    "ConvergenceWarning",
    # Engine
    "get_backend",
    "is_pandas",
    "is_spark",
    "to_pandas",
    # Validation
    "validate_input_schema",
    "validate_survival_arrays",
    "validate_grid_shape",
    # Reporting
    "interpret_targeted_curve",
    "median_survival_time",
]

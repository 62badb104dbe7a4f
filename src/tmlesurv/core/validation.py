"""Validation utilities for tmlesurv."""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from tmlesurv.core.exceptions import InputShapeError


def validate_input_schema(
    df: pd.DataFrame,
    duration_col: str,
    event_col: str,
    treatment_col: str,
    covariate_cols: Optional[Sequence[str]] = None,
) -> None:
    """Validate that the input DataFrame has the required schema.

    Args:
        df: Input pandas DataFrame.
        duration_col: Name of the duration column (positive integers).
        event_col: Name of the event column (0=censored, 1=event).
        treatment_col: Name of the binary treatment column.
        covariate_cols: Names of covariate columns, if any.

    Raises:
        InputShapeError: If required columns are missing or have wrong values.
        TypeError: If df is not a pandas DataFrame.
    """
    if not isinstance(df, pd.DataFrame):
        raise TypeError("df must be a pandas DataFrame")

    required = [duration_col, event_col, treatment_col, *(covariate_cols or [])]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InputShapeError(f"Columns not found in DataFrame: {missing}")

    if len(df) == 0:
        raise InputShapeError("DataFrame is empty")

    if not pd.api.types.is_numeric_dtype(df[duration_col]):
        raise InputShapeError(
            f"Duration column '{duration_col}' must be numeric, found {df[duration_col].dtype}"
        )

    if df[required].isnull().any().any():
        raise InputShapeError("Input columns must not contain NULL values")


def validate_survival_arrays(
    T_tilde: np.ndarray,
    Delta: np.ndarray,
    A: np.ndarray,
    t_max: int,
    n_covariate_rows: Optional[int] = None,
) -> None:
    """Check subject records against each other and against the time grid.

    Raises:
        InputShapeError: On any mismatch. Nothing is computed beforehand.
    """
    n = len(T_tilde)
    if n == 0:
        raise InputShapeError("At least one subject is required")
    if len(Delta) != n or len(A) != n:
        raise InputShapeError(
            f"T_tilde, Delta and A must have equal length, "
            f"got {n}, {len(Delta)}, {len(A)}"
        )
    if n_covariate_rows is not None and n_covariate_rows != n:
        raise InputShapeError(
            f"W has {n_covariate_rows} rows but there are {n} subjects"
        )
    if not np.all(np.isin(Delta, (0, 1))):
        raise InputShapeError("Delta must be binary (0 or 1)")
    if not np.all(np.isin(A, (0, 1))):
        raise InputShapeError("A must be binary (0 or 1)")
    if np.any(T_tilde != np.round(T_tilde)):
        raise InputShapeError("T_tilde must hold integer times on the grid 1..t_max")
    if T_tilde.min() < 1:
        raise InputShapeError(f"T_tilde must be >= 1, found min={T_tilde.min()}")
    if t_max < T_tilde.max():
        raise InputShapeError(
            f"Grid 1..{t_max} does not cover the observed time {int(T_tilde.max())}"
        )


def validate_grid_shape(array: np.ndarray, n_subjects: int, t_max: int, name: str) -> None:
    """Check that an estimate is laid out as (n_subjects, t_max)."""
    if array.shape != (n_subjects, t_max):
        raise InputShapeError(
            f"{name} must have shape ({n_subjects}, {t_max}), got {array.shape}"
        )

"""
Unified TMLE Survival Estimator.

This module provides a DataFrame-facing interface that fits the initial
nuisance estimates, targets the survival curve of each treatment arm and
builds simultaneous confidence bands. Pandas and PySpark inputs are both
accepted; Spark input is collected to the driver before fitting.
"""

from typing import Optional, Dict, Any, Union, Sequence

import pandas as pd
from pyspark.sql import DataFrame as SparkDataFrame

from tmlesurv.core.engine import get_backend, to_pandas
from tmlesurv.core.reporting import interpret_targeted_curve
from tmlesurv.core.validation import validate_input_schema
from tmlesurv.statistics.baselines import kaplan_meier
from tmlesurv.statistics.one_step import TargetingResult, target
from tmlesurv.statistics.simultaneous_ci import ConfidenceBand, confidence_band
from tmlesurv.survival.initial_fit import fit_initial
from tmlesurv.survival.nuisance import NuisanceBundle


class SurvivalTMLE:
    """Targeted estimation of treatment-specific survival curves.

    Attributes:
        backend: The detected backend of the fitted DataFrame ("pandas" or "spark").
        bundle: The initial nuisance estimates.

    Examples:
        >>> import pandas as pd
        >>> from tmlesurv import SurvivalTMLE
        >>> df = pd.DataFrame({
        ...     'duration': [2, 5, 3, 5, 1, 4],
        ...     'event': [1, 0, 1, 0, 1, 1],
        ...     'treated': [1, 1, 0, 0, 1, 0],
        ...     'age': [0.3, 1.2, 0.8, 0.1, 0.9, 0.5],
        ... })
        >>> model = SurvivalTMLE()
        >>> model.fit(df, 'duration', 'event', 'treated', covariate_cols=['age'])
        >>> model.target(arm=1)
        >>> print(model.survival_df(arm=1))
    """

    def __init__(self):
        """Initialize the SurvivalTMLE."""
        self.backend: Optional[str] = None
        self.bundle: Optional[NuisanceBundle] = None
        self._results: Dict[int, TargetingResult] = {}
        self._bands: Dict[int, ConfidenceBand] = {}
        self._is_fitted: bool = False
        self._stats: Dict[str, Any] = {}

    def fit(
        self,
        df: Union[pd.DataFrame, SparkDataFrame],
        duration_col: str,
        event_col: str,
        treatment_col: str,
        covariate_cols: Optional[Sequence[str]] = None,
        t_max: Optional[int] = None,
        **kwargs,
    ) -> "SurvivalTMLE":
        """Fit the initial nuisance estimates.

        Args:
            df: Input DataFrame (pandas or PySpark).
            duration_col: Name of the integer duration column.
            event_col: Name of the event indicator column (0=censored, 1=event).
            treatment_col: Name of the binary treatment column.
            covariate_cols: Names of the covariate columns, if any.
            t_max: Last grid time. Defaults to the largest duration.
            **kwargs: Learners and options passed to ``fit_initial``.

        Returns:
            Self for method chaining.

        Raises:
            TypeError: If df is not a pandas or PySpark DataFrame.
            InputShapeError: If columns are missing or inconsistent.
        """
        self.backend = get_backend(df)
        covariate_cols = list(covariate_cols or [])
        columns = [duration_col, event_col, treatment_col, *covariate_cols]
        local = to_pandas(df, columns=columns)
        validate_input_schema(local, duration_col, event_col, treatment_col, covariate_cols)

        self.bundle = fit_initial(
            T_tilde=local[duration_col].to_numpy(),
            Delta=local[event_col].to_numpy(),
            A=local[treatment_col].to_numpy(),
            W=local[covariate_cols].reset_index(drop=True) if covariate_cols else None,
            t_max=t_max,
            **kwargs,
        )
        self._results = {}
        self._bands = {}
        self._stats = {
            **self.bundle.data.summary(),
            "duration_col": duration_col,
            "event_col": event_col,
            "treatment_col": treatment_col,
            "covariate_cols": covariate_cols,
            **self.bundle.metadata,
        }
        self._is_fitted = True
        return self

    def _check_fitted(self) -> None:
        if not self._is_fitted:
            raise ValueError("Model has not been fitted. Call fit() first.")

    def target(self, arm: int = 1, **kwargs) -> TargetingResult:
        """Target the survival curve of ``arm``.

        Args:
            arm: Treatment arm (0 or 1).
            **kwargs: ``k_grid``, ``epsilon``, ``max_iterations``, ``method`` and
                other targeting options.

        Returns:
            TargetingResult.
        """
        self._check_fitted()
        result = target(self.bundle, arm, **kwargs)
        self._results[arm] = result
        self._bands.pop(arm, None)
        return result

    def result(self, arm: int = 1) -> TargetingResult:
        """Targeting result of ``arm``, targeting with defaults if needed."""
        self._check_fitted()
        if arm not in self._results:
            self.target(arm)
        return self._results[arm]

    def confidence_band(self, arm: int = 1, alpha: float = 0.05, **kwargs) -> ConfidenceBand:
        """Simultaneous confidence band for the targeted curve of ``arm``.

        Args:
            arm: Treatment arm (0 or 1).
            alpha: One minus the joint coverage. Default is 0.05 (95% band).
            **kwargs: ``n_draws`` and ``random_state``.
        """
        band = confidence_band(self.result(arm), alpha=alpha, **kwargs)
        self._bands[arm] = band
        return band

    def survival_df(self, arm: int = 1) -> pd.DataFrame:
        """Get the targeted survival curve with pointwise and simultaneous bounds.

        Returns:
            DataFrame with columns: duration, survival_probability, std_error,
            ci_lower, ci_upper, simultaneous_lower, simultaneous_upper.
        """
        result = self.result(arm)
        band = self._bands.get(arm) or self.confidence_band(arm)
        return band.to_frame(result.estimate)

    def summary(self) -> Dict[str, Any]:
        """Get a summary of the fitted model and the targeted arms."""
        self._check_fitted()
        return {
            **self._stats,
            "targeted_arms": sorted(self._results),
            "converged": {arm: r.converged for arm, r in self._results.items()},
            "is_fitted": self._is_fitted,
        }

    def interpret(self, arm: int = 1, time_unit: str = 'periods') -> Dict[str, Any]:
        """Generate a plain-language interpretation of the targeted curve.

        Args:
            arm: Treatment arm (0 or 1).
            time_unit: Label for the time axis (e.g., 'days', 'weeks').

        Returns:
            Dict containing 'summary' and 'structured_metrics'.
        """
        result = self.result(arm)
        band = self._bands.get(arm) or self.confidence_band(arm)
        try:
            unadjusted = kaplan_meier(self.bundle.data, arm)
        except ValueError:
            unadjusted = None
        return interpret_targeted_curve(
            arm=arm,
            estimate=result.estimate,
            se=band.se,
            multiplier=band.multiplier,
            converged=result.converged,
            n_iterations=result.n_iterations,
            unadjusted=unadjusted,
            time_unit=time_unit,
        )

    @property
    def is_fitted(self) -> bool:
        """Whether the model has been fitted."""
        return self._is_fitted

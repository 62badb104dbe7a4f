"""Initial nuisance estimation with scikit-learn classifiers.

Everything here is interchangeable: the targeting core only consumes the
resulting :class:`NuisanceBundle` and never looks at which model produced
it. Any classifier exposing ``fit`` and ``predict_proba`` can be plugged in
as a learner.

Hazards are fitted as pooled logistic regressions on the person-period
expansion, with time entered as indicator columns:

    failure:   P(T_tilde = t, Delta = 1 | T_tilde >= t, A, W)
    censoring: P(T_tilde = t, Delta = 0 | T_tilde >= t, A, W)
"""

from typing import Optional, Dict, Any

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.linear_model import LogisticRegression

from tmlesurv.survival.curve import DiscreteSurvival
from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData
from tmlesurv.survival.utils import to_person_period


def _default_classifier():
    return LogisticRegression(max_iter=1000)


def _learner_name(estimator) -> str:
    return type(estimator).__name__


class HazardLearner:
    """Discrete-time hazard fitted by a classifier on person-period rows.

    Attributes:
        estimator: Unfitted classifier template, cloned on every fit.
        fitted_times: Grid times present in the training rows.
    """

    def __init__(self, estimator=None):
        self.estimator = estimator if estimator is not None else _default_classifier()
        self._model = None
        self._constant: Optional[float] = None
        self._covariates = []
        self.fitted_times = None

    def _design(self, frame: pd.DataFrame) -> pd.DataFrame:
        design = frame[["A", *self._covariates]].astype(np.float64)
        dummies = pd.get_dummies(
            pd.Categorical(frame["t"], categories=self.fitted_times), prefix="t"
        ).astype(np.float64)
        dummies.index = design.index
        return pd.concat([design, dummies], axis=1)

    def fit(self, data: SurvivalData, event: str = "failure") -> "HazardLearner":
        """Fit the hazard of ``event`` ("failure" or "censoring")."""
        rows = to_person_period(data, event=event)
        self._covariates = [] if data.W is None else list(data.W.columns)
        self.fitted_times = np.sort(rows["t"].unique())

        outcome = rows["event"].to_numpy()
        if np.unique(outcome).size < 2:
            # A single observed class leaves nothing to learn
            self._constant = float(outcome[0])
            self._model = None
            return self

        self._constant = None
        self._model = clone(self.estimator)
        design = self._design(rows)
        self._model.fit(design.to_numpy(), outcome)
        return self

    def predict(self, data: SurvivalData, arm: int) -> DiscreteSurvival:
        """Hazard curve of every subject with treatment set to ``arm``."""
        if self.fitted_times is None:
            raise ValueError("Model has not been fitted. Call fit() first.")

        n_times = len(self.fitted_times)
        if self._constant is not None:
            hazard = np.full((data.n, n_times), self._constant)
        else:
            grid = pd.DataFrame({
                "t": np.tile(self.fitted_times, data.n),
                "A": arm,
            })
            if data.W is not None:
                covariates = data.W.iloc[np.repeat(np.arange(data.n), n_times)]
                grid = pd.concat([grid, covariates.reset_index(drop=True)], axis=1)
            proba = self._model.predict_proba(self._design(grid).to_numpy())
            positive = list(self._model.classes_).index(1)
            hazard = proba[:, positive].reshape(data.n, n_times)

        return DiscreteSurvival.from_sparse_hazard(
            self.fitted_times, np.clip(hazard, 0.0, 1.0), data.t_max
        )


class PropensityLearner:
    """P(A = 1 | W) from a classifier, clipped away from 0 and 1."""

    def __init__(self, estimator=None, floor: float = 0.01):
        if not 0 < floor < 0.5:
            raise ValueError(f"floor must be in (0, 0.5), got {floor}")
        self.estimator = estimator if estimator is not None else _default_classifier()
        self.floor = floor
        self._model = None
        self._constant: Optional[float] = None

    def fit(self, data: SurvivalData) -> "PropensityLearner":
        if data.W is None or data.W.shape[1] == 0 or np.unique(data.A).size < 2:
            self._constant = float(data.A.mean())
            self._model = None
            return self
        self._constant = None
        self._model = clone(self.estimator)
        self._model.fit(data.W.to_numpy(dtype=np.float64), data.A)
        return self

    def predict(self, data: SurvivalData) -> np.ndarray:
        if self._constant is None and self._model is None:
            raise ValueError("Model has not been fitted. Call fit() first.")
        if self._constant is not None:
            g1W = np.full(data.n, self._constant)
        else:
            proba = self._model.predict_proba(data.W.to_numpy(dtype=np.float64))
            g1W = proba[:, list(self._model.classes_).index(1)]
        return np.clip(g1W, self.floor, 1.0 - self.floor)


def fit_initial(
    T_tilde,
    Delta,
    A,
    W=None,
    t_max: Optional[int] = None,
    failure_learner=None,
    censoring_learner=None,
    propensity_learner=None,
    propensity_floor: float = 0.01,
) -> NuisanceBundle:
    """Fit the initial failure hazard, censoring hazard and propensity score.

    Args:
        T_tilde: Observed last times (positive integers).
        Delta: Failure indicators.
        A: Binary treatment.
        W: Covariates (DataFrame or 2-D array), optional.
        t_max: Last grid time. Defaults to max(T_tilde).
        failure_learner: Classifier for the failure hazard.
        censoring_learner: Classifier for the censoring hazard.
        propensity_learner: Classifier for P(A = 1 | W).
        propensity_floor: Propensity scores are clipped to [floor, 1 - floor].

    Returns:
        NuisanceBundle carrying the subject records.

    Raises:
        InputShapeError: If the records disagree in length or with the grid.
    """
    data = SurvivalData(T_tilde=T_tilde, Delta=Delta, A=A, W=W, t_max=t_max)

    failure = HazardLearner(failure_learner).fit(data, event="failure")
    censoring = HazardLearner(censoring_learner).fit(data, event="censoring")
    propensity = PropensityLearner(propensity_learner, floor=propensity_floor).fit(data)

    metadata: Dict[str, Any] = {
        "failure_learner": _learner_name(failure.estimator),
        "censoring_learner": _learner_name(censoring.estimator),
        "propensity_learner": _learner_name(propensity.estimator),
    }
    return NuisanceBundle(
        failure={arm: failure.predict(data, arm) for arm in (0, 1)},
        censoring={arm: censoring.predict(data, arm) for arm in (0, 1)},
        g1W=propensity.predict(data),
        data=data,
        metadata=metadata,
    )

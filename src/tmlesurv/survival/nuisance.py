"""Subject records and the nuisance-parameter bundle consumed by targeting."""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any

import numpy as np
import pandas as pd

from tmlesurv.core.exceptions import DomainError, InputShapeError
from tmlesurv.core.validation import validate_survival_arrays, validate_grid_shape
from tmlesurv.survival.curve import DiscreteSurvival


@dataclass(frozen=True, eq=False)
class SurvivalData:
    """Right-censored discrete-time records, one entry per subject.

    Attributes:
        T_tilde: Last observed time of each subject (positive integers).
        Delta: 1 if the failure was observed at T_tilde, 0 if censored there.
        A: Binary treatment.
        W: Covariates. Only the nuisance estimator looks at them.
        t_max: Last grid time. Defaults to max(T_tilde).
    """
    T_tilde: np.ndarray
    Delta: np.ndarray
    A: np.ndarray
    W: Optional[pd.DataFrame] = None
    t_max: Optional[int] = None

    def __post_init__(self):
        T_tilde = np.asarray(self.T_tilde, dtype=np.float64).ravel()
        Delta = np.asarray(self.Delta).ravel()
        A = np.asarray(self.A).ravel()
        W = self.W
        if W is not None and not isinstance(W, pd.DataFrame):
            W = pd.DataFrame(np.asarray(W))
        if len(T_tilde) == 0:
            raise InputShapeError("At least one subject is required")
        t_max = int(T_tilde.max()) if self.t_max is None else int(self.t_max)

        validate_survival_arrays(
            T_tilde, Delta, A, t_max,
            n_covariate_rows=None if W is None else len(W),
        )
        object.__setattr__(self, "T_tilde", T_tilde.astype(np.int64))
        object.__setattr__(self, "Delta", Delta.astype(np.int64))
        object.__setattr__(self, "A", A.astype(np.int64))
        object.__setattr__(self, "W", None if W is None else W.reset_index(drop=True))
        object.__setattr__(self, "t_max", t_max)

    @property
    def n(self) -> int:
        return len(self.T_tilde)

    @property
    def times(self) -> np.ndarray:
        return np.arange(1, self.t_max + 1)

    def at_risk(self) -> np.ndarray:
        """Y(t) = 1{T_tilde >= t}, shape (n, t_max)."""
        return (self.T_tilde[:, np.newaxis] >= self.times[np.newaxis, :]).astype(np.float64)

    def failure_counts(self) -> np.ndarray:
        """dN(t) = 1{T_tilde = t, Delta = 1}, shape (n, t_max)."""
        observed = self.T_tilde[:, np.newaxis] == self.times[np.newaxis, :]
        return (observed & (self.Delta[:, np.newaxis] == 1)).astype(np.float64)

    def survived_past(self) -> np.ndarray:
        """1{T_tilde > t}, shape (n, t_max)."""
        return (self.T_tilde[:, np.newaxis] > self.times[np.newaxis, :]).astype(np.float64)

    def summary(self) -> Dict[str, Any]:
        return {
            "n_samples": self.n,
            "t_max": self.t_max,
            "total_events": int(self.Delta.sum()),
            "event_rate": float(self.Delta.mean()),
            "n_treated": int(self.A.sum()),
            "n_control": int(self.n - self.A.sum()),
        }


@dataclass(frozen=True, eq=False)
class NuisanceBundle:
    """Initial estimates needed to target the survival curve of either arm.

    ``failure[a]`` and ``censoring[a]`` hold the conditional curves with the
    treatment set to ``a`` for every subject; ``g1W`` is P(A = 1 | W) and
    ``data`` the records the estimates were fitted on.
    The bundle is never mutated: the update engine replaces the failure
    curve of the targeted arm through :meth:`with_failure` and everything
    else is shared as is.
    """
    failure: Dict[int, DiscreteSurvival]
    censoring: Dict[int, DiscreteSurvival]
    g1W: np.ndarray
    data: Optional[SurvivalData] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        g1W = np.array(self.g1W, dtype=np.float64).ravel()
        if np.isnan(g1W).any() or (g1W < 0).any() or (g1W > 1).any():
            raise DomainError("Propensity scores must lie in [0, 1]")
        for name, curves in (("failure", self.failure), ("censoring", self.censoring)):
            if set(curves) != {0, 1}:
                raise InputShapeError(f"{name} curves are required for arms 0 and 1")
        shape = self.failure[1].shape
        for curve in (*self.failure.values(), *self.censoring.values()):
            if curve.shape != shape:
                raise InputShapeError(
                    f"All nuisance curves must share shape {shape}, got {curve.shape}"
                )
        if len(g1W) != shape[0]:
            raise InputShapeError(
                f"g1W has {len(g1W)} entries but the curves have {shape[0]} subjects"
            )
        g1W.setflags(write=False)
        if self.data is not None:
            self.check_against(self.data)
        object.__setattr__(self, "failure", dict(self.failure))
        object.__setattr__(self, "censoring", dict(self.censoring))
        object.__setattr__(self, "g1W", g1W)

    @classmethod
    def from_hazards(
        cls,
        failure_hazard_1,
        failure_hazard_0,
        censoring_hazard_1,
        censoring_hazard_0,
        g1W,
        data: Optional[SurvivalData] = None,
        **metadata,
    ) -> "NuisanceBundle":
        """Build a bundle from (n_subjects, t_max) hazard arrays."""
        return cls(
            failure={
                1: DiscreteSurvival.from_hazard(failure_hazard_1),
                0: DiscreteSurvival.from_hazard(failure_hazard_0),
            },
            censoring={
                1: DiscreteSurvival.from_hazard(censoring_hazard_1),
                0: DiscreteSurvival.from_hazard(censoring_hazard_0),
            },
            g1W=g1W,
            data=data,
            metadata=metadata,
        )

    @property
    def n_subjects(self) -> int:
        return self.failure[1].n_subjects

    @property
    def t_max(self) -> int:
        return self.failure[1].t_max

    def propensity(self, arm: int) -> np.ndarray:
        """g(arm | W) for every subject."""
        _check_arm(arm)
        return self.g1W if arm == 1 else 1.0 - self.g1W

    def with_failure(self, arm: int, curve: DiscreteSurvival) -> "NuisanceBundle":
        """Return a new bundle whose failure curve for ``arm`` is replaced."""
        _check_arm(arm)
        if curve.shape != self.failure[arm].shape:
            raise InputShapeError(
                f"Replacement curve shape {curve.shape} does not match {self.failure[arm].shape}"
            )
        failure = dict(self.failure)
        failure[arm] = curve
        return replace(self, failure=failure)

    def check_against(self, data: SurvivalData) -> None:
        """Fail fast if the bundle was not fitted on ``data``."""
        validate_grid_shape(
            self.failure[1].hazard, data.n, data.t_max, "Nuisance hazard"
        )


def _check_arm(arm: int) -> None:
    if arm not in (0, 1):
        raise ValueError(f"Treatment arm must be 0 or 1, got {arm}")

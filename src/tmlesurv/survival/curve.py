"""Discrete-time hazard and survival curves.

A curve is stored per subject (one row per subject, one column per grid time
``1..t_max``). Hazard and survival are linked by the product-limit formula

    S(t) = prod_{s <= t} (1 - h(s)),    S(0) = 1

and the two conversions below are exact inverses up to floating precision for
hazards strictly below one.
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from tmlesurv.core.exceptions import DomainError


_TOL = 1e-10


def _as_2d(values) -> np.ndarray:
    array = np.asarray(values, dtype=np.float64)
    if array.ndim == 1:
        array = array[np.newaxis, :]
    if array.ndim != 2:
        raise ValueError(f"Expected a 1-D or 2-D array, got {array.ndim} dimensions")
    return array


def hazard_to_survival(hazard) -> np.ndarray:
    """Convert discrete hazards into survival probabilities.

    Args:
        hazard: Array of shape (n_subjects, t_max) or (t_max,) with values in [0, 1].

    Returns:
        Survival array of shape (n_subjects, t_max).

    Raises:
        DomainError: If any hazard is NaN or outside [0, 1].
    """
    hazard = _as_2d(hazard)
    if np.isnan(hazard).any():
        raise DomainError("Hazard contains NaN values")
    if (hazard < 0).any() or (hazard > 1).any():
        raise DomainError(
            f"Hazard must lie in [0, 1], found range "
            f"[{hazard.min():.6g}, {hazard.max():.6g}]"
        )
    # A hazard of exactly 1 makes the factor 0, and every later product stays 0
    return np.cumprod(1.0 - hazard, axis=1)


def survival_to_hazard(survival) -> np.ndarray:
    """Convert survival probabilities back into discrete hazards.

    Once survival reaches zero the hazard is reported as 1 for the remaining
    times, which is the canonical hazard of a curve that stays at zero.

    Raises:
        DomainError: If survival is outside [0, 1], increases over time, or
            becomes nonzero again after reaching zero.
    """
    survival = _as_2d(survival)
    if np.isnan(survival).any():
        raise DomainError("Survival contains NaN values")
    if (survival < -_TOL).any() or (survival > 1 + _TOL).any():
        raise DomainError("Survival must lie in [0, 1]")

    previous = np.hstack([np.ones((survival.shape[0], 1)), survival[:, :-1]])
    revived = (previous <= 0) & (survival > 0)
    if revived.any():
        rows = np.unique(np.nonzero(revived)[0])
        raise DomainError(
            f"Survival is zero and later nonzero for subjects {rows.tolist()[:10]}"
        )
    if (survival - previous > _TOL).any():
        raise DomainError("Survival must be non-increasing in time")

    with np.errstate(divide="ignore", invalid="ignore"):
        hazard = np.where(previous > 0, 1.0 - survival / previous, 1.0)
    return np.clip(hazard, 0.0, 1.0)


def survival_to_pdf(survival) -> np.ndarray:
    """Probability mass at each grid time, P(T = t) = S(t-1) - S(t)."""
    survival = _as_2d(survival)
    previous = np.hstack([np.ones((survival.shape[0], 1)), survival[:, :-1]])
    return previous - survival


def reindex_hazard(times: Sequence[int], hazard, t_max: int) -> np.ndarray:
    """Rebase hazards fitted on a sparse grid onto the canonical grid 1..t_max.

    Fitted models may omit grid times without events. Missing times inherit
    the most recent defined hazard (forward fill); times before the first
    defined one take the first defined hazard, their nearest neighbour.
    Values are never interpolated.

    Args:
        times: Grid times of the columns of ``hazard``.
        hazard: Array of shape (n_subjects, len(times)).
        t_max: Last time of the canonical grid.

    Returns:
        Array of shape (n_subjects, t_max).
    """
    hazard = _as_2d(hazard)
    times = [int(t) for t in times]
    if len(times) != hazard.shape[1]:
        raise ValueError(
            f"Got {len(times)} times for a hazard with {hazard.shape[1]} columns"
        )
    if len(times) == 0:
        raise ValueError("At least one defined time is required to reindex")

    frame = pd.DataFrame(hazard, columns=times)
    frame = frame.loc[:, ~frame.columns.duplicated(keep="last")]
    frame = frame.reindex(columns=range(1, t_max + 1))
    frame = frame.ffill(axis=1).bfill(axis=1)
    return frame.to_numpy(dtype=np.float64)


class DiscreteSurvival:
    """Immutable hazard/survival snapshot on the grid 1..t_max.

    Rows are subjects (or covariate strata), columns are grid times. Both
    representations are kept and their arrays are read-only, so one snapshot
    can be shared between bundles and targeting iterations.

    Examples:
        >>> curve = DiscreteSurvival.from_hazard([[0.2, 0.2, 0.2]])
        >>> curve.survival.round(3)
        array([[0.8  , 0.64 , 0.512]])
    """

    __slots__ = ("_times", "_hazard", "_survival")

    def __init__(self, hazard: np.ndarray, survival: np.ndarray, times: Optional[Sequence[int]] = None):
        hazard = _as_2d(hazard).copy()
        survival = _as_2d(survival).copy()
        if hazard.shape != survival.shape:
            raise ValueError(
                f"Hazard shape {hazard.shape} does not match survival shape {survival.shape}"
            )
        if times is None:
            times = np.arange(1, hazard.shape[1] + 1)
        times = np.asarray(times, dtype=np.int64).copy()
        if len(times) != hazard.shape[1]:
            raise ValueError("times must have one entry per column")
        for array in (hazard, survival, times):
            array.setflags(write=False)
        self._times = times
        self._hazard = hazard
        self._survival = survival

    @classmethod
    def from_hazard(cls, hazard, times: Optional[Sequence[int]] = None) -> "DiscreteSurvival":
        """Build a curve from hazards."""
        hazard = _as_2d(hazard)
        return cls(hazard, hazard_to_survival(hazard), times)

    @classmethod
    def from_survival(cls, survival, times: Optional[Sequence[int]] = None) -> "DiscreteSurvival":
        """Build a curve from survival probabilities."""
        survival = _as_2d(survival)
        return cls(survival_to_hazard(survival), np.clip(survival, 0.0, 1.0), times)

    @classmethod
    def from_sparse_hazard(cls, times: Sequence[int], hazard, t_max: int) -> "DiscreteSurvival":
        """Build a curve on 1..t_max from hazards fitted on a subset of times."""
        return cls.from_hazard(reindex_hazard(times, hazard, t_max))

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def hazard(self) -> np.ndarray:
        return self._hazard

    @property
    def survival(self) -> np.ndarray:
        return self._survival

    @property
    def pdf(self) -> np.ndarray:
        return survival_to_pdf(self._survival)

    @property
    def t_max(self) -> int:
        return int(self._times[-1])

    @property
    def n_subjects(self) -> int:
        return self._hazard.shape[0]

    @property
    def shape(self):
        return self._hazard.shape

    def survival_lagged(self) -> np.ndarray:
        """S(t-) = S(t - 1) on the grid, with S(0) = 1."""
        return np.hstack([np.ones((self.n_subjects, 1)), self._survival[:, :-1]])

    def mean(self) -> "DiscreteSurvival":
        """Marginal curve, the average of the subject survival curves."""
        return DiscreteSurvival.from_survival(
            self._survival.mean(axis=0, keepdims=True), self._times
        )

    def to_frame(self, row: int = 0) -> pd.DataFrame:
        """Return one row of the curve as a DataFrame."""
        return pd.DataFrame({
            "duration": self._times,
            "survival_probability": self._survival[row],
            "hazard": self._hazard[row],
        })

    def __repr__(self) -> str:
        return f"DiscreteSurvival(n_subjects={self.n_subjects}, t_max={self.t_max})"

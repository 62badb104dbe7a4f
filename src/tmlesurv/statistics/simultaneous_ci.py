"""Simultaneous confidence bands from the efficient influence curve.

Pointwise intervals cover each psi(t) separately and under-cover the curve as
a whole. The band multiplier here is the (1 - alpha) quantile of
max_t |Z_t| for a mean-zero Gaussian process Z with the correlation of the
EIC across grid times, so ``estimate +/- multiplier * se`` covers the whole
curve jointly.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

import numpy as np
import pandas as pd
from scipy import stats

from tmlesurv.statistics.eic import EfficientInfluenceCurve
from tmlesurv.statistics.one_step import TargetingResult
from tmlesurv.survival.nuisance import SurvivalData


@dataclass
class ConfidenceBand:
    """Standard errors and multipliers for pointwise and simultaneous bands.

    Attributes:
        se: Standard error of psi(t) at every grid time.
        multiplier: Simultaneous band multiplier.
        pointwise_multiplier: Normal quantile for pointwise intervals.
        alpha: One minus the nominal coverage.
    """
    se: np.ndarray
    multiplier: float
    pointwise_multiplier: float
    alpha: float = 0.05

    def to_frame(self, estimate: np.ndarray) -> pd.DataFrame:
        """Build band bounds around ``estimate``, clipped to [0, 1]."""
        estimate = np.asarray(estimate, dtype=np.float64)
        return pd.DataFrame({
            "duration": np.arange(1, len(estimate) + 1),
            "survival_probability": estimate,
            "std_error": self.se,
            "ci_lower": np.clip(estimate - self.pointwise_multiplier * self.se, 0.0, 1.0),
            "ci_upper": np.clip(estimate + self.pointwise_multiplier * self.se, 0.0, 1.0),
            "simultaneous_lower": np.clip(estimate - self.multiplier * self.se, 0.0, 1.0),
            "simultaneous_upper": np.clip(estimate + self.multiplier * self.se, 0.0, 1.0),
        })

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "se": self.se.tolist(),
            "multiplier": self.multiplier,
            "pointwise_multiplier": self.pointwise_multiplier,
            "alpha": self.alpha,
        }


class SimultaneousCI:
    """Band computation from an EIC matrix (subjects x grid times).

    Args:
        alpha: One minus the nominal joint coverage.
        n_draws: Gaussian draws used to estimate the max-|Z| quantile.
        random_state: Seed or ``numpy.random.Generator`` for the draws.
    """

    def __init__(self, alpha: float = 0.05, n_draws: int = 1000, random_state=None):
        if not 0 < alpha < 1:
            raise ValueError(f"alpha must be in (0, 1), got {alpha}")
        if n_draws < 1:
            raise ValueError(f"n_draws must be positive, got {n_draws}")
        self.alpha = alpha
        self.n_draws = n_draws
        self.random_state = random_state

    def standard_errors(self, eic: np.ndarray) -> np.ndarray:
        """sqrt(diag(cov) / n) with subjects as the sampling unit."""
        eic = np.asarray(eic, dtype=np.float64)
        n = eic.shape[0]
        if n < 2:
            return np.zeros(eic.shape[1])
        variance = eic.var(axis=0, ddof=1)
        return np.sqrt(np.maximum(variance, 0.0) / n)

    def multiplier(self, eic: np.ndarray) -> float:
        """Quantile of the maximum absolute standardized Gaussian deviation."""
        eic = np.asarray(eic, dtype=np.float64)
        pointwise = float(stats.norm.ppf(1.0 - self.alpha / 2.0))
        if eic.shape[0] < 2:
            return pointwise

        # Times where the EIC is constant carry no uncertainty
        varying = eic.std(axis=0, ddof=1) > 0
        if varying.sum() < 2:
            return pointwise

        correlation = np.corrcoef(eic[:, varying], rowvar=False)
        rng = np.random.default_rng(self.random_state)
        draws = rng.multivariate_normal(
            np.zeros(correlation.shape[0]), correlation, size=self.n_draws,
            check_valid="ignore", method="eigh",
        )
        q = float(np.quantile(np.abs(draws).max(axis=1), 1.0 - self.alpha))
        # The joint band is never narrower than the pointwise one
        return max(q, pointwise)

    def compute(self, eic: np.ndarray) -> ConfidenceBand:
        return ConfidenceBand(
            se=self.standard_errors(eic),
            multiplier=self.multiplier(eic),
            pointwise_multiplier=float(stats.norm.ppf(1.0 - self.alpha / 2.0)),
            alpha=self.alpha,
        )


def confidence_band(
    final_estimate: TargetingResult,
    nuisance_bundle_targeted=None,
    A_intervene: Optional[int] = None,
    data: Optional[SurvivalData] = None,
    alpha: float = 0.05,
    n_draws: int = 1000,
    random_state=None,
    propensity_floor: float = 1e-2,
    censoring_floor: float = 1e-2,
) -> ConfidenceBand:
    """Standard errors and simultaneous multiplier for a targeted curve.

    The EIC is evaluated at the targeted hazard and centered on the
    targeted marginal estimate.

    Args:
        final_estimate: Result of ``target``.
        nuisance_bundle_targeted: Targeted bundle. Defaults to the result's.
        A_intervene: Arm. Defaults to the result's.
        data: Subject records, if the bundle does not carry them.
        alpha: One minus the nominal coverage.
        n_draws: Gaussian draws for the multiplier.
        random_state: Seed for the draws.

    Returns:
        ConfidenceBand.
    """
    bundle = final_estimate.bundle if nuisance_bundle_targeted is None else nuisance_bundle_targeted
    arm = final_estimate.arm if A_intervene is None else A_intervene
    data = bundle.data if data is None else data
    if data is None:
        raise ValueError("Survival records are required: pass data or build the bundle with data")

    eic = EfficientInfluenceCurve(
        data, bundle, arm,
        propensity_floor=propensity_floor,
        censoring_floor=censoring_floor,
    ).compute(psi=final_estimate.estimate)
    return SimultaneousCI(alpha=alpha, n_draws=n_draws, random_state=random_state).compute(eic)

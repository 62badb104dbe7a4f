"""Efficient influence curve of a treatment-specific survival curve.

For arm ``a`` and target time ``k`` the efficient influence curve of
psi(k) = E_W[S(k | a, W)] under right censoring is

    D_k(O) = sum_{t <= k} H_k(t) * (dN(t) - Y(t) * h(t | a, W)) + S(k | a, W) - psi(k)

    H_k(t) = - 1{A = a} / (g(a | W) * G(t- | a, W)) * S(k | a, W) / S(t | a, W)

where dN(t) = 1{T_tilde = t, Delta = 1}, Y(t) = 1{T_tilde >= t} and
G(t-) = P(C >= t | a, W). The ratio S(k) / S(t) is evaluated as the
product of (1 - h(s)) over t < s <= k, so hazards equal to one never cause a
division by zero. Propensity and censoring survival are floored before they
enter the weight 1 / (g G).
"""

from typing import Iterator, Optional, Tuple

import numpy as np

from tmlesurv.core.exceptions import DomainError
from tmlesurv.survival.curve import DiscreteSurvival
from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData


def _conditional_survival_blocks(hazard: np.ndarray) -> Iterator[Tuple[int, np.ndarray]]:
    """Yield (j, R) with R[:, m] = S(j + m) / S(j) for m = 0..t_max-1-j."""
    n, t_max = hazard.shape
    ones = np.ones((n, 1))
    for j in range(t_max):
        yield j, np.hstack([ones, np.cumprod(1.0 - hazard[:, j + 1:], axis=1)])


class EfficientInfluenceCurve:
    """EIC matrix (subjects x grid times) for one treatment arm.

    The inverse-probability weights depend only on the propensity and the
    censoring curve, which targeting never changes, so they are computed
    once. Everything that depends on the failure hazard is recomputed on
    every call.

    Attributes:
        arm: The intervention ``A_intervene``.
        inverse_weights: 1 / (g(a | W) G(t- | a, W)) after flooring, shape (n, t_max).
        weights: ``inverse_weights`` times 1{A = a}, the weights of the EIC.
    """

    def __init__(
        self,
        data: SurvivalData,
        bundle: NuisanceBundle,
        arm: int,
        propensity_floor: float = 1e-2,
        censoring_floor: float = 1e-2,
    ):
        if arm not in (0, 1):
            raise ValueError(f"A_intervene must be 0 or 1, got {arm}")
        bundle.check_against(data)
        self.data = data
        self.bundle = bundle
        self.arm = arm

        indicator = (data.A == arm).astype(np.float64)
        g = bundle.propensity(arm)
        zero = (g <= 0) & (indicator == 1)
        if zero.any():
            raise DomainError(
                f"g(A={arm} | W) is 0 for {int(zero.sum())} subjects treated with "
                f"A={arm}; the clever covariate is undefined"
            )
        g = np.maximum(g, propensity_floor)
        censor_lagged = np.maximum(bundle.censoring[arm].survival_lagged(), censoring_floor)

        self.inverse_weights = 1.0 / (g[:, np.newaxis] * censor_lagged)
        self.weights = indicator[:, np.newaxis] * self.inverse_weights
        self._dN = data.failure_counts()
        self._Y = data.at_risk()

    def _failure(self, failure: Optional[DiscreteSurvival]) -> DiscreteSurvival:
        return self.bundle.failure[self.arm] if failure is None else failure

    def residuals(self, failure: Optional[DiscreteSurvival] = None) -> np.ndarray:
        """Hazard residuals dN(t) - Y(t) h(t), shape (n, t_max)."""
        return self._dN - self._Y * self._failure(failure).hazard

    def compute(
        self,
        failure: Optional[DiscreteSurvival] = None,
        psi: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """EIC value of every subject at every grid time.

        Args:
            failure: Failure curve for the arm. Defaults to the bundle's.
            psi: Marginal survival to center on. Defaults to the mean of the
                conditional survival curves.

        Returns:
            Array of shape (n_subjects, t_max).
        """
        failure = self._failure(failure)
        survival = failure.survival
        contribution = self.weights * self.residuals(failure)

        weighted = np.zeros_like(survival)
        for j, ratio in _conditional_survival_blocks(failure.hazard):
            c = contribution[:, j]
            if not c.any():
                continue
            weighted[:, j:] += c[:, np.newaxis] * ratio

        if psi is None:
            psi = survival.mean(axis=0)
        psi = np.asarray(psi, dtype=np.float64)
        return -weighted + survival - psi[np.newaxis, :]

    def mean(
        self,
        failure: Optional[DiscreteSurvival] = None,
        psi: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """Column means of the EIC matrix."""
        return self.compute(failure, psi).mean(axis=0)

    def clever_covariate(
        self,
        direction: np.ndarray,
        failure: Optional[DiscreteSurvival] = None,
    ) -> np.ndarray:
        """Fluctuation covariate sum_k v_k H_k(t) for a direction v over target times.

        The hazard being fluctuated is h(t | a, W), so H_k is evaluated at
        A = a for every subject and carries no treatment indicator.

        Args:
            direction: Weights v, one per grid time (zero for untargeted times).
            failure: Failure curve for the arm. Defaults to the bundle's.

        Returns:
            Array of shape (n_subjects, t_max).
        """
        failure = self._failure(failure)
        direction = np.asarray(direction, dtype=np.float64)
        covariate = np.zeros(failure.shape)
        for j, ratio in _conditional_survival_blocks(failure.hazard):
            covariate[:, j] = -self.inverse_weights[:, j] * (ratio @ direction[j:])
        return covariate

"""Comparison estimators for treatment-specific survival curves.

These sit next to the targeted estimate in reports:

- ``kaplan_meier``: unadjusted product-limit curve of one arm (lifelines).
- ``ipcw``: inverse probability of treatment and censoring weighting.
- ``estimating_equation``: plug-in estimate plus the mean of the initial EIC,
  the one-step estimating-equation correction. Unlike TMLE it is not
  guaranteed to be monotone or to stay within [0, 1].
"""

from typing import Optional

import numpy as np

from tmlesurv.statistics.eic import EfficientInfluenceCurve
from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData


def kaplan_meier(data: SurvivalData, arm: int) -> np.ndarray:
    """Kaplan-Meier survival of the subjects observed in ``arm`` on 1..t_max.

    Args:
        data: Subject records.
        arm: Treatment arm (0 or 1).

    Returns:
        Array of length t_max.

    Raises:
        ValueError: If no subject received ``arm``.
    """
    try:
        from lifelines import KaplanMeierFitter
    except ImportError:
        raise ImportError(
            "lifelines is required for Kaplan-Meier estimation. "
            "Install it with: pip install lifelines"
        )

    mask = data.A == arm
    if not mask.any():
        raise ValueError(f"No subjects observed with A={arm}")

    kmf = KaplanMeierFitter()
    kmf.fit(data.T_tilde[mask], data.Delta[mask], label="survival_probability")
    return kmf.survival_function_at_times(data.times).to_numpy(dtype=np.float64)


def ipcw(
    bundle: NuisanceBundle,
    arm: int,
    data: Optional[SurvivalData] = None,
    propensity_floor: float = 1e-2,
    censoring_floor: float = 1e-2,
) -> np.ndarray:
    """IPCW estimate mean(1{A = a} 1{T_tilde > k} / (g(a | W) G(k | a, W))).

    Returns:
        Array of length t_max.
    """
    data = _resolve_data(bundle, data)
    indicator = (data.A == arm).astype(np.float64)
    g = np.maximum(bundle.propensity(arm), propensity_floor)
    censor = np.maximum(bundle.censoring[arm].survival, censoring_floor)
    weights = indicator[:, np.newaxis] / (g[:, np.newaxis] * censor)
    return (weights * data.survived_past()).mean(axis=0)


def estimating_equation(
    bundle: NuisanceBundle,
    arm: int,
    data: Optional[SurvivalData] = None,
    propensity_floor: float = 1e-2,
    censoring_floor: float = 1e-2,
) -> np.ndarray:
    """One-step estimating-equation estimate, plug-in plus mean initial EIC.

    Returns:
        Array of length t_max.
    """
    data = _resolve_data(bundle, data)
    plug_in = bundle.failure[arm].survival.mean(axis=0)
    eic = EfficientInfluenceCurve(
        data, bundle, arm,
        propensity_floor=propensity_floor,
        censoring_floor=censoring_floor,
    )
    return plug_in + eic.mean(psi=plug_in)


def _resolve_data(bundle: NuisanceBundle, data: Optional[SurvivalData]) -> SurvivalData:
    data = bundle.data if data is None else data
    if data is None:
        raise ValueError("Survival records are required: pass data or build the bundle with data")
    return data

"""Survival data structures and nuisance estimation for tmlesurv.

Example:
    >>> from tmlesurv.survival import DiscreteSurvival, SurvivalData, fit_initial
    >>>
    >>> curve = DiscreteSurvival.from_hazard([[0.2, 0.2, 0.2]])
    >>> print(curve.survival)
    >>>
    >>> bundle = fit_initial(T_tilde=[2, 5, 3, 5], Delta=[1, 0, 1, 0], A=[1, 1, 0, 0])
    >>> print(bundle.failure[1].survival.mean(axis=0))
"""

from tmlesurv.survival.curve import (
    DiscreteSurvival,
    hazard_to_survival,
    survival_to_hazard,
    survival_to_pdf,
    reindex_hazard,
)
from tmlesurv.survival.nuisance import SurvivalData, NuisanceBundle
from tmlesurv.survival.initial_fit import HazardLearner, PropensityLearner, fit_initial
from tmlesurv.survival.estimator import SurvivalTMLE

__all__ = [
    "SurvivalTMLE",        # Unified interface
    "DiscreteSurvival",    # Hazard/survival snapshots
    "hazard_to_survival",
    "survival_to_hazard",
    "survival_to_pdf",
    "reindex_hazard",
    "SurvivalData",        # Subject records
    "NuisanceBundle",      # Initial nuisance estimates
    "HazardLearner",       # Pooled-logistic hazard with any classifier
    "PropensityLearner",
    "fit_initial",
]

"""tmlesurv - Targeted survival curves for treatment comparisons.

tmlesurv estimates the marginal survival curve of each treatment arm from
right-censored discrete-time data. An initial machine-learning fit of the
failure hazard is de-biased with one-step Targeted Maximum Likelihood
Estimation, and simultaneous confidence bands are built from the efficient
influence curve.

Example:
    >>> from tmlesurv import SurvivalTMLE
    >>> from tmlesurv.survival.utils import generate_synthetic_survival_data
    >>>
    >>> df = generate_synthetic_survival_data(n_samples=300, seed=42)
    >>> model = SurvivalTMLE()
    >>> model.fit(df, 'T_tilde', 'Delta', 'A', covariate_cols=['W'])
    >>> model.target(arm=1)
    >>> print(model.survival_df(arm=1).head())
    >>>
    >>> # Lower-level API
    >>> from tmlesurv import fit_initial, target, confidence_band
    >>> bundle = fit_initial(df['T_tilde'], df['Delta'], df['A'], df[['W']])
    >>> result = target(bundle, A_intervene=1, epsilon=0.1, method='l2')
    >>> band = confidence_band(result)
"""

__version__ = "0.1.0"

# Unified API exports
from tmlesurv.core.exceptions import DomainError, InputShapeError, ConvergenceWarning
from tmlesurv.survival import (
    SurvivalTMLE,
    DiscreteSurvival,
    NuisanceBundle,
    SurvivalData,
    fit_initial,
)
from tmlesurv.statistics import (
    EfficientInfluenceCurve,
    OneStepTMLE,
    TargetingConfig,
    TargetingResult,
    SimultaneousCI,
    ConfidenceBand,
    target,
    confidence_band,
)

__all__ = [
    "SurvivalTMLE",           # Unified interface (recommended)
    "DiscreteSurvival",       # Hazard/survival curve snapshots
    "NuisanceBundle",         # Initial failure, censoring and propensity fits
    "SurvivalData",           # Right-censored subject records
    "fit_initial",            # Default nuisance estimator
    "EfficientInfluenceCurve",
    "OneStepTMLE",            # Iterative targeting engine
    "TargetingConfig",
    "TargetingResult",
    "SimultaneousCI",
    "ConfidenceBand",
    "target",
    "confidence_band",
    "DomainError",
    "InputShapeError",
    "ConvergenceWarning",
]

"""Statistics module for tmlesurv.

This module provides the estimation core: the efficient influence curve,
the one-step targeting engine, simultaneous confidence bands and the
comparison estimators. It works on numpy arrays and is decoupled from the
DataFrame-facing interface.
"""

from tmlesurv.statistics.eic import EfficientInfluenceCurve
from tmlesurv.statistics.one_step import OneStepTMLE, TargetingConfig, TargetingResult, target
from tmlesurv.statistics.simultaneous_ci import SimultaneousCI, ConfidenceBand, confidence_band
from tmlesurv.statistics.baselines import kaplan_meier, ipcw, estimating_equation

__all__ = [
    "EfficientInfluenceCurve",
    "OneStepTMLE",
    "TargetingConfig",
    "TargetingResult",
    "target",
    "SimultaneousCI",
    "ConfidenceBand",
    "confidence_band",
    "kaplan_meier",
    "ipcw",
    "estimating_equation",
]

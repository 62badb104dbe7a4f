"""Error taxonomy for tmlesurv."""


class DomainError(ValueError):
    """Raised when an estimate leaves its mathematical domain.

    Examples are hazards outside [0, 1], survival curves that increase or
    revive after reaching zero, and a zero propensity for a subject whose
    observed treatment matches the targeted arm. These indicate corrupted
    nuisance fits and are never corrected silently.
    """


class InputShapeError(ValueError):
    """Raised when inputs disagree in length or do not fit the time grid."""


class ConvergenceWarning(UserWarning):
    """Issued when targeting stops without meeting its tolerance."""

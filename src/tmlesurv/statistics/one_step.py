"""One-step TMLE of a treatment-specific survival curve.

The engine fluctuates the discrete failure hazard of the targeted arm along
the clever covariate of the whole curve,

    h_new(t | W) = h(t | W) + epsilon * C(t | W) * h(t | W) * (1 - h(t | W))
    C(t | W)     = sum_k v_k H_k(t | W),     v = mean EIC / ||mean EIC||

which is the first-order expansion of a logistic fluctuation of the hazard.
Each small step raises the likelihood along the direction that solves the
efficient score equations of all targeted times at once; repeating the step
drives the mean EIC towards zero.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Sequence, List
import logging
import warnings

import numpy as np

from tmlesurv.core.exceptions import ConvergenceWarning, InputShapeError
from tmlesurv.statistics.eic import EfficientInfluenceCurve
from tmlesurv.survival.curve import DiscreteSurvival
from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData

logger = logging.getLogger(__name__)

METHODS = ("l1", "l2")


@dataclass
class TargetingConfig:
    """Tuning of the one-step update.

    Attributes:
        epsilon: Step size (``l1``) or largest line-search step (``l2``).
        max_iterations: Maximum number of hazard updates.
        method: ``"l1"`` takes fixed steps and measures the mean EIC by its
            L1 norm; ``"l2"`` line-searches the step and uses the L2 norm.
        tolerance: Stop once the mean-EIC norm falls to this value.
            Defaults to epsilon / n, scaled with the step size.
        patience: Stop after this many iterations without a new lowest norm.
        max_halvings: Step halvings tried when an update leaves [0, 1]
            before the update is clipped.
        line_search_steps: Candidate steps epsilon * 2**-j for ``l2``.
        propensity_floor: Lower bound applied to g(a | W).
        censoring_floor: Lower bound applied to G(t- | a, W).
        verbose: Log every iteration at INFO instead of DEBUG level.
    """
    epsilon: float = 1e-1
    max_iterations: int = 100
    method: str = "l2"
    tolerance: Optional[float] = None
    patience: int = 3
    max_halvings: int = 10
    line_search_steps: int = 8
    propensity_floor: float = 1e-2
    censoring_floor: float = 1e-2
    verbose: bool = False

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"Invalid method '{self.method}'. Use 'l1' or 'l2'.")
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.max_iterations < 0:
            raise ValueError(f"max_iterations must be >= 0, got {self.max_iterations}")
        if self.tolerance is not None and self.tolerance < 0:
            raise ValueError(f"tolerance must be >= 0, got {self.tolerance}")
        if self.patience < 1:
            raise ValueError(f"patience must be >= 1, got {self.patience}")
        if self.line_search_steps < 1:
            raise ValueError("line_search_steps must be >= 1")
        if self.max_halvings < 0:
            raise ValueError("max_halvings must be >= 0")
        for name in ("propensity_floor", "censoring_floor"):
            value = getattr(self, name)
            if not 0 < value < 1:
                raise ValueError(f"{name} must be in (0, 1), got {value}")


@dataclass
class TargetingResult:
    """Outcome of targeting one arm.

    Attributes:
        arm: The targeted intervention ``A_intervene``.
        conditional: Targeted conditional curves S(t | arm, W_i).
        bundle: Nuisance bundle whose failure curve for ``arm`` is the
            targeted one, for use by downstream EIC and band computations.
        trace: Mean-EIC norm at every iteration, starting with the initial fit.
        mean_eic: Mean EIC at the returned estimate.
        n_iterations: Number of hazard updates performed.
        converged: Whether the tolerance was met.
        stop_reason: ``"converged"``, ``"max_iterations"`` or ``"oscillation"``.
    """
    arm: int
    conditional: DiscreteSurvival
    bundle: NuisanceBundle
    trace: np.ndarray
    mean_eic: np.ndarray
    n_iterations: int
    converged: bool
    stop_reason: str
    tolerance: float
    method: str = "l2"
    k_grid: List[int] = field(default_factory=list)

    @property
    def marginal(self) -> DiscreteSurvival:
        """Marginal curve psi(t), the mean of the conditional curves."""
        return self.conditional.mean()

    @property
    def estimate(self) -> np.ndarray:
        """psi(t) for t = 1..t_max."""
        return self.conditional.survival.mean(axis=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "arm": self.arm,
            "estimate": self.estimate.tolist(),
            "trace": self.trace.tolist(),
            "n_iterations": self.n_iterations,
            "converged": self.converged,
            "stop_reason": self.stop_reason,
            "tolerance": self.tolerance,
            "method": self.method,
            "k_grid": list(self.k_grid),
        }


class OneStepTMLE:
    """Iterative one-step targeting of the failure hazard of one arm.

    The engine owns the failure curve of ``arm`` for the duration of
    :meth:`fit` and threads a new immutable snapshot through every
    iteration. Censoring curves and propensity scores are read only.

    Examples:
        >>> engine = OneStepTMLE(bundle, arm=1)
        >>> result = engine.fit()
        >>> result.estimate
    """

    def __init__(
        self,
        bundle: NuisanceBundle,
        arm: int,
        data: Optional[SurvivalData] = None,
        k_grid: Optional[Sequence[int]] = None,
        config: Optional[TargetingConfig] = None,
    ):
        data = bundle.data if data is None else data
        if data is None:
            raise ValueError("Survival records are required: pass data or build the bundle with data")
        self.config = config or TargetingConfig()
        self.data = data
        self.bundle = bundle
        self.arm = arm
        self.eic = EfficientInfluenceCurve(
            data,
            bundle,
            arm,
            propensity_floor=self.config.propensity_floor,
            censoring_floor=self.config.censoring_floor,
        )

        times = data.times
        if k_grid is None:
            k_grid = times.tolist()
        k_grid = sorted({int(k) for k in k_grid})
        if not k_grid or k_grid[0] < 1 or k_grid[-1] > data.t_max:
            raise InputShapeError(f"k_grid must be a non-empty subset of 1..{data.t_max}")
        self.k_grid = k_grid
        self._mask = np.isin(times, k_grid)

        self.tolerance = (
            self.config.epsilon / data.n
            if self.config.tolerance is None
            else self.config.tolerance
        )
        self.trace: List[float] = []
        self.n_iterations = 0

    def norm(self, mean_eic: np.ndarray) -> float:
        """Size of the mean EIC over the targeted times."""
        targeted = mean_eic[self._mask]
        if self.config.method == "l1":
            return float(np.abs(targeted).sum())
        return float(np.sqrt(np.square(targeted).sum()))

    def _step(self, hazard: np.ndarray, covariate: np.ndarray, epsilon: float) -> np.ndarray:
        slope = covariate * hazard * (1.0 - hazard)
        for attempt in range(self.config.max_halvings + 1):
            proposal = hazard + epsilon * slope
            if proposal.min() >= 0.0 and proposal.max() <= 1.0:
                return proposal
            if attempt < self.config.max_halvings:
                epsilon /= 2.0
        logger.debug("Hazard update clipped to [0, 1] at epsilon=%.3g", epsilon)
        return np.clip(proposal, 0.0, 1.0)

    def update(self, failure: DiscreteSurvival, mean_eic: np.ndarray) -> DiscreteSurvival:
        """Take one fluctuation step from ``failure`` and return the new snapshot."""
        norm = self.norm(mean_eic)
        direction = np.where(self._mask, mean_eic, 0.0)
        if norm > 0:
            direction = direction / norm
        covariate = self.eic.clever_covariate(direction, failure)
        hazard = failure.hazard

        if self.config.method == "l1":
            return DiscreteSurvival.from_hazard(
                self._step(hazard, covariate, self.config.epsilon), failure.times
            )

        best_curve, best_norm = None, np.inf
        for j in range(self.config.line_search_steps):
            epsilon = self.config.epsilon * 2.0 ** -j
            candidate = DiscreteSurvival.from_hazard(
                self._step(hazard, covariate, epsilon), failure.times
            )
            candidate_norm = self.norm(self.eic.mean(candidate))
            if candidate_norm < best_norm:
                best_curve, best_norm = candidate, candidate_norm
        return best_curve

    def fit(self) -> TargetingResult:
        """Iterate the one-step update until a stopping rule fires.

        Returns:
            TargetingResult holding the lowest-norm snapshot visited. When
            the tolerance is not met a ConvergenceWarning is issued and the
            trace is kept on the result for inspection.
        """
        # Every run starts from the bundle, so state from an earlier run is dropped
        self.trace = []
        self.n_iterations = 0
        log = logger.info if self.config.verbose else logger.debug
        failure = self.bundle.failure[self.arm]
        best_failure, best_mean, best_norm = failure, None, np.inf
        stalled = 0
        stop_reason = "max_iterations"

        for iteration in range(self.config.max_iterations + 1):
            mean_eic = self.eic.mean(failure)
            norm = self.norm(mean_eic)
            self.trace.append(norm)
            log("Iteration %d: mean EIC %s norm %.6g", iteration, self.config.method, norm)

            if norm < best_norm:
                best_failure, best_mean, best_norm = failure, mean_eic, norm
                stalled = 0
            else:
                stalled += 1

            if norm <= self.tolerance:
                stop_reason = "converged"
                break
            if stalled >= self.config.patience:
                stop_reason = "oscillation"
                warnings.warn(
                    f"Mean EIC norm has not decreased for {stalled} iterations "
                    f"(last {norm:.4g}, best {best_norm:.4g}); epsilon="
                    f"{self.config.epsilon} may be too large. Returning the best estimate.",
                    ConvergenceWarning,
                )
                break
            if iteration == self.config.max_iterations:
                warnings.warn(
                    f"Reached max_iterations={self.config.max_iterations} with mean EIC "
                    f"norm {best_norm:.4g} above tolerance {self.tolerance:.4g}.",
                    ConvergenceWarning,
                )
                break

            failure = self.update(failure, mean_eic)
            self.n_iterations += 1

        return TargetingResult(
            arm=self.arm,
            conditional=best_failure,
            bundle=self.bundle.with_failure(self.arm, best_failure),
            trace=np.asarray(self.trace),
            mean_eic=best_mean,
            n_iterations=self.n_iterations,
            converged=stop_reason == "converged",
            stop_reason=stop_reason,
            tolerance=self.tolerance,
            method=self.config.method,
            k_grid=self.k_grid,
        )


def target(
    nuisance_bundle: NuisanceBundle,
    A_intervene: int,
    k_grid: Optional[Sequence[int]] = None,
    epsilon: float = 1e-1,
    max_iterations: int = 100,
    method: str = "l2",
    data: Optional[SurvivalData] = None,
    **kwargs,
) -> TargetingResult:
    """Target the survival curve of one arm.

    Args:
        nuisance_bundle: Initial nuisance estimates (see ``fit_initial``).
        A_intervene: Arm whose curve is estimated (0 or 1).
        k_grid: Times to target. Defaults to the whole grid.
        epsilon: Step size, or the largest step tried by the ``l2`` line search.
        max_iterations: Maximum number of updates.
        method: ``"l1"`` or ``"l2"``.
        data: Subject records, if the bundle does not carry them.
        **kwargs: Further ``TargetingConfig`` fields.

    Returns:
        TargetingResult with the targeted curve, updated bundle and trace.
    """
    config = TargetingConfig(
        epsilon=epsilon, max_iterations=max_iterations, method=method, **kwargs
    )
    return OneStepTMLE(
        nuisance_bundle, A_intervene, data=data, k_grid=k_grid, config=config
    ).fit()

from typing import Dict, Any, Optional

import numpy as np


def median_survival_time(estimate: np.ndarray) -> Optional[int]:
    """First grid time with survival at or below 0.5, None if never reached."""
    below = np.nonzero(np.asarray(estimate) <= 0.5)[0]
    return int(below[0] + 1) if below.size else None


def interpret_targeted_curve(
    arm: int,
    estimate: np.ndarray,
    se: np.ndarray,
    multiplier: float,
    converged: bool,
    n_iterations: int,
    unadjusted: Optional[np.ndarray] = None,
    time_unit: str = 'periods'
) -> Dict[str, Any]:
    """
    Generates a plain-language interpretation of a targeted survival curve
    and its simultaneous confidence band.

    Args:
        arm: Treatment arm the curve was targeted for.
        estimate: Targeted marginal survival psi(t), t = 1..t_max.
        se: Standard error of psi(t).
        multiplier: Simultaneous band multiplier.
        converged: Whether targeting met its tolerance.
        n_iterations: Number of targeting updates.
        unadjusted: Optional Kaplan-Meier curve of the same arm for contrast.
        time_unit: Label for time axis (e.g., 'days', 'weeks').

    Returns:
        Dict containing:
        - 'summary': A short narrative string.
        - 'structured_metrics': Raw numbers for dashboards.
    """
    estimate = np.asarray(estimate, dtype=np.float64)
    se = np.asarray(se, dtype=np.float64)
    t_max = len(estimate)
    median_time = median_survival_time(estimate)
    terminal = float(estimate[-1])
    lower = max(0.0, terminal - multiplier * float(se[-1]))
    upper = min(1.0, terminal + multiplier * float(se[-1]))

    metrics_payload = {
        "arm": arm,
        "t_max": t_max,
        "median_survival": median_time,
        "survival_at_max": terminal,
        "band_at_max": (lower, upper),
        "max_band_half_width": float(multiplier * se.max()) if se.size else 0.0,
        "converged": converged,
        "n_iterations": n_iterations,
    }

    # ---------------------------------------------------------
    # Median survival under the intervention
    # ---------------------------------------------------------
    if median_time is not None:
        kpi_text = (f"Under A={arm}, half of the population is expected to fail "
                    f"by {median_time} {time_unit}.")
    else:
        kpi_text = (f"Under A={arm}, survival stays above 50% for the whole "
                    f"window of {t_max} {time_unit}.")

    narrative = (
        f"**Targeted Survival:** {kpi_text} "
        f"At {t_max} {time_unit}, {terminal:.1%} survive "
        f"(simultaneous band {lower:.1%} to {upper:.1%})."
    )

    # ---------------------------------------------------------
    # Confounding adjustment relative to the crude curve
    # ---------------------------------------------------------
    if unadjusted is not None:
        unadjusted = np.asarray(unadjusted, dtype=np.float64)
        shift = float(np.max(np.abs(estimate - unadjusted)))
        metrics_payload["max_shift_from_unadjusted"] = shift
        narrative += (f" Covariate adjustment moves the curve by up to "
                      f"{shift:.1%} from the unadjusted Kaplan-Meier estimate.")

    if not converged:
        narrative += (f" Targeting stopped after {n_iterations} iterations without "
                      f"meeting its tolerance; inspect the iteration trace.")

    return {
        "summary": narrative,
        "structured_metrics": metrics_payload
    }

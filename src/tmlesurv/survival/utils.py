"""Data helpers: person-period expansion and synthetic survival data."""

from typing import Optional

import numpy as np
import pandas as pd

from tmlesurv.survival.nuisance import SurvivalData


def to_person_period(data: SurvivalData, event: str = "failure") -> pd.DataFrame:
    """Expand subject records into one row per subject and time at risk.

    Subject ``i`` contributes rows t = 1..T_tilde_i. The ``event`` column is
    1 on the last row when the matching event was observed there.

    Args:
        data: Subject records.
        event: ``"failure"`` (event when Delta = 1) or ``"censoring"``
            (event when Delta = 0).

    Returns:
        DataFrame with columns id, t, A, the covariates of W, and event.
    """
    if event not in ("failure", "censoring"):
        raise ValueError(f"Invalid event '{event}'. Use 'failure' or 'censoring'.")
    if data.W is not None:
        reserved = {"id", "t", "A", "event"} & {str(c) for c in data.W.columns}
        if reserved:
            raise ValueError(f"Covariate names clash with reserved columns: {sorted(reserved)}")

    ids = np.repeat(np.arange(data.n), data.T_tilde)
    # Running index inside each subject's block, starting at 1
    starts = np.repeat(np.cumsum(data.T_tilde) - data.T_tilde, data.T_tilde)
    t = np.arange(len(ids)) - starts + 1

    last = t == data.T_tilde[ids]
    observed = data.Delta[ids] == (1 if event == "failure" else 0)

    frame = pd.DataFrame({"id": ids, "t": t, "A": data.A[ids]})
    if data.W is not None:
        covariates = data.W.iloc[ids].reset_index(drop=True)
        frame = pd.concat([frame, covariates], axis=1)
    frame["event"] = (last & observed).astype(np.int64)
    return frame


def generate_synthetic_survival_data(
    n_samples: int = 500,
    treatment_effect: float = 0.8,
    horizon: Optional[int] = 20,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Generate confounded, right-censored discrete survival data.

    The design follows the simulation of the one-step TMLE paper:

    - ``W ~ Uniform(0, 1.5)``;
    - ``A ~ Bernoulli(0.4 + 0.5 * 1{W > 0.75})``;
    - ``T ~ Exponential(rate = 1 + 0.7 W^2 - treatment_effect * A)``;
    - ``C ~ Weibull(shape = 1 + 0.5 W) * 75``.

    Continuous times are doubled and rounded up onto the grid 1, 2, ...
    Follow-up beyond ``horizon`` is administratively censored.

    Args:
        n_samples: Number of subjects.
        treatment_effect: Reduction of the failure rate under treatment.
        horizon: Administrative censoring time. None disables it.
        seed: Random seed for reproducibility.

    Returns:
        DataFrame with columns W, A, T, C, T_tilde, Delta.

    Examples:
        >>> df = generate_synthetic_survival_data(200, seed=42)
        >>> sorted(df.columns)
        ['A', 'C', 'Delta', 'T', 'T_tilde', 'W']
    """
    if n_samples < 1:
        raise ValueError("n_samples must be positive")
    if not 0 <= treatment_effect < 1:
        raise ValueError("treatment_effect must be in [0, 1)")

    # Set random seed if provided
    if seed is not None:
        np.random.seed(seed)

    W = np.random.uniform(0.0, 1.5, n_samples)
    A = np.random.binomial(1, 0.4 + 0.5 * (W > 0.75), n_samples)

    rate = 1.0 + 0.7 * W ** 2 - treatment_effect * A
    T = np.maximum(np.ceil(np.random.exponential(1.0 / rate) * 2), 1).astype(np.int64)
    C = np.maximum(np.ceil(np.random.weibull(1.0 + 0.5 * W) * 75 * 2), 1).astype(np.int64)
    if horizon is not None:
        C = np.minimum(C, horizon)

    # Failure and censoring in the same period count as an observed failure
    T_tilde = np.minimum(T, C)
    Delta = (T <= C).astype(np.int64)

    return pd.DataFrame({
        "W": W,
        "A": A,
        "T": T,
        "C": C,
        "T_tilde": T_tilde,
        "Delta": Delta,
    })


def true_marginal_survival(
    t_max: int,
    arm: int,
    treatment_effect: float = 0.8,
    n_mc: int = 100000,
    seed: Optional[int] = 0,
) -> np.ndarray:
    """Monte Carlo truth of psi_arm(t) for the synthetic design, t = 1..t_max."""
    rng = np.random.default_rng(seed)
    W = rng.uniform(0.0, 1.5, n_mc)
    rate = 1.0 + 0.7 * W ** 2 - treatment_effect * arm
    times = np.arange(1, t_max + 1)
    # T_grid > t  <=>  2 T_continuous > t
    return np.exp(-rate[:, np.newaxis] * times[np.newaxis, :] / 2.0).mean(axis=0)

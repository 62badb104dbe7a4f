"""Tests for the one-step TMLE update engine."""

import warnings

import pytest
import numpy as np

from tmlesurv.core.exceptions import ConvergenceWarning, InputShapeError
from tmlesurv.statistics.one_step import OneStepTMLE, TargetingConfig, TargetingResult, target


def _quiet_target(*args, **kwargs) -> TargetingResult:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        return target(*args, **kwargs)


class TestTargetingConfig:
    """Tests for TargetingConfig validation."""

    def test_defaults(self):
        """Test default tuning values."""
        config = TargetingConfig()

        assert config.method == "l2"
        assert config.epsilon == pytest.approx(0.1)
        assert config.tolerance is None

    def test_default_tolerance_scales_with_epsilon(self, constant_bundle):
        """Test that the default threshold is epsilon / n."""
        engine = OneStepTMLE(constant_bundle, arm=1, config=TargetingConfig(epsilon=0.02))

        assert engine.tolerance == pytest.approx(0.02 / 4)

    def test_explicit_tolerance_is_kept(self, constant_bundle):
        """Test that an explicit tolerance overrides the default."""
        engine = OneStepTMLE(constant_bundle, arm=1, config=TargetingConfig(tolerance=0.3))

        assert engine.tolerance == pytest.approx(0.3)

    def test_invalid_method_raises(self):
        """Test that unknown methods are rejected."""
        with pytest.raises(ValueError, match="Invalid method"):
            TargetingConfig(method="glm")

    def test_non_positive_epsilon_raises(self):
        """Test that epsilon must be positive."""
        with pytest.raises(ValueError, match="epsilon"):
            TargetingConfig(epsilon=0.0)

    def test_invalid_floor_raises(self):
        """Test that floors must lie in (0, 1)."""
        with pytest.raises(ValueError, match="propensity_floor"):
            TargetingConfig(propensity_floor=0.0)


class TestEndToEndScenario:
    """Four subjects, constant hazard 0.2, propensity 0.5, t_max = 5."""

    def test_target_treated_arm(self, constant_bundle):
        """Test the targeted curve and the mean-EIC trace for A_intervene=1."""
        result = _quiet_target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=10)

        estimate = result.estimate
        assert estimate.shape == (5,)
        assert 0.7 < estimate[0] <= 1.0
        assert np.all(np.diff(estimate) <= 1e-12)
        assert np.all((estimate >= 0) & (estimate <= 1))
        assert abs(result.trace[-1]) < abs(result.trace[0])

    def test_initial_trace_value(self, constant_bundle):
        """Test that the trace starts at the L2 norm of the initial mean EIC."""
        result = _quiet_target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=1)

        failed = np.array([0.4, -1.68, -1.344, -1.0752, -0.86016])
        censored = np.array([0.4, 0.82, 1.281, 1.80605, 2.4214025])
        expected = np.linalg.norm((failed + censored) / 4)
        assert result.trace[0] == pytest.approx(expected)

    def test_iteration_cap_warns(self, constant_bundle):
        """Test that hitting max_iterations issues a ConvergenceWarning."""
        with pytest.warns(ConvergenceWarning, match="max_iterations"):
            result = target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=2, tolerance=0.0)

        assert result.stop_reason == "max_iterations"
        assert not result.converged
        assert result.n_iterations == 2
        assert len(result.trace) == 3

    def test_targeted_bundle_replaces_failure_only(self, constant_bundle):
        """Test that only the failure curve of the targeted arm changes."""
        result = _quiet_target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=3)

        assert result.bundle.failure[1] is result.conditional
        assert result.bundle.failure[0] is constant_bundle.failure[0]
        assert result.bundle.censoring[1] is constant_bundle.censoring[1]
        np.testing.assert_allclose(result.bundle.g1W, constant_bundle.g1W)
        # The input bundle is left as it was
        np.testing.assert_allclose(constant_bundle.failure[1].hazard, 0.2)

    def test_all_subjects_share_update(self, constant_bundle):
        """Test that control subjects' arm-1 hazards move with the treated ones."""
        result = _quiet_target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=3)

        hazard = result.conditional.hazard
        assert not np.allclose(hazard, 0.2)
        np.testing.assert_allclose(hazard[2], hazard[0])

    def test_l1_method(self, constant_bundle):
        """Test fixed-step targeting with the L1 norm."""
        result = _quiet_target(
            constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=5, method="l1"
        )

        failed = np.array([0.4, -1.68, -1.344, -1.0752, -0.86016])
        censored = np.array([0.4, 0.82, 1.281, 1.80605, 2.4214025])
        assert result.method == "l1"
        assert result.trace[0] == pytest.approx(np.abs((failed + censored) / 4).sum())
        assert np.all(np.diff(result.estimate) <= 1e-12)

    def test_idempotent_when_converged(self, constant_bundle):
        """Test that re-targeting a converged estimate leaves it unchanged."""
        engine = OneStepTMLE(constant_bundle, arm=1)
        tolerance = 0.95 * engine.norm(engine.eic.mean())

        first = _quiet_target(
            constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=50, tolerance=tolerance
        )
        assert first.converged

        second = target(
            first.bundle, A_intervene=1, epsilon=0.01, max_iterations=50, tolerance=tolerance
        )

        assert second.converged
        assert second.n_iterations == 0
        assert np.max(np.abs(second.estimate - first.estimate)) < tolerance

    def test_k_grid_restricts_norm(self, constant_bundle):
        """Test that only targeted times enter the norm."""
        result = _quiet_target(
            constant_bundle, A_intervene=1, k_grid=[3], epsilon=0.01, max_iterations=0
        )

        assert result.k_grid == [3]
        # Mean EIC at time 3 is (-1.344 + 1.281) / 4
        assert result.trace[0] == pytest.approx(0.01575)

    def test_k_grid_outside_range_raises(self, constant_bundle):
        """Test that target times must lie on the grid."""
        with pytest.raises(InputShapeError, match="k_grid"):
            target(constant_bundle, A_intervene=1, k_grid=[0, 2])

    def test_missing_data_raises(self, constant_bundle):
        """Test that a bundle without records needs explicit data."""
        from dataclasses import replace

        bare = replace(constant_bundle, data=None)

        with pytest.raises(ValueError, match="Survival records are required"):
            target(bare, A_intervene=1)

        result = _quiet_target(bare, A_intervene=1, data=constant_bundle.data, max_iterations=1)
        assert result.trace.size == 2


class TestUpdateStep:
    """Tests for the bounded step-halving guard."""

    def test_step_halves_until_valid(self, constant_bundle):
        """Test that a too-large step is halved back into [0, 1]."""
        engine = OneStepTMLE(constant_bundle, arm=1)
        hazard = np.full((4, 5), 0.5)
        covariate = np.full((4, 5), 1000.0)

        updated = engine._step(hazard, covariate, epsilon=1.0)

        assert np.all((updated >= 0) & (updated <= 1))
        assert np.all(updated > 0.5)

    def test_step_clips_after_bounded_retries(self, constant_bundle):
        """Test that the clipped value is accepted once retries run out."""
        config = TargetingConfig(max_halvings=0)
        engine = OneStepTMLE(constant_bundle, arm=1, config=config)
        hazard = np.full((4, 5), 0.5)

        updated = engine._step(hazard, np.full((4, 5), -1000.0), epsilon=1.0)

        np.testing.assert_allclose(updated, 0.0)

    def test_boundary_hazards_do_not_move(self, constant_bundle):
        """Test that hazards of exactly 0 or 1 stay fixed."""
        engine = OneStepTMLE(constant_bundle, arm=1)
        hazard = np.array([[0.0, 1.0, 0.3, 0.3, 0.3]] * 4)

        updated = engine._step(hazard, np.full((4, 5), 0.5), epsilon=0.1)

        np.testing.assert_allclose(updated[:, :2], hazard[:, :2])


class TestStoppingRules:
    """Tests for the oscillation guard."""

    def test_oscillation_guard(self, constant_bundle):
        """Test that a stalled norm stops the loop with a warning."""
        config = TargetingConfig(patience=2, max_iterations=20, tolerance=0.0)
        engine = OneStepTMLE(constant_bundle, arm=1, config=config)
        engine.update = lambda failure, mean_eic: failure

        with pytest.warns(ConvergenceWarning, match="has not decreased"):
            result = engine.fit()

        assert result.stop_reason == "oscillation"
        assert result.n_iterations == 2
        assert len(result.trace) == 3

    def test_best_snapshot_is_returned(self, constant_bundle):
        """Test that the lowest-norm snapshot is returned after a stall."""
        config = TargetingConfig(patience=1, max_iterations=5, tolerance=0.0)
        engine = OneStepTMLE(constant_bundle, arm=1, config=config)
        initial = constant_bundle.failure[1]

        from tmlesurv.survival.curve import DiscreteSurvival
        worse = DiscreteSurvival.from_hazard(np.full((4, 5), 0.9))
        engine.update = lambda failure, mean_eic: worse

        with pytest.warns(ConvergenceWarning):
            result = engine.fit()

        assert result.trace[1] > result.trace[0]
        assert result.conditional is initial


    def test_repeated_fit_starts_fresh(self, constant_bundle):
        """Test that a second fit on one engine repeats the first run."""
        config = TargetingConfig(epsilon=0.01, max_iterations=3, tolerance=0.0)
        engine = OneStepTMLE(constant_bundle, arm=1, config=config)

        with pytest.warns(ConvergenceWarning):
            first = engine.fit()
        with pytest.warns(ConvergenceWarning):
            second = engine.fit()

        assert first.n_iterations == second.n_iterations == 3
        assert len(first.trace) == len(second.trace) == 4
        np.testing.assert_allclose(second.trace, first.trace)
        np.testing.assert_allclose(second.estimate, first.estimate)


class TestSyntheticData:
    """Tests on confounded synthetic data with logistic nuisance fits."""

    def test_l2_trace_non_increasing_early(self, synthetic_bundle):
        """Test that small l2 steps reduce the mean-EIC norm at first."""
        result = _quiet_target(synthetic_bundle, A_intervene=1, epsilon=0.01, max_iterations=4)

        early = result.trace[:4]
        assert np.all(np.diff(early) <= 1e-12)

    def test_targeted_curve_is_valid(self, synthetic_bundle):
        """Test that the targeted curve is a survival curve."""
        result = _quiet_target(synthetic_bundle, A_intervene=0, max_iterations=30)

        estimate = result.estimate
        assert np.all(np.diff(estimate) <= 1e-12)
        assert np.all((estimate >= 0) & (estimate <= 1))
        assert result.trace.min() <= result.trace[0]

    def test_to_dict(self, constant_bundle):
        """Test conversion to dictionary."""
        result = _quiet_target(constant_bundle, A_intervene=1, epsilon=0.01, max_iterations=2)

        result_dict = result.to_dict()

        assert result_dict["arm"] == 1
        assert len(result_dict["estimate"]) == 5
        assert result_dict["stop_reason"] == result.stop_reason

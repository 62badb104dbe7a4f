"""Tests for the comparison estimators."""

import pytest
import numpy as np

from tmlesurv.statistics.baselines import estimating_equation, ipcw, kaplan_meier
from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData


class TestKaplanMeier:
    """Tests for the unadjusted arm-specific curve."""

    def test_scenario_treated_arm(self, scenario_data):
        """Test the product-limit curve of the treated subjects."""
        curve = kaplan_meier(scenario_data, arm=1)

        np.testing.assert_allclose(curve, [1.0, 0.5, 0.5, 0.5, 0.5])

    def test_scenario_control_arm(self, scenario_data):
        """Test the product-limit curve of the control subjects."""
        curve = kaplan_meier(scenario_data, arm=0)

        np.testing.assert_allclose(curve, [1.0, 1.0, 0.5, 0.5, 0.5])

    def test_empty_arm_raises(self):
        """Test that an arm without subjects is rejected."""
        data = SurvivalData(T_tilde=[1, 2], Delta=[1, 1], A=[1, 1])

        with pytest.raises(ValueError, match="No subjects observed"):
            kaplan_meier(data, arm=0)


class TestIPCW:
    """Tests for inverse probability weighting."""

    def test_uncensored_randomized(self):
        """Test that full treatment and no censoring give the empirical curve."""
        data = SurvivalData(T_tilde=[1, 2, 3, 4], Delta=[1, 1, 1, 1], A=[1, 1, 1, 1])
        bundle = NuisanceBundle.from_hazards(
            np.full((4, 4), 0.3), np.full((4, 4), 0.3),
            np.zeros((4, 4)), np.zeros((4, 4)),
            g1W=np.ones(4), data=data,
        )

        np.testing.assert_allclose(ipcw(bundle, arm=1), [0.75, 0.5, 0.25, 0.0])

    def test_weights_by_propensity_and_censoring(self, constant_bundle):
        """Test the weighted mean against the closed form."""
        curve = ipcw(constant_bundle, arm=1)

        # Only subject 1 (treated, T_tilde = 5) survives past k < 5,
        # weighted by 1 / (0.5 * 0.8^k)
        k = np.arange(1, 6)
        expected = np.where(k < 5, 1.0 / (0.5 * 0.8 ** k), 0.0)
        expected[0] += 1.0 / (0.5 * 0.8)
        np.testing.assert_allclose(curve, expected / 4)

    def test_requires_data(self):
        """Test that records are required."""
        bundle = NuisanceBundle.from_hazards(*[np.full((2, 3), 0.2)] * 4, g1W=[0.5, 0.5])

        with pytest.raises(ValueError, match="Survival records are required"):
            ipcw(bundle, arm=1)


class TestEstimatingEquation:
    """Tests for the plug-in plus mean EIC estimator."""

    def test_scenario_treated_arm(self, constant_bundle):
        """Test the one-step correction on the four-subject scenario."""
        curve = estimating_equation(constant_bundle, arm=1)

        np.testing.assert_allclose(
            curve, [1.0, 0.425, 0.49625, 0.5923125, 0.717990625], atol=1e-10
        )

    def test_not_necessarily_monotone(self, constant_bundle):
        """Test that the corrected curve may increase, unlike the targeted one."""
        curve = estimating_equation(constant_bundle, arm=1)

        assert np.any(np.diff(curve) > 0)

    def test_explicit_data(self, scenario_data):
        """Test passing records separately from the bundle."""
        bundle = NuisanceBundle.from_hazards(*[np.full((4, 5), 0.2)] * 4, g1W=np.full(4, 0.5))

        curve = estimating_equation(bundle, arm=1, data=scenario_data)

        assert curve[0] == pytest.approx(1.0)

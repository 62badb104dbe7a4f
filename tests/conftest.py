"""Pytest configuration and fixtures for tmlesurv tests."""

import shutil

import numpy as np
import pytest

from tmlesurv.survival.nuisance import NuisanceBundle, SurvivalData


@pytest.fixture(scope="session")
def spark_session():
    """Create a SparkSession for testing.

    This fixture creates a local SparkSession with minimal configuration
    suitable for unit testing. The session is shared across all tests
    in a test session for efficiency. Tests using it are skipped when no
    Java runtime is available.

    Yields:
        SparkSession: Active SparkSession instance.
    """
    if shutil.which("java") is None:
        pytest.skip("Spark tests require a Java runtime")
    from pyspark.sql import SparkSession

    spark = (
        SparkSession.builder.master("local[2]")
        .appName("tmlesurv-test")
        .config("spark.sql.shuffle.partitions", "4")
        .getOrCreate()
    )

    # Set log level to reduce noise during tests
    spark.sparkContext.setLogLevel("ERROR")

    yield spark

    # Cleanup after tests
    spark.stop()


@pytest.fixture(scope="function")
def scenario_data():
    """Four subjects on the grid 1..5.

    Subject 0 (treated) fails at 2, subject 1 (treated) is censored at 5,
    subject 2 (control) fails at 3, subject 3 (control) is censored at 5.
    """
    return SurvivalData(
        T_tilde=np.array([2, 5, 3, 5]),
        Delta=np.array([1, 0, 1, 0]),
        A=np.array([1, 1, 0, 0]),
        t_max=5,
    )


@pytest.fixture(scope="function")
def constant_bundle(scenario_data):
    """Constant hazard 0.2 for failure and censoring, propensity 0.5."""
    hazard = np.full((4, 5), 0.2)
    return NuisanceBundle.from_hazards(
        hazard, hazard, hazard, hazard,
        g1W=np.full(4, 0.5),
        data=scenario_data,
    )


@pytest.fixture(scope="function")
def synthetic_df():
    """Confounded synthetic data with 300 subjects and follow-up up to 10."""
    from tmlesurv.survival.utils import generate_synthetic_survival_data

    return generate_synthetic_survival_data(n_samples=300, horizon=10, seed=7)


@pytest.fixture(scope="function")
def synthetic_bundle(synthetic_df):
    """Initial logistic-regression nuisance fits on the synthetic data."""
    from tmlesurv.survival.initial_fit import fit_initial

    return fit_initial(
        T_tilde=synthetic_df["T_tilde"],
        Delta=synthetic_df["Delta"],
        A=synthetic_df["A"],
        W=synthetic_df[["W"]],
    )

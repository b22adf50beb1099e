"""Pytest configuration and shared fixtures for survival report tests.

Provides small hand-checkable cohorts, a larger synthetic survival
dataset for Kaplan-Meier tests, and isolation of MLflow state.
"""
import logging
import pytest
import pandas as pd
import numpy as np

from survival_report.criteria import Comparison, Criterion, FieldPresent
from survival_report.logging_config import LOGGER_NAME


@pytest.fixture
def small_cohort():
    """Ten recoded subjects with known missingness.

    Expected attrition under ``four_criteria``:
    initial 10 -> ecog 8 -> karno_physician 6 -> karno_patient 5 -> weight_loss 3,
    leaving subjects 1, 7 and 10.
    """
    return pd.DataFrame({
        "subject_id": list(range(1, 11)),
        "time": [306, 455, 1010, 210, 883, 1022, 310, 361, 218, 166],
        "event": [1, 1, 0, 1, 1, 0, 1, 1, 1, 1],
        "sex": ["Male", "Male", "Female", "Male", "Female",
                "Male", "Female", "Female", "Male", "Male"],
        "age": [74, 68, 56, 57, 60, 74, 68, 71, 53, 61],
        "ecog": [1, 0, np.nan, 2, 1, 1, 0, np.nan, 1, 2],
        "karno_physician": [90, np.nan, 80, 70, 90, 100, 80, 90, np.nan, 60],
        "karno_patient": [100, 90, 80, np.nan, 80, 90, 70, 60, 80, 70],
        "weight_loss": [5, 10, np.nan, 3, -2, np.nan, 0, 8, 4, 12],
    })


@pytest.fixture
def four_criteria():
    """The four ordered lung-report style criteria."""
    return [
        Criterion("ECOG available", FieldPresent("ecog"), "Missing ECOG"),
        Criterion("Physician Karnofsky available", FieldPresent("karno_physician")),
        Criterion("Patient Karnofsky available", FieldPresent("karno_patient")),
        Criterion("Weight loss >= 0", Comparison("weight_loss", ">=", 0), "Weight loss missing or negative"),
    ]


@pytest.fixture
def raw_lung_like():
    """Raw NCCTG-style frame (dotted names, status 1/2, sex 1/2)."""
    return pd.DataFrame({
        "inst": [3.0, 3.0, 3.0, 5.0, 1.0, 12.0],
        "time": [306, 455, 1010, 210, 883, 1022],
        "status": [2, 2, 1, 2, 2, 1],
        "age": [74, 68, 56, 57, 60, 74],
        "sex": [1, 1, 1, 1, 1, 2],
        "ph.ecog": [1.0, 0.0, 0.0, 1.0, 0.0, np.nan],
        "ph.karno": [90.0, 90.0, 90.0, 90.0, 100.0, 50.0],
        "pat.karno": [100.0, 90.0, 90.0, 60.0, 90.0, 80.0],
        "meal.cal": [1175.0, 1225.0, np.nan, 1150.0, np.nan, 513.0],
        "wt.loss": [np.nan, 15.0, 15.0, 11.0, 0.0, 0.0],
    })


@pytest.fixture
def synthetic_survival():
    """200 recoded subjects, two sex groups with different hazards.

    Returns:
        pd.DataFrame: Columns subject_id, time, event, sex, age, ecog,
        karno_physician, karno_patient, weight_loss
    """
    rng = np.random.default_rng(42)
    n = 200
    sex = np.where(np.arange(n) % 2 == 0, "Male", "Female")
    scale = np.where(sex == "Male", 300.0, 450.0)
    true_time = rng.exponential(scale)
    censor_time = rng.uniform(100, 1000, n)
    time = np.minimum(true_time, censor_time).round() + 1

    df = pd.DataFrame({
        "subject_id": np.arange(1, n + 1),
        "time": time,
        "event": (true_time <= censor_time).astype(int),
        "sex": sex,
        "age": rng.integers(40, 80, n),
        "ecog": rng.choice([0.0, 1.0, 2.0, 3.0], n),
        "karno_physician": rng.choice([60.0, 70.0, 80.0, 90.0, 100.0], n),
        "karno_patient": rng.choice([50.0, 70.0, 90.0, 100.0], n),
        "weight_loss": rng.normal(8, 10, n).round(),
    })
    df.loc[rng.choice(n, 10, replace=False), "ecog"] = np.nan
    df.loc[rng.choice(n, 15, replace=False), "weight_loss"] = np.nan
    return df


@pytest.fixture(autouse=True)
def cleanup_mlflow_runs():
    """Reset MLflow tracking state after each test."""
    import mlflow
    yield
    while mlflow.active_run() is not None:
        mlflow.end_run()
    mlflow.set_tracking_uri(None)


@pytest.fixture(autouse=True)
def reset_report_logger():
    """Undo setup_logging so caplog sees package records in every test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True

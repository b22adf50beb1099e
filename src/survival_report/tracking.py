from __future__ import annotations
import os
import logging
from typing import Any, Dict, Optional
import mlflow
import mlflow.exceptions

from survival_report.attrition import AttritionResult

EXPERIMENT_NAME = "survival_report"


def start_run(
    run_name: str,
    tags: Dict[str, str] | None = None,
    tracking_uri: Optional[str] = None,
):
    """Start an MLflow run under the survival_report experiment.

    Args:
        run_name: Name identifier for this run
        tags: Optional key-value tags for the run
        tracking_uri: Optional tracking store; defaults to MLflow's own default

    Returns:
        Active MLflow run context manager

    Example:
        >>> with start_run("lung_report", tags={"run_type": "sample"}):
        ...     safe_log_params({"group_column": "sex"})
    """
    if tracking_uri is not None:
        mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(EXPERIMENT_NAME)
    return mlflow.start_run(run_name=run_name, tags=tags)


# ============================================================================
# Safe MLflow Wrappers with Graceful Degradation
# ============================================================================
# Tracking is a side channel: report artifacts are already on disk, so a
# tracking failure is logged and the report carries on.


def safe_log_params(
    params: Dict[str, Any],
    logger: Optional[logging.Logger] = None
) -> bool:
    """Log parameters to MLflow, returning False instead of raising on failure."""
    try:
        for k, v in params.items():
            try:
                mlflow.log_param(k, v)
            except mlflow.exceptions.MlflowException:
                mlflow.log_param(k, str(v)[:500])
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(f"MLflow params logging failed: {e}")
        return False
    except Exception as e:
        if logger:
            logger.error(f"Unexpected error in MLflow params logging: {e}")
        return False


def safe_log_metrics(
    metrics: Dict[str, float],
    step: Optional[int] = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """Log metrics to MLflow, returning False instead of raising on failure."""
    try:
        mlflow.log_metrics(metrics, step=step)
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(f"MLflow metrics logging failed: {e}")
        return False
    except Exception as e:
        if logger:
            logger.error(f"Unexpected error in MLflow metrics logging: {e}")
        return False


def safe_log_artifact(
    path: str,
    logger: Optional[logging.Logger] = None
) -> bool:
    """Log a file to MLflow if it exists, returning False on failure."""
    if not os.path.exists(path):
        if logger:
            logger.warning(f"Artifact not found, skipping: {path}")
        return False

    try:
        mlflow.log_artifact(path)
        return True
    except mlflow.exceptions.MlflowException as e:
        if logger:
            logger.warning(f"MLflow artifact logging failed for {path}: {e}")
        return False
    except Exception as e:
        if logger:
            logger.error(f"Unexpected error in MLflow artifact logging for {path}: {e}")
        return False


def log_attrition(result: AttritionResult, logger: Optional[logging.Logger] = None) -> bool:
    """Log attrition counts: ``initial_n`` once, then remaining/excluded per step."""
    ok = safe_log_metrics({"initial_n": float(result.initial_n)}, logger=logger)
    for step, row in enumerate(result.rows, start=1):
        ok = safe_log_metrics(
            {"remaining_n": float(row.remaining_n), "excluded_n": float(row.excluded_n)},
            step=step,
            logger=logger,
        ) and ok
    return ok

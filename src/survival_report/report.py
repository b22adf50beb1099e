"""End-to-end survival report.

Stages, in order:
1. Load and recode the dataset
2. Attrition: apply cohort criteria, export the table and flow diagram
3. Baseline characteristics of the final cohort
4. Kaplan-Meier curves, log-rank test and survival summary

The attrition stage's surviving cohort is the only analysis cohort; later
stages never re-filter the raw data. Any failure aborts the run.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

from survival_report.attrition import AttritionResult, compute_attrition
from survival_report.baseline import baseline_table
from survival_report.config import ReportConfig
from survival_report.data import load_data, recode_lung, validate_schema
from survival_report.export import export_attrition
from survival_report.logging_config import log_performance
from survival_report.survival import (
    LogRankSummary,
    fit_km,
    logrank,
    plot_km,
    survival_summary,
)
from survival_report.timing import Timer, log_execution_time
from survival_report.utils import ensure_dir, save_table, versioned_name

logger = logging.getLogger(__name__)


@dataclass
class ReportResult:
    """Everything a report run produced."""
    attrition: AttritionResult
    attrition_table: pd.DataFrame
    baseline: pd.DataFrame
    survival: pd.DataFrame
    logrank: Optional[LogRankSummary] = None
    paths: Dict[str, str] = field(default_factory=dict)


@log_execution_time()
def prepare_dataset(config: ReportConfig) -> pd.DataFrame:
    """Load the configured input and recode it into analysis form."""
    raw = load_data(config.data.input_path)
    if "status" in raw.columns:
        df = recode_lung(raw, config.data.status_coding)
    else:
        df = raw.copy()
    validate_schema(df, [config.data.time_column, config.data.event_column])
    return df


def run_report(config: ReportConfig, df: Optional[pd.DataFrame] = None) -> ReportResult:
    """Run every report stage and write artifacts to ``config.output.output_dir``.

    Args:
        config: Report configuration
        df: Already recoded dataset; loaded from ``config.data.input_path`` if None

    Returns:
        ReportResult with tables, test result and artifact paths

    Raises:
        SchemaError: If criteria or stage columns are not in the dataset
        FileNotFoundError: If the input file is missing
    """
    data_cfg, out_cfg = config.data, config.output
    ensure_dir(out_cfg.output_dir)

    if df is None:
        df = prepare_dataset(config)

    criteria = config.cohort.build_criteria()
    with Timer(logger, "Cohort attrition"):
        attrition = compute_attrition(df, criteria, id_col=data_cfg.id_column)
        exported = export_attrition(
            attrition,
            diagram_path=out_cfg.path("attrition_diagram"),
            table_path=out_cfg.path("attrition_table"),
            title="Cohort attrition",
            dpi=out_cfg.dpi,
        )
    log_performance(logger, "Attrition computed", initial_n=attrition.initial_n, final_n=attrition.final_n)

    cohort = attrition.cohort
    group_col = data_cfg.group_column

    with Timer(logger, "Baseline characteristics"):
        baseline = baseline_table(
            cohort,
            group_col=group_col,
            continuous=data_cfg.continuous_features,
            categorical=data_cfg.categorical_features,
        )
        baseline_path = save_table(baseline, out_cfg.path("baseline_table"))

    with Timer(logger, "Kaplan-Meier analysis"):
        fitters = fit_km(cohort, data_cfg.time_column, data_cfg.event_column, group_col=group_col)
        test = None
        if group_col is not None and cohort[group_col].nunique() > 1:
            test = logrank(cohort, data_cfg.time_column, data_cfg.event_column, group_col)
        else:
            logger.warning("Fewer than two groups in cohort; skipping log-rank test")

        summary = survival_summary(fitters, timepoints=out_cfg.timepoints)
        summary_path = save_table(summary, out_cfg.path("survival_summary"))
        km_path = plot_km(
            fitters,
            out_cfg.path("km_plot"),
            logrank_result=test,
            title="Kaplan-Meier survival estimate",
            time_unit=data_cfg.time_unit,
            dpi=out_cfg.dpi,
        )

    paths = {
        "attrition_diagram": str(exported["diagram_path"]),
        "attrition_table": str(exported["table_path"]),
        "baseline_table": baseline_path,
        "survival_summary": summary_path,
        "km_plot": str(km_path),
    }
    result = ReportResult(
        attrition=attrition,
        attrition_table=exported["table"],
        baseline=baseline,
        survival=summary,
        logrank=test,
        paths=paths,
    )

    if config.track:
        _track(config, result)

    return result


def _track(config: ReportConfig, result: ReportResult) -> None:
    from survival_report.tracking import (
        log_attrition,
        safe_log_artifact,
        safe_log_metrics,
        safe_log_params,
        start_run,
    )

    params: Dict[str, Any] = {
        "input_path": config.data.input_path,
        "group_column": config.data.group_column,
        "n_criteria": len(config.cohort.criteria),
    }
    for i, entry in enumerate(config.cohort.criteria, start=1):
        params[f"criterion_{i}"] = entry.get("description", "")

    with start_run(versioned_name("survival_report", config.run_type), tags={"run_type": config.run_type}):
        safe_log_params(params, logger=logger)
        log_attrition(result.attrition, logger=logger)
        if result.logrank is not None:
            safe_log_metrics(
                {"logrank_statistic": result.logrank.test_statistic,
                 "logrank_p_value": result.logrank.p_value},
                logger=logger,
            )
        for path in result.paths.values():
            safe_log_artifact(path, logger=logger)

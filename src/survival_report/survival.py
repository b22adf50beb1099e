"""Kaplan-Meier curves and survival statistics for the analysis cohort.

Estimation and testing are delegated to lifelines; this module only
sequences the calls, collects their results into tables and draws the
figure.

Functions:
    fit_km: Fit one Kaplan-Meier estimator per group
    survival_summary: N, events, median survival with CI, S(t) at time points
    logrank: Log-rank test across groups
    plot_km: Survival curves with at-risk table
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")  # headless
import matplotlib.pyplot as plt  # noqa: E402
from lifelines import KaplanMeierFitter  # noqa: E402
from lifelines.plotting import add_at_risk_counts  # noqa: E402
from lifelines.statistics import multivariate_logrank_test  # noqa: E402
from lifelines.utils import median_survival_times  # noqa: E402

from survival_report.data import validate_schema
from survival_report.logging_config import capture_warnings

logger = logging.getLogger(__name__)

ALL_SUBJECTS = "All subjects"


@dataclass
class LogRankSummary:
    """Log-rank test result.

    Attributes:
        test_statistic: Chi-squared statistic
        degrees_of_freedom: Number of groups minus one
        p_value: Two-sided p-value
        n_groups: Groups compared
    """
    test_statistic: float
    degrees_of_freedom: int
    p_value: float
    n_groups: int

    def to_dict(self) -> dict:
        return asdict(self)


def fit_km(
    df: pd.DataFrame,
    time_col: str,
    event_col: str,
    group_col: Optional[str] = None,
    alpha: float = 0.05,
) -> Dict[str, KaplanMeierFitter]:
    """Fit Kaplan-Meier estimators, one per group level.

    Args:
        df: Analysis cohort
        time_col: Follow-up time column
        event_col: Event indicator column (1 = event, 0 = censored)
        group_col: Optional grouping column; None fits a single curve
        alpha: 1 - confidence level for the bands

    Returns:
        Mapping of group label to fitted KaplanMeierFitter, in sorted label order

    Raises:
        SchemaError: If a referenced column is missing
        ValueError: If the cohort is empty
    """
    required = [time_col, event_col] + ([group_col] if group_col else [])
    validate_schema(df, required)
    if df.empty:
        raise ValueError("Cannot fit Kaplan-Meier estimator on an empty cohort")

    if group_col is None:
        subsets = {ALL_SUBJECTS: df}
    else:
        subsets = {
            str(level): df[df[group_col] == level]
            for level in sorted(df[group_col].dropna().unique(), key=str)
        }

    fitters: Dict[str, KaplanMeierFitter] = {}
    with capture_warnings(logger):
        for label, subset in subsets.items():
            kmf = KaplanMeierFitter(alpha=alpha)
            kmf.fit(subset[time_col], event_observed=subset[event_col], label=label)
            fitters[label] = kmf

    logger.info(f"Fitted {len(fitters)} Kaplan-Meier curve(s)")
    return fitters


def survival_summary(
    fitters: Dict[str, KaplanMeierFitter],
    timepoints: Sequence[float] = (),
) -> pd.DataFrame:
    """Tabulate per-group survival statistics.

    Median survival is ``inf`` when the curve never drops to 0.5; its
    confidence bounds follow the same convention.

    Returns:
        DataFrame with columns ``group``, ``n``, ``events``, ``median``,
        ``median_lower``, ``median_upper`` and one ``S(t)`` column per time point
    """
    records = []
    for label, kmf in fitters.items():
        ci = median_survival_times(kmf.confidence_interval_)
        lower, upper = (float(v) for v in np.asarray(ci).ravel()[:2])
        record = {
            "group": label,
            "n": int(len(kmf.durations)),
            "events": int(np.sum(kmf.event_observed)),
            "median": float(kmf.median_survival_time_),
            "median_lower": lower,
            "median_upper": upper,
        }
        if len(timepoints):
            surv = kmf.survival_function_at_times(list(timepoints))
            for t, s in zip(timepoints, surv):
                record[f"S({t:g})"] = float(s)
        records.append(record)

    return pd.DataFrame.from_records(records)


def logrank(
    df: pd.DataFrame,
    time_col: str,
    event_col: str,
    group_col: str,
) -> LogRankSummary:
    """Log-rank test of equal survival across the levels of ``group_col``.

    Raises:
        SchemaError: If a referenced column is missing
        ValueError: If fewer than two groups are present
    """
    validate_schema(df, [time_col, event_col, group_col])
    data = df.dropna(subset=[group_col])
    n_groups = int(data[group_col].nunique())
    if n_groups < 2:
        raise ValueError(f"Log-rank test needs at least two groups in '{group_col}', found {n_groups}")

    with capture_warnings(logger):
        result = multivariate_logrank_test(data[time_col], data[group_col], data[event_col])

    summary = LogRankSummary(
        test_statistic=float(result.test_statistic),
        degrees_of_freedom=n_groups - 1,
        p_value=float(result.p_value),
        n_groups=n_groups,
    )
    logger.info(
        f"Log-rank test: chi2={summary.test_statistic:.3f}, "
        f"df={summary.degrees_of_freedom}, p={summary.p_value:.4g}"
    )
    return summary


def plot_km(
    fitters: Dict[str, KaplanMeierFitter],
    out_path: Union[str, Path],
    logrank_result: Optional[LogRankSummary] = None,
    title: Optional[str] = None,
    time_unit: str = "days",
    at_risk: bool = True,
    dpi: int = 150,
) -> Path:
    """Plot survival curves with confidence bands and save to ``out_path``.

    Raises:
        FileNotFoundError: If the parent directory of ``out_path`` is missing
    """
    out_path = Path(out_path)
    if not out_path.parent.is_dir():
        raise FileNotFoundError(f"Output directory does not exist: {out_path.parent}")

    fig, ax = plt.subplots(figsize=(8, 6))
    try:
        with capture_warnings(logger):
            for kmf in fitters.values():
                kmf.plot_survival_function(ax=ax, ci_show=True)

            if logrank_result is not None:
                ax.text(
                    0.02, 0.05,
                    f"Log-rank p = {logrank_result.p_value:.3g}",
                    transform=ax.transAxes, ha="left", va="bottom", fontsize=9,
                )

            ax.set_xlabel(f"Time ({time_unit})")
            ax.set_ylabel("Survival probability")
            ax.set_ylim(0, 1.05)
            ax.grid(True, alpha=0.3)
            if title:
                ax.set_title(title)

            if at_risk:
                add_at_risk_counts(*fitters.values(), ax=ax)

            fig.tight_layout()
            fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.info(f"Kaplan-Meier plot saved to {out_path}")
    return out_path

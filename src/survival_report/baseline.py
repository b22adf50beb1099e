"""Baseline characteristics table for the analysis cohort.

Summarises covariates overall and per level of a grouping column:
continuous covariates as mean (SD) and median [Q1, Q3], categorical
covariates as n (%) per level. Missing counts are reported, never imputed.
"""
from __future__ import annotations
import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from survival_report.data import validate_schema

logger = logging.getLogger(__name__)

OVERALL = "Overall"


def _label(var: str) -> str:
    return var.replace('_', ' ').capitalize()


def format_mean_sd(values: pd.Series) -> str:
    """Format as ``"62.4 (9.1)"``; "N/A" when nothing is observed."""
    clean = values.dropna()
    if len(clean) == 0:
        return "N/A"
    sd = clean.std() if len(clean) > 1 else np.nan
    sd_str = f"{sd:.1f}" if np.isfinite(sd) else "N/A"
    return f"{clean.mean():.1f} ({sd_str})"


def format_median_iqr(values: pd.Series) -> str:
    """Format as ``"63.0 [56.0, 69.0]"``."""
    clean = values.dropna()
    if len(clean) == 0:
        return "N/A"
    q1, med, q3 = clean.quantile([0.25, 0.5, 0.75])
    return f"{med:.1f} [{q1:.1f}, {q3:.1f}]"


def format_count_pct(count: int, total: int) -> str:
    """Format as ``"44 (43.6%)"``."""
    pct = (count / total * 100) if total > 0 else 0.0
    return f"{count} ({pct:.1f}%)"


def _columns(df: pd.DataFrame, group_col: Optional[str]) -> Dict[str, pd.DataFrame]:
    groups = {OVERALL: df}
    if group_col is not None:
        for level in sorted(df[group_col].dropna().unique(), key=str):
            groups[str(level)] = df[df[group_col] == level]
    return groups


def baseline_table(
    df: pd.DataFrame,
    group_col: Optional[str] = None,
    continuous: Sequence[str] = (),
    categorical: Sequence[str] = (),
) -> pd.DataFrame:
    """Build a baseline characteristics table.

    Args:
        df: Analysis cohort
        group_col: Optional column to stratify by; one output column per level
        continuous: Continuous covariates
        categorical: Categorical covariates; levels are taken from the data

    Returns:
        DataFrame with a ``Characteristic`` column, an ``Overall`` column and
        one column per group level. The first row holds the group sizes.

    Raises:
        SchemaError: If any referenced column is missing

    Example:
        >>> table = baseline_table(cohort, "sex", continuous=["age"], categorical=["ecog"])
        >>> list(table.columns)
        ['Characteristic', 'Overall', 'Female', 'Male']
        >>> table.loc[0, "Overall"]  # lung cohort after the default criteria
        '183'
    """
    required = list(continuous) + list(categorical)
    if group_col is not None:
        required.append(group_col)
    validate_schema(df, required)

    groups = _columns(df, group_col)
    rows: List[Dict[str, str]] = []

    def add(label: str, cells: Dict[str, str]):
        rows.append({"Characteristic": label, **cells})

    add("N", {name: str(len(g)) for name, g in groups.items()})

    for var in continuous:
        label = _label(var)
        add(f"{label}, mean (SD)", {name: format_mean_sd(g[var]) for name, g in groups.items()})
        add(f"{label}, median [Q1, Q3]", {name: format_median_iqr(g[var]) for name, g in groups.items()})
        if df[var].isna().any():
            add(f"{label}, missing", {
                name: format_count_pct(int(g[var].isna().sum()), len(g)) for name, g in groups.items()
            })

    for var in categorical:
        add(f"{_label(var)}, n (%)", {name: "" for name in groups})
        levels = sorted(df[var].dropna().unique())
        for level in levels:
            level_label = str(int(level)) if isinstance(level, float) and level.is_integer() else str(level)
            add(f"    {level_label}", {
                name: format_count_pct(int((g[var] == level).sum()), len(g)) for name, g in groups.items()
            })
        if df[var].isna().any():
            add("    Missing", {
                name: format_count_pct(int(g[var].isna().sum()), len(g)) for name, g in groups.items()
            })

    table = pd.DataFrame(rows, columns=["Characteristic"] + list(groups))
    logger.info(f"Baseline table: {len(table)} rows x {len(groups)} columns")
    return table

"""Cohort attrition accounting.

Applies an ordered sequence of inclusion criteria as a left fold: each
criterion only sees the subjects that passed every earlier one, so a
subject is excluded exactly once, by the first criterion it fails.

The final surviving subset is returned alongside the counts and is the
analysis cohort used by every later report stage.

Functions:
    compute_attrition: Fold criteria over a dataset, recording counts per step
    apply_criteria: Filter a dataset by the conjunction of all criteria
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pandas as pd

from survival_report.criteria import (
    Criterion,
    count_subjects,
    evaluate,
    validate_criteria,
)
from survival_report.logging_config import ProgressLogger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttritionRow:
    """Counts after one criterion.

    Attributes:
        description: Inclusion criterion label
        complement: Label for the subjects this step excluded
        remaining_n: Subjects passing this and all earlier criteria
        excluded_n: Subjects removed by this criterion alone
    """
    description: str
    complement: str
    remaining_n: int
    excluded_n: int


@dataclass
class AttritionResult:
    """Outcome of an attrition pass.

    With no criteria, ``rows`` is empty and ``initial_n`` carries the
    dataset size; ``final_n`` then equals ``initial_n``.
    """
    initial_n: int
    rows: List[AttritionRow] = field(default_factory=list)
    cohort: pd.DataFrame = field(default_factory=pd.DataFrame, repr=False)
    id_col: Optional[str] = None

    @property
    def remaining(self) -> List[int]:
        return [row.remaining_n for row in self.rows]

    @property
    def excluded(self) -> List[int]:
        return [row.excluded_n for row in self.rows]

    @property
    def descriptions(self) -> List[str]:
        return [row.description for row in self.rows]

    @property
    def complements(self) -> List[str]:
        return [row.complement for row in self.rows]

    @property
    def final_n(self) -> int:
        return self.rows[-1].remaining_n if self.rows else self.initial_n


def compute_attrition(
    df: pd.DataFrame,
    criteria: Sequence[Criterion],
    id_col: Optional[str] = None,
) -> AttritionResult:
    """Apply criteria in order and record remaining/excluded counts.

    Args:
        df: Full dataset. Not modified.
        criteria: Ordered criteria; order changes the per-step counts
        id_col: Optional subject identifier column. When given, counts are
            distinct subjects rather than records.

    Returns:
        AttritionResult with one row per criterion and the surviving cohort

    Raises:
        SchemaError: If any criterion (or ``id_col``) references a column not
            in ``df``. Raised before any counting.

    Example:
        >>> result = compute_attrition(df, default_criteria(), id_col="subject_id")
        >>> result.remaining
        [227, 226, 223, 183]
    """
    validate_criteria(criteria, df.columns)
    initial_n = count_subjects(df, id_col)

    if id_col is not None:
        n_dupes = int(df[id_col].duplicated().sum())
        if n_dupes:
            logger.warning(f"{n_dupes} records share a subject id in '{id_col}'")

    current = df
    previous_n = initial_n
    rows: List[AttritionRow] = []
    progress = ProgressLogger(logger, total=len(criteria), desc="Applying criteria")

    for crit in criteria:
        current = current.loc[evaluate(current, crit.predicate)]
        remaining_n = count_subjects(current, id_col)
        rows.append(
            AttritionRow(
                description=crit.description,
                complement=crit.complement_label,
                remaining_n=remaining_n,
                excluded_n=previous_n - remaining_n,
            )
        )
        progress.update(1, metrics={"remaining": remaining_n, "excluded": previous_n - remaining_n})
        previous_n = remaining_n

    logger.info(f"Attrition complete: {initial_n} -> {previous_n} subjects")
    return AttritionResult(
        initial_n=initial_n,
        rows=rows,
        cohort=current.copy(),
        id_col=id_col,
    )


def apply_criteria(df: pd.DataFrame, criteria: Sequence[Criterion]) -> pd.DataFrame:
    """Filter ``df`` by the logical AND of all criteria, evaluated on the full data.

    Returns:
        Copy of the rows satisfying every criterion
    """
    validate_criteria(criteria, df.columns)
    keep = pd.Series(True, index=df.index)
    for crit in criteria:
        keep &= evaluate(df, crit.predicate)
    return df.loc[keep].copy()

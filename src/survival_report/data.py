from __future__ import annotations
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
from lifelines.datasets import load_lung

from survival_report.criteria import (
    Comparison,
    Criterion,
    FieldPresent,
    SchemaError,
)

logger = logging.getLogger(__name__)

# Columns after recoding
ID_COL = "subject_id"
TIME_COL = "time"
TIME_MONTHS_COL = "time_months"
EVENT_COL = "event"
GROUP_COL = "sex"

LUNG_RENAMES = {
    "inst": "institution",
    "ph.ecog": "ecog",
    "ph.karno": "karno_physician",
    "pat.karno": "karno_patient",
    "meal.cal": "meal_calories",
    "wt.loss": "weight_loss",
}
SEX_LABELS = {1: "Male", 2: "Female"}
DAYS_PER_MONTH = 365.25 / 12

CONTINUOUS_COLS = ["age", "karno_physician", "karno_patient", "meal_calories", "weight_loss"]
CATEGORICAL_COLS = ["ecog"]

BUILTIN_DATASETS = ("lung",)

# status value -> event indicator for each supported coding scheme
STATUS_CODINGS = {
    "r": {1: 0, 2: 1},       # R survival: 1 = censored, 2 = dead
    "binary": {0: 0, 1: 1},  # 0 = censored, 1 = event
}


def load_data(file_path: Optional[str] = None) -> pd.DataFrame:
    """Load the raw survival dataset.

    Supports CSV (.csv, .txt) and pickle (.pkl, .pickle).
    ``None`` or ``"lung"`` loads the NCCTG advanced lung cancer dataset
    bundled with lifelines.

    Args:
        file_path: Path to input file, ``"lung"``, or None

    Returns:
        Raw DataFrame, columns as stored

    Raises:
        FileNotFoundError: If file_path does not exist
        ValueError: If the file extension is not supported

    Example:
        >>> df = load_data()
        >>> df.shape
        (228, 10)
    """
    if file_path is None or str(file_path) in BUILTIN_DATASETS:
        logger.info("Loading bundled NCCTG lung cancer dataset")
        df = load_lung()
        logger.info(f"Loaded {len(df):,} records with {len(df.columns)} columns")
        return df

    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix in ('.csv', '.txt'):
        df = pd.read_csv(file_path)
    elif suffix in ('.pkl', '.pickle'):
        df = pd.read_pickle(file_path)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            f"Supported formats: .csv, .txt, .pkl, .pickle"
        )

    logger.info(f"Loaded {len(df):,} records with {len(df.columns)} columns from {file_path}")
    return df


def validate_schema(df: pd.DataFrame, required: Iterable[str]) -> None:
    """Raise SchemaError listing any required columns missing from ``df``."""
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(f"Input data missing required columns: {missing}")


def _recode_status(status: pd.Series, coding: str = "r") -> pd.Series:
    if coding not in STATUS_CODINGS:
        raise ValueError(
            f"Unknown status coding '{coding}'. Supported: {sorted(STATUS_CODINGS)}"
        )
    mapping = STATUS_CODINGS[coding]
    unexpected = sorted(set(status.unique()) - set(mapping))
    if unexpected:
        raise ValueError(
            f"Status values {unexpected} do not fit the '{coding}' coding "
            f"(expected {sorted(mapping)})"
        )
    return status.astype(int).map(mapping)


def recode_lung(df: pd.DataFrame, status_coding: str = "r") -> pd.DataFrame:
    """Rename and recode the lung dataset into analysis form.

    - dotted R names become snake_case (``ph.ecog`` -> ``ecog``, ...)
    - ``status`` becomes ``event`` (0 / 1) under ``status_coding``: "r"
      reads 1 censored / 2 dead, "binary" reads 0 censored / 1 event
    - ``sex`` (1 / 2) becomes "Male" / "Female"
    - adds ``subject_id`` (1-based row number) and ``time_months``

    Missing covariate values are left missing; cohort criteria decide what
    to do with them.

    Args:
        df: Raw lung DataFrame
        status_coding: Key of ``STATUS_CODINGS`` describing ``status``

    Returns:
        New recoded DataFrame; ``df`` is not modified

    Raises:
        SchemaError: If ``time``, ``status`` or ``sex`` is missing
        ValueError: If ``status`` holds values outside the chosen coding
    """
    validate_schema(df, ["time", "status", "sex"])

    out = df.rename(columns=LUNG_RENAMES).copy()
    if out["status"].isna().any() or out["time"].isna().any():
        n_bad = int((out["status"].isna() | out["time"].isna()).sum())
        logger.warning(f"Dropping {n_bad} records with missing time or status")
        out = out.dropna(subset=["time", "status"])

    out[EVENT_COL] = _recode_status(out["status"], status_coding)
    out = out.drop(columns=["status"])
    out[GROUP_COL] = out[GROUP_COL].map(SEX_LABELS).fillna(out[GROUP_COL].astype(str))
    out[TIME_MONTHS_COL] = out[TIME_COL].astype(float) / DAYS_PER_MONTH

    if ID_COL not in out.columns:
        out.insert(0, ID_COL, np.arange(1, len(out) + 1))

    logger.info(
        f"Recoded {len(out):,} records: {int(out[EVENT_COL].sum())} events, "
        f"{int((out[EVENT_COL] == 0).sum())} censored"
    )
    return out.reset_index(drop=True)


def default_criteria() -> List[Criterion]:
    """Cohort criteria used by the lung report, in order.

    Subjects need an ECOG score, both Karnofsky scores and a non-negative
    recorded weight loss.
    """
    return [
        Criterion(
            "ECOG performance score available",
            FieldPresent("ecog"),
            "Missing ECOG score",
        ),
        Criterion(
            "Physician Karnofsky score available",
            FieldPresent("karno_physician"),
            "Missing physician Karnofsky score",
        ),
        Criterion(
            "Patient Karnofsky score available",
            FieldPresent("karno_patient"),
            "Missing patient Karnofsky score",
        ),
        Criterion(
            "Weight loss recorded and non-negative",
            Comparison("weight_loss", ">=", 0),
            "Weight loss missing or negative",
        ),
    ]

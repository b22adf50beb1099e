from __future__ import annotations
import os
import datetime as dt
from pathlib import Path
from typing import Optional, Union

import pandas as pd


def ensure_dir(path: Union[str, Path]) -> str:
    """Create a directory (and parents) if it doesn't exist.

    Example:
        >>> ensure_dir("data/outputs/sample")
    """
    os.makedirs(path, exist_ok=True)
    return str(path)


def versioned_name(base: str, run_type: Optional[str] = None) -> str:
    """Timestamped name, e.g. ``sample_lung_report_20250123_143052``."""
    ts = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    if run_type:
        return f"{run_type}_{base}_{ts}"
    return f"{base}_{ts}"


def save_table(df: pd.DataFrame, path: Union[str, Path]) -> str:
    """Write a report table as CSV into an existing directory.

    Raises:
        FileNotFoundError: If the parent directory does not exist
    """
    path = Path(path)
    if not path.parent.is_dir():
        raise FileNotFoundError(f"Output directory does not exist: {path.parent}")
    df.to_csv(path, index=False)
    return str(path)

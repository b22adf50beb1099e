"""Export of attrition results as a table and a flow diagram.

Both artifacts are views over one ``AttritionResult``; nothing here
recomputes counts. Drawing is done with matplotlib on the headless Agg
backend.

Functions:
    attrition_table: Tabular summary (criteria, remaining N, excluded N)
    diagram_inputs: Arrays handed to the diagram renderer
    render_attrition_diagram: Flow diagram image at a caller-given path
    write_attrition_table: CSV export of the table
    export_attrition: Diagram and table together, all or nothing
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd
import matplotlib

matplotlib.use("Agg")  # headless
import matplotlib.pyplot as plt  # noqa: E402

from survival_report.attrition import AttritionResult
from survival_report.utils import save_table

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

INITIAL_LABEL = "Total cohort size"
TABLE_COLUMNS = ["Criteria", "Remaining N", "Excluded N"]

_BOX_STYLE = {"boxstyle": "round,pad=0.5", "facecolor": "#F4F6F8", "edgecolor": "#4C566A"}
_EXCLUDED_BOX_STYLE = {"boxstyle": "round,pad=0.5", "facecolor": "#FFFFFF", "edgecolor": "#BF616A"}
_ARROW = {"arrowstyle": "->", "lw": 1.2, "color": "#2E3440"}


def attrition_table(result: AttritionResult, include_initial: bool = True) -> pd.DataFrame:
    """Build the attrition summary table.

    Args:
        result: Output of ``compute_attrition``
        include_initial: Prepend a "Total cohort size" row with the unfiltered N

    Returns:
        DataFrame with columns ``Criteria``, ``Remaining N``, ``Excluded N``.
        The initial row has no excluded count (``pd.NA``).

    Example:
        >>> attrition_table(result)
                             Criteria  Remaining N  Excluded N
        0           Total cohort size          228        <NA>
        1  ECOG performance score available          227           1
    """
    records = []
    if include_initial:
        records.append({
            "Criteria": INITIAL_LABEL,
            "Remaining N": result.initial_n,
            "Excluded N": pd.NA,
        })
    for row in result.rows:
        records.append({
            "Criteria": row.description,
            "Remaining N": row.remaining_n,
            "Excluded N": row.excluded_n,
        })

    table = pd.DataFrame.from_records(records, columns=TABLE_COLUMNS)
    table["Remaining N"] = table["Remaining N"].astype("Int64")
    table["Excluded N"] = table["Excluded N"].astype("Int64")
    return table


def diagram_inputs(result: AttritionResult) -> Dict[str, Any]:
    """Marshal the arrays a flow diagram is drawn from.

    Returns:
        Dictionary with ``initial_n`` and equal-length lists ``remaining_n``,
        ``excluded_n``, ``descriptions``, ``complements``
    """
    return {
        "initial_n": result.initial_n,
        "remaining_n": result.remaining,
        "excluded_n": result.excluded,
        "descriptions": result.descriptions,
        "complements": result.complements,
    }


def _check_output_dir(out_path: Path) -> None:
    parent = out_path.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Output directory does not exist: {parent}")


def render_attrition_diagram(
    result: AttritionResult,
    out_path: PathLike,
    title: Optional[str] = None,
    dpi: int = 150,
) -> Path:
    """Draw the attrition flow diagram and save it to ``out_path``.

    The main column shows the remaining N after each criterion; a box to the
    right of each arrow shows the subjects that criterion excluded. An
    existing file at ``out_path`` is overwritten. The image format follows
    the file extension.

    Args:
        result: Output of ``compute_attrition``
        out_path: Destination image path. Its directory must already exist.
        title: Optional figure title
        dpi: Raster resolution

    Returns:
        Path of the written image

    Raises:
        FileNotFoundError: If the parent directory of ``out_path`` is missing
        PermissionError: If the file cannot be written
    """
    out_path = Path(out_path)
    _check_output_dir(out_path)

    inputs = diagram_inputs(result)
    n_steps = len(inputs["remaining_n"])
    n_levels = n_steps + 1

    fig, ax = plt.subplots(figsize=(9.0, 1.6 * n_levels + 0.8))
    try:
        ax.axis("off")
        ax.set_xlim(0, 1)
        ax.set_ylim(0, 1)

        main_x, side_x = 0.33, 0.78
        top, bottom = 0.92, 0.08
        step = (top - bottom) / max(n_levels - 1, 1)
        levels = [top - i * step for i in range(n_levels)]

        ax.text(main_x, levels[0], f"{INITIAL_LABEL}\nN = {inputs['initial_n']}",
                ha="center", va="center", fontsize=10, bbox=_BOX_STYLE)

        for i in range(n_steps):
            y_prev, y_next = levels[i], levels[i + 1]
            ax.annotate("", xy=(main_x, y_next + 0.045), xytext=(main_x, y_prev - 0.045),
                        arrowprops=_ARROW)

            y_mid = (y_prev + y_next) / 2
            ax.annotate("", xy=(side_x - 0.17, y_mid), xytext=(main_x, y_mid),
                        arrowprops=_ARROW)
            ax.text(side_x, y_mid,
                    f"{inputs['complements'][i]}\nN = {inputs['excluded_n'][i]}",
                    ha="center", va="center", fontsize=9, wrap=True, bbox=_EXCLUDED_BOX_STYLE)

            ax.text(main_x, y_next,
                    f"{inputs['descriptions'][i]}\nN = {inputs['remaining_n'][i]}",
                    ha="center", va="center", fontsize=10, wrap=True, bbox=_BOX_STYLE)

        if title:
            ax.set_title(title, fontsize=12)

        fig.savefig(out_path, dpi=dpi, bbox_inches="tight")
    finally:
        plt.close(fig)

    logger.info(f"Attrition diagram saved to {out_path}")
    return out_path


def write_attrition_table(table: pd.DataFrame, out_path: PathLike) -> Path:
    """Write the attrition table as CSV, overwriting any existing file.

    Raises:
        FileNotFoundError: If the parent directory of ``out_path`` is missing
    """
    out_path = Path(save_table(table, out_path))
    logger.info(f"Attrition table saved to {out_path}")
    return out_path


def export_attrition(
    result: AttritionResult,
    diagram_path: PathLike,
    table_path: Optional[PathLike] = None,
    title: Optional[str] = None,
    dpi: int = 150,
) -> Dict[str, Any]:
    """Produce the attrition table and diagram together.

    If writing the table fails after the diagram was written, the diagram is
    removed so no partial report is left behind.

    Returns:
        Dictionary with ``table`` (DataFrame), ``diagram_path`` and, when a
        ``table_path`` was given, ``table_path``
    """
    table = attrition_table(result)
    diagram = render_attrition_diagram(result, diagram_path, title=title, dpi=dpi)

    out: Dict[str, Any] = {"table": table, "diagram_path": diagram}
    if table_path is not None:
        try:
            out["table_path"] = write_attrition_table(table, table_path)
        except OSError:
            diagram.unlink(missing_ok=True)
            raise

    logger.info("Attrition table:\n" + table.to_string(index=False))
    return out

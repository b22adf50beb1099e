"""Configuration for the survival report.

Groups every caller-tunable setting (input columns, ordered cohort
criteria, output locations) into dataclasses that round-trip through JSON
so a report run can be reproduced from its saved configuration.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import os
import json

from survival_report.criteria import Criterion, criterion_from_dict, criterion_to_dict
from survival_report.data import (
    CATEGORICAL_COLS,
    CONTINUOUS_COLS,
    EVENT_COL,
    GROUP_COL,
    ID_COL,
    TIME_COL,
    default_criteria,
)


# ============================================================================
# Data Configuration
# ============================================================================

@dataclass
class DataConfig:
    """Input dataset and the columns each stage reads.

    Attributes:
        input_path: Data file path, or "lung" for the bundled dataset
        id_column: Unique subject identifier used for counting
        time_column: Follow-up time
        event_column: Event indicator (1 = death, 0 = censored)
        status_coding: How a raw ``status`` column is coded, "r" (1/2) or "binary" (0/1)
        group_column: Grouping for baseline table, curves and log-rank test
        time_unit: Label for the time axis
        continuous_features: Continuous covariates in the baseline table
        categorical_features: Categorical covariates in the baseline table
    """
    input_path: str = "lung"
    id_column: str = ID_COL
    time_column: str = TIME_COL
    event_column: str = EVENT_COL
    status_coding: str = "r"
    group_column: Optional[str] = GROUP_COL
    time_unit: str = "days"
    continuous_features: tuple[str, ...] = tuple(CONTINUOUS_COLS)
    categorical_features: tuple[str, ...] = tuple(CATEGORICAL_COLS)


# ============================================================================
# Cohort Configuration
# ============================================================================

def _default_criteria_dicts() -> List[Dict[str, Any]]:
    return [criterion_to_dict(c) for c in default_criteria()]


@dataclass
class CohortConfig:
    """Ordered inclusion criteria in config form.

    Each entry is ``{"description", "field", "op", "value", "complement"}``
    where ``op`` is ``"present"`` or a comparison operator. Order matters:
    each criterion is applied to the survivors of the previous ones.
    """
    criteria: List[Dict[str, Any]] = field(default_factory=_default_criteria_dicts)

    def build_criteria(self) -> List[Criterion]:
        """Instantiate Criterion objects in configured order."""
        return [criterion_from_dict(entry) for entry in self.criteria]


# ============================================================================
# Output Configuration
# ============================================================================

@dataclass
class OutputConfig:
    """Where report artifacts are written.

    Attributes:
        output_dir: Base directory for all artifacts
        attrition_diagram: File name of the attrition flow diagram
        attrition_table: File name of the attrition CSV
        baseline_table: File name of the baseline characteristics CSV
        km_plot: File name of the Kaplan-Meier figure
        survival_summary: File name of the survival statistics CSV
        dpi: Raster resolution for figures
        timepoints: Times at which survival probabilities are tabulated
    """
    output_dir: str = "data/outputs/sample"
    attrition_diagram: str = "attrition_diagram.png"
    attrition_table: str = "attrition_table.csv"
    baseline_table: str = "baseline_table.csv"
    km_plot: str = "km_curve.png"
    survival_summary: str = "survival_summary.csv"
    dpi: int = 150
    timepoints: tuple[float, ...] = (180.0, 365.0, 730.0)

    def path(self, name: str) -> str:
        return os.path.join(self.output_dir, getattr(self, name))


# ============================================================================
# Master Configuration
# ============================================================================

@dataclass
class ReportConfig:
    """Master configuration for a report run.

    Example:
        >>> config = ReportConfig.for_run_type("production")
        >>> config.save("configs/production.json")
        >>> loaded = ReportConfig.load("configs/production.json")
    """
    data: DataConfig = field(default_factory=DataConfig)
    cohort: CohortConfig = field(default_factory=CohortConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    run_type: str = "sample"
    """Type of run: 'sample' or 'production'."""

    track: bool = False
    """Whether to log the run to MLflow."""

    description: str = ""

    @classmethod
    def for_run_type(cls, run_type: str) -> "ReportConfig":
        """Configuration with outputs under ``data/outputs/{run_type}``.

        Production runs render figures at print resolution.
        """
        if run_type not in ("sample", "production"):
            raise ValueError(f"Unknown run_type '{run_type}'. Use 'sample' or 'production'.")

        output = OutputConfig(output_dir=f"data/outputs/{run_type}")
        if run_type == "production":
            output.dpi = 300
        return cls(output=output, run_type=run_type)

    def to_dict(self) -> dict:
        def _dataclass_to_dict(obj):
            if hasattr(obj, '__dataclass_fields__'):
                return {k: _dataclass_to_dict(v) for k, v in obj.__dict__.items()}
            if isinstance(obj, tuple):
                return list(obj)
            return obj

        return _dataclass_to_dict(self)

    def save(self, path: str) -> None:
        """Save configuration to a JSON file, creating its directory."""
        dirname = os.path.dirname(path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "ReportConfig":
        """Load configuration from a JSON file written by :meth:`save`."""
        with open(path) as f:
            data = json.load(f)

        data_cfg = dict(data.get('data', {}))
        for key in ('continuous_features', 'categorical_features'):
            if key in data_cfg:
                data_cfg[key] = tuple(data_cfg[key])

        output_cfg = dict(data.get('output', {}))
        if 'timepoints' in output_cfg:
            output_cfg['timepoints'] = tuple(output_cfg['timepoints'])

        return cls(
            data=DataConfig(**data_cfg),
            cohort=CohortConfig(**data.get('cohort', {})),
            output=OutputConfig(**output_cfg),
            run_type=data.get('run_type', 'sample'),
            track=data.get('track', False),
            description=data.get('description', '')
        )

"""Main entry point for building the survival report.

Builds the attrition table and diagram, baseline characteristics table,
Kaplan-Meier plot and survival summary for one dataset.

Can be used as CLI or imported as a function.
"""
from survival_report.config import ReportConfig
from survival_report.criteria import SchemaError
from survival_report.logging_config import LOGGER_NAME, setup_logging
from survival_report.report import run_report
import argparse
import logging
from typing import Optional


def build_report(
    input_file: Optional[str] = None,
    config_file: Optional[str] = None,
    output_dir: Optional[str] = None,
    group_col: Optional[str] = None,
    run_type: str = "sample",
    track: bool = False,
    log_level: int = logging.INFO,
) -> int:
    """Build the survival report.

    Args:
        input_file: Data file (CSV or pickle) or "lung". Overrides the config.
        config_file: JSON configuration saved by ``ReportConfig.save``
        output_dir: Output directory. Overrides the config.
        group_col: Grouping column for baseline table and curves. Overrides the config.
        run_type: "sample" or "production"; ignored when config_file is given
        track: Log the run to MLflow
        log_level: Console log level

    Returns:
        Exit code (0 for success, 1 for failure)

    Example:
        >>> from main import build_report
        >>> build_report(output_dir="data/outputs/sample")
        0
    """
    try:
        config = ReportConfig.load(config_file) if config_file else ReportConfig.for_run_type(run_type)
    except (OSError, ValueError, TypeError) as e:
        # Logging is not configured yet; the package logger falls back to stderr
        logging.getLogger(LOGGER_NAME).error(f"Could not load report configuration: {e}")
        return 1

    if input_file is not None:
        config.data.input_path = input_file
    if output_dir is not None:
        config.output.output_dir = output_dir
    if group_col is not None:
        config.data.group_column = group_col
    config.track = config.track or track

    logger = setup_logging(output_dir=config.output.output_dir, log_level=log_level)
    logger.info("=" * 70)
    logger.info(f"SURVIVAL REPORT - {config.run_type.upper()} RUN")
    logger.info(f"Input:      {config.data.input_path}")
    logger.info(f"Output dir: {config.output.output_dir}")
    logger.info(f"Criteria:   {len(config.cohort.criteria)}")
    logger.info("=" * 70)

    try:
        result = run_report(config)
    except SchemaError as e:
        logger.error(f"Configuration does not match dataset: {e}")
        return 1
    except (FileNotFoundError, PermissionError) as e:
        logger.error(f"Report output or input unavailable: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Report failed: {e}", exc_info=True)
        return 1

    logger.info(f"Final cohort: {result.attrition.final_n} of {result.attrition.initial_n} subjects")
    for name, path in result.paths.items():
        logger.info(f"  {name}: {path}")
    logger.info("REPORT COMPLETED SUCCESSFULLY")
    return 0


def main(argv=None):
    """Main execution function with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Survival Report - cohort attrition, baseline table and Kaplan-Meier analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Bundled lung dataset with default criteria
  python src/main.py

  # Own data and saved configuration
  python src/main.py --input data/inputs/cohort.csv --config configs/report.json

  # Production run tracked in MLflow
  python src/main.py --run-type production --track
        """
    )

    parser.add_argument("--input", type=str, default=None,
                        help="Input file (CSV or pickle) or 'lung'. Default: from config")
    parser.add_argument("--config", type=str, default=None,
                        help="JSON report configuration. Default: built-in defaults")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Directory for report artifacts. Default: data/outputs/{run-type}")
    parser.add_argument("--group-col", type=str, default=None,
                        help="Grouping column for baseline table and survival curves")
    parser.add_argument("--run-type", type=str, choices=["sample", "production"], default="sample",
                        help="Run type. Default: sample")
    parser.add_argument("--track", action="store_true", help="Log the run to MLflow")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Console log level. Default: INFO")

    args = parser.parse_args(argv)

    return build_report(
        input_file=args.input,
        config_file=args.config,
        output_dir=args.output_dir,
        group_col=args.group_col,
        run_type=args.run_type,
        track=args.track,
        log_level=getattr(logging, args.log_level),
    )


if __name__ == "__main__":
    exit(main())

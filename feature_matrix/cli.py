"""
Feature Matrix - CLI.

============================================================
RESPONSIBILITY
============================================================
Text front end for the feature matrix loader.

- Loads a study's feature matrix with live progress
- Prints the (subject, emotion) table
- Optionally requests and prints the PCA projection

============================================================
USAGE
============================================================
python -m feature_matrix --study 3 --signals ECG,EDA --subjects 1,2,3
python -m feature_matrix --study 3 --signals ECG,EDA --all-subjects --pca

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .client import VizApiClient
from .config import FeatureMatrixConfig
from .exceptions import ConfigurationError, FeatureMatrixError
from .loader import FeatureMatrixLoader
from .models import FeatureRow, ProjectionResult


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name
        log_format: Output format (json or text)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    # Logs go to stderr so the table on stdout stays clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _int_list(value: str) -> List[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got {value!r}")


def _str_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="feature-matrix",
        description="Load per-subject physiological feature matrices from the viz service",
    )

    query_group = parser.add_argument_group("Query Options")
    query_group.add_argument("--study", "-s", type=int, required=True, help="Study number")
    query_group.add_argument(
        "--signals",
        type=_str_list,
        required=True,
        metavar="A,B,...",
        help="Signals to compute features for (e.g. ECG,EDA)",
    )
    query_group.add_argument(
        "--subjects",
        type=_int_list,
        metavar="1,2,...",
        help="Subject ids to include",
    )
    query_group.add_argument(
        "--all-subjects",
        action="store_true",
        help="Include every subject listed by the study API",
    )
    query_group.add_argument(
        "--pca",
        action="store_true",
        help="Also compute the 2-D projection",
    )

    service_group = parser.add_argument_group("Service Options")
    service_group.add_argument("--viz-url", type=str, help="Viz service base URL")
    service_group.add_argument("--api-url", type=str, help="Study API base URL")
    service_group.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum simultaneous subject requests (default: 5)",
    )

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate CLI arguments. Returns a list of errors."""
    errors = []
    if not args.subjects and not args.all_subjects:
        errors.append("one of --subjects or --all-subjects is required")
    if args.subjects and args.all_subjects:
        errors.append("--subjects and --all-subjects are mutually exclusive")
    if not args.signals:
        errors.append("--signals must name at least one signal")
    if args.concurrency is not None and args.concurrency < 1:
        errors.append("--concurrency must be at least 1")
    return errors


def build_config(args: argparse.Namespace) -> FeatureMatrixConfig:
    """Build loader configuration from environment and CLI overrides."""
    config = FeatureMatrixConfig.from_env()
    if args.viz_url:
        config.viz_base_url = args.viz_url.rstrip("/")
    if args.api_url:
        config.api_base_url = args.api_url.rstrip("/")
    if args.concurrency is not None:
        config.concurrency_limit = args.concurrency
    return config


# ============================================================
# OUTPUT
# ============================================================

def format_table(rows: List[FeatureRow], columns: List[str]) -> str:
    """Render rows as a fixed-width text table."""
    header = ["Subject", "Emotion"] + columns
    lines = ["  ".join(f"{h:>14}" for h in header)]
    for row in sorted(rows, key=lambda r: (r.subject_id, r.emotion)):
        cells = [f"{row.subject_id:>14}", f"{row.emotion:>14}"]
        for col in columns:
            value = row.features.get(col)
            cells.append(f"{'-':>14}" if value is None else f"{value:>14.4f}")
        lines.append("  ".join(cells))
    return "\n".join(lines)


def format_projection(result: ProjectionResult) -> str:
    pc1_var, pc2_var = result.variance_explained
    lines = [f"Variance explained: PC1={pc1_var:.3f} PC2={pc2_var:.3f}"]
    if result.features_used:
        lines.append(f"Features used: {', '.join(result.features_used)}")
    for row in result.rows:
        if row.has_projection:
            lines.append(f"  {row.subject_id:>4} {row.emotion:<20} {row.pc1:>10.4f} {row.pc2:>10.4f}")
        else:
            lines.append(f"  {row.subject_id:>4} {row.emotion:<20} {'(no projection)':>21}")
    return "\n".join(lines)


def _print_progress(loader: FeatureMatrixLoader) -> None:
    progress = loader.progress
    if loader.is_loading and progress.total:
        print(
            f"\r{progress.completed} of {progress.total} subjects ({progress.percent}%) "
            f"- {len(loader.rows)} rows",
            end="",
            file=sys.stderr,
            flush=True,
        )


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace) -> int:
    """Async main entry point. Returns an exit code."""
    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    async with VizApiClient(config=config) as client:
        try:
            loader = FeatureMatrixLoader(client, config=config)
            subject_ids = args.subjects or await client.get_subjects(args.study)

            loader.add_listener(_print_progress)
            rows = await loader.load(args.study, args.signals, subject_ids)
            print(file=sys.stderr)

            if not rows:
                print("No feature data available")
                return 1

            print(f"Study {args.study}: {len(rows)} rows, {len(loader.columns)} features")
            if loader.failed_subjects:
                print(f"Failed subjects: {loader.failed_subjects}")
            print(format_table(rows, list(loader.columns)))

            if args.pca:
                projection = await loader.trigger_projection()
                print()
                print(format_projection(projection))

            return 0

        except FeatureMatrixError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())

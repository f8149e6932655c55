#!/usr/bin/env python3
"""
Per-Date Exports Script

Command-line interface for the per-date / per-site extractions: for every
configured (label, date, site) entry, an NDWI composite and an RGB composite of
the imagery acquired on that date. Entries without imagery are reported and
skipped.

Usage Examples:
    python river_composites/scripts/run_date_exports.py
    python river_composites/scripts/run_date_exports.py --config field_campaign.yaml --diagnostics missing.txt
    python river_composites/scripts/run_date_exports.py --log-level DEBUG

Author: Diego Bengochea
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path for absolute imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from shared_utils import get_config_value, load_config, setup_logging

from river_composites.core.composite_pipeline import RiverCompositePipeline
from river_composites.core.exceptions import ConfigurationError


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Per-date river channel exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--diagnostics',
        type=str,
        default=None,
        help='Write one line per skipped or failed entry to this file'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured logging level'
    )

    return parser.parse_args()


def validate_arguments(args: argparse.Namespace) -> bool:
    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file does not exist: {args.config}")
        return False
    return True


def main() -> int:
    """
    Main entry point for the per-date exports script.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments()

    if not validate_arguments(args):
        return 1

    try:
        config = load_config(args.config, component_name='river_composites')
        logger = setup_logging(
            level=args.log_level or get_config_value(config, 'logging.level', 'INFO'),
            component_name='date_exports',
            log_file=get_config_value(config, 'logging.log_file')
        )
        pipeline = RiverCompositePipeline.from_config_file(config['_meta']['config_file'])
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    report = pipeline.run_date_exports()
    if args.diagnostics:
        pipeline.write_diagnostics(report, args.diagnostics)

    summary = report.summary()
    print(f"Exports: {summary['exports']}, skipped: {summary['skipped_count']}, errors: {summary['error_count']}")
    for diagnostic in report.diagnostics:
        print(diagnostic.message)

    logger.info("Per-date exports finished")
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Multi-Year AOI Composite Script

Command-line interface for the multi-year median composite over the watershed:
one archive query per year of the seasonal window, cloud masking and water
index per image, median composites of the index and of the reflectance bands.

Usage Examples:
    # Run with default configuration
    python river_composites/scripts/run_aoi_composite.py

    # Run with custom configuration
    python river_composites/scripts/run_aoi_composite.py --config custom_config.yaml

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
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Multi-year river AOI composite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured logging level'
    )

    return parser.parse_args()


def main() -> int:
    """
    Main entry point for the AOI composite script.

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments()

    try:
        config = load_config(args.config, component_name='river_composites')
        logger = setup_logging(
            level=args.log_level or get_config_value(config, 'logging.level', 'INFO'),
            component_name='aoi_composite',
            log_file=get_config_value(config, 'logging.log_file')
        )
        pipeline = RiverCompositePipeline.from_config_file(config['_meta']['config_file'])
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    report = pipeline.run_aoi_composite()
    logger.info(pipeline.get_processing_summary(report))
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())

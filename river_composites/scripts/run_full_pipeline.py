#!/usr/bin/env python3
"""
River Composites Full Pipeline

Runs both products in sequence:
1. Multi-year median composites over the watershed
2. Per-date / per-site NDWI and RGB extractions

and writes the diagnostics report (one line per skipped or failed entry).

Usage:
    python run_full_pipeline.py

Author: Diego Bengochea
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path for absolute imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from shared_utils import get_config_value, load_config, setup_logging
from shared_utils.central_data_paths_constants import DIAGNOSTICS_FILE

from river_composites.core.composite_pipeline import RiverCompositePipeline
from river_composites.core.exceptions import ConfigurationError


def parse_arguments() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="River channel composites - full pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file'
    )
    parser.add_argument(
        '--diagnostics',
        type=str,
        default=str(DIAGNOSTICS_FILE),
        help=f'Diagnostics report path (default: {DIAGNOSTICS_FILE})'
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_arguments()

    try:
        config = load_config(args.config, component_name='river_composites')
        setup_logging(
            level=get_config_value(config, 'logging.level', 'INFO'),
            component_name='full_pipeline',
            log_file=get_config_value(config, 'logging.log_file')
        )
        pipeline = RiverCompositePipeline.from_config_file(config['_meta']['config_file'])
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1

    report = pipeline.run_full_pipeline(diagnostics_path=args.diagnostics)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())

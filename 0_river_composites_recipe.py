#!/usr/bin/env python3
"""
Recipe: River Channel Composites

Reproduces both river channel products:
1. Multi-year median NDWI and reflectance composites over the watershed
2. Per-date / per-site NDWI and RGB extractions (sampling trips, avulsion dates)

and writes the diagnostics report listing every date/site without imagery.

Usage:
    python 0_river_composites_recipe.py

Examples:
    # Run with the component default configuration
    python 0_river_composites_recipe.py

    # Run with a campaign specific configuration
    python 0_river_composites_recipe.py --config campaign_2025.yaml

Author: Diego Bengochea
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Optional

# Add repo root to path for absolute imports
sys.path.insert(0, str(Path(__file__).parent))

from shared_utils.central_data_paths_constants import AOI_DIR, DIAGNOSTICS_FILE
from shared_utils.logging_utils import setup_logging

from river_composites.core.composite_pipeline import RiverCompositePipeline
from river_composites.core.models import RunReport


class RiverCompositesRecipe:
    """
    Recipe for river channel composites reproduction.

    Runs the multi-year composite and the per-date exports as two stages and
    keeps the outcome of each.
    """

    def __init__(self, config_path: Optional[str] = None, log_level: str = "INFO"):
        """
        Initialize river composites recipe.

        Args:
            config_path: Component configuration file (default: river_composites/config.yaml)
            log_level: Logging level
        """
        self.logger = setup_logging(
            level=log_level,
            component_name='river_composites_recipe'
        )
        self.config_path = config_path
        self.pipeline = None
        self.stage_results = {}
        self.report = RunReport('river_composites_recipe')

        self.logger.info("Initialized River Composites Recipe")

    def validate_prerequisites(self) -> bool:
        """
        Load the configuration and check the AOI polygons can be used.

        Returns:
            bool: True if prerequisites are met
        """
        self.logger.info("Validating prerequisites for river composites...")

        if not AOI_DIR.exists():
            self.logger.warning(f"AOI directory not found: {AOI_DIR}")
            self.logger.warning("Expected structure: data/raw/aoi/*.geojson")

        try:
            self.pipeline = RiverCompositePipeline.from_config_file(self.config_path)
        except Exception as e:
            self.logger.error(f"Could not build the pipeline: {e}")
            return False

        config = self.pipeline.config
        self.logger.info(f"Watershed AOI: {config.watershed.name}")
        self.logger.info(f"Sites: {sorted(config.sites)}")
        for name, reason in config.site_errors.items():
            self.logger.warning(f"Site '{name}' unusable, its entries will be reported: {reason}")
        self.logger.info(f"Date entries: {len(config.date_entries)}")
        return True

    def create_output_structure(self) -> None:
        """Create necessary output directories."""
        config = self.pipeline.config
        for directory in (config.output_dir / config.aoi_folder, config.output_dir / config.date_folder):
            directory.mkdir(parents=True, exist_ok=True)
        self.logger.info("Output directory structure created")

    def run_stage(self, stage_name: str, run) -> bool:
        """
        Run one pipeline stage and record its outcome.

        Returns:
            bool: True if the stage had no errors
        """
        self.logger.info(f"\n{'='*60}")
        self.logger.info(f"Starting {stage_name}")
        self.logger.info(f"{'='*60}")

        stage_start = time.time()
        try:
            report = run()
        except Exception as e:
            stage_time = time.time() - stage_start
            self.stage_results[stage_name] = {
                'success': False,
                'duration_minutes': stage_time / 60,
                'error': str(e)
            }
            self.logger.error(f"{stage_name} failed with error: {str(e)}")
            return False

        stage_time = time.time() - stage_start
        self.report = self.report.merge(report)
        self.stage_results[stage_name] = {
            'success': report.success,
            'duration_minutes': stage_time / 60,
            'result': report.summary()
        }

        if report.success:
            self.logger.info(f"{stage_name} completed successfully in {stage_time/60:.2f} minutes")
        else:
            self.logger.error(f"{stage_name} finished with {report.error_count} error(s) "
                              f"after {stage_time/60:.2f} minutes")
        return report.success


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="River channel composites recipe")
    parser.add_argument('--config', type=str, default=None, help='Component configuration file')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    parser.add_argument('--diagnostics', type=str, default=str(DIAGNOSTICS_FILE),
                        help='Diagnostics report path')
    return parser.parse_args()


def main():
    """Main entry point for the river composites recipe."""
    start_time = time.time()
    args = parse_arguments()

    recipe = RiverCompositesRecipe(args.config, args.log_level)

    if not recipe.validate_prerequisites():
        recipe.logger.error("Prerequisites validation failed")
        sys.exit(1)

    recipe.create_output_structure()

    overall_success = recipe.run_stage("Multi-Year AOI Composite", recipe.pipeline.run_aoi_composite)
    success = recipe.run_stage("Per-Date Exports", recipe.pipeline.run_date_exports)
    overall_success = overall_success and success

    recipe.pipeline.write_diagnostics(recipe.report, args.diagnostics)
    for diagnostic in recipe.report.diagnostics:
        recipe.logger.info(diagnostic.message)

    elapsed_time = time.time() - start_time
    if overall_success:
        recipe.logger.info(f"River composites recipe completed in {elapsed_time/60:.2f} minutes")
        recipe.logger.info(f"Exports: {len(recipe.report.exports)}, skipped entries: {recipe.report.skipped_count}")
        sys.exit(0)

    recipe.logger.error(f"River composites recipe finished with errors after {elapsed_time/60:.2f} minutes")
    sys.exit(1)


if __name__ == "__main__":
    main()

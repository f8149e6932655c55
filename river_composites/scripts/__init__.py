"""
River Composites Executable Scripts

Command-line entry points for the river compositing workflows.

Scripts:
    run_aoi_composite.py: Multi-year median composites over the watershed
    run_date_exports.py: Per-date / per-site NDWI and RGB extractions
    run_full_pipeline.py: Both products plus the diagnostics report

Usage Examples:
    python river_composites/scripts/run_aoi_composite.py --config custom_config.yaml
    python river_composites/scripts/run_date_exports.py --log-level DEBUG
    python river_composites/scripts/run_full_pipeline.py

Author: Diego Bengochea
"""

from .run_aoi_composite import main as run_aoi_composite
from .run_date_exports import main as run_date_exports
from .run_full_pipeline import main as run_full_pipeline

__all__ = [
    "run_aoi_composite",
    "run_date_exports",
    "run_full_pipeline"
]

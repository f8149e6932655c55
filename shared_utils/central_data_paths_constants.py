"""
Central Data Paths - Constants

Centralized path management for the river channel composites repository.
All components should import paths from this module instead of defining their own.

Usage:
    from shared_utils.central_data_paths_constants import RIVER_COMPOSITES_DIR

    ndwi_files = list((RIVER_COMPOSITES_DIR / "ndwi").glob("*.tif"))

Author: Diego Bengochea
"""

from pathlib import Path

# Root directories
DATA_ROOT = Path("data")

RAW_DIR = DATA_ROOT / "raw"
PROCESSED_DIR = DATA_ROOT / "processed"

# Areas of interest (watershed and sampling sites)
AOI_DIR = RAW_DIR / "aoi"

# Local scenes for the in-memory archive
LOCAL_SCENES_DIR = RAW_DIR / "scenes"

# Composite outputs
RIVER_COMPOSITES_DIR = PROCESSED_DIR / "river_composites"

# Run diagnostics
DIAGNOSTICS_FILE = RIVER_COMPOSITES_DIR / "diagnostics.txt"

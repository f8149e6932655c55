"""
River Channel Composites Component

Cloud-filtered water-index and reflectance composites of river channels from a
multi-year Sentinel-2 archive.

This component provides:
- Multi-year median composites over a watershed for a recurring seasonal window
- Per-date extractions at sampling-trip and channel-avulsion dates, per site
- Bitmask and scene-classification cloud masking
- Normalized difference water index derivation
- Median and first-valid-pixel mosaic reduction clipped to areas of interest
- GeoTIFF export with pixel-budget checks and per-entry diagnostics

Author: Diego Bengochea
"""

from .core.composite_pipeline import RiverCompositePipeline
from .core.pipeline_config import PipelineConfig
from .core.models import AreaOfInterest, RecurringWindow, FixedDateWindow, ReducerPolicy, EmptyResult
from .core.compositing import reduce_composite

__version__ = "1.0.0"
__component__ = "river_composites"

__all__ = [
    "RiverCompositePipeline",
    "PipelineConfig",
    "AreaOfInterest",
    "RecurringWindow",
    "FixedDateWindow",
    "ReducerPolicy",
    "EmptyResult",
    "reduce_composite",
    "__version__",
    "__component__"
]

# Component configuration
COMPONENT_NAME = "river_composites"

DEFAULT_SEASON = ("06-10", "09-20")

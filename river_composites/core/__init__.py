"""
River Composites Core Modules

Core functionality for the river channel compositing pipeline: archive
adapters, per-image raster operations, composite reduction, export sinks and
the pipeline class orchestrating the multi-year and per-date products.

Modules:
    models: Value types (AOIs, temporal windows, image sets, requests, diagnostics)
    archive: Image archive interface with STAC and in-memory adapters
    raster_ops: Cloud masking, normalized-difference indices and AOI clipping
    compositing: Median and mosaic reduction of image sets
    export: Export sink interface and GeoTIFF sink
    pipeline_config: Immutable run configuration built from YAML
    composite_pipeline: Main pipeline class

Author: Diego Bengochea
"""

from .exceptions import (
    RiverCompositesError,
    ConfigurationError,
    PixelBudgetExceeded,
    CollaboratorFailure
)

from .models import (
    AreaOfInterest,
    RecurringWindow,
    FixedDateWindow,
    ReducerPolicy,
    ImageSet,
    EmptyResult,
    CompositeSpec,
    ExportRequest,
    ExportResult,
    DateEntry,
    Diagnostic,
    RunReport,
    parse_date
)

from .archive import (
    ImageArchive,
    InMemoryImageArchive,
    StacImageArchive,
    build_raster_image,
    load_geotiff_image
)

from .raster_ops import (
    BitmaskCloudMask,
    ClassificationCloudMask,
    build_cloud_mask,
    apply_mask,
    derive_normalized_difference,
    derive_water_index,
    clip_to_aoi,
    valid_pixel_percentage
)

from .compositing import reduce_composite, reduce_spec
from .export import ExportSink, GeoTiffExportSink, check_pixel_budget
from .pipeline_config import PipelineConfig
from .composite_pipeline import RiverCompositePipeline, build_archive

__all__ = [
    # Errors
    "RiverCompositesError",
    "ConfigurationError",
    "PixelBudgetExceeded",
    "CollaboratorFailure",

    # Value types
    "AreaOfInterest",
    "RecurringWindow",
    "FixedDateWindow",
    "ReducerPolicy",
    "ImageSet",
    "EmptyResult",
    "CompositeSpec",
    "ExportRequest",
    "ExportResult",
    "DateEntry",
    "Diagnostic",
    "RunReport",
    "parse_date",

    # Archive
    "ImageArchive",
    "InMemoryImageArchive",
    "StacImageArchive",
    "build_raster_image",
    "load_geotiff_image",

    # Raster operations
    "BitmaskCloudMask",
    "ClassificationCloudMask",
    "build_cloud_mask",
    "apply_mask",
    "derive_normalized_difference",
    "derive_water_index",
    "clip_to_aoi",
    "valid_pixel_percentage",

    # Compositing and export
    "reduce_composite",
    "reduce_spec",
    "ExportSink",
    "GeoTiffExportSink",
    "check_pixel_budget",

    # Pipeline
    "PipelineConfig",
    "RiverCompositePipeline",
    "build_archive"
]

"""
Export sinks for finished composites.

A sink receives a composite and an ``ExportRequest`` and persists it. The
pixel budget is checked from the request alone, before any reprojection or
write, so oversized requests fail immediately.

Author: Diego Bengochea
"""

import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import numpy as np
import rioxarray  # noqa: F401 - registers the rio accessor
import xarray as xr

from shared_utils import ensure_directory, get_logger

from .exceptions import ConfigurationError, PixelBudgetExceeded
from .models import ExportRequest, ExportResult, same_crs


class ExportSink(ABC):
    """Accepts a raster and an export request and persists the raster."""

    @abstractmethod
    def export(self, raster: xr.Dataset, request: ExportRequest) -> ExportResult:
        """Persist ``raster`` as described by ``request``; raise on failure."""


def estimate_pixel_count(request: ExportRequest) -> int:
    """Width * height of the export grid covering the request region at its scale."""
    minx, miny, maxx, maxy = request.region.to_crs(request.crs).bounds
    width = max(1, math.ceil((maxx - minx) / request.scale))
    height = max(1, math.ceil((maxy - miny) / request.scale))
    return width * height


def check_pixel_budget(request: ExportRequest, raster: Optional[xr.Dataset] = None) -> int:
    """
    Return the pixel count of the export, raising if it exceeds ``max_pixels``.

    Without ``raster`` the count is estimated from the request region and
    scale; with it, the count is the width * height of the grid to be written.

    Raises:
        PixelBudgetExceeded: If the export grid is larger than the budget
    """
    if raster is None:
        n_pixels = estimate_pixel_count(request)
    else:
        n_pixels = raster.rio.width * raster.rio.height
    if n_pixels > request.max_pixels:
        raise PixelBudgetExceeded(
            f"Export '{request.destination_name}' needs {n_pixels} pixels, "
            f"budget is {request.max_pixels}"
        )
    return n_pixels


class GeoTiffExportSink(ExportSink):
    """
    Writes composites as compressed, tiled GeoTIFFs under
    ``<output_root>/<folder>/<file_prefix>.tif``.

    Composites are reprojected only when their CRS or resolution differs from
    the request, then cropped to the request region; the pixel budget is
    checked on the estimate before any work and on the cropped grid before
    writing. Existing outputs are left untouched when ``skip_existing``.
    """

    def __init__(self, output_root: Union[str, Path], skip_existing: bool = True, compress: str = 'lzw'):
        self.output_root = Path(output_root)
        self.skip_existing = skip_existing
        self.compress = compress
        self.logger = get_logger('export.geotiff')

    def output_path(self, request: ExportRequest) -> Path:
        return self.output_root / request.folder / f"{request.file_prefix}.tif"

    def prepare(self, raster: xr.Dataset, request: ExportRequest) -> xr.Dataset:
        resolution = np.abs(np.asarray(raster.rio.resolution(), dtype='float64'))
        if same_crs(raster.rio.crs, request.crs) and np.allclose(resolution, request.scale):
            return raster
        self.logger.info(f"Reprojecting '{request.destination_name}' to {request.crs} at {request.scale}")
        return raster.rio.reproject(request.crs, resolution=request.scale, nodata=np.nan)

    def crop_to_region(self, raster: xr.Dataset, request: ExportRequest) -> xr.Dataset:
        """
        Keep the rows and columns whose pixel centres fall inside the bounds of
        the request region, the same centre rule used when clipping composites.

        Raises:
            ConfigurationError: If the region does not cover any pixel centre
        """
        minx, miny, maxx, maxy = request.region.to_crs(raster.rio.crs).bounds
        x_dim, y_dim = raster.rio.x_dim, raster.rio.y_dim
        xs = raster[x_dim].values
        ys = raster[y_dim].values
        columns = np.flatnonzero((xs >= minx) & (xs <= maxx))
        rows = np.flatnonzero((ys >= miny) & (ys <= maxy))
        if columns.size == 0 or rows.size == 0:
            raise ConfigurationError(
                f"Region of export '{request.destination_name}' does not cover any pixel of the composite"
            )
        return raster.isel({x_dim: columns, y_dim: rows})

    def export(self, raster: xr.Dataset, request: ExportRequest) -> ExportResult:
        n_pixels = check_pixel_budget(request)
        path = self.output_path(request)

        if self.skip_existing and path.exists():
            self.logger.info(f'Already exported {path}, skipping...')
            return ExportResult(request.destination_name, str(path), 'skipped_existing', n_pixels)

        raster = self.crop_to_region(self.prepare(raster, request), request)
        n_pixels = check_pixel_budget(request, raster)
        ensure_directory(path.parent)

        raster.rio.to_raster(
            path,
            tags={key: str(value) for key, value in raster.attrs.items()},
            compress=self.compress,
            tiled=True
        )
        self.logger.info(f"Successfully exported '{request.destination_name}' to {path}")
        return ExportResult(request.destination_name, str(path), 'exported', n_pixels)

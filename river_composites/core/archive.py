"""
Image archive adapters.

The compositing logic only depends on the ``ImageArchive`` interface: one
filtered query combining a spatial filter (AOI), a half-open temporal window
and a scalar cloud-cover filter, returning an ``ImageSet``. Two adapters are
provided:

- ``StacImageArchive``: STAC catalog search (pystac-client) with lazy loading
  of the matching items through odc-stac onto a grid shared by all images.
- ``InMemoryImageArchive``: already materialized images (local GeoTIFFs,
  tests), filtered in memory.

Author: Diego Bengochea
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import odc.geo
import odc.geo.geobox
import odc.geo.geom
import rioxarray  # noqa: F401 - registers the rio accessor
import xarray as xr
from odc.stac import load
from pystac_client import Client
from shapely.geometry import mapping

from shared_utils import get_logger, validate_file_exists

from .exceptions import ConfigurationError
from .models import AreaOfInterest, ImageSet, Window, parse_date


class ImageArchive(ABC):
    """Queryable store of timestamped, geolocated multi-band images."""

    @abstractmethod
    def query(self, aoi: AreaOfInterest, window: Window, max_cloud_cover: float) -> ImageSet:
        """
        Return every image intersecting ``aoi``, acquired in ``[start, end)``
        and with cloud cover strictly below ``max_cloud_cover`` percent.
        """


def build_raster_image(
    bands: Dict[str, np.ndarray],
    x: Sequence[float],
    y: Sequence[float],
    crs: str,
    date,
    cloud_cover: float,
    image_id: Optional[str] = None
) -> xr.Dataset:
    """
    Assemble a RasterImage from 2-D arrays sharing one (y, x) grid.

    Examples:
        >>> image = build_raster_image({'B3': green, 'B8': nir, 'QA60': qa},
        ...                            x, y, 'EPSG:4326', '2025-05-27', 3.5)
    """
    acquired = parse_date(date).isoformat()
    dataset = xr.Dataset(
        {name: (('y', 'x'), np.asarray(values)) for name, values in bands.items()},
        coords={'y': np.asarray(y, dtype='float64'), 'x': np.asarray(x, dtype='float64')},
        attrs={
            'image_id': image_id or f"image_{acquired}",
            'date': acquired,
            'cloud_cover': float(cloud_cover),
        }
    )
    return dataset.rio.write_crs(crs)


def load_geotiff_image(
    path: Union[str, Path],
    band_names: Sequence[str],
    date,
    cloud_cover: float,
    image_id: Optional[str] = None
) -> xr.Dataset:
    """
    Read a local multi-band GeoTIFF as a RasterImage, band order given by ``band_names``.
    """
    path = validate_file_exists(path, "scene")
    raster = rioxarray.open_rasterio(path, masked=True)
    if raster.sizes['band'] != len(band_names):
        raise ConfigurationError(
            f"{path.name} has {raster.sizes['band']} bands, expected {len(band_names)}"
        )
    dataset = raster.assign_coords(band=list(band_names)).to_dataset(dim='band')
    dataset.attrs = {
        'image_id': image_id or path.stem,
        'date': parse_date(date).isoformat(),
        'cloud_cover': float(cloud_cover),
    }
    return dataset


class InMemoryImageArchive(ImageArchive):
    """
    Archive over a fixed list of RasterImages. Each image needs ``date`` and
    ``cloud_cover`` attributes and a CRS.
    """

    def __init__(self, images: Iterable[xr.Dataset] = ()):
        self.images = tuple(images)
        for image in self.images:
            if 'date' not in image.attrs or 'cloud_cover' not in image.attrs:
                raise ConfigurationError(
                    f"Image {image.attrs.get('image_id', '?')} lacks 'date' or 'cloud_cover' metadata"
                )
        self.logger = get_logger('archive.memory')

    def query(self, aoi: AreaOfInterest, window: Window, max_cloud_cover: float) -> ImageSet:
        start, end = window
        selected = []
        for image in self.images:
            acquired = parse_date(image.attrs['date'])
            if not start <= acquired < end:
                continue
            if not float(image.attrs['cloud_cover']) < max_cloud_cover:
                continue
            if not aoi.intersects_bounds(image.rio.bounds(), image.rio.crs):
                continue
            selected.append(image)

        self.logger.debug(f"Query {aoi.name} {start}/{end} (<{max_cloud_cover}%): {len(selected)} image(s)")
        return ImageSet(selected)


class StacImageArchive(ImageArchive):
    """
    STAC-backed archive.

    Search filters (collection, AOI, datetime, ``eo:cloud_cover``) are pushed
    down to the catalog; items are then loaded lazily, one image per item, onto
    a GeoBox covering the AOI at the configured CRS and resolution, so every
    image of one query shares exactly the same pixel grid. ``categorical_bands``
    (cloud quality band) are resampled with nearest neighbour.
    """

    def __init__(
        self,
        stac_url: str,
        collection: str,
        bands: Sequence[str],
        crs: str,
        resolution: float,
        chunk_size: int = 2048,
        resampling: str = 'bilinear',
        categorical_bands: Sequence[str] = (),
        catalog: Optional[Client] = None
    ):
        self.stac_url = stac_url
        self.collection = collection
        self.bands = list(bands)
        self.crs = crs
        self.resolution = resolution
        self.chunk_size = chunk_size
        self.resampling = resampling
        self.categorical_bands = [band for band in categorical_bands if band in self.bands]
        self.logger = get_logger('archive.stac')

        self.catalog = catalog if catalog is not None else Client.open(stac_url)
        self.logger.info(f"Connected to STAC catalog: {stac_url}")

    def geobox_for(self, aoi: AreaOfInterest) -> odc.geo.geobox.GeoBox:
        geometry = odc.geo.geom.Geometry(aoi.geometry, crs=aoi.crs).to_crs(self.crs)
        return odc.geo.geobox.GeoBox.from_geopolygon(geometry, resolution=self.resolution)

    def search_items(self, aoi: AreaOfInterest, window: Window, max_cloud_cover: float) -> List:
        start, end = window
        search = self.catalog.search(
            collections=[self.collection],
            intersects=mapping(aoi.to_crs('EPSG:4326')),
            datetime=f"{start.isoformat()}/{end.isoformat()}",
            query=[f'eo:cloud_cover<{max_cloud_cover}']
        )
        items = search.item_collection()

        # STAC datetime ranges are closed; the window is half-open
        return [item for item in items if start <= item.datetime.date() < end]

    def band_resampling(self) -> Dict[str, str]:
        """Resampling per band: quality and classification bands are never interpolated."""
        resampling = {'*': self.resampling}
        for band in self.categorical_bands:
            resampling[band] = 'nearest'
        return resampling

    def load_item(self, item, geobox: odc.geo.geobox.GeoBox) -> xr.Dataset:
        dataset = load(
            [item],
            bands=self.bands,
            geobox=geobox,
            chunks={'x': self.chunk_size, 'y': self.chunk_size},
            resampling=self.band_resampling()
        ).isel(time=0, drop=True)

        for band in self.bands:
            nodata = dataset[band].attrs.get('nodata')
            if nodata is not None:
                dataset[band] = dataset[band].where(dataset[band] != nodata)

        dataset.attrs = {
            'image_id': item.id,
            'date': item.datetime.date().isoformat(),
            'cloud_cover': float(item.properties.get('eo:cloud_cover', 100.0)),
        }
        return dataset.rio.write_crs(self.crs)

    def query(self, aoi: AreaOfInterest, window: Window, max_cloud_cover: float) -> ImageSet:
        items = self.search_items(aoi, window, max_cloud_cover)
        self.logger.info(
            f"Found {len(items)} item(s) for {aoi.name} in {window[0]}/{window[1]} "
            f"with cloud cover < {max_cloud_cover}%"
        )
        if not items:
            return ImageSet()

        geobox = self.geobox_for(aoi)
        return ImageSet(tuple(self.load_item(item, geobox) for item in items))

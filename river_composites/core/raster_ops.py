"""
Per-image raster operations: cloud masking, normalized-difference indices and
AOI clipping.

All functions take a RasterImage (an ``xarray.Dataset`` on a ``(y, x)`` grid)
and return a new one; inputs are never modified.

Author: Diego Bengochea
"""

from typing import Dict, Iterable, Sequence

import numpy as np
import xarray as xr
import rioxarray  # noqa: F401 - registers the rio accessor
from rasterio.features import geometry_mask

from .exceptions import ConfigurationError
from .models import AreaOfInterest

# Sentinel-2 QA60 bits
OPAQUE_CLOUD_BIT = 10
CIRRUS_BIT = 11


def apply_mask(image: xr.Dataset, mask: xr.DataArray) -> xr.Dataset:
    """
    Set every band to no-data (NaN) where ``mask`` is False.

    Args:
        image: Input RasterImage
        mask: Boolean DataArray aligned to the image grid, True = valid

    Returns:
        Masked copy of the image, attrs preserved
    """
    masked = image.where(mask)
    masked.attrs = dict(image.attrs)
    return masked


class BitmaskCloudMask:
    """
    Validity mask from a bit-packed quality band.

    A pixel is valid iff none of the configured bits is set. Pixels where the
    quality band itself is no-data are invalid, so masking an already masked
    image changes nothing.

    Examples:
        >>> cloud_mask = BitmaskCloudMask('QA60', bits=(10, 11))
        >>> clear = cloud_mask.apply(image)
    """

    def __init__(self, band: str = 'QA60', bits: Sequence[int] = (OPAQUE_CLOUD_BIT, CIRRUS_BIT)):
        self.band = band
        self.bits = tuple(int(b) for b in bits)
        self.bitmask = 0
        for bit in self.bits:
            self.bitmask |= 1 << bit

    def mask(self, image: xr.Dataset) -> xr.DataArray:
        qa = image[self.band]
        flags = qa.fillna(0).astype('int64')
        return qa.notnull() & ((flags & self.bitmask) == 0)

    def apply(self, image: xr.Dataset) -> xr.Dataset:
        return apply_mask(image, self.mask(image))


class ClassificationCloudMask:
    """
    Validity mask from a scene-classification band (e.g. Sentinel-2 L2A SCL):
    a pixel is valid iff its class is one of ``valid_classes``.
    """

    def __init__(self, band: str = 'scl', valid_classes: Iterable[int] = (4, 5, 6, 7, 11)):
        self.band = band
        self.valid_classes = sorted(int(c) for c in valid_classes)

    def mask(self, image: xr.Dataset) -> xr.DataArray:
        scl = image[self.band]
        return scl.notnull() & scl.isin(self.valid_classes)

    def apply(self, image: xr.Dataset) -> xr.Dataset:
        return apply_mask(image, self.mask(image))


def build_cloud_mask(settings: Dict):
    """
    Construct a cloud mask from the ``cloud_mask`` configuration section.

    Examples:
        >>> build_cloud_mask({'method': 'bitmask', 'band': 'QA60', 'bits': [10, 11]})
        >>> build_cloud_mask({'method': 'classification', 'band': 'scl', 'valid_classes': [4, 5, 6]})
    """
    method = settings.get('method', 'bitmask')
    if method == 'bitmask':
        return BitmaskCloudMask(settings.get('band', 'QA60'),
                                settings.get('bits', (OPAQUE_CLOUD_BIT, CIRRUS_BIT)))
    if method == 'classification':
        return ClassificationCloudMask(settings.get('band', 'scl'),
                                       settings.get('valid_classes', (4, 5, 6, 7, 11)))
    raise ConfigurationError(f"Unknown cloud mask method '{method}'")


def derive_normalized_difference(image: xr.Dataset, band_a: str, band_b: str,
                                 output_name: str) -> xr.Dataset:
    """
    Append ``(a - b) / (a + b)`` as a new band.

    Pixels where the denominator is zero, where either input is no-data, or
    where the ratio falls outside [-1, 1] (negative reflectances) are no-data.

    Args:
        image: Input RasterImage
        band_a: First band name (e.g. green)
        band_b: Second band name (e.g. near-infrared)
        output_name: Name of the derived band

    Returns:
        New RasterImage with the derived band appended

    Examples:
        >>> with_ndwi = derive_normalized_difference(image, 'B3', 'B8', 'NDWI')
    """
    for band in (band_a, band_b):
        if band not in image.data_vars:
            raise ConfigurationError(f"Band '{band}' not present in image {image.attrs.get('image_id')}")

    a = image[band_a].astype('float64')
    b = image[band_b].astype('float64')
    denominator = a + b

    with np.errstate(divide='ignore', invalid='ignore'):
        ratio = (a - b) / denominator.where(denominator != 0)
    ratio = ratio.where((ratio >= -1.0) & (ratio <= 1.0))

    derived = image.assign({output_name: ratio})
    derived.attrs = dict(image.attrs)
    return derived


def derive_water_index(image: xr.Dataset, green: str, nir: str, output_name: str = 'NDWI') -> xr.Dataset:
    """McFeeters normalized difference water index from green and near-infrared."""
    return derive_normalized_difference(image, green, nir, output_name)


def aoi_inside_mask(image: xr.Dataset, aoi: AreaOfInterest) -> xr.DataArray:
    """Boolean (y, x) mask of pixels whose centre lies inside the AOI."""
    crs = image.rio.crs
    if crs is None:
        raise ConfigurationError(f"Image {image.attrs.get('image_id')} has no CRS")
    geometry = aoi.to_crs(crs)
    inside = geometry_mask(
        [geometry],
        out_shape=(image.rio.height, image.rio.width),
        transform=image.rio.transform(),
        invert=True
    )
    y_dim, x_dim = image.rio.y_dim, image.rio.x_dim
    return xr.DataArray(inside, dims=(y_dim, x_dim),
                        coords={y_dim: image[y_dim].values, x_dim: image[x_dim].values})


def clip_to_aoi(image: xr.Dataset, aoi: AreaOfInterest) -> xr.Dataset:
    """Set pixels outside the AOI to no-data; the grid itself is unchanged."""
    return apply_mask(image, aoi_inside_mask(image, aoi))


def valid_pixel_percentage(image: xr.Dataset) -> float:
    """Percentage of pixels holding a value in at least one band."""
    bands = list(image.data_vars)
    if not bands:
        return 0.0
    valid = image[bands[0]].notnull()
    for band in bands[1:]:
        valid = valid | image[band].notnull()
    total = valid.size
    return float(valid.sum()) / total * 100 if total else 0.0

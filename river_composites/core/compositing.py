"""
Composite reduction of image sets.

Reduces a set of masked (and optionally index-augmented) images to one raster
per requested band, using either a per-pixel median across images or a
first-valid-pixel mosaic, and clips the result to an area of interest.

Author: Diego Bengochea
"""

import functools
import warnings
from typing import Sequence, Union

import numpy as np
import xarray as xr
import rioxarray  # noqa: F401 - registers the rio accessor

from shared_utils import get_logger

from .exceptions import ConfigurationError
from .models import AreaOfInterest, CompositeSpec, EmptyResult, ImageSet, ReducerPolicy
from .raster_ops import clip_to_aoi, valid_pixel_percentage

logger = get_logger('compositing')

STACK_DIM = 'image'


def select_bands(image_set: ImageSet, bands: Sequence[str]) -> ImageSet:
    """
    Restrict every image to ``bands`` as float64.

    Raises:
        ConfigurationError: If any image lacks one of the bands
    """
    bands = list(bands)
    for image in image_set:
        missing = [band for band in bands if band not in image.data_vars]
        if missing:
            raise ConfigurationError(
                f"Image {image.attrs.get('image_id', '?')} is missing bands {missing}"
            )
    return image_set.map(lambda image: image[bands].astype('float64'))


def median_composite(image_set: ImageSet) -> xr.Dataset:
    """Per-pixel, per-band median over all images with a valid value."""
    stacked = xr.concat(
        list(image_set),
        dim=STACK_DIM,
        join='outer',
        coords='minimal',
        compat='override',
        combine_attrs='drop'
    )
    if stacked.chunks:
        # dask median needs the reduced dimension in a single chunk
        stacked = stacked.chunk({STACK_DIM: -1})

    with warnings.catch_warnings():
        # all-NaN pixels stay NaN
        warnings.simplefilter('ignore', category=RuntimeWarning)
        return stacked.median(dim=STACK_DIM, skipna=True)


def mosaic_composite(image_set: ImageSet) -> xr.Dataset:
    """Per pixel, the value of the first image in priority order that has one."""
    ordered = list(image_set.by_priority())
    mosaic = functools.reduce(lambda acc, image: acc.combine_first(image), ordered[1:], ordered[0])
    mosaic.attrs = {}
    return mosaic


def reduce_composite(
    image_set: ImageSet,
    bands: Sequence[str],
    policy: Union[ReducerPolicy, str],
    clip_to: AreaOfInterest
) -> Union[xr.Dataset, EmptyResult]:
    """
    Reduce an image set to a single composite clipped to an AOI.

    Args:
        image_set: Masked images sharing one band schema
        bands: Bands to reduce, in output order
        policy: MEDIAN (order independent) or MOSAIC (first valid pixel wins)
        clip_to: AOI; pixels outside become no-data

    Returns:
        Composite RasterImage, or EmptyResult when the set is empty or no
        valid pixel remains inside the AOI

    Examples:
        >>> composite = reduce_composite(images, ['NDWI'], ReducerPolicy.MEDIAN, watershed)
        >>> if not composite:
        ...     print(composite.reason)
    """
    policy = ReducerPolicy.from_name(policy)
    bands = tuple(bands)
    if not bands:
        raise ConfigurationError("At least one band must be requested for a composite")

    if image_set.is_empty:
        return EmptyResult(reason='no images in set')

    selected = select_bands(image_set, bands)
    crs = selected.images[0].rio.crs
    if crs is None:
        raise ConfigurationError("Images passed to the reducer carry no CRS")

    logger.debug(f"Reducing {len(selected)} image(s) over {list(bands)} with {policy.value}")

    if policy is ReducerPolicy.MEDIAN:
        composite = median_composite(selected)
    else:
        composite = mosaic_composite(selected)

    # outer joins of differing footprints come back ascending; keep north-up
    y_dim = selected.images[0].rio.y_dim
    first_y = selected.images[0][y_dim].values
    if first_y.size > 1 and first_y[0] > first_y[-1]:
        composite = composite.sortby(y_dim, ascending=False)

    composite = composite.rio.write_crs(crs)
    composite = clip_to_aoi(composite, clip_to).compute()

    percentage = valid_pixel_percentage(composite)
    if percentage == 0:
        return EmptyResult(reason=f"no valid pixels inside AOI '{clip_to.name}'")

    dates = image_set.dates
    composite.attrs = {
        'policy': policy.value,
        'bands': ','.join(bands),
        'image_count': len(image_set),
        'dates': ','.join(dates),
        'time_span': _time_span(dates),
        'aoi': clip_to.name,
        'valid_pixel_percentage': percentage,
    }

    for band in composite.data_vars:
        composite[band] = composite[band].rio.write_nodata(np.nan)

    return composite


def reduce_spec(spec: CompositeSpec) -> Union[xr.Dataset, EmptyResult]:
    return reduce_composite(spec.image_set, spec.bands, spec.policy, spec.clip_to)


def _time_span(dates: Sequence[str]) -> str:
    valid = [np.datetime64(d) for d in dates if d]
    if not valid:
        return ''
    return str((max(valid) - min(valid)).astype('timedelta64[D]'))

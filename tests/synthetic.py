"""
Synthetic Sentinel-2-like RasterImages on a 10 x 10 grid of 1 degree pixels
(EPSG:4326, north-up) and a sink that records exports instead of writing them.
"""

import threading

import numpy as np

from river_composites.core.archive import build_raster_image
from river_composites.core.export import ExportSink
from river_composites.core.models import ExportResult

SIZE = 10
GRID_X = np.arange(SIZE) + 0.5
GRID_Y = np.arange(SIZE)[::-1] + 0.5

OPAQUE_CLOUD = 1 << 10
CIRRUS = 1 << 11


def make_image(date, cloud_cover=5.0, green=0.3, nir=0.1, qa=0, image_id=None,
               x=GRID_X, y=GRID_Y, red=0.2, blue=0.15):
    """Scalar or 2-D band values broadcast onto the (y, x) grid."""
    shape = (len(y), len(x))

    def band(value):
        return np.broadcast_to(np.asarray(value, dtype='float64'), shape).copy()

    return build_raster_image(
        {
            'B2': band(blue),
            'B3': band(green),
            'B4': band(red),
            'B8': band(nir),
            'QA60': band(qa),
        },
        x, y, 'EPSG:4326', date, cloud_cover, image_id
    )


def ndwi_of(green, nir):
    return (green - nir) / (green + nir)


class RecordingSink(ExportSink):
    """Keeps every exported raster in memory, keyed by destination name."""

    def __init__(self):
        self.exports = {}
        self.requests = {}
        self._lock = threading.Lock()

    def export(self, raster, request):
        with self._lock:
            self.exports[request.destination_name] = raster
            self.requests[request.destination_name] = request
        return ExportResult(request.destination_name, None, 'exported', raster.sizes['x'] * raster.sizes['y'])

from datetime import date, datetime, timezone
from types import SimpleNamespace

import numpy as np
import pytest
import xarray as xr

from river_composites.core.archive import InMemoryImageArchive, StacImageArchive, load_geotiff_image
from river_composites.core.exceptions import ConfigurationError

from tests.synthetic import GRID_X, make_image


@pytest.fixture
def archive():
    return InMemoryImageArchive([
        make_image('2025-05-26', cloud_cover=1.0, image_id='day_before'),
        make_image('2025-05-27', cloud_cover=4.0, image_id='on_day'),
        make_image('2025-05-27', cloud_cover=20.0, image_id='at_threshold'),
        make_image('2025-05-27', cloud_cover=2.0, x=GRID_X + 50, image_id='elsewhere'),
        make_image('2025-05-28', cloud_cover=1.0, image_id='day_after'),
    ])


def ids(image_set):
    return sorted(image.attrs['image_id'] for image in image_set)


class TestInMemoryArchive:

    def test_window_is_half_open(self, archive, watershed):
        result = archive.query(watershed, (date(2025, 5, 27), date(2025, 5, 28)), 20.0)
        assert ids(result) == ['on_day']

    def test_cloud_cover_is_a_strict_bound(self, archive, watershed):
        result = archive.query(watershed, (date(2025, 5, 27), date(2025, 5, 28)), 20.1)
        assert ids(result) == ['at_threshold', 'on_day']

    def test_spatial_filter(self, archive, watershed):
        result = archive.query(watershed, (date(2025, 5, 1), date(2025, 6, 1)), 100.0)
        assert 'elsewhere' not in ids(result)
        assert len(result) == 4

    def test_no_match_is_an_empty_set(self, archive, watershed):
        assert archive.query(watershed, (date(2025, 9, 4), date(2025, 9, 5)), 20.0).is_empty

    def test_images_need_metadata(self):
        image = make_image('2025-05-27')
        image.attrs.pop('cloud_cover')
        with pytest.raises(ConfigurationError):
            InMemoryImageArchive([image])


class FakeSearch:

    def __init__(self, items):
        self.items = items

    def item_collection(self):
        return list(self.items)


class FakeCatalog:

    def __init__(self, items):
        self.items = items
        self.calls = []

    def search(self, **kwargs):
        self.calls.append(kwargs)
        return FakeSearch(self.items)


def stac_item(item_id, when, cloud_cover):
    return SimpleNamespace(id=item_id, datetime=when, properties={'eo:cloud_cover': cloud_cover})


class TestStacArchive:

    def test_search_pushes_filters_and_trims_window_end(self, watershed):
        catalog = FakeCatalog([
            stac_item('S2B_20250527', datetime(2025, 5, 27, 21, 14, tzinfo=timezone.utc), 3.0),
            stac_item('S2A_20250528', datetime(2025, 5, 28, 0, 0, tzinfo=timezone.utc), 1.0),
        ])
        archive = StacImageArchive('https://example.test/stac', 'sentinel-2-l2a', ['green', 'nir', 'scl'],
                                   'EPSG:32606', 10, catalog=catalog)

        items = archive.search_items(watershed, (date(2025, 5, 27), date(2025, 5, 28)), 20)

        assert [item.id for item in items] == ['S2B_20250527']
        call = catalog.calls[0]
        assert call['collections'] == ['sentinel-2-l2a']
        assert call['datetime'] == '2025-05-27/2025-05-28'
        assert call['query'] == ['eo:cloud_cover<20']
        assert call['intersects']['type'] == 'Polygon'

    def test_query_without_items_is_empty(self, watershed):
        archive = StacImageArchive('https://example.test/stac', 'sentinel-2-l2a', ['green'],
                                   'EPSG:32606', 10, catalog=FakeCatalog([]))
        assert archive.query(watershed, (date(2025, 9, 4), date(2025, 9, 5)), 20).is_empty

    def test_geobox_covers_the_aoi(self, watershed):
        archive = StacImageArchive('https://example.test/stac', 'sentinel-2-l2a', ['green'],
                                   'EPSG:4326', 0.5, catalog=FakeCatalog([]))
        geobox = archive.geobox_for(watershed)
        assert geobox.width == 20
        assert geobox.height == 20

    def test_quality_band_uses_nearest_resampling(self, watershed, monkeypatch):
        calls = []

        def fake_load(items, bands, **kwargs):
            calls.append(kwargs)
            return xr.Dataset(
                {band: (('time', 'y', 'x'), np.zeros((1, 2, 2))) for band in bands},
                coords={'y': [1.5, 0.5], 'x': [0.5, 1.5]}
            )

        monkeypatch.setattr('river_composites.core.archive.load', fake_load)
        catalog = FakeCatalog([stac_item('S2B_20250527', datetime(2025, 5, 27, 21, 14, tzinfo=timezone.utc), 3.0)])
        archive = StacImageArchive('https://example.test/stac', 'sentinel-2-l2a', ['green', 'nir', 'scl'],
                                   'EPSG:4326', 0.5, categorical_bands=('scl',), catalog=catalog)

        images = archive.query(watershed, (date(2025, 5, 27), date(2025, 5, 28)), 20)

        assert len(images) == 1
        assert calls[0]['resampling'] == {'*': 'bilinear', 'scl': 'nearest'}

    def test_categorical_band_must_be_queried(self):
        archive = StacImageArchive('https://example.test/stac', 'sentinel-2-l2a', ['green', 'nir'],
                                   'EPSG:4326', 0.5, categorical_bands=('QA60',), catalog=FakeCatalog([]))
        assert archive.band_resampling() == {'*': 'bilinear'}


class TestLocalScenes:

    def test_load_geotiff_image(self, tmp_path):
        path = tmp_path / 'S2_20250527.tif'
        make_image('2025-05-27')[['B3', 'B8', 'QA60']].rio.to_raster(path)

        image = load_geotiff_image(path, ['B3', 'B8', 'QA60'], '2025-05-27', 4.0)

        assert set(image.data_vars) == {'B3', 'B8', 'QA60'}
        assert image.attrs == {'image_id': 'S2_20250527', 'date': '2025-05-27', 'cloud_cover': 4.0}
        assert image.rio.crs.to_epsg() == 4326
        np.testing.assert_allclose(image['B3'].values, 0.3)

    def test_band_count_must_match(self, tmp_path):
        path = tmp_path / 'S2_20250527.tif'
        make_image('2025-05-27')[['B3', 'B8']].rio.to_raster(path)
        with pytest.raises(ConfigurationError):
            load_geotiff_image(path, ['B2', 'B3', 'B8'], '2025-05-27', 4.0)

    def test_missing_scene(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_geotiff_image(tmp_path / 'missing.tif', ['B3'], '2025-05-27', 4.0)

import numpy as np
import pytest

from river_composites.core.compositing import reduce_composite, reduce_spec
from river_composites.core.exceptions import ConfigurationError
from river_composites.core.models import CompositeSpec, EmptyResult, ImageSet, ReducerPolicy
from river_composites.core.raster_ops import BitmaskCloudMask

from tests.synthetic import GRID_X, GRID_Y, OPAQUE_CLOUD, SIZE, make_image


@pytest.fixture
def noisy_images():
    rng = np.random.default_rng(3)
    images = []
    for i, day in enumerate(('2024-07-01', '2024-07-11', '2024-07-21', '2024-07-31')):
        green = rng.uniform(0.0, 0.5, (SIZE, SIZE))
        green[rng.uniform(size=(SIZE, SIZE)) < 0.2] = np.nan
        images.append(make_image(day, cloud_cover=float(i), green=green, image_id=f"img{i}"))
    return images


class TestMedian:

    def test_matches_per_pixel_nanmedian(self, noisy_images, watershed):
        composite = reduce_composite(ImageSet(noisy_images), ['B3'], ReducerPolicy.MEDIAN, watershed)
        expected = np.nanmedian(np.stack([image['B3'].values for image in noisy_images]), axis=0)
        np.testing.assert_allclose(composite['B3'].values, expected)

    def test_independent_of_image_order(self, noisy_images, watershed):
        forward = reduce_composite(ImageSet(noisy_images), ['B3', 'B8'], 'median', watershed)
        backward = reduce_composite(ImageSet(noisy_images[::-1]), ['B3', 'B8'], 'median', watershed)
        np.testing.assert_array_equal(forward['B3'].values, backward['B3'].values)
        np.testing.assert_array_equal(forward['B8'].values, backward['B8'].values)

    def test_chunked_images_give_the_same_result(self, noisy_images, watershed):
        eager = reduce_composite(ImageSet(noisy_images), ['B3'], ReducerPolicy.MEDIAN, watershed)
        chunked = ImageSet([image.chunk({'x': 5, 'y': 5}) for image in noisy_images])
        lazy = reduce_composite(chunked, ['B3'], ReducerPolicy.MEDIAN, watershed)
        np.testing.assert_allclose(lazy['B3'].values, eager['B3'].values)

    def test_pixels_without_any_value_stay_nodata(self, watershed):
        qa = np.zeros((SIZE, SIZE))
        qa[0, 0] = OPAQUE_CLOUD
        cloud_mask = BitmaskCloudMask()
        images = ImageSet([cloud_mask.apply(make_image(d, qa=qa)) for d in ('2024-07-01', '2024-07-02')])
        composite = reduce_composite(images, ['B3'], ReducerPolicy.MEDIAN, watershed)
        assert np.isnan(composite['B3'].values[0, 0])
        assert np.isfinite(composite['B3'].values[1:, :]).all()

    def test_output_metadata(self, noisy_images, watershed):
        composite = reduce_composite(ImageSet(noisy_images), ['B3', 'B8'], ReducerPolicy.MEDIAN, watershed)
        assert list(composite.data_vars) == ['B3', 'B8']
        assert composite.attrs['policy'] == 'median'
        assert composite.attrs['image_count'] == 4
        assert composite.attrs['dates'] == '2024-07-01,2024-07-11,2024-07-21,2024-07-31'
        assert composite.attrs['aoi'] == 'watershed'
        assert composite.attrs['time_span'] == '30 days'
        assert composite.rio.crs.to_epsg() == 4326
        assert composite['y'].values[0] > composite['y'].values[-1]


class TestMosaic:

    def test_least_cloudy_image_wins_where_valid(self, watershed):
        qa = np.zeros((SIZE, SIZE))
        qa[0, :] = OPAQUE_CLOUD
        cloud_mask = BitmaskCloudMask()
        clear = cloud_mask.apply(make_image('2025-05-27', cloud_cover=2.0, green=0.2, qa=qa, image_id='clear'))
        hazy = cloud_mask.apply(make_image('2025-05-27', cloud_cover=10.0, green=0.1, image_id='hazy'))

        for order in ([clear, hazy], [hazy, clear]):
            values = reduce_composite(ImageSet(order), ['B3'], ReducerPolicy.MOSAIC, watershed)['B3'].values
            np.testing.assert_allclose(values[0, :], 0.1)
            np.testing.assert_allclose(values[1:, :], 0.2)

    def test_overlapping_tiles_leave_no_gap(self, watershed):
        west = make_image('2025-05-27', cloud_cover=3.0, green=0.3, x=GRID_X[:6], image_id='T06VVN')
        east = make_image('2025-05-27', cloud_cover=8.0, green=0.4, x=GRID_X[4:], image_id='T06VWN')

        composite = reduce_composite(ImageSet([east, west]), ['B3'], ReducerPolicy.MOSAIC, watershed)
        values = composite['B3'].values

        assert values.shape == (SIZE, SIZE)
        assert np.isfinite(values).all()
        np.testing.assert_allclose(values[:, :6], 0.3)
        np.testing.assert_allclose(values[:, 6:], 0.4)
        np.testing.assert_array_equal(composite['x'].values, GRID_X)
        np.testing.assert_array_equal(composite['y'].values, GRID_Y)
        assert composite.attrs['valid_pixel_percentage'] == 100.0


class TestEmptyResults:

    def test_empty_set(self, watershed):
        result = reduce_composite(ImageSet(), ['NDWI'], ReducerPolicy.MEDIAN, watershed)
        assert isinstance(result, EmptyResult)
        assert not result

    def test_fully_clouded_set(self, watershed):
        qa = np.full((SIZE, SIZE), float(OPAQUE_CLOUD))
        images = ImageSet([BitmaskCloudMask().apply(make_image('2025-09-04', qa=qa))])
        result = reduce_composite(images, ['B3'], ReducerPolicy.MOSAIC, watershed)
        assert isinstance(result, EmptyResult)

    def test_images_outside_aoi(self, watershed):
        far_away = make_image('2025-09-04', x=GRID_X + 50)
        result = reduce_composite(ImageSet([far_away]), ['B3'], ReducerPolicy.MEDIAN, watershed)
        assert isinstance(result, EmptyResult)
        assert 'watershed' in result.reason


class TestValidation:

    def test_missing_band(self, watershed):
        with pytest.raises(ConfigurationError):
            reduce_composite(ImageSet([make_image('2025-05-27')]), ['NDWI'], ReducerPolicy.MEDIAN, watershed)

    def test_no_bands_requested(self, watershed):
        with pytest.raises(ConfigurationError):
            reduce_composite(ImageSet([make_image('2025-05-27')]), [], ReducerPolicy.MEDIAN, watershed)

    def test_unknown_policy(self, watershed):
        with pytest.raises(ConfigurationError):
            reduce_composite(ImageSet([make_image('2025-05-27')]), ['B3'], 'max', watershed)

    def test_reduce_spec(self, watershed, west_half):
        spec = CompositeSpec(ImageSet([make_image('2025-05-27')]), ('B3',), ReducerPolicy.MEDIAN, west_half)
        composite = reduce_spec(spec)
        assert composite.attrs['valid_pixel_percentage'] == 50.0

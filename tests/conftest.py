import pytest

from river_composites.core.models import AreaOfInterest, RecurringWindow, ReducerPolicy
from river_composites.core.pipeline_config import PipelineConfig

from tests.synthetic import SIZE, RecordingSink


@pytest.fixture
def watershed():
    return AreaOfInterest.from_coordinates('watershed', [(0, 0), (SIZE, 0), (SIZE, SIZE), (0, SIZE)])


@pytest.fixture
def west_half():
    return AreaOfInterest.from_coordinates('west_half', [(0, 0), (5, 0), (5, SIZE), (0, SIZE)])


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def make_config(watershed, west_half):
    """Factory for PipelineConfig values with test-friendly defaults."""

    def factory(**overrides):
        values = dict(
            watershed=watershed,
            recurring_window=RecurringWindow.from_range(2020, 2025, "06-10", "09-20"),
            cloud_cover_threshold=20,
            scale=1.0,
            crs='EPSG:4326',
            max_pixels=10_000,
            sites={'west_half': west_half},
            date_index_policy=ReducerPolicy.MOSAIC,
            max_workers=3,
            max_concurrent_queries=2,
            export_workers=2,
            retry_attempts=3,
            retry_backoff_seconds=0.0,
        )
        values.update(overrides)
        return PipelineConfig(**values)

    return factory

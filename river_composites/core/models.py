"""
Value types for the river composites pipeline.

Rasters are plain ``xarray.Dataset`` objects (one data variable per band, CRS
written with rioxarray, acquisition metadata in ``attrs``). Everything else the
pipeline passes around is a small immutable value defined here: areas of
interest, temporal windows, image sets, composite and export requests, and the
diagnostics emitted for skipped entries.

Author: Diego Bengochea
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, ClassVar, Iterator, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import xarray as xr
from rasterio.crs import CRS
from shapely.geometry import MultiPolygon, Polygon, box
from shapely.geometry.base import BaseGeometry

from .exceptions import ConfigurationError

Window = Tuple[date, date]


def parse_date(value: Union[str, date, datetime]) -> date:
    """
    Parse a configuration date (``YYYY-MM-DD`` string or date object).

    Raises:
        ConfigurationError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ConfigurationError(f"Malformed date '{value}', expected YYYY-MM-DD")


def validate_cloud_threshold(value) -> float:
    """Return the cloud-cover threshold as float, rejecting values outside [0, 100]."""
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Cloud-cover threshold must be a number, got '{value}'")
    if not 0.0 <= threshold <= 100.0:
        raise ConfigurationError(f"Cloud-cover threshold {threshold} outside [0, 100]")
    return threshold


def same_crs(crs_a, crs_b) -> bool:
    return CRS.from_user_input(crs_a) == CRS.from_user_input(crs_b)


@dataclass(frozen=True)
class AreaOfInterest:
    """
    Fixed polygon used to bound archive queries and to clip outputs.

    Attributes:
        name: Identifier used in logs and export names
        geometry: Polygon (or multipolygon read from a vector file)
        crs: Coordinate reference of ``geometry``
    """
    name: str
    geometry: BaseGeometry
    crs: str = 'EPSG:4326'

    def __post_init__(self):
        if not isinstance(self.geometry, (Polygon, MultiPolygon)):
            raise ConfigurationError(
                f"AOI '{self.name}' must be a polygon, got {self.geometry.geom_type}"
            )
        if not self.geometry.is_valid:
            raise ConfigurationError(f"AOI '{self.name}' polygon is not valid")
        if self.geometry.area <= 0:
            raise ConfigurationError(f"AOI '{self.name}' has zero area")

    @classmethod
    def from_coordinates(cls, name: str, coordinates: Sequence[Sequence[float]],
                         crs: str = 'EPSG:4326') -> 'AreaOfInterest':
        """Build an AOI from an exterior ring of (x, y) pairs."""
        try:
            polygon = Polygon([tuple(map(float, point)) for point in coordinates])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"AOI '{name}' has malformed coordinates: {e}")
        return cls(name=name, geometry=polygon, crs=crs)

    @classmethod
    def from_file(cls, name: str, path: Union[str, Path]) -> 'AreaOfInterest':
        """Build an AOI from the union of all features of a vector file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"AOI '{name}' file not found: {path}")
        gdf = gpd.read_file(path)
        if gdf.empty or gdf.crs is None:
            raise ConfigurationError(f"AOI '{name}' file {path} is empty or has no CRS")
        return cls(name=name, geometry=gdf.geometry.union_all(), crs=gdf.crs.to_string())

    @classmethod
    def from_config(cls, name: str, entry: dict) -> 'AreaOfInterest':
        if 'file' in entry:
            return cls.from_file(name, entry['file'])
        if 'coordinates' in entry:
            return cls.from_coordinates(name, entry['coordinates'], entry.get('crs', 'EPSG:4326'))
        raise ConfigurationError(f"AOI '{name}' needs either 'file' or 'coordinates'")

    def to_crs(self, crs) -> BaseGeometry:
        """Geometry expressed in ``crs``."""
        if same_crs(self.crs, crs):
            return self.geometry
        return gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(crs).iloc[0]

    def intersects_bounds(self, bounds: Tuple[float, float, float, float], crs) -> bool:
        return self.to_crs(crs).intersects(box(*bounds))


@dataclass(frozen=True)
class RecurringWindow:
    """Same month/day range repeated for every configured year."""
    kind: ClassVar[str] = 'recurring'

    start_month: int
    start_day: int
    end_month: int
    end_day: int
    years: Tuple[int, ...]

    def __post_init__(self):
        years = tuple(sorted(set(int(y) for y in self.years)))
        if not years:
            raise ConfigurationError("Recurring window needs at least one year")
        object.__setattr__(self, 'years', years)
        for year in years:
            try:
                start = date(year, self.start_month, self.start_day)
                end = date(year, self.end_month, self.end_day)
            except ValueError as e:
                raise ConfigurationError(f"Invalid recurring window for {year}: {e}")
            if start >= end:
                raise ConfigurationError(
                    f"Recurring window start {start} must precede end {end}"
                )

    @classmethod
    def from_range(cls, start_year: int, end_year: int, start: str, end: str) -> 'RecurringWindow':
        """
        Build a window from an inclusive year range and ``MM-DD`` bounds.

        Examples:
            >>> RecurringWindow.from_range(2020, 2025, "06-10", "09-20")
        """
        if int(end_year) < int(start_year):
            raise ConfigurationError(f"Year range {start_year}-{end_year} is empty")
        start_month, start_day = _parse_month_day(start)
        end_month, end_day = _parse_month_day(end)
        return cls(start_month, start_day, end_month, end_day,
                   tuple(range(int(start_year), int(end_year) + 1)))

    def windows(self) -> List[Window]:
        return [
            (date(year, self.start_month, self.start_day), date(year, self.end_month, self.end_day))
            for year in self.years
        ]


@dataclass(frozen=True)
class FixedDateWindow:
    """A single calendar date, as the half-open window [date, date + tolerance_days)."""
    kind: ClassVar[str] = 'fixed_date'

    date: date
    tolerance_days: int = 1

    def __post_init__(self):
        object.__setattr__(self, 'date', parse_date(self.date))
        if int(self.tolerance_days) < 1:
            raise ConfigurationError("Fixed-date tolerance must be at least one day")

    def windows(self) -> List[Window]:
        return [(self.date, self.date + timedelta(days=int(self.tolerance_days)))]


TemporalWindow = Union[RecurringWindow, FixedDateWindow]


def _parse_month_day(value: str) -> Tuple[int, int]:
    try:
        month, day = (int(part) for part in str(value).split('-'))
    except ValueError:
        raise ConfigurationError(f"Malformed month-day '{value}', expected MM-DD")
    return month, day


class ReducerPolicy(Enum):
    """Per-pixel reduction applied across an image set."""
    MEDIAN = 'median'
    MOSAIC = 'mosaic'

    @classmethod
    def from_name(cls, value: Union[str, 'ReducerPolicy']) -> 'ReducerPolicy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown reducer policy '{value}', expected one of {[p.value for p in cls]}"
            )


@dataclass(frozen=True, eq=False)
class ImageSet:
    """Collection of images sharing one band schema. May be empty."""
    images: Tuple[xr.Dataset, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'images', tuple(self.images))

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[xr.Dataset]:
        return iter(self.images)

    @property
    def is_empty(self) -> bool:
        return len(self.images) == 0

    @property
    def dates(self) -> List[str]:
        return sorted(str(image.attrs.get('date', '')) for image in self.images)

    def map(self, func: Callable[[xr.Dataset], xr.Dataset]) -> 'ImageSet':
        return ImageSet(tuple(func(image) for image in self.images))

    def union(self, other: 'ImageSet') -> 'ImageSet':
        return ImageSet(self.images + other.images)

    def by_priority(self) -> 'ImageSet':
        """Least cloudy first; ties broken by date then image id."""
        return ImageSet(tuple(sorted(
            self.images,
            key=lambda image: (
                float(image.attrs.get('cloud_cover', 100.0)),
                str(image.attrs.get('date', '')),
                str(image.attrs.get('image_id', '')),
            )
        )))


@dataclass(frozen=True)
class EmptyResult:
    """Returned instead of a raster when no qualifying pixel exists."""
    reason: str = 'no qualifying imagery'
    bands: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True, eq=False)
class CompositeSpec:
    image_set: ImageSet
    bands: Tuple[str, ...]
    policy: ReducerPolicy
    clip_to: AreaOfInterest


@dataclass(frozen=True)
class ExportRequest:
    """
    Everything an export sink needs besides the raster itself.

    Attributes:
        destination_name: Unique task/description name
        folder: Output folder (relative to the sink's root)
        file_prefix: Output filename without extension
        region: AOI describing the exported extent
        scale: Ground sample distance in CRS units
        crs: Output coordinate reference identifier
        max_pixels: Upper bound on width * height; larger exports fail fast
    """
    destination_name: str
    folder: str
    file_prefix: str
    region: AreaOfInterest
    scale: float
    crs: str
    max_pixels: int


@dataclass(frozen=True)
class ExportResult:
    destination_name: str
    path: Optional[str]
    status: str = 'exported'
    n_pixels: int = 0


@dataclass(frozen=True)
class DateEntry:
    """
    One configured per-date extraction. The date stays unparsed until the
    entry is processed so a malformed value only fails its own entry.
    """
    label: str
    date: Union[str, date]
    site: Optional[str] = None
    products: Tuple[str, ...] = ('ndwi', 'rgb')
    cloud_cover_threshold: Optional[float] = None

    @classmethod
    def from_config(cls, entry: dict, default_site: Optional[str] = None,
                    default_products: Sequence[str] = ('ndwi', 'rgb')) -> 'DateEntry':
        raw_date = entry.get('date')
        label = str(entry.get('label') or raw_date)
        return cls(
            label=label,
            date=raw_date,
            site=entry.get('site', default_site),
            products=tuple(p.lower() for p in entry.get('products', default_products)),
            cloud_cover_threshold=entry.get('cloud_cover_threshold'),
        )


@dataclass(frozen=True)
class Diagnostic:
    """One skipped or failed entry, rendered as a single line."""
    key: str
    reason: str
    product: Optional[str] = None

    @property
    def message(self) -> str:
        return f"{self.reason} for {self.key}"

    def __str__(self) -> str:
        return self.message


@dataclass
class RunReport:
    """Accumulates exports and diagnostics over one pipeline run."""
    pipeline_name: str
    exports: List[ExportResult] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    processed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.error_count == 0

    def merge(self, other: 'RunReport') -> 'RunReport':
        return RunReport(
            pipeline_name=f"{self.pipeline_name}+{other.pipeline_name}",
            exports=self.exports + other.exports,
            diagnostics=self.diagnostics + other.diagnostics,
            processed_count=self.processed_count + other.processed_count,
            skipped_count=self.skipped_count + other.skipped_count,
            error_count=self.error_count + other.error_count,
            duration_seconds=self.duration_seconds + other.duration_seconds,
        )

    def summary(self) -> dict:
        attempted = self.processed_count + self.error_count
        return {
            'pipeline': self.pipeline_name,
            'exports': len(self.exports),
            'diagnostics': len(self.diagnostics),
            'processed_count': self.processed_count,
            'skipped_count': self.skipped_count,
            'error_count': self.error_count,
            'duration_seconds': self.duration_seconds,
            'duration_minutes': self.duration_seconds / 60,
            'success_rate': (self.processed_count / max(1, attempted)) * 100,
        }

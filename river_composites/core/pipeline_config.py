"""
Immutable run configuration.

The YAML configuration is loaded once (``shared_utils.load_config``) and turned
into a ``PipelineConfig`` that the pipeline holds for the whole run. Errors
that concern the whole run (threshold, scale, year range, reducer policy,
watershed AOI) are raised here. Errors that only concern one per-date entry
(malformed date, unknown or broken site polygon) are deferred to that entry.

Author: Diego Bengochea
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from shared_utils.central_data_paths_constants import RIVER_COMPOSITES_DIR

from .exceptions import ConfigurationError
from .models import (
    AreaOfInterest, DateEntry, RecurringWindow, ReducerPolicy, validate_cloud_threshold
)

DEFAULT_PRODUCTS = ('ndwi', 'rgb')
SUPPORTED_PRODUCTS = ('ndwi', 'rgb')


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration value passed to ``RiverCompositePipeline``."""
    watershed: AreaOfInterest
    recurring_window: RecurringWindow
    cloud_cover_threshold: float
    scale: float
    crs: str
    max_pixels: int

    green_band: str = 'B3'
    nir_band: str = 'B8'
    index_band: str = 'NDWI'
    reflectance_bands: Tuple[str, ...] = ('B2', 'B3', 'B4', 'B8')
    rgb_bands: Tuple[str, ...] = ('B4', 'B3', 'B2')
    cloud_mask: Dict[str, Any] = field(default_factory=lambda: {'method': 'bitmask', 'band': 'QA60', 'bits': [10, 11]})
    date_index_policy: ReducerPolicy = ReducerPolicy.MOSAIC
    fixed_date_tolerance_days: int = 1

    sites: Dict[str, AreaOfInterest] = field(default_factory=dict)
    site_errors: Dict[str, str] = field(default_factory=dict)
    date_entries: Tuple[DateEntry, ...] = ()

    output_dir: Path = RIVER_COMPOSITES_DIR
    aoi_folder: str = 'aoi_composites'
    date_folder: str = 'date_exports'
    skip_existing: bool = True

    max_workers: int = 4
    max_concurrent_queries: int = 2
    export_workers: int = 2
    retry_attempts: int = 3
    retry_backoff_seconds: float = 2.0

    def __post_init__(self):
        object.__setattr__(self, 'cloud_cover_threshold', validate_cloud_threshold(self.cloud_cover_threshold))
        if float(self.scale) <= 0:
            raise ConfigurationError(f"Export scale must be positive, got {self.scale}")
        if int(self.max_pixels) <= 0:
            raise ConfigurationError(f"Pixel budget must be positive, got {self.max_pixels}")
        for name in ('max_workers', 'max_concurrent_queries', 'export_workers', 'retry_attempts'):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"'{name}' must be at least 1")
        if not self.reflectance_bands or not self.rgb_bands:
            raise ConfigurationError("Reflectance and RGB band lists must not be empty")

    @property
    def query_bands(self) -> Tuple[str, ...]:
        """All bands an archive query has to provide, quality band included."""
        ordered = []
        for band in (*self.reflectance_bands, *self.rgb_bands, self.green_band, self.nir_band,
                     self.cloud_mask.get('band', 'QA60')):
            if band not in ordered:
                ordered.append(band)
        return tuple(ordered)

    def resolve_site(self, name: Optional[str]) -> AreaOfInterest:
        """
        AOI for a per-date entry; the watershed when no site is given.

        Raises:
            ConfigurationError: If the site is unknown or its polygon is invalid
        """
        if name is None or name == self.watershed.name:
            return self.watershed
        if name in self.site_errors:
            raise ConfigurationError(self.site_errors[name])
        if name not in self.sites:
            raise ConfigurationError(f"No site AOI configured for '{name}'")
        return self.sites[name]

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'PipelineConfig':
        """
        Build the configuration from the loaded YAML dictionary.

        Raises:
            ConfigurationError: For run-wide configuration errors
        """
        try:
            aoi_section = config['aoi']
            temporal = config['temporal']
            processing = config['processing']
            export = config['export']
        except KeyError as e:
            raise ConfigurationError(f"Missing required configuration section: {e}")

        if 'watershed' not in aoi_section:
            raise ConfigurationError("Configuration needs an 'aoi.watershed' polygon")
        watershed_entry = dict(aoi_section['watershed'])
        watershed = AreaOfInterest.from_config(watershed_entry.pop('name', 'watershed'), watershed_entry)

        sites, site_errors = {}, {}
        for name, entry in (aoi_section.get('sites') or {}).items():
            try:
                sites[name] = AreaOfInterest.from_config(name, entry)
            except ConfigurationError as e:
                site_errors[name] = str(e)

        recurring = RecurringWindow.from_range(
            temporal['start_year'],
            temporal['end_year'],
            temporal.get('season_start', '06-10'),
            temporal.get('season_end', '09-20')
        )

        bands = config.get('bands', {})
        date_section = config.get('date_exports') or {}
        default_site = date_section.get('default_site')
        default_products = tuple(date_section.get('default_products', DEFAULT_PRODUCTS))
        entries = tuple(
            DateEntry.from_config(entry, default_site, default_products)
            for entry in (date_section.get('entries') or [])
        )

        compute = config.get('compute', {})
        retry = config.get('retry', {})

        return cls(
            watershed=watershed,
            recurring_window=recurring,
            cloud_cover_threshold=processing.get('cloud_cover_threshold', 20),
            scale=float(export['scale']),
            crs=str(export['crs']),
            max_pixels=int(float(export.get('max_pixels', 1e13))),
            green_band=bands.get('green', 'B3'),
            nir_band=bands.get('nir', 'B8'),
            index_band=bands.get('index_name', 'NDWI'),
            reflectance_bands=tuple(bands.get('reflectance', ('B2', 'B3', 'B4', 'B8'))),
            rgb_bands=tuple(bands.get('rgb', ('B4', 'B3', 'B2'))),
            cloud_mask=dict(config.get('cloud_mask', {'method': 'bitmask', 'band': 'QA60', 'bits': [10, 11]})),
            date_index_policy=ReducerPolicy.from_name(processing.get('date_index_reducer', 'mosaic')),
            fixed_date_tolerance_days=int(processing.get('fixed_date_tolerance_days', 1)),
            sites=sites,
            site_errors=site_errors,
            date_entries=entries,
            output_dir=Path(export.get('output_dir', RIVER_COMPOSITES_DIR)),
            aoi_folder=export.get('aoi_folder', 'aoi_composites'),
            date_folder=export.get('date_folder', 'date_exports'),
            skip_existing=bool(export.get('skip_existing', True)),
            max_workers=int(compute.get('max_workers', 4)),
            max_concurrent_queries=int(compute.get('max_concurrent_queries', 2)),
            export_workers=int(compute.get('export_workers', 2)),
            retry_attempts=int(retry.get('attempts', 3)),
            retry_backoff_seconds=float(retry.get('initial_backoff_seconds', 2.0)),
        )

    def log_parameters(self) -> Dict[str, Any]:
        """Flat view of the key parameters for run banners."""
        return {
            'watershed': self.watershed.name,
            'years': f"{self.recurring_window.years[0]}-{self.recurring_window.years[-1]}",
            'season': (f"{self.recurring_window.start_month:02d}-{self.recurring_window.start_day:02d}/"
                       f"{self.recurring_window.end_month:02d}-{self.recurring_window.end_day:02d}"),
            'cloud_cover_threshold': self.cloud_cover_threshold,
            'scale': self.scale,
            'crs': self.crs,
            'date_entries': len(self.date_entries),
            'sites': sorted(self.sites),
        }

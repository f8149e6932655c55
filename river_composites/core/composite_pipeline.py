"""
River Composite Pipeline

Class-based orchestration of the two compositing products:

- Multi-year AOI composite: one archive query per year of the recurring
  seasonal window over the watershed, cloud masking and water index per image,
  then median composites of the index band and of the reflectance bands.
- Per-date exports: one independent task per configured (label, date, site)
  entry, querying a single-day window over the site AOI and producing an NDWI
  composite (cloud masked, index derived, mosaic or median) and an RGB
  composite (cloud masked only, median).

Entries are isolated from each other: empty results, malformed entries and
collaborator failures end up as one diagnostic line each and the batch goes
on. Archive queries pass through a bounded gate, exports are queued on their
own bounded pool and their outcome is collected at the end of the run.

Author: Diego Bengochea
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import psutil
import xarray as xr

from shared_utils import (
    ensure_directory, get_logger, load_config, log_pipeline_end, log_pipeline_start,
    log_section, resolve_path, retry_call
)
from shared_utils.central_data_paths_constants import DIAGNOSTICS_FILE, LOCAL_SCENES_DIR

from .archive import ImageArchive, InMemoryImageArchive, StacImageArchive, load_geotiff_image
from .compositing import reduce_composite
from .exceptions import CollaboratorFailure, ConfigurationError
from .export import ExportSink, GeoTiffExportSink
from .models import (
    AreaOfInterest, DateEntry, Diagnostic, ExportRequest, ExportResult, FixedDateWindow,
    ImageSet, ReducerPolicy, RunReport, Window, parse_date, validate_cloud_threshold
)
from .pipeline_config import SUPPORTED_PRODUCTS, PipelineConfig
from .raster_ops import build_cloud_mask, derive_water_index

PendingExport = Tuple[str, str, Future]


@dataclass
class EntryOutcome:
    """What one entry task hands back to the orchestrating thread."""
    key: str
    diagnostics: List[Diagnostic] = field(default_factory=list)
    pending_exports: List[PendingExport] = field(default_factory=list)
    skipped_count: int = 0
    error_count: int = 0


def entry_key(entry: DateEntry) -> str:
    return f"{entry.site}/{entry.label}" if entry.site else entry.label


def destination_name(product: str, entry: DateEntry) -> str:
    parts = [product.upper(), entry.label]
    if entry.site:
        parts.append(entry.site)
    return '_'.join(str(part).strip().replace(' ', '_').replace('/', '-') for part in parts)


def failure_diagnostic(key: str, product: Optional[str], error: BaseException) -> Diagnostic:
    prefix = f"{product.upper()} " if product else ''
    return Diagnostic(key, f"{prefix}failed ({type(error).__name__}: {error})", product)


def build_archive(raw_config: Dict[str, Any], config: PipelineConfig) -> ImageArchive:
    """
    Build the image archive described by the ``data`` configuration section.

    Examples:
        >>> archive = build_archive(load_config('config.yaml'), pipeline_config)
    """
    data = raw_config.get('data', {})
    kind = data.get('archive', 'stac')

    if kind == 'stac':
        return StacImageArchive(
            stac_url=data['stac_url'],
            collection=data.get('collection', 'sentinel-2-l2a'),
            bands=config.query_bands,
            crs=config.crs,
            resolution=config.scale,
            chunk_size=data.get('chunk_size', 2048),
            resampling=data.get('resampling', 'bilinear'),
            categorical_bands=(config.cloud_mask.get('band', 'QA60'),)
        )
    if kind == 'local':
        scenes_dir = data.get('scenes_dir', LOCAL_SCENES_DIR)
        return InMemoryImageArchive(
            load_geotiff_image(
                resolve_path(scene['path'], scenes_dir),
                scene.get('bands', config.query_bands),
                scene['date'],
                scene['cloud_cover'],
                scene.get('image_id')
            )
            for scene in data.get('scenes', [])
        )
    raise ConfigurationError(f"Unknown archive type '{kind}'")


class RiverCompositePipeline:
    """
    Orchestrates the multi-year AOI composite and the per-date exports.

    The pipeline holds no state across runs besides its configuration and
    collaborators; every run returns a ``RunReport``.

    Examples:
        >>> pipeline = RiverCompositePipeline.from_config_file('config.yaml')
        >>> report = pipeline.run_full_pipeline()
        >>> print(report.summary())
    """

    def __init__(
        self,
        config: PipelineConfig,
        archive: ImageArchive,
        sink: ExportSink,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the pipeline.

        Args:
            config: Immutable run configuration
            archive: Image archive to query
            sink: Destination for finished composites
            sleep: Sleep function used between retries
        """
        self.config = config
        self.archive = archive
        self.sink = sink
        self.cloud_mask = build_cloud_mask(config.cloud_mask)
        self.logger = get_logger('pipeline')

        self._sleep = sleep
        self._query_gate = threading.BoundedSemaphore(config.max_concurrent_queries)

        self.logger.info("RiverCompositePipeline initialized")

    @classmethod
    def from_config_file(cls, config_path: Optional[Union[str, Path]] = None) -> 'RiverCompositePipeline':
        """Load the YAML configuration and build the configured archive and sink."""
        raw_config = load_config(config_path, component_name='river_composites')
        config = PipelineConfig.from_dict(raw_config)
        archive = build_archive(raw_config, config)
        sink = GeoTiffExportSink(config.output_dir, skip_existing=config.skip_existing)
        return cls(config, archive, sink)

    # Collaborator calls

    def query_archive(self, aoi: AreaOfInterest, window: Window, max_cloud_cover: float) -> ImageSet:
        """
        Filtered archive query through the bounded gate, with retries.

        Raises:
            CollaboratorFailure: If every attempt failed
        """
        with self._query_gate:
            try:
                return retry_call(
                    self.archive.query, aoi, window, max_cloud_cover,
                    attempts=self.config.retry_attempts,
                    initial_backoff=self.config.retry_backoff_seconds,
                    label=f"Archive query {aoi.name} {window[0]}/{window[1]}",
                    no_retry=(ConfigurationError,),
                    logger=self.logger,
                    sleep=self._sleep
                )
            except ConfigurationError:
                raise
            except Exception as e:
                raise CollaboratorFailure('image archive', str(e), e) from e

    def export_raster(self, raster: xr.Dataset, request: ExportRequest) -> ExportResult:
        """
        Hand a composite to the sink, with retries. Pixel budget violations are
        not retried.

        Raises:
            CollaboratorFailure: If every attempt failed
        """
        try:
            return retry_call(
                self.sink.export, raster, request,
                attempts=self.config.retry_attempts,
                initial_backoff=self.config.retry_backoff_seconds,
                label=f"Export {request.destination_name}",
                no_retry=(ConfigurationError,),
                logger=self.logger,
                sleep=self._sleep
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise CollaboratorFailure('export sink', str(e), e) from e

    def build_export_request(self, name: str, region: AreaOfInterest, folder: str) -> ExportRequest:
        return ExportRequest(
            destination_name=name,
            folder=folder,
            file_prefix=name,
            region=region,
            scale=self.config.scale,
            crs=self.config.crs,
            max_pixels=self.config.max_pixels
        )

    # Per-image preparation

    def prepare_index_image(self, image: xr.Dataset) -> xr.Dataset:
        """Cloud mask, then water index."""
        return derive_water_index(
            self.cloud_mask.apply(image),
            self.config.green_band,
            self.config.nir_band,
            self.config.index_band
        )

    def prepare_reflectance_image(self, image: xr.Dataset) -> xr.Dataset:
        """Cloud mask only; inspection imagery does not need the index."""
        return self.cloud_mask.apply(image)

    # Multi-year AOI composite

    def run_aoi_composite(self) -> RunReport:
        """
        Median composites of the water index and of the reflectance bands over
        the watershed, across every year of the recurring seasonal window.

        Returns:
            RunReport with at most two exports
        """
        start_time = time.time()
        report = RunReport('aoi_composite')
        watershed = self.config.watershed
        recurring = self.config.recurring_window
        key = f"{watershed.name} {recurring.years[0]}-{recurring.years[-1]}"

        log_pipeline_start(self.logger, 'multi-year AOI composite', self.config.log_parameters())

        image_sets = self._query_recurring_windows(report, recurring.windows())
        images = ImageSet()
        for _, image_set in sorted(image_sets, key=lambda pair: pair[0]):
            images = images.union(image_set)

        self.logger.info(f"Compositing {len(images)} image(s) from {len(image_sets)} year(s) with imagery")
        prepared = images.map(self.prepare_index_image)
        years_tag = f"{recurring.years[0]}_{recurring.years[-1]}"
        products = [
            ('ndwi', (self.config.index_band,), f"{self.config.index_band}_median_{watershed.name}_{years_tag}"),
            ('reflectance', self.config.reflectance_bands, f"reflectance_median_{watershed.name}_{years_tag}"),
        ]

        pending: List[PendingExport] = []
        with ThreadPoolExecutor(max_workers=self.config.export_workers,
                                thread_name_prefix='aoi-export') as export_pool:
            for product, bands, name in products:
                try:
                    composite = reduce_composite(prepared, bands, ReducerPolicy.MEDIAN, watershed)
                except Exception as e:
                    self._add_diagnostic(report, failure_diagnostic(key, product, e), error=True)
                    continue

                if not composite:
                    self._add_diagnostic(report, Diagnostic(key, f"No {product.upper()} data", product))
                    continue

                request = self.build_export_request(name, watershed, self.config.aoi_folder)
                pending.append((key, product, export_pool.submit(self.export_raster, composite, request)))

            self._collect_exports(report, pending)

        report.duration_seconds = time.time() - start_time
        self._log_memory_usage()
        log_pipeline_end(self.logger, 'multi-year AOI composite', report.success, report.duration_seconds)
        return report

    def _query_recurring_windows(self, report: RunReport, windows: List[Window]) -> List[Tuple[Window, ImageSet]]:
        """One query task per year; failed years become diagnostics, empty years are logged."""
        watershed = self.config.watershed
        threshold = self.config.cloud_cover_threshold
        results = []

        with ThreadPoolExecutor(max_workers=self.config.max_workers,
                                thread_name_prefix='aoi-query') as executor:
            futures = {
                executor.submit(self.query_archive, watershed, window, threshold): window
                for window in windows
            }
            for future in as_completed(futures):
                window = futures[future]
                year_key = f"{watershed.name} {window[0].year}"
                try:
                    image_set = future.result()
                except Exception as e:
                    self._add_diagnostic(report, failure_diagnostic(year_key, None, e), error=True)
                    continue

                if image_set.is_empty:
                    self.logger.warning(f"No imagery for {watershed.name} in {window[0]}/{window[1]}")
                    continue

                self.logger.info(f"{len(image_set)} image(s) for {watershed.name} in {window[0]}/{window[1]}")
                results.append((window, image_set))

        return results

    # Per-date / per-site exports

    def run_date_exports(self) -> RunReport:
        """
        Process every configured date entry independently.

        Returns:
            RunReport with one export per successful entry product and one
            diagnostic per skipped or failed entry product
        """
        start_time = time.time()
        report = RunReport('date_exports')
        log_pipeline_start(self.logger, 'per-date exports', {'entries': len(self.config.date_entries)})

        assignments = self._assign_destinations(report)
        pending: List[PendingExport] = []

        with ThreadPoolExecutor(max_workers=self.config.export_workers,
                                thread_name_prefix='date-export') as export_pool:
            with ThreadPoolExecutor(max_workers=self.config.max_workers,
                                    thread_name_prefix='date-entry') as executor:
                futures = [
                    executor.submit(self.process_date_entry, entry, destinations, export_pool)
                    for entry, destinations in assignments
                ]
                for future in as_completed(futures):
                    outcome = future.result()
                    for diagnostic in outcome.diagnostics:
                        self.logger.warning(diagnostic.message)
                    report.diagnostics.extend(outcome.diagnostics)
                    report.skipped_count += outcome.skipped_count
                    report.error_count += outcome.error_count
                    pending.extend(outcome.pending_exports)

            self._collect_exports(report, pending)

        report.duration_seconds = time.time() - start_time
        self._log_memory_usage()
        log_pipeline_end(self.logger, 'per-date exports', report.success, report.duration_seconds)
        return report

    def _assign_destinations(self, report: RunReport) -> List[Tuple[DateEntry, Dict[str, str]]]:
        """
        Give every (entry, product) a destination name; a name already taken by
        an earlier entry is reported and that product is dropped.
        """
        taken = set()
        assignments = []
        for entry in self.config.date_entries:
            destinations = {}
            for product in entry.products:
                name = destination_name(product, entry)
                if name in taken:
                    error = ConfigurationError(f"Duplicate export destination '{name}'")
                    self._add_diagnostic(report, failure_diagnostic(entry_key(entry), product, error), error=True)
                    continue
                taken.add(name)
                destinations[product] = name
            if destinations:
                assignments.append((entry, destinations))
        return assignments

    def process_date_entry(
        self,
        entry: DateEntry,
        destinations: Dict[str, str],
        export_pool: ThreadPoolExecutor
    ) -> EntryOutcome:
        """
        Query, composite and enqueue exports for one entry. Never raises: every
        failure is turned into a diagnostic of this entry.
        """
        key = entry_key(entry)
        outcome = EntryOutcome(key)

        try:
            acquired = parse_date(entry.date)
            site = self.config.resolve_site(entry.site)
            threshold = (self.config.cloud_cover_threshold if entry.cloud_cover_threshold is None
                         else validate_cloud_threshold(entry.cloud_cover_threshold))
            unknown = [p for p in destinations if p not in SUPPORTED_PRODUCTS]
            if unknown:
                raise ConfigurationError(f"Unknown products {unknown}")
            window = FixedDateWindow(acquired, self.config.fixed_date_tolerance_days).windows()[0]
            images = self.query_archive(site, window, threshold)
        except Exception as e:
            outcome.diagnostics.append(failure_diagnostic(key, None, e))
            outcome.error_count += 1
            return outcome

        if images.is_empty:
            products = '/'.join(product.upper() for product in destinations)
            outcome.diagnostics.append(Diagnostic(key, f"No {products} data"))
            outcome.skipped_count += 1
            return outcome

        self.logger.info(f"Entry {key}: {len(images)} image(s) on {acquired}")

        for product, name in destinations.items():
            try:
                composite = self._composite_for_product(product, images, site)
            except Exception as e:
                outcome.diagnostics.append(failure_diagnostic(key, product, e))
                outcome.error_count += 1
                continue

            if not composite:
                outcome.diagnostics.append(Diagnostic(key, f"No {product.upper()} data", product))
                outcome.skipped_count += 1
                continue

            request = self.build_export_request(name, site, self.config.date_folder)
            outcome.pending_exports.append(
                (key, product, export_pool.submit(self.export_raster, composite, request))
            )

        return outcome

    def _composite_for_product(self, product: str, images: ImageSet, site: AreaOfInterest):
        if product == 'ndwi':
            return reduce_composite(
                images.map(self.prepare_index_image),
                (self.config.index_band,),
                self.config.date_index_policy,
                site
            )
        return reduce_composite(
            images.map(self.prepare_reflectance_image),
            self.config.rgb_bands,
            ReducerPolicy.MEDIAN,
            site
        )

    # Full run and reporting

    def run_full_pipeline(self, diagnostics_path: Optional[Union[str, Path]] = DIAGNOSTICS_FILE) -> RunReport:
        """
        Run both products and write the diagnostics file.

        Returns:
            Merged RunReport
        """
        log_section(self.logger, 'multi-year AOI composite')
        report = self.run_aoi_composite()

        log_section(self.logger, 'per-date exports')
        report = report.merge(self.run_date_exports())

        if diagnostics_path is not None:
            self.write_diagnostics(report, diagnostics_path)

        self.logger.info("\n" + "=" * 60)
        self.logger.info("PROCESSING COMPLETED")
        self.logger.info("=" * 60)
        self.logger.info(self.get_processing_summary(report))
        return report

    def _collect_exports(self, report: RunReport, pending: List[PendingExport]) -> None:
        """Wait for queued exports and fold their outcome into the report."""
        for key, product, future in pending:
            try:
                result = future.result()
            except Exception as e:
                self._add_diagnostic(report, failure_diagnostic(key, product, e), error=True)
                continue
            report.exports.append(result)
            report.processed_count += 1

    def _add_diagnostic(self, report: RunReport, diagnostic: Diagnostic, error: bool = False) -> None:
        self.logger.warning(diagnostic.message)
        report.diagnostics.append(diagnostic)
        if error:
            report.error_count += 1
        else:
            report.skipped_count += 1

    def _log_memory_usage(self) -> None:
        memory_usage = psutil.virtual_memory()
        self.logger.info(f"System memory usage: {memory_usage.percent}%")

    def write_diagnostics(self, report: RunReport, path: Union[str, Path]) -> Path:
        """Write one line per diagnostic."""
        path = Path(path)
        ensure_directory(path.parent)
        with open(path, 'w', encoding='utf-8') as f:
            for diagnostic in report.diagnostics:
                f.write(diagnostic.message + '\n')
        self.logger.info(f"Diagnostics written to: {path}")
        return path

    def get_processing_summary(self, report: RunReport) -> Dict[str, Any]:
        """
        Processing summary with counts, timing and key configuration.

        Examples:
            >>> summary = pipeline.get_processing_summary(report)
            >>> print(f"Exports: {summary['exports']}, Errors: {summary['error_count']}")
        """
        summary = report.summary()
        summary['config_summary'] = self.config.log_parameters()
        return summary

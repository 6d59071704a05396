"""Shapefile ingestion pipeline.

Runs one upload through every stage and submits the result:

1. Upload pre-check: size, extension, MIME type (before anything is stored)
2. Import record: ``create_import`` issues the import id (``processing``)
3. Read archive: unpack the ``.zip``, select the dataset
4. Decode features: ``.shp``/``.dbf`` records to ``RawFeature`` (lazy)
5. Normalize + validate: ``CanonicalPlot`` per record, ``ImportBatch``
6. Submit: bulk insert accepted plots, set the terminal import status

Propagation policy: anything that prevents a well-formed batch is raised
and, once the import id exists, the import is first marked ``failed``
with the error text. Record-level problems only ever show up as skip
reasons in the report.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from plot_ingest.activities.decode_features import decode_features, resolve_crs
from plot_ingest.activities.normalize_plot import normalize_plot
from plot_ingest.activities.read_archive import check_upload, read_archive
from plot_ingest.activities.validate_plots import build_import_batch
from plot_ingest.core.deadline import Deadline
from plot_ingest.core.exceptions import PipelineError
from plot_ingest.models.batch import ImportStatus
from plot_ingest.stores.base import StoreError

if TYPE_CHECKING:
    from plot_ingest.core.context import IngestContext
    from plot_ingest.models.archive import ArchiveContents
    from plot_ingest.models.batch import ImportBatch
    from plot_ingest.models.contracts import ImportReport
    from plot_ingest.stores.base import FeatureStore

logger = logging.getLogger("plot_ingest.orchestrators.ingest_pipeline")


def run_import(
    blob: bytes,
    *,
    filename: str,
    context: IngestContext,
    content_type: str = "",
    uploaded_by: str = "",
    deadline: Deadline | None = None,
) -> ImportReport:
    """Import one uploaded shapefile package.

    Args:
        blob: Raw bytes of the uploaded ``.zip``.
        filename: Client-supplied filename.
        context: Configuration and collaborators for the run.
        content_type: Client-supplied MIME type.
        uploaded_by: Id of the uploading user, if known.
        deadline: Deadline for reading and decoding; defaults to
            ``config.processing_timeout_s`` from now.

    Returns:
        The import report: ``importId``, ``importedCount``,
        ``skippedCount``, ``skipReasons``, ``status``, ``failedCount``
        and ``errors``.

    Raises:
        ArchiveRejectedError: If the upload or package is rejected.
        FeatureDecodeError: If the dataset cannot be decoded at all.
        DeadlineExceededError: If the deadline elapses or the run is cancelled.
        StoreError: If the import record cannot be created or updated.
    """
    config = context.config
    store = context.feature_store

    # Phase 1: reject bad uploads before anything is recorded
    check_upload(filename, len(blob), content_type, max_bytes=config.max_upload_bytes)

    # Phase 2: the import id exists before processing begins
    import_id = store.create_import(filename, file_size=len(blob), uploaded_by=uploaded_by)
    if deadline is None:
        deadline = Deadline.after(config.processing_timeout_s)

    logger.info(
        "Import started | import=%s | file=%s | bytes=%d | decoder=%s | store=%s",
        import_id,
        filename,
        len(blob),
        config.decoder,
        store.name,
    )

    try:
        # Phase 3-5: read, decode, normalize, validate
        contents = read_archive(
            blob,
            filename,
            max_bytes=config.max_upload_bytes,
            max_uncompressed_bytes=config.max_uncompressed_bytes,
            deadline=deadline,
        )
        projection = resolve_crs(contents, config.default_crs)
        features = decode_features(
            contents,
            decoder=config.decoder,
            crs=projection,
            deadline=deadline,
        )
        plots = (normalize_plot(feature, geometry=context.geometry) for feature in features)
        batch = build_import_batch(
            plots,
            import_id,
            geometry=context.geometry,
            min_area_sqm=config.min_area_sqm,
            max_area_sqm=config.max_area_sqm,
        )
    except Exception as exc:
        message = exc.message if isinstance(exc, PipelineError) else str(exc)
        if isinstance(exc, PipelineError) and not exc.correlation_id:
            exc.correlation_id = import_id
        logger.warning(
            "Import aborted | import=%s | file=%s | error=%s",
            import_id,
            filename,
            message,
        )
        _mark_failed(store, import_id, message or type(exc).__name__)
        raise

    # Phase 6: submit
    _submit(store, batch)
    metadata = _import_metadata(contents, batch, projection=projection, decoder=config.decoder)
    store.update_import_status(
        import_id,
        batch.status,
        error_message=batch.error_message,
        plots_count=batch.imported_count,
        metadata=metadata,
    )

    logger.info(
        "Import finished | import=%s | status=%s | imported=%d | skipped=%d | failed=%d",
        import_id,
        batch.status.value,
        batch.imported_count,
        batch.skipped_count,
        batch.failed_count,
    )
    return batch.to_report()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _submit(store: FeatureStore, batch: ImportBatch) -> None:
    """Bulk insert the accepted plots and finalize the batch with the result."""
    if not batch.plots:
        batch.finalize(inserted_count=0)
        return

    try:
        result = store.bulk_insert(batch.import_id, [plot.to_payload() for plot in batch.plots])
    except StoreError as exc:
        logger.error(
            "Bulk insert failed | import=%s | plots=%d | retryable=%s | error=%s",
            batch.import_id,
            len(batch.plots),
            exc.retryable,
            exc.message,
        )
        batch.fail(exc.message)
        return

    batch.finalize(
        inserted_count=result.inserted_count,
        failed_count=result.error_count,
        errors=result.errors,
    )


def _mark_failed(store: FeatureStore, import_id: str, message: str) -> None:
    try:
        store.update_import_status(import_id, ImportStatus.FAILED, error_message=message)
    except StoreError as exc:
        logger.error(
            "Could not mark import failed | import=%s | error=%s",
            import_id,
            exc.message,
        )


def _import_metadata(
    contents: ArchiveContents,
    batch: ImportBatch,
    *,
    projection: str,
    decoder: str,
) -> dict[str, object]:
    bounds = batch.bounds
    return {
        "dataset": contents.dataset_name,
        "projection": projection,
        "has_projection": contents.has_projection,
        "file_count": contents.file_count,
        "bounds": list(bounds) if bounds is not None else None,
        "decoder": decoder,
        "skipped_count": batch.skipped_count,
    }

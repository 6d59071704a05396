"""Tests for the end-to-end import pipeline.

Covers:
- Valid package imported and the import record completed
- Partial batches: accepted plots stored, rejected plots reported
- Upload rejected before any import record exists
- Fatal errors mark the import failed and propagate
- Store failures and row-level refusals fail the batch
- Import metadata (projection, bounds, dataset)
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest

from plot_ingest.activities.decode_features import RecordCountMismatchError
from plot_ingest.activities.read_archive import (
    MissingRequiredComponentError,
    SizeExceededError,
    UnsupportedFormatError,
)
from plot_ingest.core.config import IngestConfig
from plot_ingest.core.context import IngestContext
from plot_ingest.core.deadline import Deadline, DeadlineExceededError
from plot_ingest.orchestrators.ingest_pipeline import run_import
from plot_ingest.stores.base import FeatureStore, StoreError
from plot_ingest.stores.memory import InMemoryFeatureStore
from tests.conftest import build_package, build_shapefile, build_zip, square


def _failed_import(store: InMemoryFeatureStore, import_id: str) -> dict[str, object]:
    record = store.get_import(import_id)
    assert record is not None
    assert record["status"] == "failed"
    return record


# ---------------------------------------------------------------------------
# Successful imports
# ---------------------------------------------------------------------------


class TestRunImport:
    """Packages that produce a well-formed batch."""

    def test_valid_package(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        report = run_import(valid_package, filename="plots.zip", context=ingest_context)
        assert report["status"] == "completed"
        assert report["importedCount"] == 3
        assert report["skippedCount"] == 0
        assert report["skipReasons"] == []
        assert report["failedCount"] == 0
        assert report["errors"] == []

        record = memory_store.get_import(report["importId"])
        assert record is not None
        assert record["status"] == "completed"
        assert record["plots_count"] == 3
        assert record["file_size"] == len(valid_package)

    def test_stored_plot_fields(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        run_import(valid_package, filename="plots.zip", context=ingest_context)
        first = memory_store.find_plot_by_code("A-1")
        second = memory_store.find_plot_by_code("A-2")
        third = memory_store.find_plot_by_code("A-3")
        assert first is not None
        assert second is not None
        assert third is not None
        assert first["land_use"] == "Residential"
        assert first["owner_name"] == "Alice"
        assert first["price_usd"] == 125000.0
        assert second["price_usd"] == 1500.5
        assert third["price_usd"] is None
        assert third["owner_name"] is None
        assert first["geometry"]["type"] == "Polygon"  # type: ignore[index]
        assert 12_000 < first["area_sqm"] < 12_600  # type: ignore[operator]

    def test_partial_batch(
        self,
        mixed_files: dict[str, bytes],
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        report = run_import(
            build_package(mixed_files), filename="plots.zip", context=ingest_context
        )
        assert report["status"] == "completed"
        assert report["importedCount"] == 2
        assert report["skippedCount"] == 3
        assert [s["plotCode"] for s in report["skipReasons"]] == ["M-2", "M-3", "M-4"]
        malformed, tiny, bowtie = report["skipReasons"]
        assert malformed["reasons"] == ["MalformedGeometry"]
        assert tiny["reasons"] == ["AreaTooSmall"]
        assert "SelfIntersection" in bowtie["reasons"]
        assert memory_store.find_plot_by_code("M-1") is not None
        assert memory_store.find_plot_by_code("M-5") is not None
        assert memory_store.find_plot_by_code("M-4") is None

    def test_nothing_accepted_still_completes(
        self,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        files = build_shapefile([[square(0.0, 0.0, size=0.000001)]], [("T-1", "", "", "")])
        report = run_import(build_package(files), filename="plots.zip", context=ingest_context)
        assert report["status"] == "completed"
        assert report["importedCount"] == 0
        assert report["skippedCount"] == 1
        record = memory_store.get_import(report["importId"])
        assert record is not None
        assert record["plots_count"] == 0

    def test_projected_package_without_prj_skipped(
        self,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        ring = [
            (500_000.0, 4_000_000.0),
            (500_000.0, 4_000_100.0),
            (500_100.0, 4_000_100.0),
            (500_100.0, 4_000_000.0),
            (500_000.0, 4_000_000.0),
        ]
        files = build_shapefile([[ring]], [("U-1", "", "", "")])
        report = run_import(
            build_package(files, prj=None), filename="plots.zip", context=ingest_context
        )
        assert report["status"] == "completed"
        assert report["importedCount"] == 0
        assert report["skippedCount"] == 1
        assert report["skipReasons"][0]["reasons"] == ["MalformedGeometry"]
        assert memory_store.find_plot_by_code("U-1") is None

    def test_metadata(
        self,
        valid_files: dict[str, bytes],
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        blob = build_package(valid_files, prj=None)
        report = run_import(blob, filename="plots.zip", context=ingest_context)
        record = memory_store.get_import(report["importId"])
        assert record is not None
        assert record["projection"] == "EPSG:4326"
        assert record["bounds"] == pytest.approx([0.0, 0.0, 0.021, 0.001])
        metadata = record["metadata"]
        assert metadata["dataset"] == "plots"  # type: ignore[index]
        assert metadata["has_projection"] is False  # type: ignore[index]
        assert metadata["decoder"] == "pyshp"  # type: ignore[index]
        assert metadata["file_count"] == 3  # type: ignore[index]

    def test_projection_resolved_once(
        self,
        valid_files: dict[str, bytes],
        ingest_context: IngestContext,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        blob = build_package(valid_files, prj=None)
        with caplog.at_level(logging.INFO, logger="plot_ingest"):
            run_import(blob, filename="plots.zip", context=ingest_context)
        notices = [r for r in caplog.records if r.getMessage().startswith("No projection file")]
        assert len(notices) == 1

    def test_uploader_recorded(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        report = run_import(
            valid_package,
            filename="plots.zip",
            context=ingest_context,
            content_type="application/zip",
            uploaded_by="user-7",
        )
        record = memory_store.get_import(report["importId"])
        assert record is not None
        assert record["uploaded_by"] == "user-7"

    def test_thresholds_from_config(
        self,
        valid_package: bytes,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        context = IngestContext(
            config=IngestConfig(min_area_sqm=20_000, max_area_sqm=1e7),
            feature_store=memory_store,
        )
        report = run_import(valid_package, filename="plots.zip", context=context)
        assert report["importedCount"] == 0
        assert report["skippedCount"] == 3


# ---------------------------------------------------------------------------
# Rejected uploads and fatal errors
# ---------------------------------------------------------------------------


class TestRunImportFailures:
    """Errors that prevent a well-formed batch."""

    @pytest.fixture()
    def mock_store(self) -> MagicMock:
        store = MagicMock(spec=FeatureStore)
        store.name = "mock"
        store.create_import.return_value = "imp-1"
        return store

    def test_wrong_extension_rejected_before_import(
        self, valid_package: bytes, mock_store: MagicMock
    ) -> None:
        context = IngestContext(config=IngestConfig(), feature_store=mock_store)
        with pytest.raises(UnsupportedFormatError):
            run_import(valid_package, filename="plots.txt", context=context)
        mock_store.create_import.assert_not_called()

    def test_oversize_rejected_before_import(
        self, valid_package: bytes, mock_store: MagicMock
    ) -> None:
        config = IngestConfig(max_upload_bytes=10, max_uncompressed_bytes=10)
        context = IngestContext(config=config, feature_store=mock_store)
        with pytest.raises(SizeExceededError):
            run_import(valid_package, filename="plots.zip", context=context)
        mock_store.create_import.assert_not_called()

    def test_bad_mime_rejected_before_import(
        self, valid_package: bytes, mock_store: MagicMock
    ) -> None:
        context = IngestContext(config=IngestConfig(), feature_store=mock_store)
        with pytest.raises(UnsupportedFormatError) as exc_info:
            run_import(
                valid_package, filename="plots.zip", context=context, content_type="text/plain"
            )
        assert "content type" in exc_info.value.errors[0]
        mock_store.create_import.assert_not_called()

    def test_missing_component_marks_failed(
        self,
        valid_files: dict[str, bytes],
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        blob = build_package(valid_files, skip=(".dbf",))
        with pytest.raises(MissingRequiredComponentError) as exc_info:
            run_import(blob, filename="plots.zip", context=ingest_context)
        record = _failed_import(memory_store, exc_info.value.correlation_id)
        assert ".dbf" in str(record["error_message"])

    def test_record_count_mismatch_marks_failed(
        self,
        valid_files: dict[str, bytes],
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        short = build_shapefile([[square(0.0, 0.0)]], [("X-1", "", "", "")])
        blob = build_package({**valid_files, ".dbf": short[".dbf"]})
        with pytest.raises(RecordCountMismatchError) as exc_info:
            run_import(blob, filename="plots.zip", context=ingest_context)
        assert exc_info.value.correlation_id
        _failed_import(memory_store, exc_info.value.correlation_id)
        assert memory_store.find_plot_by_code("A-1") is None

    def test_not_a_zip_marks_failed(
        self, ingest_context: IngestContext, memory_store: InMemoryFeatureStore
    ) -> None:
        with pytest.raises(UnsupportedFormatError) as exc_info:
            run_import(b"not a zip at all", filename="plots.zip", context=ingest_context)
        _failed_import(memory_store, exc_info.value.correlation_id)

    def test_cancelled_run(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        deadline = Deadline()
        deadline.cancel()
        with pytest.raises(DeadlineExceededError) as exc_info:
            run_import(
                valid_package, filename="plots.zip", context=ingest_context, deadline=deadline
            )
        record = _failed_import(memory_store, exc_info.value.correlation_id)
        assert record["error_message"] == "Import cancelled by caller"

    def test_unexpected_error_marks_failed(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        created: list[str] = []
        original = memory_store.create_import

        def create_import(*args: object, **kwargs: object) -> str:
            import_id = original(*args, **kwargs)  # type: ignore[arg-type]
            created.append(import_id)
            return import_id

        with (
            patch.object(memory_store, "create_import", side_effect=create_import),
            patch(
                "plot_ingest.orchestrators.ingest_pipeline.read_archive",
                side_effect=RuntimeError("boom"),
            ),
            pytest.raises(RuntimeError, match="boom"),
        ):
            run_import(valid_package, filename="plots.zip", context=ingest_context)
        record = _failed_import(memory_store, created[0])
        assert record["error_message"] == "boom"

    def test_original_error_survives_status_failure(
        self, mock_store: MagicMock
    ) -> None:
        mock_store.update_import_status.side_effect = StoreError("mock", "db gone")
        context = IngestContext(config=IngestConfig(), feature_store=mock_store)
        with pytest.raises(MissingRequiredComponentError):
            run_import(build_zip({"readme.txt": "x"}), filename="plots.zip", context=context)
        mock_store.update_import_status.assert_called_once()

    def test_create_import_failure_propagates(
        self, valid_package: bytes, mock_store: MagicMock
    ) -> None:
        mock_store.create_import.side_effect = StoreError("mock", "down", retryable=True)
        context = IngestContext(config=IngestConfig(), feature_store=mock_store)
        with pytest.raises(StoreError) as exc_info:
            run_import(valid_package, filename="plots.zip", context=context)
        assert exc_info.value.retryable is True
        mock_store.update_import_status.assert_not_called()


# ---------------------------------------------------------------------------
# Submission outcomes
# ---------------------------------------------------------------------------


class TestSubmission:
    """How store answers map to the batch status."""

    def test_store_unavailable_fails_batch(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        error = StoreError("memory", "connection refused", retryable=True)
        with patch.object(memory_store, "bulk_insert", side_effect=error):
            report = run_import(valid_package, filename="plots.zip", context=ingest_context)
        assert report["status"] == "failed"
        assert report["importedCount"] == 0
        assert report["failedCount"] == 3
        assert report["errors"] == ["connection refused"]
        record = _failed_import(memory_store, report["importId"])
        assert record["error_message"] == "connection refused"

    def test_row_refusal_fails_batch(
        self,
        valid_package: bytes,
        ingest_context: IngestContext,
        memory_store: InMemoryFeatureStore,
    ) -> None:
        earlier = build_shapefile([[square(5.0, 5.0)]], [("A-2", "", "", "")])
        run_import(build_package(earlier), filename="earlier.zip", context=ingest_context)

        report = run_import(valid_package, filename="plots.zip", context=ingest_context)
        assert report["status"] == "failed"
        assert report["importedCount"] == 2
        assert report["failedCount"] == 1
        assert report["errors"] == ["Plot A-2: duplicate plot_code"]
        record = _failed_import(memory_store, report["importId"])
        assert record["plots_count"] == 2
        assert record["error_message"] == "Plot A-2: duplicate plot_code"

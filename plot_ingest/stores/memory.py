"""In-memory feature store.

Keeps imports, plots and plot attributes in process-local dicts guarded
by a lock. Enforces the same unique ``plot_code`` rule as the database
so duplicate handling can be exercised without PostGIS. Used by the
test suite and for local runs (``FEATURE_STORE=memory``).
"""

from __future__ import annotations

import copy
import datetime
import logging
import threading
import uuid
from typing import TYPE_CHECKING

from plot_ingest.core.constants import MEMORY_STORE
from plot_ingest.models.batch import ImportStatus
from plot_ingest.stores.base import FeatureStore, InsertResult, StoreError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from plot_ingest.models.contracts import PlotPayload

logger = logging.getLogger("plot_ingest.stores.memory")


class InMemoryFeatureStore(FeatureStore):
    """Thread-safe dict-backed ``FeatureStore``."""

    name = MEMORY_STORE

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._imports: dict[str, dict[str, object]] = {}
        self._plots: dict[str, dict[str, object]] = {}
        self._codes: dict[str, str] = {}

    def create_import(self, filename: str, *, file_size: int = 0, uploaded_by: str = "") -> str:
        import_id = str(uuid.uuid4())
        record: dict[str, object] = {
            "id": import_id,
            "filename": filename,
            "original_filename": filename,
            "uploaded_by": uploaded_by or None,
            "upload_date": datetime.datetime.now(datetime.UTC).isoformat(),
            "status": ImportStatus.PROCESSING.value,
            "plots_count": 0,
            "file_size": file_size,
            "projection": None,
            "bounds": None,
            "metadata": {},
            "error_message": None,
        }
        with self._lock:
            self._imports[import_id] = record
        return import_id

    def bulk_insert(self, import_id: str, plots: Sequence[PlotPayload]) -> InsertResult:
        inserted = 0
        errors: list[str] = []
        with self._lock:
            if import_id not in self._imports:
                raise StoreError(self.name, f"Unknown import {import_id!r}")
            for payload in plots:
                code = payload["plot_code"]
                if code in self._codes:
                    errors.append(f"Plot {code}: duplicate plot_code")
                    continue
                plot_id = str(uuid.uuid4())
                row = copy.deepcopy(dict(payload))
                row.update({"id": plot_id, "import_id": import_id, "status": "available"})
                self._plots[plot_id] = row
                self._codes[code] = plot_id
                inserted += 1

        if errors:
            logger.warning(
                "Rows refused | import=%s | inserted=%d | errors=%d",
                import_id,
                inserted,
                len(errors),
            )
        return InsertResult(inserted_count=inserted, error_count=len(errors), errors=errors)

    def update_import_status(
        self,
        import_id: str,
        status: ImportStatus,
        *,
        error_message: str = "",
        plots_count: int = 0,
        metadata: Mapping[str, object] | None = None,
    ) -> None:
        with self._lock:
            record = self._imports.get(import_id)
            if record is None:
                raise StoreError(self.name, f"Unknown import {import_id!r}")
            meta = dict(metadata or {})
            record.update(
                {
                    "status": status.value,
                    "plots_count": plots_count,
                    "error_message": error_message or None,
                    "metadata": meta,
                    "projection": meta.get("projection"),
                    "bounds": meta.get("bounds"),
                }
            )

    def get_plot(self, plot_id: str) -> dict[str, object] | None:
        with self._lock:
            row = self._plots.get(plot_id)
            return copy.deepcopy(row) if row is not None else None

    def get_import(self, import_id: str) -> dict[str, object] | None:
        with self._lock:
            record = self._imports.get(import_id)
            return copy.deepcopy(record) if record is not None else None

    def find_plot_by_code(self, plot_code: str) -> dict[str, object] | None:
        """Return the stored plot with *plot_code*, or ``None``."""
        with self._lock:
            plot_id = self._codes.get(plot_code)
            if plot_id is None:
                return None
            return copy.deepcopy(self._plots[plot_id])

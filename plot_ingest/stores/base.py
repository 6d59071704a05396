"""FeatureStore abstract base class.

Defines the contract of the persistence collaborator that receives
validated plots. The pipeline only talks to this interface; concrete
adapters (in-memory, PostGIS) are selected by ``get_feature_store``.

Lifecycle of one import:
    1. ``create_import(...)``          issue the import id (``processing``).
    2. ``bulk_insert(import_id, ...)`` insert accepted plots, report row errors.
    3. ``update_import_status(...)``   mark the import ``completed``/``failed``.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from plot_ingest.core.exceptions import PipelineError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from plot_ingest.models.batch import ImportStatus
    from plot_ingest.models.contracts import PlotPayload


@dataclass(frozen=True, slots=True)
class InsertResult:
    """Store answer to a bulk insert.

    Attributes:
        inserted_count: Rows stored.
        error_count: Rows the store refused.
        errors: One ``"Plot <code>: <reason>"`` message per refused row.
    """

    inserted_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)


class FeatureStore(abc.ABC):
    """Abstract base class for plot persistence adapters."""

    name: str = ""

    @abc.abstractmethod
    def create_import(self, filename: str, *, file_size: int = 0, uploaded_by: str = "") -> str:
        """Record a new import in ``processing`` state and return its id.

        Raises:
            StoreError: If the record cannot be created.
        """

    @abc.abstractmethod
    def bulk_insert(self, import_id: str, plots: Sequence[PlotPayload]) -> InsertResult:
        """Insert *plots* tagged with *import_id*, row by row.

        A refused row is counted and described in the result; it does
        not stop the remaining rows.

        Raises:
            StoreError: If the store is unreachable (no row outcome known).
        """

    @abc.abstractmethod
    def update_import_status(
        self,
        import_id: str,
        status: ImportStatus,
        *,
        error_message: str = "",
        plots_count: int = 0,
        metadata: Mapping[str, object] | None = None,
    ) -> None:
        """Set the terminal status of an import.

        Raises:
            StoreError: If the import is unknown or the update fails.
        """

    @abc.abstractmethod
    def get_plot(self, plot_id: str) -> dict[str, object] | None:
        """Return a stored plot by id, or ``None``."""

    @abc.abstractmethod
    def get_import(self, import_id: str) -> dict[str, object] | None:
        """Return an import record by id, or ``None``."""

    def close(self) -> None:  # noqa: B027
        """Release any held resources (no-op by default)."""


# ---------------------------------------------------------------------------
# Store exceptions
# ---------------------------------------------------------------------------


class StoreError(PipelineError):
    """Raised by feature-store adapters.

    Attributes:
        store: Name of the adapter that raised the error.
    """

    default_stage = "feature_store"
    default_code = "STORE_ERROR"

    def __init__(self, store: str, message: str, *, retryable: bool = False) -> None:
        self.store = store
        super().__init__(message, retryable=retryable)

    def __str__(self) -> str:
        return f"[{self.store}] {self.message}"

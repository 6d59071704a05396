"""Data models for validation outcomes and import batches.

- RejectionReason: machine-readable rule codes.
- ValidationOutcome: per-plot pass/fail with every triggered reason.
- ImportBatch: accepted plots in decode order, rejected outcomes, and
  the terminal status once the feature store has answered.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plot_ingest.models.contracts import ImportReport, SkipReasonPayload
    from plot_ingest.models.plot import CanonicalPlot


class RejectionReason(str, enum.Enum):
    """Validation rule codes reported for rejected plots."""

    MALFORMED_GEOMETRY = "MalformedGeometry"
    INVALID_GEOMETRY_TYPE = "InvalidGeometryType"
    SELF_INTERSECTION = "SelfIntersection"
    INVALID_POLYGON = "InvalidPolygon"
    AREA_TOO_SMALL = "AreaTooSmall"
    AREA_TOO_LARGE = "AreaTooLarge"
    DUPLICATE_PLOT_CODE = "DuplicatePlotCode"

    def __str__(self) -> str:
        return self.value


class ImportStatus(enum.Enum):
    """Lifecycle state of an import batch.

    Values:
        PROCESSING: Import record created, pipeline running.
        COMPLETED:  Batch submitted and the store reported no errors.
        FAILED:     A fatal error occurred or the store rejected rows.
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of evaluating every rule against one plot.

    Attributes:
        plot_code: Code of the evaluated plot.
        record_index: Source record number.
        reasons: Triggered rule codes in evaluation order (empty = passed).
        messages: Human-readable detail, one per reason.
    """

    plot_code: str
    record_index: int = 0
    reasons: list[RejectionReason] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.reasons

    @property
    def reason_codes(self) -> list[str]:
        return [reason.value for reason in self.reasons]

    def to_skip_reason(self) -> SkipReasonPayload:
        return {
            "plotCode": self.plot_code,
            "reasons": self.reason_codes,
            "messages": list(self.messages),
        }


@dataclass(slots=True)
class ImportBatch:
    """The unit submitted to the feature store for one upload.

    Attributes:
        import_id: Identifier issued before processing began.
        plots: Accepted plots, in original decode order.
        rejected: Outcomes of rejected plots, in decode order.
        status: ``PROCESSING`` until ``finalize()`` is called.
        error_message: Aggregated store error text for a failed batch.
        inserted_count: Rows the store reported as inserted.
        failed_count: Rows the store reported as errored.
        store_errors: Row-level messages returned by the store.
    """

    import_id: str
    plots: list[CanonicalPlot] = field(default_factory=list)
    rejected: list[ValidationOutcome] = field(default_factory=list)
    status: ImportStatus = ImportStatus.PROCESSING
    error_message: str = ""
    inserted_count: int | None = None
    failed_count: int = 0
    store_errors: list[str] = field(default_factory=list)

    @property
    def imported_count(self) -> int:
        """Rows stored, or accepted plots while the batch is unsubmitted."""
        if self.inserted_count is None:
            return len(self.plots)
        return self.inserted_count

    @property
    def skipped_count(self) -> int:
        return len(self.rejected)

    @property
    def skip_reasons(self) -> list[SkipReasonPayload]:
        return [outcome.to_skip_reason() for outcome in self.rejected]

    @property
    def bounds(self) -> tuple[float, float, float, float] | None:
        """Bounding box over every accepted plot, or ``None`` when empty."""
        boxes = [p.bbox for p in self.plots if p.bbox is not None]
        if not boxes:
            return None
        return (
            min(b[0] for b in boxes),
            min(b[1] for b in boxes),
            max(b[2] for b in boxes),
            max(b[3] for b in boxes),
        )

    @property
    def is_final(self) -> bool:
        return self.status is not ImportStatus.PROCESSING

    def finalize(
        self,
        *,
        inserted_count: int,
        failed_count: int = 0,
        errors: list[str] | None = None,
    ) -> ImportStatus:
        """Record the store's answer and set the terminal status.

        The batch is ``COMPLETED`` only when the store reported zero
        errored rows; any row-level error fails the whole batch.
        """
        self.inserted_count = inserted_count
        self.failed_count = failed_count
        self.store_errors = list(errors or [])
        if failed_count or self.store_errors:
            self.status = ImportStatus.FAILED
            self.error_message = "; ".join(self.store_errors) or (
                f"{failed_count} plot(s) failed to insert"
            )
        else:
            self.status = ImportStatus.COMPLETED
            self.error_message = ""
        return self.status

    def fail(self, message: str) -> None:
        """Mark the batch failed without any rows stored."""
        self.inserted_count = 0
        self.failed_count = len(self.plots)
        self.status = ImportStatus.FAILED
        self.error_message = message
        self.store_errors = [message]

    def to_report(self) -> ImportReport:
        """Render the caller-facing summary."""
        return {
            "importId": self.import_id,
            "importedCount": self.imported_count,
            "skippedCount": self.skipped_count,
            "skipReasons": self.skip_reasons,
            "status": self.status.value,
            "failedCount": self.failed_count,
            "errors": list(self.store_errors),
        }

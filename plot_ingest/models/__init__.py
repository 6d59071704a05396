"""Data models and schemas.

Defines the data structures used throughout the pipeline:
- RawArchiveEntry / ArchiveContents: members of the uploaded package
- RawFeature: one decoded geometry + attribute record
- CanonicalPlot: normalized plot ready for validation
- ValidationOutcome / ImportBatch: validation results and the submitted batch
"""

from plot_ingest.models.archive import ArchiveContents, EntryRole, RawArchiveEntry
from plot_ingest.models.batch import (
    ImportBatch,
    ImportStatus,
    RejectionReason,
    ValidationOutcome,
)
from plot_ingest.models.feature import RawFeature
from plot_ingest.models.plot import CanonicalPlot

__all__ = [
    "ArchiveContents",
    "CanonicalPlot",
    "EntryRole",
    "ImportBatch",
    "ImportStatus",
    "RawArchiveEntry",
    "RawFeature",
    "RejectionReason",
    "ValidationOutcome",
]

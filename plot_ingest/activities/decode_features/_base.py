"""FeatureDecoder abstract base class.

Defines the contract every shapefile format reader implements. The rest
of the pipeline only ever sees the ``RawFeature`` stream, so concrete
readers (pure-Python pyshp, OGR via fiona) are interchangeable.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from plot_ingest.core.deadline import Deadline
    from plot_ingest.models.archive import ArchiveContents
    from plot_ingest.models.feature import RawFeature


class FeatureDecoder(abc.ABC):
    """Abstract base class for shapefile decoder strategies.

    ``decode`` is called after the package has passed the record-count
    and projection checks. It must yield exactly one ``RawFeature`` per
    ``.shp`` record, in file order, turning per-record failures into
    invalid features (``decode_error`` set) instead of raising.
    """

    name: str = ""

    @abc.abstractmethod
    def decode(
        self,
        contents: ArchiveContents,
        *,
        crs: str,
        deadline: Deadline | None = None,
    ) -> Iterator[RawFeature]:
        """Yield one ``RawFeature`` per geometry record.

        Args:
            contents: Archive contents with ``geometry`` and ``attributes`` set.
            crs: CRS resolved for the whole package.
            deadline: Optional deadline, checked before each record.

        Raises:
            FeatureDecodeError: If the dataset cannot be opened at all.
            DeadlineExceededError: If the deadline elapses mid-decode.
        """

"""Data model for the members of an uploaded shapefile package.

A ``RawArchiveEntry`` is one file extracted from the uploaded ``.zip``
with its role inferred from the suffix. ``ArchiveContents`` is the
output of the ``read_archive`` activity and the input to
``decode_features``: the full entry list plus the selected dataset
components. Entries live in memory only for the duration of one run.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from plot_ingest.core.constants import (
    ATTRIBUTES_SUFFIX,
    ENCODING_SUFFIX,
    GEOMETRY_SUFFIX,
    INDEX_SUFFIX,
    PROJECTION_SUFFIX,
)


class EntryRole(enum.Enum):
    """Role of an archive member within a shapefile dataset."""

    GEOMETRY = "geometry"
    INDEX = "index"
    ATTRIBUTES = "attributes"
    PROJECTION = "projection"
    ENCODING = "encoding"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> EntryRole:
        """Infer the role from a member name (case-insensitive suffix)."""
        return _SUFFIX_ROLES.get(PurePosixPath(name).suffix.lower(), cls.OTHER)


_SUFFIX_ROLES: dict[str, EntryRole] = {
    GEOMETRY_SUFFIX: EntryRole.GEOMETRY,
    INDEX_SUFFIX: EntryRole.INDEX,
    ATTRIBUTES_SUFFIX: EntryRole.ATTRIBUTES,
    PROJECTION_SUFFIX: EntryRole.PROJECTION,
    ENCODING_SUFFIX: EntryRole.ENCODING,
}


@dataclass(frozen=True, slots=True)
class RawArchiveEntry:
    """One member file of the uploaded package.

    Attributes:
        name: Member path inside the archive (e.g. ``"parcels/plots.shp"``).
        content: Decompressed bytes.
        role: Inferred role (geometry, index, attributes, ...).
    """

    name: str
    content: bytes = b""
    role: EntryRole = EntryRole.OTHER

    @property
    def stem(self) -> str:
        """Member path without its suffix, lower-cased, for pairing companions."""
        path = PurePosixPath(self.name)
        return str(path.with_suffix("")).lower()

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True, slots=True)
class ArchiveContents:
    """The decoded member set of one uploaded package.

    Attributes:
        entries: Every non-directory member, in archive order.
        geometry: The selected ``.shp`` member.
        attributes: The ``.dbf`` member paired with ``geometry``.
        index: The paired ``.shx`` member, if present.
        projection: The paired ``.prj`` member, if present.
        encoding: The paired ``.cpg`` member, if present.
        source_filename: Original upload filename.
    """

    entries: list[RawArchiveEntry] = field(default_factory=list)
    geometry: RawArchiveEntry | None = None
    attributes: RawArchiveEntry | None = None
    index: RawArchiveEntry | None = None
    projection: RawArchiveEntry | None = None
    encoding: RawArchiveEntry | None = None
    source_filename: str = ""

    @property
    def has_projection(self) -> bool:
        """Whether the package ships a ``.prj`` for the selected dataset."""
        return self.projection is not None

    @property
    def dataset_name(self) -> str:
        """Base name of the selected dataset (``"plots"`` for ``dir/plots.shp``)."""
        if self.geometry is None:
            return ""
        return PurePosixPath(self.geometry.name).stem

    @property
    def file_count(self) -> int:
        return len(self.entries)

"""pyshp access to the packaged shapefile members.

Used by the eager package checks and by both decoder strategies:
- ``.shp`` record count (pyshp walks the record headers itself),
- ``.dbf`` row count from the dBASE header,
- whether the packaged ``.shx`` can be trusted.

A missing or inconsistent index is never rebuilt here; the decoders
read without it (pyshp) or let OGR restore it (fiona).
"""

from __future__ import annotations

import io
import logging
import struct
from typing import TYPE_CHECKING

import shapefile

from plot_ingest.activities.decode_features._projection import resolve_encoding
from plot_ingest.activities.decode_features._validation import FeatureDecodeError

if TYPE_CHECKING:
    from plot_ingest.models.archive import ArchiveContents, RawArchiveEntry

logger = logging.getLogger("plot_ingest.activities.decode_features")

# struct.error: pyshp unpacks headers directly and lets short reads escape
READ_ERRORS = (shapefile.ShapefileException, struct.error, ValueError, OSError)


def geometry_count(contents: ArchiveContents) -> int:
    """Number of records in the ``.shp`` main file.

    Raises:
        FeatureDecodeError: If the geometry file is not a readable shapefile.
    """
    entry = _require(contents.geometry, "geometry")
    try:
        with shapefile.Reader(shp=io.BytesIO(entry.content)) as reader:
            return len(reader)
    except READ_ERRORS as exc:
        msg = f"Geometry file {entry.name!r} is not a readable shapefile: {exc}"
        raise FeatureDecodeError(msg, code="SHP_HEADER_INVALID") from exc


def attribute_count(contents: ArchiveContents) -> int:
    """Row count of the ``.dbf`` (deleted rows included).

    Raises:
        FeatureDecodeError: If the attribute file has no dBASE header.
    """
    entry = _require(contents.attributes, "attribute")
    try:
        with shapefile.Reader(dbf=io.BytesIO(entry.content)) as reader:
            return int(reader.numRecords)
    except READ_ERRORS as exc:
        msg = f"Attribute file {entry.name!r} is not a readable dBASE table: {exc}"
        raise FeatureDecodeError(msg, code="DBF_HEADER_INVALID") from exc


def usable_index(contents: ArchiveContents) -> bytes | None:
    """The packaged ``.shx`` if it indexes every ``.shp`` record, else ``None``."""
    if contents.index is None:
        logger.info("No index file | dataset=%s", contents.dataset_name)
        return None

    records = geometry_count(contents)
    entries: int | None
    try:
        with shapefile.Reader(
            shp=io.BytesIO(_require(contents.geometry, "geometry").content),
            shx=io.BytesIO(contents.index.content),
        ) as reader:
            entries = reader.numShapes
    except READ_ERRORS:
        entries = None

    if entries != records:
        logger.warning(
            "Ignoring index file that disagrees with geometry file "
            "| file=%s | shx_entries=%s | shp_records=%d",
            contents.index.name,
            entries,
            records,
        )
        return None
    return contents.index.content


def open_reader(contents: ArchiveContents, index: bytes | None) -> shapefile.Reader:
    """Open the geometry/attribute pair, with *index* when one is usable.

    Raises:
        FeatureDecodeError: If pyshp cannot open the pair.
    """
    geometry = _require(contents.geometry, "geometry")
    attributes = _require(contents.attributes, "attribute")
    members = {"shp": io.BytesIO(geometry.content), "dbf": io.BytesIO(attributes.content)}
    if index is not None:
        members["shx"] = io.BytesIO(index)
    try:
        return shapefile.Reader(
            encoding=resolve_encoding(contents),
            encodingErrors="replace",
            **members,
        )
    except READ_ERRORS as exc:
        msg = f"Cannot open shapefile dataset {contents.dataset_name!r}: {exc}"
        raise FeatureDecodeError(msg) from exc


def _require(entry: RawArchiveEntry | None, role: str) -> RawArchiveEntry:
    if entry is None:
        msg = f"Archive contents have no {role} file to decode"
        raise FeatureDecodeError(msg)
    return entry

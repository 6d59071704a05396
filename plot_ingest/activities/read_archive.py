"""Archive reader activity.

Unpacks an uploaded shapefile package (``.zip``) entirely in memory,
classifies every member by suffix, and selects the dataset to decode.

Checks, in order (each failure is fatal and raised before any feature
is decoded):
1. Size of the compressed blob against the upload limit.
2. Upload filename extension and ZIP signature.
3. Declared uncompressed size of all members (zip-bomb guard).
4. Presence of the mandatory ``.shp`` and ``.dbf`` members.

A ``.prj`` member is optional; without it the decoder assumes the
default geographic CRS.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from plot_ingest.core.constants import (
    ATTRIBUTES_SUFFIX,
    BYTES_PER_MB,
    GEOMETRY_SUFFIX,
    MAX_UNCOMPRESSED_BYTES,
    MAX_UPLOAD_BYTES,
    UNKNOWN_MIME_TYPES,
    ZIP_MIME_TYPES,
    ZIP_SIGNATURES,
    ZIP_SUFFIX,
)
from plot_ingest.core.exceptions import ValidationError
from plot_ingest.models.archive import ArchiveContents, EntryRole, RawArchiveEntry

if TYPE_CHECKING:
    from plot_ingest.core.deadline import Deadline

logger = logging.getLogger("plot_ingest.activities.read_archive")

_STAGE = "read_archive"

_ROLE_LABELS = {
    GEOMETRY_SUFFIX: "geometry",
    ATTRIBUTES_SUFFIX: "attribute",
}

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ArchiveRejectedError(ValidationError):
    """Raised when an uploaded package is rejected before decoding.

    Attributes:
        errors: Every human-readable problem found (at least one).
    """

    default_stage = _STAGE
    default_code = "ARCHIVE_REJECTED"

    def __init__(
        self, message: str = "", *, errors: list[str] | None = None, **kwargs: object
    ) -> None:
        self.errors = list(errors) if errors else [message]
        super().__init__(message, **kwargs)


class SizeExceededError(ArchiveRejectedError):
    """Raised when the package (or its decompressed members) is too large."""

    default_code = "ARCHIVE_TOO_LARGE"


class UnsupportedFormatError(ArchiveRejectedError):
    """Raised when the upload is not a readable ZIP package."""

    default_code = "ARCHIVE_UNSUPPORTED_FORMAT"


class MissingRequiredComponentError(ArchiveRejectedError):
    """Raised when the package lacks a ``.shp`` or ``.dbf`` member.

    Attributes:
        missing: Required suffixes not found (e.g. ``[".dbf"]``).
    """

    default_code = "ARCHIVE_MISSING_COMPONENT"

    def __init__(self, missing: list[str], **kwargs: object) -> None:
        self.missing = list(missing)
        errors = [
            f"Missing required {suffix} ({_ROLE_LABELS.get(suffix, 'component')}) file"
            for suffix in self.missing
        ]
        message = "Shapefile must contain .shp and .dbf files: " + "; ".join(errors)
        super().__init__(message, errors=errors, **kwargs)


# ---------------------------------------------------------------------------
# Upload pre-check
# ---------------------------------------------------------------------------


def validate_upload(
    filename: str,
    size: int,
    content_type: str = "",
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> list[str]:
    """Return every problem with an upload, without reading its content.

    Args:
        filename: Client-supplied filename.
        size: Upload size in bytes.
        content_type: Client-supplied MIME type (may be empty).
        max_bytes: Maximum accepted size in bytes.

    Returns:
        Human-readable error strings; empty when the upload is acceptable.
    """
    errors: list[str] = []

    if size > max_bytes:
        errors.append(f"File size exceeds {max_bytes / BYTES_PER_MB:g}MB limit")

    suffix = PurePosixPath(filename or "").suffix.lower()
    if filename and suffix != ZIP_SUFFIX:
        errors.append(
            "Unsupported file format. Please upload a ZIP file containing shapefile components."
        )

    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime not in ZIP_MIME_TYPES and mime not in UNKNOWN_MIME_TYPES:
        errors.append(f"Unsupported content type {mime!r}; expected a ZIP archive")

    return errors


def check_upload(
    filename: str,
    size: int,
    content_type: str = "",
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> None:
    """Raise if ``validate_upload`` finds any problem.

    Raises:
        SizeExceededError: If the upload is over the size limit.
        UnsupportedFormatError: For any other upload problem.
    """
    errors = validate_upload(filename, size, content_type, max_bytes=max_bytes)
    if not errors:
        return
    message = "; ".join(errors)
    if size > max_bytes:
        raise SizeExceededError(message, errors=errors)
    raise UnsupportedFormatError(message, errors=errors)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def read_archive(
    blob: bytes,
    filename: str = "",
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
    max_uncompressed_bytes: int = MAX_UNCOMPRESSED_BYTES,
    deadline: Deadline | None = None,
) -> ArchiveContents:
    """Unpack a shapefile package and select its dataset components.

    Args:
        blob: Raw bytes of the uploaded package.
        filename: Original upload filename (extension checked when given).
        max_bytes: Maximum compressed size in bytes.
        max_uncompressed_bytes: Maximum total declared member size.
        deadline: Optional deadline checked before each member is read.

    Returns:
        ``ArchiveContents`` with every member and the selected dataset.

    Raises:
        SizeExceededError: If the blob or its members are too large.
        UnsupportedFormatError: If the blob is not a readable ZIP.
        MissingRequiredComponentError: If ``.shp`` or ``.dbf`` is absent.
        DeadlineExceededError: If the deadline elapses mid-read.
    """
    if len(blob) > max_bytes:
        msg = f"File size exceeds {max_bytes / BYTES_PER_MB:g}MB limit"
        raise SizeExceededError(msg)

    if filename and PurePosixPath(filename).suffix.lower() != ZIP_SUFFIX:
        msg = f"Unsupported file format {filename!r}: expected a .zip shapefile package"
        raise UnsupportedFormatError(msg)

    if not blob.startswith(ZIP_SIGNATURES):
        msg = "Upload is not a ZIP archive (bad file signature)"
        raise UnsupportedFormatError(msg)

    try:
        archive = zipfile.ZipFile(io.BytesIO(blob))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        msg = f"Cannot open ZIP archive: {exc}"
        raise UnsupportedFormatError(msg) from exc

    with archive:
        infos = [info for info in archive.infolist() if _is_member(info)]

        declared = sum(info.file_size for info in infos)
        if declared > max_uncompressed_bytes:
            msg = (
                f"Archive expands to {declared / BYTES_PER_MB:.1f}MB, above the "
                f"{max_uncompressed_bytes / BYTES_PER_MB:g}MB limit"
            )
            raise SizeExceededError(msg)

        roles = {EntryRole.from_name(info.filename) for info in infos}
        missing = [
            suffix
            for suffix, role in (
                (GEOMETRY_SUFFIX, EntryRole.GEOMETRY),
                (ATTRIBUTES_SUFFIX, EntryRole.ATTRIBUTES),
            )
            if role not in roles
        ]
        if missing:
            raise MissingRequiredComponentError(missing)

        entries = [_read_member(archive, info, deadline) for info in infos]

    contents = _select_dataset(entries, filename)

    logger.info(
        "Archive read | file=%s | entries=%d | dataset=%s | projection=%s",
        filename or "<upload>",
        contents.file_count,
        contents.dataset_name,
        contents.has_projection,
    )
    return contents


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _is_member(info: zipfile.ZipInfo) -> bool:
    """Skip directories, macOS resource forks and hidden files."""
    if info.is_dir():
        return False
    path = PurePosixPath(info.filename)
    if "__MACOSX" in path.parts:
        return False
    return not path.name.startswith(".")


def _read_member(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    deadline: Deadline | None,
) -> RawArchiveEntry:
    if deadline is not None:
        deadline.check(_STAGE)
    try:
        content = archive.read(info)
    except (zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError) as exc:
        # RuntimeError: encrypted member; NotImplementedError: unknown compression
        msg = f"Cannot read archive member {info.filename!r}: {exc}"
        raise UnsupportedFormatError(msg) from exc
    return RawArchiveEntry(
        name=info.filename,
        content=content,
        role=EntryRole.from_name(info.filename),
    )


def _select_dataset(entries: list[RawArchiveEntry], filename: str) -> ArchiveContents:
    """Pick the first ``.shp`` and its companions, preferring matching stems."""
    geometries = [e for e in entries if e.role is EntryRole.GEOMETRY]
    geometry = geometries[0]
    if len(geometries) > 1:
        logger.warning(
            "Package contains %d datasets, importing %s only | file=%s",
            len(geometries),
            geometry.name,
            filename or "<upload>",
        )

    def companion(role: EntryRole) -> RawArchiveEntry | None:
        candidates = [e for e in entries if e.role is role]
        for entry in candidates:
            if entry.stem == geometry.stem:
                return entry
        return candidates[0] if candidates else None

    return ArchiveContents(
        entries=entries,
        geometry=geometry,
        attributes=companion(EntryRole.ATTRIBUTES),
        index=companion(EntryRole.INDEX),
        projection=companion(EntryRole.PROJECTION),
        encoding=companion(EntryRole.ENCODING),
        source_filename=filename,
    )

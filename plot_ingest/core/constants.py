"""Shared pipeline constants.

Centralises file suffixes, size limits, area thresholds, and other
literals shared by the archive reader, decoder, validator and the HTTP
entry point.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Upload limits
# ---------------------------------------------------------------------------

BYTES_PER_MB: int = 1024 * 1024

MAX_UPLOAD_BYTES: int = 50 * BYTES_PER_MB
"""Largest compressed package accepted (checked before decompression)."""

MAX_UNCOMPRESSED_BYTES: int = 500 * BYTES_PER_MB
"""Largest total declared uncompressed size of all archive members."""

ZIP_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/zip",
        "application/x-zip-compressed",
        "application/x-zip",
    }
)
"""MIME types of the ZIP family accepted at the upload boundary."""

UNKNOWN_MIME_TYPES: frozenset[str] = frozenset({"", "application/octet-stream"})
"""MIME types that carry no information; the signature check decides."""

ZIP_SUFFIX: str = ".zip"

# Local file header, end of central directory (empty archive), spanned archive
ZIP_SIGNATURES: tuple[bytes, ...] = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")

# ---------------------------------------------------------------------------
# Shapefile component suffixes
# ---------------------------------------------------------------------------

GEOMETRY_SUFFIX: str = ".shp"
INDEX_SUFFIX: str = ".shx"
ATTRIBUTES_SUFFIX: str = ".dbf"
PROJECTION_SUFFIX: str = ".prj"
ENCODING_SUFFIX: str = ".cpg"

DEFAULT_CRS: str = "EPSG:4326"
"""Assumed coordinate reference when the package has no ``.prj``."""

DEFAULT_ENCODING: str = "utf-8"

# ---------------------------------------------------------------------------
# Plot validation thresholds
# ---------------------------------------------------------------------------

MIN_PLOT_AREA_SQM: float = 1.0
MAX_PLOT_AREA_SQM: float = 10_000_000.0

# Minimum vertices for a valid ring (3 distinct + closing = 4)
MIN_RING_VERTICES: int = 4

# ---------------------------------------------------------------------------
# Plot code synthesis
# ---------------------------------------------------------------------------

GENERATED_PLOT_CODE_PREFIX: str = "PLOT"
GENERATED_PLOT_CODE_SUFFIX_LENGTH: int = 9

# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

DEFAULT_PROCESSING_TIMEOUT_S: float = 120.0

# ---------------------------------------------------------------------------
# Pluggable strategy names
# ---------------------------------------------------------------------------

PYSHP_DECODER: str = "pyshp"
FIONA_DECODER: str = "fiona"

MEMORY_STORE: str = "memory"
POSTGIS_STORE: str = "postgis"

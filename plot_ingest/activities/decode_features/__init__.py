"""Feature decoding activity: shapefile records to ``RawFeature``.

Turns the geometry/attribute pair selected by ``read_archive`` into a
lazy, single-pass stream of ``RawFeature``. The package-level checks run
eagerly when ``decode_features`` is called, before any feature is
yielded:

- ``.shp`` record count must equal the ``.dbf`` row count (records are
  joined by position; a mismatch is fatal),
- the ``.prj`` member, when present, must be a readable CRS.

Record decoding itself is delegated to a pluggable strategy:

- **pyshp** (default): pure Python, reads straight from memory
- **fiona**: OGR ESRI Shapefile driver via a temporary directory

Strategies are looked up by name in a lazy-import registry so OGR is
only loaded when it is selected. A record that cannot produce a closed
polygon ring becomes an invalid feature (``decode_error`` set); it never
aborts the decode.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from plot_ingest.activities.decode_features._base import FeatureDecoder
from plot_ingest.activities.decode_features._projection import resolve_crs, resolve_encoding
from plot_ingest.activities.decode_features._reader import attribute_count, geometry_count
from plot_ingest.activities.decode_features._validation import (
    FeatureDecodeError,
    MalformedGeometryError,
    ProjectionError,
    RecordCountMismatchError,
    UnknownDecoderError,
    close_ring,
    group_rings,
)
from plot_ingest.core.constants import DEFAULT_CRS, FIONA_DECODER, PYSHP_DECODER

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from plot_ingest.core.deadline import Deadline
    from plot_ingest.models.archive import ArchiveContents
    from plot_ingest.models.feature import RawFeature

logger = logging.getLogger("plot_ingest.activities.decode_features")

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "FeatureDecodeError",
    "FeatureDecoder",
    "MalformedGeometryError",
    "ProjectionError",
    "RecordCountMismatchError",
    "UnknownDecoderError",
    "close_ring",
    "decode_features",
    "get_decoder",
    "group_rings",
    "list_decoders",
    "register_decoder",
    "resolve_crs",
    "resolve_encoding",
]

# ---------------------------------------------------------------------------
# Lazy-import decoder registry
# ---------------------------------------------------------------------------

_DECODER_REGISTRY: dict[str, Callable[[], type[FeatureDecoder]]] = {}


def _register_builtin_decoders() -> None:
    def _pyshp() -> type[FeatureDecoder]:
        from plot_ingest.activities.decode_features._pyshp_decoder import PyshpDecoder

        return PyshpDecoder

    def _fiona() -> type[FeatureDecoder]:
        from plot_ingest.activities.decode_features._fiona_decoder import FionaDecoder

        return FionaDecoder

    _DECODER_REGISTRY[PYSHP_DECODER] = _pyshp
    _DECODER_REGISTRY[FIONA_DECODER] = _fiona


def _ensure_registry() -> None:
    if not _DECODER_REGISTRY:
        _register_builtin_decoders()


def register_decoder(name: str, loader: Callable[[], type[FeatureDecoder]]) -> None:
    """Register a decoder strategy under *name*.

    Args:
        name: Strategy name (e.g. ``"my_reader"``).
        loader: Zero-argument callable returning the decoder class.

    Raises:
        ValueError: If the name is empty.
    """
    if not name:
        msg = "Decoder name must be non-empty"
        raise ValueError(msg)
    _ensure_registry()
    _DECODER_REGISTRY[name] = loader
    logger.debug("Registered feature decoder: %s", name)


def get_decoder(name: str) -> FeatureDecoder:
    """Return a new instance of the decoder registered under *name*.

    Raises:
        UnknownDecoderError: If no decoder is registered under *name*.
    """
    _ensure_registry()
    loader = _DECODER_REGISTRY.get(name)
    if loader is None:
        available = ", ".join(sorted(_DECODER_REGISTRY))
        msg = f"Unknown feature decoder: {name!r}. Available: {available}"
        raise UnknownDecoderError(msg)
    return loader()()


def list_decoders() -> list[str]:
    """Return the names of all registered decoders."""
    _ensure_registry()
    return sorted(_DECODER_REGISTRY)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def decode_features(
    contents: ArchiveContents,
    *,
    decoder: str = PYSHP_DECODER,
    default_crs: str = DEFAULT_CRS,
    crs: str | None = None,
    deadline: Deadline | None = None,
) -> Iterator[RawFeature]:
    """Check the package and return a lazy stream of ``RawFeature``.

    The returned iterator is single-pass; decoding again requires a new
    call with the same contents.

    Args:
        contents: Output of ``read_archive`` (geometry and attributes set).
        decoder: Name of the registered decoder strategy.
        default_crs: CRS assumed when the package has no ``.prj``.
        crs: CRS already resolved from the package; skips reading the
            ``.prj`` again.
        deadline: Optional deadline checked before every record.

    Returns:
        Iterator yielding one ``RawFeature`` per ``.shp`` record, in order.

    Raises:
        FeatureDecodeError: If a member header is unreadable.
        RecordCountMismatchError: If ``.shp`` and ``.dbf`` counts differ.
        ProjectionError: If the ``.prj`` is not a valid CRS.
        UnknownDecoderError: If *decoder* is not registered.
    """
    if contents.geometry is None or contents.attributes is None:
        msg = "Archive contents have no geometry/attribute pair to decode"
        raise FeatureDecodeError(msg)

    strategy = get_decoder(decoder)

    shp_records = geometry_count(contents)
    dbf_records = attribute_count(contents)
    if shp_records != dbf_records:
        raise RecordCountMismatchError(shp_records, dbf_records)

    if crs is None:
        crs = resolve_crs(contents, default_crs)

    logger.info(
        "Decoding features | dataset=%s | records=%d | crs=%s | decoder=%s",
        contents.dataset_name,
        shp_records,
        crs if crs.startswith("EPSG:") else "custom WKT",
        strategy.name,
    )
    return strategy.decode(contents, crs=crs, deadline=deadline)

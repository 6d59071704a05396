"""Projection and encoding resolution for a shapefile package.

The CRS is resolved once per run from the ``.prj`` member and stamped
on every decoded feature, so axis order and units are interpreted the
same way for the whole package.
"""

from __future__ import annotations

import codecs
import logging
from typing import TYPE_CHECKING

from plot_ingest.activities.decode_features._validation import ProjectionError
from plot_ingest.core.constants import DEFAULT_CRS, DEFAULT_ENCODING

if TYPE_CHECKING:
    from plot_ingest.models.archive import ArchiveContents

logger = logging.getLogger("plot_ingest.activities.decode_features")

# Minimum pyproj confidence for collapsing an ESRI WKT onto an EPSG code
_EPSG_MIN_CONFIDENCE = 70


def resolve_crs(contents: ArchiveContents, default_crs: str = DEFAULT_CRS) -> str:
    """Return the CRS of the dataset as ``"EPSG:<code>"`` or WKT.

    Args:
        contents: Archive contents (``projection`` may be ``None``).
        default_crs: CRS assumed when no ``.prj`` is present or it is blank.

    Raises:
        ProjectionError: If the ``.prj`` text is not a valid CRS.
    """
    if contents.projection is None:
        logger.info("No projection file, assuming %s", default_crs)
        return default_crs

    text = contents.projection.content.decode("utf-8", errors="replace").strip()
    if not text:
        logger.warning(
            "Empty projection file %s, assuming %s", contents.projection.name, default_crs
        )
        return default_crs

    from pyproj import CRS
    from pyproj.exceptions import CRSError

    try:
        crs = CRS.from_user_input(text)
    except CRSError as exc:
        msg = f"Projection file {contents.projection.name!r} is not a valid CRS: {exc}"
        raise ProjectionError(msg) from exc

    epsg = crs.to_epsg(min_confidence=_EPSG_MIN_CONFIDENCE)
    if epsg is not None:
        return f"EPSG:{epsg}"
    return crs.to_wkt()


def resolve_encoding(contents: ArchiveContents) -> str:
    """Return the attribute encoding named by the ``.cpg`` member (UTF-8 default)."""
    if contents.encoding is None:
        return DEFAULT_ENCODING
    name = contents.encoding.content.decode("ascii", errors="ignore").strip()
    if not name:
        return DEFAULT_ENCODING
    # ArcGIS writes bare code page numbers ("1252", "ANSI 1251")
    code_page = name.rsplit(" ", 1)[-1]
    if code_page.isdigit():
        name = f"cp{code_page}"
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning("Unknown attribute encoding %r, using %s", name, DEFAULT_ENCODING)
        return DEFAULT_ENCODING

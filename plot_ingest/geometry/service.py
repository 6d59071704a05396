"""Geometry math service.

The pipeline never does coordinate math itself; it calls a
``GeometryService`` carried in the ``IngestContext``:

- ``to_wgs84``: reproject rings to EPSG:4326, longitude first
- ``area_sqm``: geodesic area on the WGS 84 ellipsoid, holes subtracted
- ``bounds``: ``(min_lon, min_lat, max_lon, max_lat)``
- ``check``: ring simplicity and polygon validity with explanations

``ShapelyGeometryService`` implements it with pyproj (``Transformer``,
``Geod``) and shapely. Transformers are cached per source CRS so every
feature of a run shares one axis convention.
"""

from __future__ import annotations

import abc
import functools
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from plot_ingest.core.constants import DEFAULT_CRS
from plot_ingest.core.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pyproj import Geod, Transformer

    from plot_ingest.models.feature import Ring

logger = logging.getLogger("plot_ingest.geometry.service")

_WGS84_ALIASES = frozenset({"EPSG:4326", "OGC:CRS84", "WGS84"})


class ReprojectionError(ValidationError):
    """Raised when coordinates cannot be transformed to WGS 84."""

    default_stage = "normalize_plot"
    default_code = "REPROJECTION_FAILED"


@dataclass(frozen=True, slots=True)
class GeometryCheck:
    """Topology signals for one plot geometry.

    Attributes:
        is_simple: No ring crosses or touches itself.
        is_valid: The (multi)polygon is valid under OGC rules.
        simple_reason: Which ring is not simple, when ``is_simple`` is false.
        validity_reason: GEOS explanation, when ``is_valid`` is false.
    """

    is_simple: bool = True
    is_valid: bool = True
    simple_reason: str = ""
    validity_reason: str = ""


class GeometryService(abc.ABC):
    """Geometry math used by the normalizer and validator."""

    @abc.abstractmethod
    def to_wgs84(self, rings: Sequence[Ring], crs: str) -> list[Ring]:
        """Return *rings* reprojected from *crs* to ``(lon, lat)`` in EPSG:4326."""

    @abc.abstractmethod
    def area_sqm(self, polygons: Sequence[Sequence[Ring]]) -> float:
        """Area in square metres of *polygons* (rings in EPSG:4326)."""

    @abc.abstractmethod
    def check(self, polygons: Sequence[Sequence[Ring]]) -> GeometryCheck:
        """Evaluate simplicity and validity of *polygons*."""

    def bounds(self, polygons: Sequence[Sequence[Ring]]) -> tuple[float, float, float, float]:
        """Bounding box over every coordinate of *polygons*."""
        xs = [c[0] for polygon in polygons for ring in polygon for c in ring]
        ys = [c[1] for polygon in polygons for ring in polygon for c in ring]
        if not xs:
            msg = "Cannot compute bounds of an empty geometry"
            raise ValueError(msg)
        return (min(xs), min(ys), max(xs), max(ys))


# ---------------------------------------------------------------------------
# pyproj / shapely implementation
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=32)
def _transformer(crs: str) -> Transformer:
    from pyproj import Transformer

    return Transformer.from_crs(crs, DEFAULT_CRS, always_xy=True)


@functools.lru_cache(maxsize=1)
def _geod() -> Geod:
    from pyproj import Geod

    return Geod(ellps="WGS84")


class ShapelyGeometryService(GeometryService):
    """Geometry service backed by pyproj and shapely."""

    def to_wgs84(self, rings: Sequence[Ring], crs: str) -> list[Ring]:
        if crs.upper() in _WGS84_ALIASES:
            for ring in rings:
                for lon, lat in ring:
                    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
                        msg = (
                            f"Coordinate ({lon}, {lat}) is not a longitude/latitude pair; "
                            f"the package may be missing its projection file"
                        )
                        raise ReprojectionError(msg)
            return [list(ring) for ring in rings]

        from pyproj.exceptions import CRSError, ProjError

        try:
            transformer = _transformer(crs)
        except CRSError as exc:
            msg = f"Unknown source CRS {crs!r}: {exc}"
            raise ReprojectionError(msg) from exc

        out: list[Ring] = []
        for ring in rings:
            xs = [c[0] for c in ring]
            ys = [c[1] for c in ring]
            try:
                lons, lats = transformer.transform(xs, ys, errcheck=True)
            except ProjError as exc:
                msg = f"Coordinates cannot be transformed from {crs}: {exc}"
                raise ReprojectionError(msg) from exc
            projected = list(zip(lons, lats, strict=True))
            if not all(math.isfinite(x) and math.isfinite(y) for x, y in projected):
                msg = f"Coordinates fall outside the area of use of {crs}"
                raise ReprojectionError(msg)
            out.append(projected)
        return out

    def area_sqm(self, polygons: Sequence[Sequence[Ring]]) -> float:
        """Geodesic area via ``pyproj.Geod``; holes subtracted, parts summed.

        Winding-order agnostic. Self-overlapping input can yield an
        undercount; such geometry is rejected by ``check`` anyway.
        """
        geod = _geod()
        total = 0.0
        for polygon in polygons:
            if not polygon:
                continue
            part = _ring_area(geod, polygon[0])
            for hole in polygon[1:]:
                part -= _ring_area(geod, hole)
            total += max(part, 0.0)
        return total

    def check(self, polygons: Sequence[Sequence[Ring]]) -> GeometryCheck:
        from shapely.geometry import LinearRing, MultiPolygon, Polygon
        from shapely.validation import explain_validity

        simple_reason = ""
        for part_idx, polygon in enumerate(polygons):
            for ring_idx, ring in enumerate(polygon):
                if not LinearRing(ring).is_simple:
                    label = "exterior" if ring_idx == 0 else f"hole {ring_idx - 1}"
                    simple_reason = f"Ring crosses itself (part {part_idx} {label})"
                    break
            if simple_reason:
                break

        shapes = [Polygon(polygon[0], polygon[1:]) for polygon in polygons if polygon]
        geom = shapes[0] if len(shapes) == 1 else MultiPolygon(shapes)
        is_valid = bool(geom.is_valid)

        return GeometryCheck(
            is_simple=not simple_reason,
            is_valid=is_valid,
            simple_reason=simple_reason,
            validity_reason="" if is_valid else explain_validity(geom),
        )


def _ring_area(geod: Geod, ring: Ring) -> float:
    lons = [c[0] for c in ring]
    lats = [c[1] for c in ring]
    area, _perimeter = geod.polygon_area_perimeter(lons, lats)
    return abs(area)

"""Shared constants for shapefile decoding."""

from __future__ import annotations

STAGE = "decode_features"

# Shape type codes → GeoJSON-style type names (plain, Z and M variants)
SHAPE_TYPE_NAMES: dict[int, str] = {
    0: "",
    1: "Point",
    11: "Point",
    21: "Point",
    3: "LineString",
    13: "LineString",
    23: "LineString",
    5: "Polygon",
    15: "Polygon",
    25: "Polygon",
    8: "MultiPoint",
    18: "MultiPoint",
    28: "MultiPoint",
    31: "MultiPatch",
}

POLYGON_SHAPE_TYPES = frozenset({5, 15, 25})
NULL_SHAPE_TYPE = 0

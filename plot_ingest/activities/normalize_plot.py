"""Plot normalization activity.

Maps one ``RawFeature`` onto the canonical plot schema:

- attribute fields are resolved through an ordered alias table
  (case-insensitive, first non-blank match wins),
- a missing plot code is synthesized as ``PLOT_<epoch-ms>_<9 base36>``,
- geometry is reprojected to EPSG:4326 and area / bounds are computed by
  the geometry service (area is never read from attributes),
- price is coerced to a finite non-negative number or dropped.

Normalization never fails: anything unmappable becomes an absent
optional field, and a geometry that cannot be reprojected is carried
forward as malformed for the validator to reject.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import math
import secrets
import string
import time
from typing import TYPE_CHECKING

from plot_ingest.core.constants import (
    GENERATED_PLOT_CODE_PREFIX,
    GENERATED_PLOT_CODE_SUFFIX_LENGTH,
)
from plot_ingest.geometry.service import ReprojectionError
from plot_ingest.models.plot import CanonicalPlot

if TYPE_CHECKING:
    from collections.abc import Mapping

    from plot_ingest.geometry.service import GeometryService
    from plot_ingest.models.feature import RawFeature, Ring

logger = logging.getLogger("plot_ingest.activities.normalize_plot")

# ---------------------------------------------------------------------------
# Field alias table (ordered, first match wins)
# ---------------------------------------------------------------------------

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "plot_code": ("PLOT_CODE", "plot_code", "ID"),
    "land_use": ("LAND_USE", "land_use", "USE", "TYPE"),
    "owner_name": ("OWNER", "owner", "OWNER_NAME"),
    "price_usd": ("PRICE_USD", "price", "VALUE"),
    "notes": ("NOTES", "notes", "REMARKS"),
}

_BASE36 = string.digits + string.ascii_lowercase


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_plot(feature: RawFeature, *, geometry: GeometryService) -> CanonicalPlot:
    """Normalize a decoded feature into a ``CanonicalPlot``.

    Args:
        feature: Output of the decode_features activity.
        geometry: Geometry service used for reprojection, area and bounds.

    Returns:
        The canonical plot. ``decode_error`` is set when the feature was
        malformed or its coordinates could not be reprojected.
    """
    fields = map_fields(feature.attributes)

    raw_code = fields.get("plot_code")
    plot_code = _text(raw_code) if raw_code is not None else None
    generated = not plot_code
    if not plot_code:
        plot_code = generate_plot_code()

    decode_error = feature.decode_error
    rings: list[Ring] = []
    extra_parts: list[list[Ring]] = []
    area_sqm = 0.0
    bbox: tuple[float, float, float, float] | None = None

    if feature.is_valid and feature.rings:
        try:
            rings = geometry.to_wgs84(feature.rings, feature.crs)
            extra_parts = [geometry.to_wgs84(part, feature.crs) for part in feature.extra_parts]
            polygons = [rings, *extra_parts]
            area_sqm = geometry.area_sqm(polygons)
            bbox = geometry.bounds(polygons)
        except ReprojectionError as exc:
            logger.warning(
                "Reprojection failed | plot=%s | record=%d | crs=%s | error=%s",
                plot_code,
                feature.record_index,
                feature.crs,
                exc.message,
            )
            rings, extra_parts, area_sqm, bbox = [], [], 0.0, None
            decode_error = exc.message

    raw_price = fields.get("price_usd")
    price = coerce_price(raw_price)
    if raw_price is not None and price is None:
        logger.debug("Dropping unusable price | plot=%s | value=%r", plot_code, raw_price)

    plot = CanonicalPlot(
        plot_code=plot_code,
        geometry_type=feature.geometry_type,
        rings=rings,
        extra_parts=extra_parts,
        area_sqm=area_sqm,
        bbox=bbox,
        land_use=_optional_text(fields.get("land_use")),
        owner_name=_optional_text(fields.get("owner_name")),
        price_usd=price,
        notes=_optional_text(fields.get("notes")),
        attributes=json_safe_attributes(feature.attributes),
        record_index=feature.record_index,
        source_crs=feature.crs,
        plot_code_generated=generated,
        decode_error=decode_error,
    )
    logger.debug(
        "Plot normalized | plot=%s | record=%d | area=%.2f m2 | generated_code=%s",
        plot.plot_code,
        plot.record_index,
        plot.area_sqm,
        generated,
    )
    return plot


def map_fields(attributes: Mapping[str, object]) -> dict[str, object]:
    """Resolve every canonical field through ``FIELD_ALIASES``.

    Aliases are tried in order; for each alias an exact key match is
    preferred over a case-insensitive one. Blank values (``None`` or
    whitespace-only strings) do not count as a match.
    """
    lowered: dict[str, list[str]] = {}
    for key in attributes:
        lowered.setdefault(key.lower(), []).append(key)

    mapped: dict[str, object] = {}
    for target, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            candidates = [alias] if alias in attributes else []
            candidates += [k for k in lowered.get(alias.lower(), []) if k != alias]
            value = next(
                (attributes[k] for k in candidates if not _is_blank(attributes[k])),
                None,
            )
            if value is not None:
                mapped[target] = value
                break
    return mapped


def generate_plot_code() -> str:
    """Synthesize a plot code: fixed prefix, epoch milliseconds, random base36."""
    millis = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_BASE36) for _ in range(GENERATED_PLOT_CODE_SUFFIX_LENGTH))
    return f"{GENERATED_PLOT_CODE_PREFIX}_{millis}_{suffix}"


def coerce_price(value: object) -> float | None:
    """Coerce a source price to a finite non-negative float, else ``None``.

    Accepts ints, floats, decimals and strings such as ``"$1,250.50"``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float | decimal.Decimal):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").removeprefix("$").strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def json_safe_attributes(attributes: Mapping[str, object]) -> dict[str, object]:
    """Copy *attributes* with every value converted to a JSON-safe type."""
    return {str(key): _json_safe(value) for key, value in attributes.items()}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value: object) -> str:
    """Render an identifier value as text (``12.0`` becomes ``"12"``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, decimal.Decimal) and value == value.to_integral_value():
        return str(int(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").strip()
    return str(value).strip()


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    return _text(value) or None


def _json_safe(value: object) -> object:
    if value is None or isinstance(value, bool | int | str):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, decimal.Decimal):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, datetime.date | datetime.datetime | datetime.time):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)

"""Plot validation and batching activity.

Every rule is evaluated for every plot; a plot is rejected with *all*
of its triggered reasons, never just the first:

- ``InvalidGeometryType``: not a single-part polygon
- ``SelfIntersection``: a ring crosses or touches itself
- ``InvalidPolygon``: fails OGC polygon validity
- ``AreaTooSmall`` / ``AreaTooLarge``: geodesic area outside the thresholds

A plot the decoder could not turn into geometry carries only
``MalformedGeometry``. Within a batch, a plot code already taken by an
earlier accepted plot is rejected with ``DuplicatePlotCode``.

Accepted plots keep their original decode order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from plot_ingest.core.constants import MAX_PLOT_AREA_SQM, MIN_PLOT_AREA_SQM
from plot_ingest.models.batch import ImportBatch, RejectionReason, ValidationOutcome

if TYPE_CHECKING:
    from collections.abc import Iterable

    from plot_ingest.geometry.service import GeometryService
    from plot_ingest.models.plot import CanonicalPlot

logger = logging.getLogger("plot_ingest.activities.validate_plots")


def validate_plot(
    plot: CanonicalPlot,
    *,
    geometry: GeometryService,
    min_area_sqm: float = MIN_PLOT_AREA_SQM,
    max_area_sqm: float = MAX_PLOT_AREA_SQM,
) -> ValidationOutcome:
    """Evaluate every validation rule against one plot.

    Pure: depends only on the plot and the thresholds.

    Args:
        plot: Normalized plot.
        geometry: Geometry service used for simplicity / validity checks.
        min_area_sqm: Smallest accepted area (inclusive).
        max_area_sqm: Largest accepted area (inclusive).

    Returns:
        The outcome; ``passed`` is true when no rule triggered.
    """
    reasons: list[RejectionReason] = []
    messages: list[str] = []

    def reject(reason: RejectionReason, message: str) -> None:
        reasons.append(reason)
        messages.append(message)

    if plot.decode_error:
        reject(RejectionReason.MALFORMED_GEOMETRY, plot.decode_error)
        return _outcome(plot, reasons, messages)

    if plot.geometry_type != "Polygon" or plot.is_multipart:
        kind = plot.geometry_type or "empty geometry"
        reject(
            RejectionReason.INVALID_GEOMETRY_TYPE,
            f"Expected a single Polygon, got {kind}",
        )

    if plot.rings:
        check = geometry.check([plot.rings, *plot.extra_parts])
        if not check.is_simple:
            reject(RejectionReason.SELF_INTERSECTION, check.simple_reason)
        if not check.is_valid:
            reject(RejectionReason.INVALID_POLYGON, check.validity_reason)

    # Written as negations so a NaN area fails the rule
    if not plot.area_sqm >= min_area_sqm:
        reject(
            RejectionReason.AREA_TOO_SMALL,
            f"Area {plot.area_sqm:.2f} m2 is below the minimum of {min_area_sqm:g} m2",
        )
    elif not plot.area_sqm <= max_area_sqm:
        reject(
            RejectionReason.AREA_TOO_LARGE,
            f"Area {plot.area_sqm:.2f} m2 exceeds the maximum of {max_area_sqm:g} m2",
        )

    return _outcome(plot, reasons, messages)


def build_import_batch(
    plots: Iterable[CanonicalPlot],
    import_id: str,
    *,
    geometry: GeometryService,
    min_area_sqm: float = MIN_PLOT_AREA_SQM,
    max_area_sqm: float = MAX_PLOT_AREA_SQM,
) -> ImportBatch:
    """Validate *plots* and partition them into an ``ImportBatch``.

    Args:
        plots: Normalized plots in decode order.
        import_id: Identifier of the import record.
        geometry: Geometry service for topology checks.
        min_area_sqm: Smallest accepted area.
        max_area_sqm: Largest accepted area.

    Returns:
        A ``PROCESSING`` batch holding accepted plots (decode order) and
        rejected outcomes (decode order).
    """
    batch = ImportBatch(import_id=import_id)
    seen_codes: set[str] = set()

    for plot in plots:
        outcome = validate_plot(
            plot,
            geometry=geometry,
            min_area_sqm=min_area_sqm,
            max_area_sqm=max_area_sqm,
        )
        if outcome.passed and plot.plot_code in seen_codes:
            outcome = ValidationOutcome(
                plot_code=plot.plot_code,
                record_index=plot.record_index,
                reasons=[RejectionReason.DUPLICATE_PLOT_CODE],
                messages=[f"Plot code {plot.plot_code!r} already used by an earlier record"],
            )

        if outcome.passed:
            seen_codes.add(plot.plot_code)
            batch.plots.append(plot)
        else:
            logger.warning(
                "Plot rejected | plot=%s | record=%d | reasons=%s",
                outcome.plot_code,
                outcome.record_index,
                ",".join(outcome.reason_codes),
            )
            batch.rejected.append(outcome)

    logger.info(
        "Batch assembled | import=%s | accepted=%d | rejected=%d",
        import_id,
        len(batch.plots),
        len(batch.rejected),
    )
    return batch


def _outcome(
    plot: CanonicalPlot,
    reasons: list[RejectionReason],
    messages: list[str],
) -> ValidationOutcome:
    return ValidationOutcome(
        plot_code=plot.plot_code,
        record_index=plot.record_index,
        reasons=reasons,
        messages=messages,
    )

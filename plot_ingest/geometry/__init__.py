"""Geometry math collaborator (reprojection, area, bounds, validity)."""

from plot_ingest.geometry.service import (
    GeometryCheck,
    GeometryService,
    ReprojectionError,
    ShapelyGeometryService,
)

__all__ = [
    "GeometryCheck",
    "GeometryService",
    "ReprojectionError",
    "ShapelyGeometryService",
]

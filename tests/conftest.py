"""Shared pytest fixtures for the plot ingestion test suite.

Shapefile packages are generated in memory with pyshp's ``Writer`` and
zipped with ``zipfile``; no binary fixtures are checked in.
"""

from __future__ import annotations

import io
import zipfile

import pytest
import shapefile

from plot_ingest.core.config import IngestConfig
from plot_ingest.core.context import IngestContext
from plot_ingest.geometry.service import ShapelyGeometryService
from plot_ingest.stores.memory import InMemoryFeatureStore

# ---------------------------------------------------------------------------
# Shapefile builders
# ---------------------------------------------------------------------------

WGS84_PRJ = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",'
    'SPHEROID["WGS_1984",6378137.0,298.257223563]],'
    'PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)

DEFAULT_FIELDS: tuple[tuple[str, str, int, int], ...] = (
    ("PLOT_CODE", "C", 20, 0),
    ("LAND_USE", "C", 20, 0),
    ("OWNER", "C", 40, 0),
    ("PRICE_USD", "C", 20, 0),
)


def square(lon: float, lat: float, size: float = 0.001) -> list[tuple[float, float]]:
    """Closed clockwise square ring (shapefile exterior winding).

    At the equator ``size=0.001`` degrees is roughly 111 m x 111 m.
    """
    return [
        (lon, lat),
        (lon, lat + size),
        (lon + size, lat + size),
        (lon + size, lat),
        (lon, lat),
    ]


def bowtie(lon: float, lat: float, size: float = 0.001) -> list[tuple[float, float]]:
    """Closed self-intersecting ring (figure of eight)."""
    return [
        (lon, lat),
        (lon + size, lat + size),
        (lon + size, lat),
        (lon, lat + size),
        (lon, lat),
    ]


def build_shapefile(
    shapes: list[object],
    records: list[tuple[object, ...]],
    *,
    shape_type: int = shapefile.POLYGON,
    fields: tuple[tuple[str, str, int, int], ...] = DEFAULT_FIELDS,
) -> dict[str, bytes]:
    """Write a shapefile to memory and return ``{suffix: bytes}``.

    Each shape is a list of rings for polygon files, an ``(x, y)`` pair
    for point files, or ``None`` for a null shape.
    """
    shp, shx, dbf = io.BytesIO(), io.BytesIO(), io.BytesIO()
    writer = shapefile.Writer(shp=shp, shx=shx, dbf=dbf, shapeType=shape_type)
    for name, field_type, size, decimal in fields:
        writer.field(name, field_type, size=size, decimal=decimal)
    for shape, record in zip(shapes, records, strict=True):
        if shape is None:
            writer.null()
        elif shape_type == shapefile.POINT:
            writer.point(*shape)  # type: ignore[misc]
        else:
            writer.poly(shape)
        writer.record(*record)
    writer.close()
    return {".shp": shp.getvalue(), ".shx": shx.getvalue(), ".dbf": dbf.getvalue()}


def build_zip(members: dict[str, bytes | str]) -> bytes:
    """Zip *members* (name → content) into an in-memory archive."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buf.getvalue()


def build_package(
    files: dict[str, bytes],
    *,
    stem: str = "plots",
    prj: str | None = WGS84_PRJ,
    skip: tuple[str, ...] = (),
) -> bytes:
    """Zip shapefile components under one *stem*, optionally with a ``.prj``."""
    members: dict[str, bytes | str] = {
        f"{stem}{suffix}": content for suffix, content in files.items() if suffix not in skip
    }
    if prj is not None:
        members[f"{stem}.prj"] = prj
    return build_zip(members)


# ---------------------------------------------------------------------------
# Package fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def valid_files() -> dict[str, bytes]:
    """Three valid ~12,000 m2 plots with codes A-1..A-3."""
    return build_shapefile(
        [[square(0.0, 0.0)], [square(0.01, 0.0)], [square(0.02, 0.0)]],
        [
            ("A-1", "Residential", "Alice", "125000"),
            ("A-2", "Commercial", "Bob", "$1,500.50"),
            ("A-3", "Agricultural", "", "n/a"),
        ],
    )


@pytest.fixture()
def valid_package(valid_files: dict[str, bytes]) -> bytes:
    """Zip of ``valid_files`` with a WGS 84 ``.prj``."""
    return build_package(valid_files)


@pytest.fixture()
def mixed_files() -> dict[str, bytes]:
    """Two valid plots, one malformed ring, one tiny plot and one bowtie."""
    return build_shapefile(
        [
            [square(0.0, 0.0)],
            [[(0.0, 0.0), (0.001, 0.001)]],
            [square(0.01, 0.0, size=0.000001)],
            [bowtie(0.02, 0.0)],
            [square(0.03, 0.0)],
        ],
        [
            ("M-1", "Residential", "Alice", "1000"),
            ("M-2", "Residential", "Bob", ""),
            ("M-3", "Residential", "Carol", ""),
            ("M-4", "Residential", "Dan", ""),
            ("M-5", "Residential", "Eve", ""),
        ],
    )


# ---------------------------------------------------------------------------
# Context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ingest_config() -> IngestConfig:
    return IngestConfig()


@pytest.fixture()
def memory_store() -> InMemoryFeatureStore:
    return InMemoryFeatureStore()


@pytest.fixture()
def geometry_service() -> ShapelyGeometryService:
    return ShapelyGeometryService()


@pytest.fixture()
def ingest_context(
    ingest_config: IngestConfig,
    memory_store: InMemoryFeatureStore,
    geometry_service: ShapelyGeometryService,
) -> IngestContext:
    """Context with default config and a fresh in-memory store."""
    return IngestContext(
        config=ingest_config,
        feature_store=memory_store,
        geometry=geometry_service,
    )

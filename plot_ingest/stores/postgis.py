"""PostGIS feature store (psycopg2).

Writes to the marketplace schema:

- ``shapefile_imports``: one row per upload (status, counts, metadata)
- ``plots``: one row per accepted plot, geometry as ``Polygon`` SRID 4326
- ``plot_attributes``: the original ``.dbf`` row, one row per field

``bulk_insert`` runs in a single transaction with a savepoint per plot,
so a refused row (duplicate code, invalid geometry in PostGIS ...) is
rolled back on its own and reported as ``"Plot <code>: <error>"`` while
the other rows are kept. Connection failures raise a retryable
``StoreError``.
"""

from __future__ import annotations

import datetime
import decimal
import json
import logging
import threading
import uuid
from typing import TYPE_CHECKING, Any

from plot_ingest.core.constants import POSTGIS_STORE
from plot_ingest.stores.base import FeatureStore, InsertResult, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from plot_ingest.models.batch import ImportStatus
    from plot_ingest.models.contracts import PlotPayload

logger = logging.getLogger("plot_ingest.stores.postgis")

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_CREATE_IMPORT_SQL = """
    INSERT INTO shapefile_imports (filename, original_filename, uploaded_by, file_size, status)
    VALUES (%s, %s, %s, %s, 'processing')
    RETURNING id
"""

_INSERT_PLOT_SQL = """
    INSERT INTO plots
        (plot_code, geometry, area_sqm, land_use, owner_name, price_usd, notes, import_id)
    VALUES
        (%s, ST_SetSRID(ST_GeomFromGeoJSON(%s), 4326), %s, %s, %s, %s, %s, %s)
    RETURNING id
"""

_INSERT_ATTRIBUTES_SQL = """
    INSERT INTO plot_attributes
        (plot_id, attribute_name, attribute_value, data_type, source_column)
    VALUES %s
"""

_UPDATE_IMPORT_SQL = """
    UPDATE shapefile_imports
    SET status = %s,
        error_message = %s,
        plots_count = %s,
        projection = %s,
        metadata = %s,
        bounds = {bounds}
    WHERE id = %s
"""

_SELECT_PLOT_SQL = """
    SELECT id, plot_code, ST_AsGeoJSON(geometry)::json AS geometry, area_sqm,
           land_use, owner_name, price_usd, notes, status, import_id
    FROM plots
    WHERE id = %s
"""

_SELECT_IMPORT_SQL = """
    SELECT id, filename, original_filename, uploaded_by, upload_date, status,
           plots_count, file_size, projection, ST_AsGeoJSON(bounds)::json AS bounds,
           metadata, error_message
    FROM shapefile_imports
    WHERE id = %s
"""

_SAVEPOINT = "plot_row"


class PostgisFeatureStore(FeatureStore):
    """``FeatureStore`` backed by PostgreSQL + PostGIS.

    Args:
        dsn: libpq connection string (``DATABASE_URL``).
        connect: Connection factory, ``psycopg2.connect`` by default.
    """

    name = POSTGIS_STORE

    def __init__(self, dsn: str, *, connect: Callable[[str], Any] | None = None) -> None:
        if not dsn:
            raise StoreError(self.name, "A database connection string is required")
        self._dsn = dsn
        self._connect = connect
        self._conn: Any = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _connection(self) -> Any:
        import psycopg2

        if self._conn is None or self._conn.closed:
            connect = self._connect or psycopg2.connect
            try:
                self._conn = connect(self._dsn)
            except psycopg2.OperationalError as exc:
                msg = f"Cannot connect to the database: {exc}"
                raise StoreError(self.name, msg, retryable=True) from exc
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None and not self._conn.closed:
                self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # FeatureStore
    # ------------------------------------------------------------------

    def create_import(self, filename: str, *, file_size: int = 0, uploaded_by: str = "") -> str:
        import psycopg2

        with self._lock:
            conn = self._connection()
            try:
                with conn, conn.cursor() as cur:
                    cur.execute(
                        _CREATE_IMPORT_SQL,
                        (filename, filename, uploaded_by or None, file_size),
                    )
                    (import_id,) = cur.fetchone()
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
                msg = f"Import record not created: {exc}"
                raise StoreError(self.name, msg, retryable=True) from exc
            except psycopg2.DatabaseError as exc:
                raise StoreError(self.name, f"Import record not created: {exc}") from exc
        return str(import_id)

    def bulk_insert(self, import_id: str, plots: Sequence[PlotPayload]) -> InsertResult:
        import psycopg2
        from psycopg2.extras import execute_values

        inserted = 0
        errors: list[str] = []

        with self._lock:
            conn = self._connection()
            try:
                with conn, conn.cursor() as cur:
                    for payload in plots:
                        cur.execute(f"SAVEPOINT {_SAVEPOINT}")
                        try:
                            cur.execute(_INSERT_PLOT_SQL, _plot_params(import_id, payload))
                            (plot_id,) = cur.fetchone()
                            rows = _attribute_rows(plot_id, payload["attributes"])
                            if rows:
                                execute_values(cur, _INSERT_ATTRIBUTES_SQL, rows)
                        except psycopg2.OperationalError:
                            raise
                        except psycopg2.DatabaseError as exc:
                            cur.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
                            reason = (getattr(exc, "pgerror", None) or str(exc)).strip()
                            errors.append(f"Plot {payload['plot_code']}: {reason}")
                            continue
                        cur.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
                        inserted += 1
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
                msg = f"Bulk insert for import {import_id} aborted: {exc}"
                raise StoreError(self.name, msg, retryable=True) from exc

        logger.info(
            "Bulk insert | import=%s | inserted=%d | errors=%d",
            import_id,
            inserted,
            len(errors),
        )
        return InsertResult(inserted_count=inserted, error_count=len(errors), errors=errors)

    def update_import_status(
        self,
        import_id: str,
        status: ImportStatus,
        *,
        error_message: str = "",
        plots_count: int = 0,
        metadata: Mapping[str, object] | None = None,
    ) -> None:
        import psycopg2
        from psycopg2.extras import Json

        meta = dict(metadata or {})
        bounds = meta.get("bounds")
        params: list[object] = [
            status.value,
            error_message or None,
            plots_count,
            meta.get("projection"),
            Json(meta),
        ]
        if bounds:
            sql = _UPDATE_IMPORT_SQL.format(bounds="ST_MakeEnvelope(%s, %s, %s, %s, 4326)")
            params.extend(bounds)  # type: ignore[arg-type]
        else:
            sql = _UPDATE_IMPORT_SQL.format(bounds="NULL")
        params.append(import_id)

        with self._lock:
            conn = self._connection()
            try:
                with conn, conn.cursor() as cur:
                    cur.execute(sql, params)
                    updated = cur.rowcount
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
                raise StoreError(self.name, f"Status update failed: {exc}", retryable=True) from exc
            except psycopg2.DatabaseError as exc:
                raise StoreError(self.name, f"Status update failed: {exc}") from exc
        if not updated:
            raise StoreError(self.name, f"Unknown import {import_id!r}")

    def get_plot(self, plot_id: str) -> dict[str, object] | None:
        return self._fetch_one(_SELECT_PLOT_SQL, plot_id)

    def get_import(self, import_id: str) -> dict[str, object] | None:
        return self._fetch_one(_SELECT_IMPORT_SQL, import_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fetch_one(self, sql: str, key: str) -> dict[str, object] | None:
        import psycopg2
        from psycopg2.extras import RealDictCursor

        with self._lock:
            conn = self._connection()
            try:
                with conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(sql, (key,))
                    row = cur.fetchone()
            except psycopg2.DataError:
                # Not a UUID
                return None
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
                raise StoreError(self.name, f"Query failed: {exc}", retryable=True) from exc
            except psycopg2.DatabaseError as exc:
                raise StoreError(self.name, f"Query failed: {exc}") from exc
        if row is None:
            return None
        return {k: _plain(v) for k, v in row.items()}


def _plot_params(import_id: str, payload: PlotPayload) -> tuple[object, ...]:
    return (
        payload["plot_code"],
        json.dumps(payload["geometry"]),
        payload["area_sqm"],
        payload["land_use"],
        payload["owner_name"],
        payload["price_usd"],
        payload["notes"],
        import_id,
    )


def _attribute_rows(plot_id: object, attributes: Mapping[str, object]) -> list[tuple[object, ...]]:
    return [
        (
            plot_id,
            name,
            None if value is None else str(value),
            _data_type(value),
            name,
        )
        for name, value in attributes.items()
    ]


def _data_type(value: object) -> str:
    """Classify an attribute value as ``boolean``, ``number``, ``date`` or ``string``."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float | decimal.Decimal):
        return "number"
    if isinstance(value, str):
        try:
            datetime.date.fromisoformat(value)
        except ValueError:
            return "string"
        return "date"
    return "string"


def _plain(value: object) -> object:
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime.date | datetime.datetime):
        return value.isoformat()
    return value

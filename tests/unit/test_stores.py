"""Tests for the feature store adapters and factory.

Covers:
- In-memory store lifecycle (create, insert, status, lookups)
- Row-level refusals reported without aborting the batch
- PostGIS store SQL flow against a mocked psycopg2 connection
- Store selection by configuration
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Any
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from plot_ingest.core.config import IngestConfig
from plot_ingest.models.batch import ImportStatus
from plot_ingest.models.contracts import PlotPayload
from plot_ingest.models.plot import CanonicalPlot
from plot_ingest.stores import (
    FeatureStore,
    InsertResult,
    StoreError,
    get_feature_store,
    list_stores,
    register_store,
)
from plot_ingest.stores.memory import InMemoryFeatureStore
from plot_ingest.stores.postgis import PostgisFeatureStore, _data_type
from tests.conftest import square


def _payload(code: str, **attributes: object) -> PlotPayload:
    return CanonicalPlot(
        plot_code=code,
        rings=[square(0.0, 0.0)],
        area_sqm=12_300.0,
        attributes=dict(attributes),
    ).to_payload()


# ---------------------------------------------------------------------------
# InMemoryFeatureStore
# ---------------------------------------------------------------------------


class TestInMemoryFeatureStore:
    """Dict-backed store used for tests and local runs."""

    def test_create_import(self, memory_store: InMemoryFeatureStore) -> None:
        import_id = memory_store.create_import("plots.zip", file_size=123, uploaded_by="u-1")
        record = memory_store.get_import(import_id)
        assert record is not None
        assert record["status"] == "processing"
        assert record["filename"] == "plots.zip"
        assert record["file_size"] == 123
        assert record["uploaded_by"] == "u-1"
        uuid.UUID(import_id)

    def test_bulk_insert(self, memory_store: InMemoryFeatureStore) -> None:
        import_id = memory_store.create_import("plots.zip")
        result = memory_store.bulk_insert(import_id, [_payload("A"), _payload("B")])
        assert result == InsertResult(inserted_count=2, error_count=0, errors=[])
        stored = memory_store.find_plot_by_code("A")
        assert stored is not None
        assert stored["import_id"] == import_id
        assert stored["status"] == "available"
        assert memory_store.get_plot(str(stored["id"])) == stored

    def test_duplicate_code_refused_per_row(self, memory_store: InMemoryFeatureStore) -> None:
        first = memory_store.create_import("one.zip")
        memory_store.bulk_insert(first, [_payload("A")])
        second = memory_store.create_import("two.zip")
        result = memory_store.bulk_insert(second, [_payload("A"), _payload("C")])
        assert result.inserted_count == 1
        assert result.error_count == 1
        assert result.errors == ["Plot A: duplicate plot_code"]

    def test_unknown_import_rejected(self, memory_store: InMemoryFeatureStore) -> None:
        with pytest.raises(StoreError, match="Unknown import"):
            memory_store.bulk_insert("nope", [_payload("A")])
        with pytest.raises(StoreError):
            memory_store.update_import_status("nope", ImportStatus.FAILED)

    def test_update_status(self, memory_store: InMemoryFeatureStore) -> None:
        import_id = memory_store.create_import("plots.zip")
        memory_store.update_import_status(
            import_id,
            ImportStatus.COMPLETED,
            plots_count=3,
            metadata={"projection": "EPSG:4326", "bounds": [0.0, 0.0, 1.0, 1.0]},
        )
        record = memory_store.get_import(import_id)
        assert record is not None
        assert record["status"] == "completed"
        assert record["plots_count"] == 3
        assert record["projection"] == "EPSG:4326"
        assert record["bounds"] == [0.0, 0.0, 1.0, 1.0]
        assert record["error_message"] is None

    def test_lookups_return_copies(self, memory_store: InMemoryFeatureStore) -> None:
        import_id = memory_store.create_import("plots.zip")
        record = memory_store.get_import(import_id)
        assert record is not None
        record["status"] = "tampered"
        again = memory_store.get_import(import_id)
        assert again is not None
        assert again["status"] == "processing"

    def test_missing_lookups(self, memory_store: InMemoryFeatureStore) -> None:
        assert memory_store.get_import("nope") is None
        assert memory_store.get_plot("nope") is None
        assert memory_store.find_plot_by_code("nope") is None


# ---------------------------------------------------------------------------
# PostgisFeatureStore
# ---------------------------------------------------------------------------


@pytest.fixture()
def pg() -> tuple[PostgisFeatureStore, MagicMock, MagicMock]:
    """PostGIS store wired to a mocked connection; returns (store, conn, cursor)."""
    cursor = MagicMock(name="cursor")
    conn = MagicMock(name="conn")
    conn.closed = False
    conn.cursor.return_value.__enter__.return_value = cursor
    connect = MagicMock(return_value=conn)
    store = PostgisFeatureStore("postgresql://localhost/plots", connect=connect)
    return store, conn, cursor


def _executed(cursor: MagicMock) -> list[str]:
    return [" ".join(str(c.args[0]).split()) for c in cursor.execute.call_args_list]


class TestPostgisFeatureStore:
    """SQL flow of the PostGIS adapter."""

    def test_dsn_required(self) -> None:
        with pytest.raises(StoreError, match="connection string"):
            PostgisFeatureStore("")

    def test_create_import(self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]) -> None:
        store, _conn, cursor = pg
        cursor.fetchone.return_value = ("6f1c3a1e-0000-0000-0000-000000000001",)
        import_id = store.create_import("plots.zip", file_size=10, uploaded_by="u-1")
        assert import_id == "6f1c3a1e-0000-0000-0000-000000000001"
        sql, params = cursor.execute.call_args.args
        assert "INSERT INTO shapefile_imports" in sql
        assert params == ("plots.zip", "plots.zip", "u-1", 10)

    def test_connection_reused(self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]) -> None:
        store, _conn, cursor = pg
        cursor.fetchone.return_value = ("id",)
        store.create_import("a.zip")
        store.create_import("b.zip")
        assert store._connect.call_count == 1  # type: ignore[union-attr]

    def test_connect_failure_is_retryable(self) -> None:
        connect = MagicMock(side_effect=psycopg2.OperationalError("server down"))
        store = PostgisFeatureStore("postgresql://localhost/plots", connect=connect)
        with pytest.raises(StoreError) as exc_info:
            store.create_import("plots.zip")
        assert exc_info.value.retryable is True

    def test_bulk_insert_savepoint_per_row(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.fetchone.return_value = ("plot-id",)

        def execute(sql: str, params: Any = None) -> None:
            if "INSERT INTO plots" in sql and params[0] == "B":
                raise psycopg2.IntegrityError("duplicate key value violates unique constraint")

        cursor.execute.side_effect = execute
        with patch("psycopg2.extras.execute_values") as execute_values:
            result = store.bulk_insert("imp-1", [_payload("A", OWNER="x"), _payload("B")])

        assert result.inserted_count == 1
        assert result.error_count == 1
        assert result.errors == ["Plot B: duplicate key value violates unique constraint"]
        statements = _executed(cursor)
        assert statements.count("SAVEPOINT plot_row") == 2
        assert "ROLLBACK TO SAVEPOINT plot_row" in statements
        assert statements.count("RELEASE SAVEPOINT plot_row") == 1
        (rows,) = [c.args[2] for c in execute_values.call_args_list]
        assert rows == [("plot-id", "OWNER", "x", "string", "OWNER")]

    def test_bulk_insert_geometry_as_geojson(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.fetchone.return_value = ("plot-id",)
        with patch("psycopg2.extras.execute_values"):
            store.bulk_insert("imp-1", [_payload("A")])
        insert = next(c for c in cursor.execute.call_args_list if "INSERT INTO plots" in c.args[0])
        params = insert.args[1]
        assert params[0] == "A"
        assert '"type": "Polygon"' in params[1]
        assert params[-1] == "imp-1"

    def test_bulk_insert_connection_lost(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg

        def execute(sql: str, params: Any = None) -> None:
            if "INSERT INTO plots" in sql:
                raise psycopg2.OperationalError("connection reset")

        cursor.execute.side_effect = execute
        with pytest.raises(StoreError) as exc_info:
            store.bulk_insert("imp-1", [_payload("A")])
        assert exc_info.value.retryable is True

    def test_update_status_with_bounds(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.rowcount = 1
        store.update_import_status(
            "imp-1",
            ImportStatus.COMPLETED,
            plots_count=2,
            metadata={"projection": "EPSG:4326", "bounds": [0.0, 1.0, 2.0, 3.0]},
        )
        sql, params = cursor.execute.call_args.args
        assert "ST_MakeEnvelope" in sql
        assert params[0] == "completed"
        assert params[1] is None
        assert params[2] == 2
        assert params[3] == "EPSG:4326"
        assert params[5:] == [0.0, 1.0, 2.0, 3.0, "imp-1"]

    def test_update_status_without_bounds(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.rowcount = 1
        store.update_import_status("imp-1", ImportStatus.FAILED, error_message="boom")
        sql, params = cursor.execute.call_args.args
        assert "bounds = NULL" in sql
        assert params[1] == "boom"
        assert params[-1] == "imp-1"

    def test_update_unknown_import(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.rowcount = 0
        with pytest.raises(StoreError, match="Unknown import"):
            store.update_import_status("imp-1", ImportStatus.FAILED)

    def test_get_import_plain_values(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        import_id = uuid.uuid4()
        cursor.fetchone.return_value = {
            "id": import_id,
            "file_size": decimal.Decimal("10"),
            "upload_date": datetime.datetime(2024, 5, 1, 12, 0),
            "status": "completed",
        }
        record = store.get_import(str(import_id))
        assert record == {
            "id": str(import_id),
            "file_size": 10.0,
            "upload_date": "2024-05-01T12:00:00",
            "status": "completed",
        }

    def test_get_plot_missing(self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]) -> None:
        store, _conn, cursor = pg
        cursor.fetchone.return_value = None
        assert store.get_plot("6f1c3a1e-0000-0000-0000-000000000001") is None

    def test_get_with_malformed_id(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.execute.side_effect = psycopg2.DataError("invalid input syntax for type uuid")
        assert store.get_import("not-a-uuid") is None

    def test_get_with_closed_connection_is_retryable(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.execute.side_effect = psycopg2.InterfaceError("connection already closed")
        with pytest.raises(StoreError) as exc_info:
            store.get_import("6f1c3a1e-0000-0000-0000-000000000001")
        assert exc_info.value.retryable is True
        assert exc_info.value.store == "postgis"

    def test_get_with_database_error(
        self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]
    ) -> None:
        store, _conn, cursor = pg
        cursor.execute.side_effect = psycopg2.ProgrammingError("relation does not exist")
        with pytest.raises(StoreError, match="Query failed") as exc_info:
            store.get_plot("6f1c3a1e-0000-0000-0000-000000000001")
        assert exc_info.value.retryable is False

    def test_close(self, pg: tuple[PostgisFeatureStore, MagicMock, MagicMock]) -> None:
        store, conn, cursor = pg
        cursor.fetchone.return_value = ("id",)
        store.create_import("a.zip")
        store.close()
        conn.close.assert_called_once()

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (True, "boolean"),
            (3, "number"),
            (2.5, "number"),
            (decimal.Decimal("1"), "number"),
            ("2024-05-01", "date"),
            ("Residential", "string"),
            (None, "string"),
        ],
    )
    def test_attribute_data_type(self, value: object, expected: str) -> None:
        assert _data_type(value) == expected


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestStoreFactory:
    """Adapter selection by ``FEATURE_STORE``."""

    def test_builtin_stores_listed(self) -> None:
        assert {"memory", "postgis"} <= set(list_stores())

    def test_memory_by_default(self) -> None:
        assert isinstance(get_feature_store(IngestConfig()), InMemoryFeatureStore)

    def test_postgis_from_config(self) -> None:
        config = IngestConfig(feature_store="postgis", database_url="postgresql://h/db")
        store = get_feature_store(config)
        assert isinstance(store, PostgisFeatureStore)

    def test_unknown_store(self) -> None:
        with pytest.raises(StoreError, match="Unknown feature store"):
            get_feature_store(IngestConfig(feature_store="mongo"))

    def test_register_custom_store(self) -> None:
        sentinel = MagicMock(spec=FeatureStore)
        register_store("custom", lambda config: sentinel)
        assert get_feature_store(IngestConfig(feature_store="custom")) is sentinel

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            register_store("", lambda config: InMemoryFeatureStore())

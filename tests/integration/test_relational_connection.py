"""
Integration tests for the relational connection against a real database.
SQLite (aiosqlite) stands in for PostgreSQL; only portable SQL is exercised.
"""
from datetime import datetime

import pytest
from sqlalchemy import Column, DateTime, Float, MetaData, String, Table
from sqlalchemy.ext.asyncio import create_async_engine

from sensorquery.connections import PostgresConfig, PostgresConnection, SupportsRawTableAccess
from sensorquery.connections.postgres import infer_column_mapping
from sensorquery.core.exceptions import InvalidQueryError
from sensorquery.schemas import QueryParams, TableSchema


metadata = MetaData()

readings = Table(
    "dados_airflow",
    metadata,
    Column("timestamp", DateTime),
    Column("valor", Float),
    Column("coletor_id", String),
    Column("gateway_id", String),
    Column("equipment_id", String),
    Column("tag_id", String),
)

ROWS = [
    {"timestamp": datetime(2024, 1, 15, 10, 0), "valor": 10.0, "coletor_id": "1",
     "gateway_id": "2", "equipment_id": "3", "tag_id": "T1"},
    {"timestamp": datetime(2024, 1, 15, 10, 5), "valor": 12.5, "coletor_id": "1",
     "gateway_id": "2", "equipment_id": "3", "tag_id": "T1"},
    {"timestamp": datetime(2024, 1, 15, 10, 10), "valor": 7.0, "coletor_id": "1",
     "gateway_id": "2", "equipment_id": "3", "tag_id": "T2"},
    {"timestamp": datetime(2024, 1, 15, 10, 15), "valor": 99.0, "coletor_id": "9",
     "gateway_id": "2", "equipment_id": "3", "tag_id": "T3"},
    {"timestamp": datetime(2024, 1, 16, 10, 0), "valor": 1.0, "coletor_id": "1",
     "gateway_id": "2", "equipment_id": "3", "tag_id": "T1"},
]


@pytest.fixture
async def test_engine(tmp_path):
    """SQLite engine with a populated telemetry table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'telemetry.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        await conn.execute(readings.insert(), ROWS)

    yield engine

    await engine.dispose()


@pytest.fixture
async def connection(test_engine):
    """PostgresConnection bound to the SQLite engine."""
    config = PostgresConfig(
        host="sqlite",
        database_name="telemetry",
        table_schema=TableSchema(schema_name="", table_name="dados_airflow"),
    )
    connection = PostgresConnection(config, engine=test_engine)

    yield connection

    await connection.close()


def day_params(**filters):
    return QueryParams(
        start_time=datetime(2024, 1, 15, 0, 0),
        end_time=datetime(2024, 1, 15, 23, 59),
        **filters,
    )


class TestRelationalConnection:
    """Tests for PostgresConnection over SQLite."""

    async def test_query_data_newest_first(self, connection):
        """Test time range, ordering and row mapping."""
        points = await connection.query_data(day_params())

        assert [point.value for point in points] == ["99.0", "7.0", "12.5", "10.0"]
        newest = points[0]
        assert newest.collector_id == "9"
        assert newest.tag_id == "T3"
        assert newest.time.year == 2024 and newest.time.hour == 10 and newest.time.minute == 15
        assert newest.time.tzinfo is not None

    async def test_multi_value_filter(self, connection):
        """Test that "T1, T2" selects both tags."""
        points = await connection.query_data(day_params(tag_id="T1, T2"))

        assert sorted({point.tag_id for point in points}) == ["T1", "T2"]
        assert len(points) == 3

    async def test_single_value_filter_and_limit(self, connection):
        """Test equality filter and LIMIT."""
        points = await connection.query_data(day_params(collector_id="1", limit=2))

        assert len(points) == 2
        assert all(point.collector_id == "1" for point in points)

    async def test_filter_values_are_bound(self, connection):
        """Test that injection attempts are treated as plain values."""
        points = await connection.query_data(day_params(tag_id="T1' OR '1'='1"))

        assert points == []

    async def test_invalid_range_rejected(self, connection):
        """Test rejection before any statement runs."""
        params = QueryParams(start_time=datetime(2024, 1, 16), end_time=datetime(2024, 1, 15))

        with pytest.raises(InvalidQueryError):
            await connection.query_data(params)

        assert connection.last_query is None

    async def test_test_connection(self, connection):
        """Test the connectivity check."""
        result = await connection.test_connection()

        assert result.is_successful is True
        assert result.metadata["database"] == "telemetry"

    def test_capabilities_and_info(self, connection):
        """Test raw-table capability and connection info."""
        assert isinstance(connection, SupportsRawTableAccess)
        assert not hasattr(connection, "query_aggregated_data")

        info = connection.get_connection_info()
        assert info.host == "sqlite:5432"
        assert info.database_name == "telemetry"


class TestInferColumnMapping:
    """Tests for column mapping inference."""

    def test_portuguese_names(self):
        """Test the usual telemetry table layout."""
        mapping = infer_column_mapping(
            ["data_hora", "valor_medido", "coletor", "gateway", "equipamento", "tag"]
        )

        assert mapping.time_column == "data_hora"
        assert mapping.value_column == "valor_medido"
        assert mapping.collector_id_column == "coletor"
        assert mapping.gateway_id_column == "gateway"
        assert mapping.equipment_id_column == "equipamento"
        assert mapping.tag_id_column == "tag"

    def test_unmatched_keep_defaults(self):
        """Test that unknown columns leave defaults in place."""
        mapping = infer_column_mapping(["id", "Timestamp", "Value"])

        assert mapping.time_column == "Timestamp"
        assert mapping.value_column == "Value"
        assert mapping.tag_id_column == "tag_id"

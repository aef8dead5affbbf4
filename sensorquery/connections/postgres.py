import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

from dateutil import parser as date_parser
from pydantic import BaseModel, Field
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from sensorquery.core.config import settings
from sensorquery.core.database import create_engine
from sensorquery.core.exceptions import DataSourceError
from sensorquery.core.logging import get_logger
from sensorquery.queries import SqlQueryBuilder
from sensorquery.schemas import (
    AggregationFunction,
    BackendKind,
    ColumnMapping,
    ConnectionInfo,
    ConnectionResult,
    DataPoint,
    QueryParams,
    TableSchema,
)

from .base import ConnectionBase


logger = get_logger(__name__)

# Driver and network failures surface as these besides SQLAlchemy errors
_QUERY_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)

_SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

SCHEMAS_QUERY = """
SELECT schema_name
FROM information_schema.schemata
WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
ORDER BY schema_name
"""

TABLES_QUERY = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = :schema_name
  AND table_type = 'BASE TABLE'
ORDER BY table_name
"""

COLUMNS_QUERY = """
SELECT column_name
FROM information_schema.columns
WHERE table_schema = :schema_name
  AND table_name = :table_name
ORDER BY ordinal_position
"""


class PostgresConfig(BaseModel):
    """Decrypted settings for a PostgreSQL data source."""
    host: str = "localhost"
    port: int = 5432
    database_name: str = "vortex"
    username: str = "postgres"
    password: str = ""
    use_ssl: bool = False
    connection_string: Optional[str] = None
    command_timeout_seconds: int = Field(default_factory=lambda: settings.sql_command_timeout_seconds)
    table_schema: TableSchema = Field(default_factory=lambda: TableSchema(table_name="dados_airflow"))

    def build_url(self) -> Union[str, URL]:
        """
        Build the SQLAlchemy URL, preferring an explicit connection string.

        A plain postgresql:// connection string is switched to the asyncpg driver.
        """
        if self.connection_string:
            url = make_url(self.connection_string)
            if url.drivername in ("postgresql", "postgres"):
                url = url.set(drivername="postgresql+asyncpg")
            return url

        return URL.create(
            "postgresql+asyncpg",
            username=self.username,
            password=self.password or None,
            host=self.host,
            port=self.port,
            database=self.database_name,
        )


def infer_column_mapping(column_names: Iterable[str]) -> ColumnMapping:
    """
    Guess the telemetry column mapping from column names.

    Matching is by case-insensitive substring; a later matching column
    overrides an earlier one. Columns that match nothing keep their defaults.
    """
    mapping: dict[str, str] = {}

    for name in column_names:
        lowered = name.lower()
        if "time" in lowered or "data" in lowered or "timestamp" in lowered:
            mapping["time_column"] = name
        elif "valor" in lowered or "value" in lowered:
            mapping["value_column"] = name
        elif "coletor" in lowered or "collector" in lowered:
            mapping["collector_id_column"] = name
        elif "gateway" in lowered:
            mapping["gateway_id_column"] = name
        elif "equipment" in lowered or "equipamento" in lowered:
            mapping["equipment_id_column"] = name
        elif "tag" in lowered:
            mapping["tag_id_column"] = name

    return ColumnMapping(**mapping)


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def _as_datetime(value: Any) -> datetime:
    # Drivers without a native timestamp type (sqlite) hand back text
    if isinstance(value, datetime):
        parsed = value
    elif value is None:
        return datetime.now(timezone.utc)
    else:
        parsed = date_parser.parse(str(value))

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def row_to_data_point(row: Any) -> DataPoint:
    """Map a result row aliased with the builder's result columns to a DataPoint."""
    values = row._mapping
    return DataPoint(
        time=_as_datetime(values["time"]),
        value=_as_text(values["valor"]),
        collector_id=_as_text(values["coletor_id"]),
        gateway_id=_as_text(values["gateway_id"]),
        equipment_id=_as_text(values["equipment_id"]),
        tag_id=_as_text(values["tag_id"]),
    )


class PostgresConnection(ConnectionBase):
    """
    Relational connection for PostgreSQL through SQLAlchemy's async engine.

    Offers schema discovery (raw-table access). Windowed aggregation is
    available through query_windowed_data but is not advertised as the
    aggregation capability, since it depends on TimescaleDB.
    """

    def __init__(
        self,
        config: PostgresConfig,
        query_builder: Optional[SqlQueryBuilder] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.config = config
        self.query_builder = query_builder or SqlQueryBuilder(config.table_schema)
        self.engine = engine or create_engine(
            config.build_url(),
            command_timeout=config.command_timeout_seconds,
            use_ssl=config.use_ssl,
        )
        self.last_query: Optional[str] = None

        logger.info(
            "postgres.connection_created",
            host=config.host,
            port=config.port,
            database=config.database_name,
        )

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind.POSTGRESQL

    async def test_connection(self) -> ConnectionResult:
        started = time.perf_counter()

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text(self.query_builder.build_test_query()))
                version_info = conn.dialect.server_version_info

            latency = timedelta(seconds=time.perf_counter() - started)
            version = ".".join(str(part) for part in version_info) if version_info else "unknown"

            logger.info("postgres.connection_ok", latency_ms=round(latency.total_seconds() * 1000, 1))
            return ConnectionResult.success(
                "PostgreSQL connection established successfully",
                latency=latency,
                metadata={
                    "host": self.config.host,
                    "port": self.config.port,
                    "database": self.config.database_name,
                    "version": version,
                },
            )
        except Exception as e:
            logger.error("postgres.connection_failed", error=str(e))
            return ConnectionResult.failure(
                f"PostgreSQL connection failed: {e}. Check host, port, credentials and that the server is running.",
                error=e,
                latency=timedelta(seconds=time.perf_counter() - started),
            )

    async def query_data(self, params: QueryParams) -> list[DataPoint]:
        """
        Raises:
            InvalidQueryError: If params is None or the time range is empty
            DataSourceError: If the query fails
        """
        params = self.ensure_valid_params(params)
        sql = self.query_builder.build_data_query(params)
        return await self._fetch_points(sql, self.query_builder.build_parameters(params))

    async def query_windowed_data(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str,
    ) -> list[DataPoint]:
        """Aggregate per time_bucket window on the server (TimescaleDB)."""
        params = self.ensure_valid_params(params)
        sql = self.query_builder.build_windowed_query(params, function, window_period)

        bound = self.query_builder.build_parameters(params)
        bound.pop("limit", None)
        return await self._fetch_points(sql, bound)

    async def get_available_schemas(self) -> list[str]:
        rows = await self._fetch_scalars(SCHEMAS_QUERY, {})
        return [name for name in rows if name not in _SYSTEM_SCHEMAS]

    async def get_tables_in_schema(self, schema_name: str) -> list[str]:
        return await self._fetch_scalars(TABLES_QUERY, {"schema_name": schema_name})

    async def get_table_schema(self, schema_name: str, table_name: str) -> TableSchema:
        """Describe a table, inferring the column mapping from its column names."""
        columns = await self._fetch_scalars(
            COLUMNS_QUERY,
            {"schema_name": schema_name, "table_name": table_name},
        )

        logger.debug("postgres.table_schema_loaded", schema=schema_name, table=table_name, columns=columns)
        return TableSchema(
            schema_name=schema_name,
            table_name=table_name,
            column_mapping=infer_column_mapping(columns),
        )

    def get_connection_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            backend_kind=self.backend_kind,
            host=f"{self.config.host}:{self.config.port}",
            database_name=self.config.database_name,
            username=self.config.username,
            is_secure=self.config.use_ssl,
        )

    async def close(self) -> None:
        await self.engine.dispose()
        logger.debug("postgres.engine_disposed")

    async def _fetch_points(self, sql: str, bound: dict[str, Any]) -> list[DataPoint]:
        self.last_query = sql
        logger.debug("postgres.query", sql=sql)

        statement = text(sql).bindparams(
            bindparam("start_time", type_=DateTime(timezone=True)),
            bindparam("end_time", type_=DateTime(timezone=True)),
        )

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement, bound)
                points = [row_to_data_point(row) for row in result]
        except _QUERY_ERRORS as e:
            logger.error("postgres.query_failed", error=str(e))
            raise DataSourceError(f"PostgreSQL query failed: {e}") from e

        logger.info("postgres.query_completed", record_count=len(points))
        return points

    async def _fetch_scalars(self, sql: str, bound: dict[str, Any]) -> list[str]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), bound)
                return [str(value) for value in result.scalars()]
        except _QUERY_ERRORS as e:
            logger.error("postgres.discovery_failed", error=str(e))
            raise DataSourceError(f"PostgreSQL discovery query failed: {e}") from e

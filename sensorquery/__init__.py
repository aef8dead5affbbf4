"""
Query sensor telemetry from heterogeneous backends and aggregate it over time windows.

Typical usage:
    factory = DatabaseConnectionFactory()
    async with factory.create_connection(config) as connection:
        points = await connection.query_data(params)
"""
from sensorquery.schemas import (
    AggregationConfiguration,
    AggregationFunction,
    AggregationKind,
    BackendKind,
    ColumnMapping,
    ConnectionInfo,
    ConnectionResult,
    ConnectionSettings,
    DataPoint,
    DataSourceConfig,
    QueryParams,
    TableSchema,
    TimeWindow,
)
from sensorquery.services.connection_factory import DatabaseConnectionFactory
from sensorquery.services.strategy_factory import AggregationStrategyFactory

__version__ = "0.1.0"

__all__ = [
    "AggregationConfiguration",
    "AggregationFunction",
    "AggregationKind",
    "AggregationStrategyFactory",
    "BackendKind",
    "ColumnMapping",
    "ConnectionInfo",
    "ConnectionResult",
    "ConnectionSettings",
    "DataPoint",
    "DataSourceConfig",
    "DatabaseConnectionFactory",
    "QueryParams",
    "TableSchema",
    "TimeWindow",
]

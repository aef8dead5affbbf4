from .api import ApiConfig, HistorianApiConnection, PreAggregatedApiConnection
from .api_client import ApiClient
from .base import (
    ConnectionBase,
    DataSourceConnection,
    SupportsAggregation,
    SupportsRawTableAccess,
)
from .influx import InfluxConfig, InfluxConnection
from .postgres import PostgresConfig, PostgresConnection, infer_column_mapping

__all__ = [
    "ApiClient",
    "ApiConfig",
    "ConnectionBase",
    "DataSourceConnection",
    "HistorianApiConnection",
    "InfluxConfig",
    "InfluxConnection",
    "PostgresConfig",
    "PostgresConnection",
    "PreAggregatedApiConnection",
    "SupportsAggregation",
    "SupportsRawTableAccess",
    "infer_column_mapping",
]

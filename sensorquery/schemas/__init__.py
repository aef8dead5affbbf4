from .aggregation import AggregationConfiguration, AggregationFunction, AggregationKind, TimeWindow
from .api import AggregationRequest, DataPointDTO, InlineCredentials, QueryRequest, QueryResponse, TagDTO, TagsResponse
from .connection import BackendKind, ConnectionInfo, ConnectionResult, ConnectionSettings, DataSourceConfig
from .data_point import DataPoint
from .query import HIERARCHY_LEVELS, QueryParams
from .table_schema import ColumnMapping, TableSchema

__all__ = [
    "AggregationConfiguration",
    "AggregationFunction",
    "AggregationKind",
    "AggregationRequest",
    "BackendKind",
    "ColumnMapping",
    "ConnectionInfo",
    "ConnectionResult",
    "ConnectionSettings",
    "DataPoint",
    "DataPointDTO",
    "DataSourceConfig",
    "HIERARCHY_LEVELS",
    "InlineCredentials",
    "QueryParams",
    "QueryRequest",
    "QueryResponse",
    "TableSchema",
    "TagDTO",
    "TagsResponse",
    "TimeWindow",
]

from .base import QueryBuilder, validate_time_range
from .filters import split_filter_values
from .flux import FluxQueryBuilder
from .sql import SqlQueryBuilder

__all__ = [
    "FluxQueryBuilder",
    "QueryBuilder",
    "SqlQueryBuilder",
    "split_filter_values",
    "validate_time_range",
]

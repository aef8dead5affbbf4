from typing import Optional, Protocol, runtime_checkable

from sensorquery.schemas import QueryParams, TableSchema

from .filters import to_utc


@runtime_checkable
class QueryBuilder(Protocol):
    """Translate backend-neutral QueryParams into a backend's native query text."""
    
    def build_test_query(self) -> str: ...
    
    def build_data_query(self, params: QueryParams, schema: Optional[TableSchema] = None) -> str: ...
    
    def validate_parameters(self, params: Optional[QueryParams]) -> bool: ...


def validate_time_range(params: Optional[QueryParams]) -> bool:
    """Shared parameter check: params present and start_time < end_time."""
    if params is None:
        return False
    
    return to_utc(params.start_time) < to_utc(params.end_time)

"""
Connection contract and the optional capabilities a connection may add.

Capabilities are separate protocols checked with isinstance() at the point
of use, so a connection only implements what its backend can actually do.
"""
from typing import Optional, Protocol, runtime_checkable

from sensorquery.core.exceptions import InvalidQueryError
from sensorquery.queries import validate_time_range
from sensorquery.schemas import (
    AggregationFunction,
    BackendKind,
    ConnectionInfo,
    ConnectionResult,
    DataPoint,
    QueryParams,
    TableSchema,
)


@runtime_checkable
class DataSourceConnection(Protocol):
    """Minimum surface every backend connection provides."""

    @property
    def backend_kind(self) -> BackendKind: ...

    async def test_connection(self) -> ConnectionResult: ...

    async def query_data(self, params: QueryParams) -> list[DataPoint]: ...

    def get_connection_info(self) -> ConnectionInfo: ...

    async def close(self) -> None: ...


@runtime_checkable
class SupportsAggregation(Protocol):
    """Backend evaluates windowed aggregates itself (push-down)."""

    async def query_aggregated_data(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str,
    ) -> list[DataPoint]: ...


@runtime_checkable
class SupportsRawTableAccess(Protocol):
    """Schema, table and column discovery on relational backends."""

    async def get_available_schemas(self) -> list[str]: ...

    async def get_tables_in_schema(self, schema_name: str) -> list[str]: ...

    async def get_table_schema(self, schema_name: str, table_name: str) -> TableSchema: ...


class ConnectionBase:
    """Shared plumbing for concrete connections: context management and param checks."""

    last_query: Optional[str] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        return None

    def ensure_valid_params(self, params: Optional[QueryParams]) -> QueryParams:
        """
        Reject params before any network call.

        Raises:
            InvalidQueryError: If params is None or start_time >= end_time
        """
        if params is None:
            raise InvalidQueryError("Query parameters are required")

        if not validate_time_range(params):
            raise InvalidQueryError(
                f"Invalid time range: start_time ({params.start_time.isoformat()}) "
                f"must be before end_time ({params.end_time.isoformat()})"
            )

        return params

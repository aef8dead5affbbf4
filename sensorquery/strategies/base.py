from typing import Optional, Protocol, runtime_checkable

from sensorquery.core.exceptions import InvalidConfigurationError, InvalidQueryError
from sensorquery.schemas import AggregationConfiguration, DataPoint, QueryParams


@runtime_checkable
class AggregationStrategy(Protocol):
    """Produces aggregated points for every (kind, window) pair of a configuration."""

    async def apply(self, params: QueryParams, config: AggregationConfiguration) -> list[DataPoint]: ...

    def get_description(self) -> str: ...


def check_inputs(params: Optional[QueryParams], config: Optional[AggregationConfiguration]) -> None:
    """
    Reject missing params or an empty aggregation selection before querying.

    Raises:
        InvalidQueryError: If params is None
        InvalidConfigurationError: If config is None or selects no kind or no window
    """
    if params is None:
        raise InvalidQueryError("Query parameters are required")
    if config is None:
        raise InvalidConfigurationError("Aggregation configuration is required")
    config.validate_selection()

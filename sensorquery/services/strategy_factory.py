from sensorquery.connections.base import DataSourceConnection
from sensorquery.core.exceptions import InvalidConfigurationError, UnsupportedBackendError
from sensorquery.schemas import BackendKind
from sensorquery.strategies import (
    AggregationStrategy,
    LocalFilteringStrategy,
    PushDownAggregationStrategy,
)


_STRATEGIES = {
    BackendKind.HISTORIAN_API: PushDownAggregationStrategy,
    BackendKind.PREAGGREGATED_API: LocalFilteringStrategy,
}

_DESCRIPTIONS = {
    BackendKind.HISTORIAN_API: "Aggregate raw data on the server",
    BackendKind.PREAGGREGATED_API: "Filter pre-aggregated data",
}


class AggregationStrategyFactory:
    """Selects the aggregation strategy for a backend kind."""

    @staticmethod
    def create_strategy(backend_kind: BackendKind, connection: DataSourceConnection) -> AggregationStrategy:
        """
        Args:
            backend_kind: Backend the connection talks to
            connection: Open connection the strategy will query

        Raises:
            InvalidConfigurationError: If connection is None
            UnsupportedBackendError: If the backend kind has no aggregation strategy
        """
        if connection is None:
            raise InvalidConfigurationError("A connection is required to create an aggregation strategy")

        strategy_class = _STRATEGIES.get(backend_kind)
        if strategy_class is None:
            supported = ", ".join(kind.value for kind in _STRATEGIES)
            raise UnsupportedBackendError(
                f"Aggregation is not supported for backend kind: {getattr(backend_kind, 'value', backend_kind)}. "
                f"Supported types: {supported}"
            )

        return strategy_class(connection)

    @staticmethod
    def is_aggregation_supported(backend_kind: BackendKind) -> bool:
        return backend_kind in _STRATEGIES

    @staticmethod
    def get_aggregation_description(backend_kind: BackendKind) -> str:
        return _DESCRIPTIONS.get(backend_kind, "Aggregation not supported")

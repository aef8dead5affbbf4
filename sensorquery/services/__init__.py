from .connection_factory import DatabaseConnectionFactory
from .frames import to_dataframe
from .strategy_factory import AggregationStrategyFactory

__all__ = ["AggregationStrategyFactory", "DatabaseConnectionFactory", "to_dataframe"]

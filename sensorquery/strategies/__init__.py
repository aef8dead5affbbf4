from .base import AggregationStrategy
from .local_filter import LocalFilteringStrategy, split_aggregation_id
from .pushdown import PushDownAggregationStrategy, compute_delta

__all__ = [
    "AggregationStrategy",
    "LocalFilteringStrategy",
    "PushDownAggregationStrategy",
    "compute_delta",
    "split_aggregation_id",
]

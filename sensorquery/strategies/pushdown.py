"""
Aggregation computed by the backend: one aggregated query per simple kind,
two per composite kind, combined client side.
"""
from sensorquery.connections.base import SupportsAggregation
from sensorquery.core.exceptions import UnsupportedBackendError
from sensorquery.core.logging import get_logger
from sensorquery.schemas import (
    AggregationConfiguration,
    AggregationFunction,
    AggregationKind,
    DataPoint,
    QueryParams,
)

from .base import check_inputs


logger = get_logger(__name__)

# Composite kinds and the pair of functions each needs, with the suffix used to tag each half
_COMPOSITE_HALVES = {
    AggregationKind.MIN_MAX: ((AggregationFunction.MIN, "min"), (AggregationFunction.MAX, "max")),
    AggregationKind.FIRST_LAST: ((AggregationFunction.FIRST, "first"), (AggregationFunction.LAST, "last")),
}


def compute_delta(
    first_points: list[DataPoint],
    last_points: list[DataPoint],
    kind_token: str,
    window_period: str,
) -> list[DataPoint]:
    """
    Join first and last points on tag_id and emit last - first for each match.

    Unmatched IDs on either side and non-numeric values are dropped. When
    several points share a tag_id on one side, the last one wins. Emitted
    points carry the last side's timestamp and IDs, value formatted "%.2f".
    """
    first_by_tag = {point.tag_id: point for point in first_points}
    last_by_tag = {point.tag_id: point for point in last_points}

    results = []
    for tag_id, first in first_by_tag.items():
        last = last_by_tag.get(tag_id)
        if last is None:
            continue

        first_value = first.numeric_value()
        last_value = last.numeric_value()
        if first_value is None or last_value is None:
            continue

        delta = last_value - first_value
        results.append(
            DataPoint(
                time=last.time,
                collector_id=last.collector_id,
                gateway_id=last.gateway_id,
                equipment_id=last.equipment_id,
                tag_id=last.tag_id,
                value=f"{delta:.2f}",
                aggregation_kind=kind_token,
                time_window=window_period,
            )
        )

    return results


class PushDownAggregationStrategy:
    """Strategy for backends that evaluate windowed aggregates themselves."""

    def __init__(self, connection: SupportsAggregation):
        if not isinstance(connection, SupportsAggregation):
            raise UnsupportedBackendError(
                f"{type(connection).__name__} cannot aggregate on the server"
            )
        self.connection = connection

    async def apply(self, params: QueryParams, config: AggregationConfiguration) -> list[DataPoint]:
        """
        Query every (kind, window) pair and concatenate the results.

        A failing pair is logged and skipped; the others are still returned.

        Raises:
            InvalidQueryError: If params is None
            InvalidConfigurationError: If the configuration selects nothing
        """
        check_inputs(params, config)

        logger.info(
            "pushdown.started",
            kinds=[kind.value for kind in config.aggregation_kinds],
            windows=[window.period for window in config.time_windows],
        )

        results: list[DataPoint] = []
        for kind, window in config.pairs():
            window_period = window.period
            try:
                points = await self._apply_pair(params, kind, window_period)
            except Exception as e:
                logger.error(
                    "strategy.pair_failed",
                    kind=kind.token,
                    window=window_period,
                    error=str(e),
                    exc_info=True,
                )
                continue

            logger.info("pushdown.pair_completed", kind=kind.token, window=window_period, record_count=len(points))
            results.extend(points)

        logger.info("pushdown.completed", record_count=len(results))
        return results

    def get_description(self) -> str:
        return "Aggregate raw data on the server"

    async def _apply_pair(
        self,
        params: QueryParams,
        kind: AggregationKind,
        window_period: str,
    ) -> list[DataPoint]:
        if kind is AggregationKind.DELTA:
            first = await self.connection.query_aggregated_data(params, AggregationFunction.FIRST, window_period)
            last = await self.connection.query_aggregated_data(params, AggregationFunction.LAST, window_period)
            return compute_delta(first, last, kind.token, window_period)

        if kind in _COMPOSITE_HALVES:
            points: list[DataPoint] = []
            for function, suffix in _COMPOSITE_HALVES[kind]:
                half = await self.connection.query_aggregated_data(params, function, window_period)
                points.extend(point.annotate(f"{kind.token}_{suffix}", window_period) for point in half)
            return points

        points = await self.connection.query_aggregated_data(params, kind.function, window_period)
        return [point.annotate(kind.token, window_period) for point in points]

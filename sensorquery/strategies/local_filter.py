"""
Aggregation for stores that already hold pre-aggregated series.

Each pre-aggregated row encodes its aggregation in one hierarchy ID as
"{kind}_{window}" (e.g. "average_60m"). Rows are fetched once and the
requested kinds and windows are selected locally.
"""
from typing import Optional

from sensorquery.connections.base import DataSourceConnection
from sensorquery.core.logging import get_logger
from sensorquery.schemas import HIERARCHY_LEVELS, AggregationConfiguration, DataPoint, QueryParams

from .base import check_inputs


logger = get_logger(__name__)


def split_aggregation_id(value: Optional[str]) -> Optional[tuple[str, str]]:
    """
    Split "{kind}_{window}" on the last underscore.

    Returns:
        (kind, window), or None when there is no underscore or it is the first character

    Example:
        >>> split_aggregation_id("min_max_5m")
        ('min_max', '5m')
    """
    if not value:
        return None

    index = value.rfind("_")
    if index <= 0:
        return None

    return value[:index], value[index + 1:]


class LocalFilteringStrategy:
    """Strategy for pre-aggregated backends without server-side aggregation."""

    def __init__(self, connection: DataSourceConnection, metadata_level: int = 4):
        if not 1 <= metadata_level <= len(HIERARCHY_LEVELS):
            raise ValueError(f"metadata_level must be between 1 and {len(HIERARCHY_LEVELS)}")

        self.connection = connection
        self.metadata_field = HIERARCHY_LEVELS[metadata_level - 1]
        # The metadata level and the field-name level above it hold no identity
        self.cleared_fields = HIERARCHY_LEVELS[max(metadata_level - 2, 0):metadata_level]

    async def apply(self, params: QueryParams, config: AggregationConfiguration) -> list[DataPoint]:
        """
        Fetch all pre-aggregated rows in the range and keep the requested ones.

        Raises:
            InvalidQueryError: If params is None or its time range is empty
            InvalidConfigurationError: If the configuration selects nothing
            DataSourceError: If the underlying query fails
        """
        check_inputs(params, config)

        query_params = params.model_copy(update={level: None for level in self.cleared_fields})
        points = await self.connection.query_data(query_params)

        accepted_kinds = config.accepted_tokens()
        accepted_windows = config.accepted_periods()
        logger.info(
            "local_filter.fetched",
            record_count=len(points),
            accepted_kinds=sorted(accepted_kinds),
            accepted_windows=sorted(accepted_windows),
        )

        filtered = []
        for point in points:
            parts = split_aggregation_id(getattr(point, self.metadata_field))
            if parts is None:
                logger.debug("local_filter.unparsable_id", value=getattr(point, self.metadata_field))
                continue

            kind, window = parts
            if kind in accepted_kinds and window in accepted_windows:
                filtered.append(point.annotate(kind, window))

        logger.info("local_filter.completed", matched=len(filtered), total=len(points))
        return filtered

    def get_description(self) -> str:
        return "Filter pre-aggregated data"

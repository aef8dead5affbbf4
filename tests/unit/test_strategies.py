"""
Unit tests for the push-down and local-filter aggregation strategies.
"""
from datetime import datetime, timezone

import pytest

from sensorquery.core.exceptions import (
    DataSourceError,
    InvalidConfigurationError,
    InvalidQueryError,
    UnsupportedBackendError,
)
from sensorquery.schemas import (
    AggregationConfiguration,
    AggregationFunction,
    AggregationKind,
    BackendKind,
    QueryParams,
    TimeWindow,
)
from sensorquery.strategies import (
    LocalFilteringStrategy,
    PushDownAggregationStrategy,
    compute_delta,
    split_aggregation_id,
)


class FakeAggregatingConnection:
    """Records aggregated queries and answers from a per-function table."""

    def __init__(self, responses=None, failing=()):
        self.responses = responses or {}
        self.failing = set(failing)
        self.calls = []

    async def query_aggregated_data(self, params, function, window_period):
        self.calls.append((function, window_period))
        if (function, window_period) in self.failing:
            raise DataSourceError("backend unavailable")
        return [point.model_copy() for point in self.responses.get(function, [])]


class FakePreAggregatedConnection:
    """Returns fixed rows from query_data and records the params it got."""

    def __init__(self, points):
        self.points = points
        self.received = []

    async def query_data(self, params):
        self.received.append(params)
        return list(self.points)


class FilteringPreAggregatedConnection(FakePreAggregatedConnection):
    """Applies the tag filter the way a real backend would."""

    async def query_data(self, params):
        points = await super().query_data(params)
        if params.tag_id:
            points = [point for point in points if point.tag_id == params.tag_id]
        return points


class TestComputeDelta:
    """Tests for the first/last join."""

    def test_delta_of_matching_ids(self, make_point):
        """Test last - first formatted with two decimals."""
        first = [make_point(tag_id="T1", value="10", minute=0)]
        last = [make_point(tag_id="T1", value="14.5", minute=5)]

        result = compute_delta(first, last, "delta", "5m")

        assert len(result) == 1
        assert result[0].value == "4.50"
        assert result[0].time == last[0].time
        assert result[0].aggregation_kind == "delta"
        assert result[0].time_window == "5m"

    def test_unmatched_ids_are_dropped(self, make_point):
        """Test inner-join semantics on tag_id."""
        first = [make_point(tag_id="T1", value="10"), make_point(tag_id="T2", value="3")]
        last = [make_point(tag_id="T1", value="11"), make_point(tag_id="T3", value="9")]

        result = compute_delta(first, last, "delta", "5m")

        assert [point.tag_id for point in result] == ["T1"]

    def test_non_numeric_values_are_dropped(self, make_point):
        """Test that a non-numeric side removes the row silently."""
        first = [make_point(tag_id="T1", value="abc")]
        last = [make_point(tag_id="T1", value="1")]

        assert compute_delta(first, last, "delta", "5m") == []

    def test_negative_delta(self, make_point):
        """Test decreasing counters."""
        result = compute_delta(
            [make_point(tag_id="T1", value="20")],
            [make_point(tag_id="T1", value="17.25")],
            "delta",
            "15m",
        )

        assert result[0].value == "-2.75"


class TestPushDownAggregationStrategy:
    """Tests for PushDownAggregationStrategy."""

    async def test_min_max_issues_two_queries(self, query_params, make_point):
        """Test that min/max queries min and max and tags each half."""
        connection = FakeAggregatingConnection({
            AggregationFunction.MIN: [make_point(value="1")],
            AggregationFunction.MAX: [make_point(value="9")],
        })
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.MIN_MAX],
            time_windows=[TimeWindow.FIVE_MINUTES],
        )

        points = await PushDownAggregationStrategy(connection).apply(query_params, config)

        assert connection.calls == [(AggregationFunction.MIN, "5m"), (AggregationFunction.MAX, "5m")]
        assert [(p.aggregation_kind, p.time_window, p.value) for p in points] == [
            ("min_max_min", "5m", "1"),
            ("min_max_max", "5m", "9"),
        ]

    async def test_first_last_tags(self, query_params, make_point):
        """Test first/last suffixes."""
        connection = FakeAggregatingConnection({
            AggregationFunction.FIRST: [make_point()],
            AggregationFunction.LAST: [make_point()],
        })
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.FIRST_LAST],
            time_windows=[TimeWindow.SIXTY_MINUTES],
        )

        points = await PushDownAggregationStrategy(connection).apply(query_params, config)

        assert [p.aggregation_kind for p in points] == ["first_last_first", "first_last_last"]
        assert {p.time_window for p in points} == {"60m"}

    async def test_simple_kinds_use_their_function(self, query_params, make_point):
        """Test average maps to mean and total maps to sum."""
        connection = FakeAggregatingConnection({
            AggregationFunction.MEAN: [make_point(value="5")],
            AggregationFunction.SUM: [make_point(value="50")],
        })
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE, AggregationKind.TOTAL],
            time_windows=[TimeWindow.FIVE_MINUTES, TimeWindow.FIFTEEN_MINUTES],
        )

        points = await PushDownAggregationStrategy(connection).apply(query_params, config)

        assert connection.calls == [
            (AggregationFunction.MEAN, "5m"),
            (AggregationFunction.MEAN, "15m"),
            (AggregationFunction.SUM, "5m"),
            (AggregationFunction.SUM, "15m"),
        ]
        assert [(p.aggregation_kind, p.time_window) for p in points] == [
            ("average", "5m"),
            ("average", "15m"),
            ("total", "5m"),
            ("total", "15m"),
        ]

    async def test_delta(self, query_params, make_point):
        """Test delta queries first and last and joins them."""
        connection = FakeAggregatingConnection({
            AggregationFunction.FIRST: [make_point(tag_id="T1", value="10")],
            AggregationFunction.LAST: [make_point(tag_id="T1", value="14.5")],
        })
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.DELTA],
            time_windows=[TimeWindow.THIRTY_MINUTES],
        )

        points = await PushDownAggregationStrategy(connection).apply(query_params, config)

        assert connection.calls == [(AggregationFunction.FIRST, "30m"), (AggregationFunction.LAST, "30m")]
        assert len(points) == 1
        assert points[0].value == "4.50"
        assert points[0].aggregation_kind == "delta"

    async def test_failing_pair_is_isolated(self, query_params, make_point):
        """Test that one failing pair does not abort the others."""
        connection = FakeAggregatingConnection(
            {AggregationFunction.MEAN: [make_point()]},
            failing=[(AggregationFunction.MEAN, "5m")],
        )
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.FIVE_MINUTES, TimeWindow.SIXTY_MINUTES],
        )

        points = await PushDownAggregationStrategy(connection).apply(query_params, config)

        assert len(connection.calls) == 2
        assert [p.time_window for p in points] == ["60m"]

    async def test_invalid_configuration_rejected_before_queries(self, query_params):
        """Test that an empty selection fails fast."""
        connection = FakeAggregatingConnection()
        strategy = PushDownAggregationStrategy(connection)

        with pytest.raises(InvalidConfigurationError):
            await strategy.apply(query_params, AggregationConfiguration(time_windows=[TimeWindow.FIVE_MINUTES]))

        with pytest.raises(InvalidQueryError):
            await strategy.apply(None, AggregationConfiguration(
                aggregation_kinds=[AggregationKind.AVERAGE],
                time_windows=[TimeWindow.FIVE_MINUTES],
            ))

        assert connection.calls == []

    def test_requires_aggregation_capability(self):
        """Test that a connection without push-down is rejected."""
        with pytest.raises(UnsupportedBackendError):
            PushDownAggregationStrategy(FakePreAggregatedConnection([]))


class TestSplitAggregationId:
    """Tests for "{kind}_{window}" parsing."""

    def test_splits_on_last_underscore(self):
        """Test composite kinds keep their inner underscore."""
        assert split_aggregation_id("average_60m") == ("average", "60m")
        assert split_aggregation_id("min_max_5m") == ("min_max", "5m")

    def test_unparsable(self):
        """Test IDs without a usable underscore."""
        assert split_aggregation_id("average") is None
        assert split_aggregation_id("_5m") is None
        assert split_aggregation_id("") is None


class TestLocalFilteringStrategy:
    """Tests for LocalFilteringStrategy."""

    async def test_keeps_requested_kind_and_window(self, query_params, make_point):
        """Test selection by kind token and window token."""
        connection = FakePreAggregatedConnection([
            make_point(tag_id="average_60m", value="1"),
            make_point(tag_id="average_5m", value="2"),
            make_point(tag_id="total_60m", value="3"),
            make_point(tag_id="min_max_5m", value="4"),
            make_point(tag_id="average", value="5"),
        ])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.SIXTY_MINUTES],
            backend_kind=BackendKind.PREAGGREGATED_API,
        )

        points = await LocalFilteringStrategy(connection).apply(query_params, config)

        assert [p.value for p in points] == ["1"]
        assert points[0].aggregation_kind == "average"
        assert points[0].time_window == "60m"

    async def test_composite_kinds_expand(self, query_params, make_point):
        """Test min/max accepts min and max series but not min_max itself."""
        connection = FakePreAggregatedConnection([
            make_point(tag_id="min_5m", value="1"),
            make_point(tag_id="max_5m", value="2"),
            make_point(tag_id="min_max_5m", value="3"),
        ])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.MIN_MAX],
            time_windows=[TimeWindow.FIVE_MINUTES],
        )

        points = await LocalFilteringStrategy(connection).apply(query_params, config)

        assert [(p.aggregation_kind, p.value) for p in points] == [("min", "1"), ("max", "2")]

    async def test_clears_metadata_and_field_levels(self):
        """Test that only collector and gateway filters reach the backend."""
        params = QueryParams(
            collector_id="1",
            gateway_id="2",
            equipment_id="avg_valor",
            tag_id="T1",
            start_time=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
            end_time=datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc),
            limit=10,
        )
        connection = FakePreAggregatedConnection([])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.FIVE_MINUTES],
        )

        await LocalFilteringStrategy(connection).apply(params, config)

        sent = connection.received[0]
        assert sent.collector_id == "1"
        assert sent.gateway_id == "2"
        assert sent.equipment_id is None
        assert sent.tag_id is None
        assert sent.limit == 10
        assert params.tag_id == "T1"

    async def test_tag_filter_does_not_hide_aggregated_rows(self, query_params, make_point):
        """Test that a tag filter is not applied to the level holding the metadata."""
        connection = FilteringPreAggregatedConnection([
            make_point(tag_id="average_60m", value="1"),
            make_point(tag_id="total_60m", value="2"),
        ])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.SIXTY_MINUTES],
        )
        params = query_params.model_copy(update={"tag_id": "T1"})

        points = await LocalFilteringStrategy(connection).apply(params, config)

        assert connection.received[0].tag_id is None
        assert [(p.aggregation_kind, p.value) for p in points] == [("average", "1")]

    async def test_metadata_level_three_clears_gateway_and_equipment(self, query_params):
        """Test the cleared levels follow the metadata level."""
        connection = FakePreAggregatedConnection([])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.FIVE_MINUTES],
        )
        params = query_params.model_copy(
            update={"collector_id": "1", "gateway_id": "avg_valor", "equipment_id": "E1", "tag_id": "T1"}
        )

        await LocalFilteringStrategy(connection, metadata_level=3).apply(params, config)

        sent = connection.received[0]
        assert (sent.collector_id, sent.gateway_id, sent.equipment_id, sent.tag_id) == ("1", None, None, "T1")

    async def test_metadata_level_is_configurable(self, query_params, make_point):
        """Test reading the aggregation metadata from another level."""
        connection = FakePreAggregatedConnection([
            make_point(tag_id="T1", equipment_id="average_5m"),
            make_point(tag_id="T2", equipment_id="total_5m"),
        ])
        config = AggregationConfiguration(
            aggregation_kinds=[AggregationKind.AVERAGE],
            time_windows=[TimeWindow.FIVE_MINUTES],
        )

        points = await LocalFilteringStrategy(connection, metadata_level=3).apply(query_params, config)

        assert [p.tag_id for p in points] == ["T1"]

    def test_metadata_level_bounds(self):
        """Test that levels outside 1..4 are rejected."""
        with pytest.raises(ValueError):
            LocalFilteringStrategy(FakePreAggregatedConnection([]), metadata_level=5)

    def test_descriptions(self):
        """Test the caller-facing descriptions."""
        assert LocalFilteringStrategy(FakePreAggregatedConnection([])).get_description() == "Filter pre-aggregated data"
        assert PushDownAggregationStrategy(FakeAggregatingConnection()).get_description() == (
            "Aggregate raw data on the server"
        )

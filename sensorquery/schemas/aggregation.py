from enum import Enum

from pydantic import BaseModel, Field

from sensorquery.core.exceptions import InvalidConfigurationError

from .connection import BackendKind


class AggregationFunction(str, Enum):
    """Aggregate function a backend evaluates over each window."""
    MEAN = "mean"
    MIN = "min"
    MAX = "max"
    COUNT = "count"
    SUM = "sum"
    STDDEV = "stddev"
    FIRST = "first"
    LAST = "last"
    
    @property
    def flux_function(self) -> str:
        return self.value
    
    @property
    def sql_function(self) -> str:
        return _SQL_FUNCTIONS[self]
    
    @property
    def display_name(self) -> str:
        return _FUNCTION_DISPLAY_NAMES[self]


_SQL_FUNCTIONS = {
    AggregationFunction.MEAN: "AVG",
    AggregationFunction.MIN: "MIN",
    AggregationFunction.MAX: "MAX",
    AggregationFunction.COUNT: "COUNT",
    AggregationFunction.SUM: "SUM",
    AggregationFunction.STDDEV: "STDDEV",
    AggregationFunction.FIRST: "FIRST_VALUE",
    AggregationFunction.LAST: "LAST_VALUE",
}

_FUNCTION_DISPLAY_NAMES = {
    AggregationFunction.MEAN: "Mean",
    AggregationFunction.MIN: "Minimum",
    AggregationFunction.MAX: "Maximum",
    AggregationFunction.COUNT: "Count",
    AggregationFunction.SUM: "Sum",
    AggregationFunction.STDDEV: "Standard deviation",
    AggregationFunction.FIRST: "First",
    AggregationFunction.LAST: "Last",
}


class AggregationKind(str, Enum):
    """
    Aggregation a caller can ask for.
    
    MIN_MAX, FIRST_LAST and DELTA are composite: they need two underlying
    queries (or two pre-aggregated series) to be produced.
    """
    AVERAGE = "average"
    TOTAL = "total"
    MIN_MAX = "min_max"
    FIRST_LAST = "first_last"
    DELTA = "delta"
    
    @property
    def token(self) -> str:
        return self.value
    
    @property
    def tokens(self) -> tuple[str, ...]:
        """Tokens used by pre-aggregated stores to label this kind's series."""
        return _KIND_TOKENS[self]
    
    @property
    def is_composite(self) -> bool:
        return self in (AggregationKind.MIN_MAX, AggregationKind.FIRST_LAST, AggregationKind.DELTA)
    
    @property
    def function(self) -> AggregationFunction:
        """
        Backend function of a simple kind.
        
        Raises:
            ValueError: For composite kinds, which strategies resolve into two functions
        """
        if self.is_composite:
            raise ValueError(f"Composite aggregation kind '{self.value}' has no single backend function")
        return _KIND_FUNCTIONS[self]
    
    @property
    def display_name(self) -> str:
        return _KIND_DISPLAY_NAMES[self]


_KIND_TOKENS = {
    AggregationKind.AVERAGE: ("average",),
    AggregationKind.TOTAL: ("total",),
    AggregationKind.MIN_MAX: ("min", "max"),
    AggregationKind.FIRST_LAST: ("first", "last"),
    AggregationKind.DELTA: ("delta",),
}

_KIND_FUNCTIONS = {
    AggregationKind.AVERAGE: AggregationFunction.MEAN,
    AggregationKind.TOTAL: AggregationFunction.SUM,
}

_KIND_DISPLAY_NAMES = {
    AggregationKind.AVERAGE: "Average",
    AggregationKind.TOTAL: "Total (sum)",
    AggregationKind.MIN_MAX: "Min/Max",
    AggregationKind.FIRST_LAST: "First/Last",
    AggregationKind.DELTA: "Delta",
}


class TimeWindow(int, Enum):
    """Fixed window length in minutes."""
    FIVE_MINUTES = 5
    FIFTEEN_MINUTES = 15
    THIRTY_MINUTES = 30
    SIXTY_MINUTES = 60
    
    @property
    def period(self) -> str:
        """Short duration literal, e.g. "5m"."""
        return f"{self.value}m"
    
    @property
    def display_name(self) -> str:
        if self is TimeWindow.SIXTY_MINUTES:
            return "60 minutes (1 hour)"
        return f"{self.value} minutes"


class AggregationConfiguration(BaseModel):
    """Aggregation kinds x time windows requested for one backend."""
    aggregation_kinds: list[AggregationKind] = Field(default_factory=list)
    time_windows: list[TimeWindow] = Field(default_factory=list)
    backend_kind: BackendKind = BackendKind.HISTORIAN_API
    
    def is_valid(self) -> bool:
        return bool(self.aggregation_kinds) and bool(self.time_windows)
    
    def validate_selection(self) -> None:
        """
        Raises:
            InvalidConfigurationError: If no kind or no window is selected
        """
        if not self.aggregation_kinds:
            raise InvalidConfigurationError("At least one aggregation kind must be selected")
        if not self.time_windows:
            raise InvalidConfigurationError("At least one time window must be selected")
    
    def pairs(self) -> list[tuple[AggregationKind, TimeWindow]]:
        """Cross product of kinds and windows, kinds outermost, duplicates removed."""
        kinds = list(dict.fromkeys(self.aggregation_kinds))
        windows = list(dict.fromkeys(self.time_windows))
        return [(kind, window) for kind in kinds for window in windows]
    
    def accepted_tokens(self) -> set[str]:
        return {token for kind in self.aggregation_kinds for token in kind.tokens}
    
    def accepted_periods(self) -> set[str]:
        return {window.period for window in self.time_windows}

from typing import Optional

from sensorquery.core.config import settings
from sensorquery.core.logging import get_logger
from sensorquery.schemas import AggregationFunction, QueryParams, TableSchema

from .base import validate_time_range
from .filters import (
    escape_flux_string,
    format_rfc3339_millis,
    split_filter_values,
    validate_window_period,
)


logger = get_logger(__name__)

# Flux tag name for each hierarchy level, outermost first
FLUX_TAGS = {
    "collector_id": "coletor_id",
    "gateway_id": "gateway_id",
    "equipment_id": "equipment_id",
    "tag_id": "tag_id",
}


def build_multi_value_filter(tag: str, values: Optional[str]) -> str:
    """
    Compile a comma-separated ID list into a Flux predicate body.
    
    Args:
        tag: Flux column name
        values: Comma-separated IDs; empty means no restriction
    
    Returns:
        "true" for no restriction, a single equality, or an OR of equalities
    """
    value_list = split_filter_values(values)
    if not value_list:
        return "true"
    
    conditions = [
        f'r["{tag}"] == "{escape_flux_string(value)}"'
        for value in value_list
    ]
    return " or ".join(conditions)


class FluxQueryBuilder:
    """
    Builds Flux queries against a single bucket and measurement.
    
    Data queries are flattened with group() so the response carries one
    header; aggregated queries keep the per-series tables that
    aggregateWindow produces and rely on the parser's re-header handling.
    """
    
    def __init__(
        self,
        bucket: str,
        measurement: Optional[str] = None,
        value_field: Optional[str] = None,
    ):
        if not bucket:
            raise ValueError("bucket is required")
        
        self.bucket = bucket
        self.measurement = measurement or settings.raw_measurement
        self.value_field = value_field or settings.value_field
    
    def build_test_query(self) -> str:
        return (
            f'from(bucket: "{escape_flux_string(self.bucket)}")\n'
            "  |> range(start: -1m)\n"
            "  |> limit(n: 1)"
        )
    
    def build_data_query(self, params: QueryParams, schema: Optional[TableSchema] = None) -> str:
        """
        Build the plain data query. schema is accepted for interface parity and ignored.
        
        Raises:
            ValueError: If params is None
        """
        if params is None:
            raise ValueError("params is required")
        
        lines = self._source_lines(params)
        lines.append("  |> group()")
        lines.append('  |> sort(columns: ["_time"], desc: true)')
        
        if params.limit is not None:
            lines.append(f"  |> limit(n: {int(params.limit)})")
        
        logger.debug("flux.data_query_built", bucket=self.bucket, measurement=self.measurement)
        return "\n".join(lines)
    
    def build_aggregated_query(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str = "1m",
    ) -> str:
        """
        Build a windowed aggregate query over the value field.
        
        Args:
            params: Filters and time range
            function: Aggregate applied to each window
            window_period: Flux duration literal such as "5m"
        
        Raises:
            ValueError: If params is None
            InvalidQueryError: If window_period is not a duration literal
        """
        if params is None:
            raise ValueError("params is required")
        
        window_period = validate_window_period(window_period)
        function = AggregationFunction(function)
        
        lines = self._source_lines(params, value_field_only=True)
        lines.append("  |> map(fn: (r) => ({ r with _value: float(v: r._value) }))")
        lines.append(
            f"  |> aggregateWindow(every: {window_period}, fn: {function.flux_function}, createEmpty: false)"
        )
        lines.append('  |> sort(columns: ["_time"], desc: true)')
        
        logger.debug(
            "flux.aggregated_query_built",
            function=function.flux_function,
            window_period=window_period,
        )
        return "\n".join(lines)
    
    def build_distinct_values_query(self, column: str, params: QueryParams) -> str:
        """Build a query listing the distinct values of one column (single table)."""
        column = escape_flux_string(column)
        lines = self._source_lines(params)
        lines.append("  |> group()")
        lines.append(f'  |> keep(columns: ["{column}"])')
        lines.append(f'  |> unique(column: "{column}")')
        return "\n".join(lines)
    
    def validate_parameters(self, params: Optional[QueryParams]) -> bool:
        return validate_time_range(params)
    
    def _source_lines(self, params: QueryParams, value_field_only: bool = False) -> list[str]:
        start = format_rfc3339_millis(params.start_time)
        stop = format_rfc3339_millis(params.end_time)
        
        lines = [
            f'from(bucket: "{escape_flux_string(self.bucket)}")',
            f"  |> range(start: {start}, stop: {stop})",
            f'  |> filter(fn: (r) => r["_measurement"] == "{escape_flux_string(self.measurement)}")',
            "  |> filter(fn: (r) => "
            + " and ".join(f"exists r.{tag}" for tag in FLUX_TAGS.values())
            + ")",
        ]
        
        if value_field_only:
            lines.append(f'  |> filter(fn: (r) => r["_field"] == "{escape_flux_string(self.value_field)}")')
        
        for level, values in params.filters().items():
            if split_filter_values(values):
                predicate = build_multi_value_filter(FLUX_TAGS[level], values)
                lines.append(f"  |> filter(fn: (r) => {predicate})")
        
        return lines

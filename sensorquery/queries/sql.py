from typing import Any, Optional

from sensorquery.core.logging import get_logger
from sensorquery.schemas import AggregationFunction, QueryParams, TableSchema

from .base import validate_time_range
from .filters import split_filter_values, to_utc


logger = get_logger(__name__)

_INTERVAL_UNITS = {
    "s": "second",
    "m": "minute",
    "h": "hour",
    "d": "day",
}

# Result column aliases, shared with the row mapper
RESULT_COLUMNS = ("time", "valor", "coletor_id", "gateway_id", "equipment_id", "tag_id")


def quote_identifier(name: str) -> str:
    """Double-quote an SQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def qualified_table_name(schema: TableSchema) -> str:
    if not schema.schema_name:
        return quote_identifier(schema.table_name)
    return f"{quote_identifier(schema.schema_name)}.{quote_identifier(schema.table_name)}"


def window_period_to_interval(window_period: Optional[str]) -> str:
    """
    Translate a short duration into an interval literal body.
    
    Examples:
        >>> window_period_to_interval("5m")
        '5 minutes'
        
        >>> window_period_to_interval("1h")
        '1 hour'
        
        >>> window_period_to_interval("10x")
        '10 minutes'
    """
    if not window_period:
        return "1 minute"
    
    digits = ""
    for char in window_period:
        if not char.isdigit():
            break
        digits += char
    
    number = digits or "1"
    unit = window_period[len(digits):].lower()
    unit_name = _INTERVAL_UNITS.get(unit, "minute")
    
    return f"{number} {unit_name}{'' if number == '1' else 's'}"


def build_multi_value_filter(column: str, values: Optional[str], prefix: str) -> str:
    """
    Compile a comma-separated ID list into a predicate over bound parameters.
    
    Args:
        column: Physical column name
        values: Comma-separated IDs; empty means no restriction
        prefix: Bind parameter prefix; values bind as :{prefix}_0, :{prefix}_1, ...
    
    Returns:
        "1=1", a single equality, or an IN list
    """
    value_list = split_filter_values(values)
    if not value_list:
        return "1=1"
    
    if len(value_list) == 1:
        return f"{quote_identifier(column)} = :{prefix}_0"
    
    names = ", ".join(f":{prefix}_{index}" for index in range(len(value_list)))
    return f"{quote_identifier(column)} IN ({names})"


class SqlQueryBuilder:
    """
    Builds parameterized SQL for a telemetry table described by a TableSchema.
    
    Query text only references bind parameter names; the values come from
    build_parameters() and are passed to the driver separately.
    """
    
    def __init__(self, table_schema: Optional[TableSchema] = None):
        self.table_schema = table_schema or TableSchema()
    
    def build_test_query(self) -> str:
        return "SELECT 1"
    
    def build_data_query(self, params: QueryParams, schema: Optional[TableSchema] = None) -> str:
        """
        Raises:
            ValueError: If params is None
        """
        if params is None:
            raise ValueError("params is required")
        
        schema = schema or self.table_schema
        mapping = schema.column_mapping
        
        lines = [
            "SELECT",
            f"    {quote_identifier(mapping.time_column)} AS time,",
            f"    {quote_identifier(mapping.value_column)} AS valor,",
            *self._hierarchy_select(schema),
            f"FROM {qualified_table_name(schema)}",
            *self._where_lines(params, schema),
            f"ORDER BY {quote_identifier(mapping.time_column)} DESC",
        ]
        
        if params.limit is not None:
            lines.append("LIMIT :limit")
        
        logger.debug("sql.data_query_built", table=schema.table_name)
        return "\n".join(lines)
    
    def build_windowed_query(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str = "1m",
        schema: Optional[TableSchema] = None,
    ) -> str:
        """
        Build a time_bucket aggregate grouped by bucket and all hierarchy levels.
        
        Requires the TimescaleDB time_bucket function on the server.
        """
        if params is None:
            raise ValueError("params is required")
        
        schema = schema or self.table_schema
        mapping = schema.column_mapping
        time_col = quote_identifier(mapping.time_column)
        interval = window_period_to_interval(window_period)
        bucket = f"time_bucket(INTERVAL '{interval}', {time_col})"
        
        lines = [
            "SELECT",
            f"    {bucket} AS time,",
            f"    {self._aggregate_expression(AggregationFunction(function), schema)} AS valor,",
            *self._hierarchy_select(schema),
            f"FROM {qualified_table_name(schema)}",
            *self._where_lines(params, schema),
            # A physical column named "time" would shadow the alias in GROUP BY
            f"GROUP BY {bucket}, " + ", ".join(
                quote_identifier(column) for column in mapping.hierarchy_columns().values()
            ),
            "ORDER BY 1 DESC",
        ]
        
        logger.debug("sql.windowed_query_built", function=function, interval=interval)
        return "\n".join(lines)
    
    def build_parameters(self, params: QueryParams) -> dict[str, Any]:
        """Bind values matching the placeholders emitted by the build_* methods."""
        bound: dict[str, Any] = {
            "start_time": to_utc(params.start_time),
            "end_time": to_utc(params.end_time),
        }
        
        for level, values in params.filters().items():
            for index, value in enumerate(split_filter_values(values)):
                bound[f"{level}_{index}"] = value
        
        if params.limit is not None:
            bound["limit"] = int(params.limit)
        
        return bound
    
    def validate_parameters(self, params: Optional[QueryParams]) -> bool:
        return validate_time_range(params)
    
    def _hierarchy_select(self, schema: TableSchema) -> list[str]:
        columns = list(schema.column_mapping.hierarchy_columns().values())
        aliases = RESULT_COLUMNS[2:]
        lines = [
            f"    {quote_identifier(column)} AS {alias},"
            for column, alias in zip(columns, aliases)
        ]
        lines[-1] = lines[-1].rstrip(",")
        return lines
    
    def _where_lines(self, params: QueryParams, schema: TableSchema) -> list[str]:
        time_col = quote_identifier(schema.column_mapping.time_column)
        lines = [f"WHERE {time_col} BETWEEN :start_time AND :end_time"]
        
        columns = schema.column_mapping.hierarchy_columns()
        for level, values in params.filters().items():
            if split_filter_values(values):
                predicate = build_multi_value_filter(columns[level], values, level)
                lines.append(f"  AND ({predicate})")
        
        return lines
    
    def _aggregate_expression(self, function: AggregationFunction, schema: TableSchema) -> str:
        value_col = quote_identifier(schema.column_mapping.value_column)
        time_col = quote_identifier(schema.column_mapping.time_column)
        
        # FIRST_VALUE/LAST_VALUE are window functions, not aggregates
        if function is AggregationFunction.FIRST:
            return f"(array_agg({value_col} ORDER BY {time_col} ASC))[1]"
        if function is AggregationFunction.LAST:
            return f"(array_agg({value_col} ORDER BY {time_col} DESC))[1]"
        
        return f"{function.sql_function}({value_col})"

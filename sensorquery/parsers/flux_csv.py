"""
Parser for the CSV bodies returned by the InfluxDB /api/v2/query endpoint.

A single body may hold several result tables back to back. Each table
starts with its own header row, and column positions can differ between
tables, so column indices are re-resolved whenever a header row shows up
in the middle of the data.
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as date_parser

from sensorquery.core.logging import get_logger
from sensorquery.schemas import DataPoint


logger = get_logger(__name__)

ANNOTATION_MARKER = "#"
TIME_COLUMN = "_time"
VALUE_COLUMN = "_value"

_LINE_SPLIT = re.compile(r"[\r\n]+")


@dataclass(frozen=True)
class ColumnIndices:
    """Positions of the fields we read from the active header; -1 when absent."""
    time: int = -1
    value: int = -1
    collector_id: int = -1
    gateway_id: int = -1
    equipment_id: int = -1
    tag_id: int = -1

    @classmethod
    def from_header(cls, header: list[str]) -> "ColumnIndices":
        names = [clean_csv_value(cell).lower() for cell in header]

        def index_of(name: str) -> int:
            return names.index(name) if name in names else -1

        return cls(
            time=index_of(TIME_COLUMN),
            value=index_of(VALUE_COLUMN),
            collector_id=index_of("coletor_id"),
            gateway_id=index_of("gateway_id"),
            equipment_id=index_of("equipment_id"),
            tag_id=index_of("tag_id"),
        )


def clean_csv_value(value: Optional[str]) -> str:
    """
    Strip surrounding whitespace and one layer of double quotes.

    A value with a leading quote but no closing quote loses the leading one.
    """
    if not value:
        return ""

    value = value.strip()
    if len(value) > 1 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    if value.startswith('"'):
        return value[1:]
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse any timestamp dateutil understands; fall back to now (UTC)."""
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError, TypeError):
        return datetime.now(timezone.utc)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_header_line(cells: list[str]) -> bool:
    """
    A row is a header when its first cell is empty and it names both
    the _time and _value columns (case-insensitive).
    """
    if not cells or cells[0].strip():
        return False

    names = {clean_csv_value(cell).lower() for cell in cells}
    return TIME_COLUMN in names and VALUE_COLUMN in names


def _cell(cells: list[str], index: int) -> str:
    if 0 <= index < len(cells):
        return clean_csv_value(cells[index])
    return ""


def _split_lines(response: str) -> list[str]:
    return [line for line in _LINE_SPLIT.split(response) if line.strip()]


class FluxResponseParser:
    """Turns InfluxDB CSV responses into DataPoint lists. Stateless between calls."""

    def parse(self, response: Optional[str]) -> list[DataPoint]:
        """
        Parse a (possibly multi-table) CSV response.

        Args:
            response: Raw response body

        Returns:
            One DataPoint per data row. Rows are never rejected for the shape
            of their IDs; a structural failure returns the rows parsed so far.
        """
        points: list[DataPoint] = []
        if not response:
            return points

        try:
            lines = _split_lines(response)
            if len(lines) < 2:
                logger.warning("flux_parser.empty_response", line_count=len(lines))
                return points

            if lines[0].startswith(ANNOTATION_MARKER):
                header, data_start = lines[1].split(","), 2
            else:
                header, data_start = lines[0].split(","), 1

            indices = ColumnIndices.from_header(header)
            tables = 1

            for line in lines[data_start:]:
                cells = line.split(",")

                if is_header_line(cells):
                    indices = ColumnIndices.from_header(cells)
                    tables += 1
                    continue

                # Annotation rows of later tables
                if line.startswith(ANNOTATION_MARKER):
                    continue

                points.append(self._to_data_point(cells, indices))

            logger.debug("flux_parser.parsed", record_count=len(points), table_count=tables)
        except Exception as e:
            logger.error(
                "flux_parser.failed",
                parsed_so_far=len(points),
                error=str(e),
                exc_info=True,
            )

        return points

    def parse_distinct_values(self, response: Optional[str], column_name: str) -> list[str]:
        """
        Extract the distinct non-empty values of one column from a single-table response.

        Returns:
            Values in first-seen order; empty when the column is missing
        """
        values: list[str] = []
        if not response:
            return values

        try:
            lines = _split_lines(response)
            if not lines:
                return values

            if lines[0].startswith(ANNOTATION_MARKER):
                header_index = next(
                    (i for i, line in enumerate(lines) if not line.startswith(ANNOTATION_MARKER)),
                    None,
                )
                if header_index is None:
                    return values
            else:
                header_index = 0

            header = [clean_csv_value(cell) for cell in lines[header_index].split(",")]
            if column_name not in header:
                return values

            column_index = header.index(column_name)
            for line in lines[header_index + 1:]:
                value = _cell(line.split(","), column_index)
                if value:
                    values.append(value)
        except Exception as e:
            logger.error("flux_parser.distinct_failed", column=column_name, error=str(e))

        return list(dict.fromkeys(values))

    def _to_data_point(self, cells: list[str], indices: ColumnIndices) -> DataPoint:
        time_text = _cell(cells, indices.time)

        return DataPoint(
            time=parse_timestamp(time_text) if time_text else datetime.now(timezone.utc),
            value=_cell(cells, indices.value),
            collector_id=_cell(cells, indices.collector_id),
            gateway_id=_cell(cells, indices.gateway_id),
            equipment_id=_cell(cells, indices.equipment_id),
            tag_id=_cell(cells, indices.tag_id),
        )

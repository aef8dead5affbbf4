"""
Conversion of query results to pandas DataFrames for analysis.
"""
from typing import Iterable

import pandas as pd

from sensorquery.schemas import DataPoint


FRAME_COLUMNS = [
    "time",
    "collector_id",
    "gateway_id",
    "equipment_id",
    "tag_id",
    "value",
    "numeric_value",
    "aggregation_kind",
    "time_window",
]


def to_dataframe(points: Iterable[DataPoint]) -> pd.DataFrame:
    """
    Convert data points into a DataFrame.

    Args:
        points: Points from a query or an aggregation strategy

    Returns:
        DataFrame with FRAME_COLUMNS; numeric_value holds the value converted
        to float (NaN where the text is not numeric). Empty input gives an
        empty frame with the same columns.
    """
    records = [point.model_dump() for point in points]

    if not records:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    df = pd.DataFrame(records)
    df["time"] = pd.to_datetime(df["time"], utc=True)
    df["numeric_value"] = pd.to_numeric(df["value"], errors="coerce")

    return df[FRAME_COLUMNS]

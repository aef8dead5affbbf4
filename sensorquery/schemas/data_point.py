from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DataPoint(BaseModel):
    """
    Single normalized telemetry record.
    
    The four hierarchy IDs are opaque strings (collector > gateway > equipment > tag).
    The value is kept as text because backends return heterogeneous representations.
    
    Example:
        DataPoint(
            time=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
            collector_id="1", gateway_id="2", equipment_id="3", tag_id="T1",
            value="45.5",
        )
    """
    model_config = ConfigDict(frozen=True)

    time: datetime = Field(default_factory=utc_now)
    collector_id: str = ""
    gateway_id: str = ""
    equipment_id: str = ""
    tag_id: str = ""
    value: str = ""
    
    # Set by aggregation strategies only
    aggregation_kind: Optional[str] = None
    time_window: Optional[str] = None
    
    def annotate(self, aggregation_kind: str, time_window: str) -> "DataPoint":
        """Copy of the point tagged with the aggregation that produced it."""
        return self.model_copy(update={"aggregation_kind": aggregation_kind, "time_window": time_window})
    
    def numeric_value(self) -> Optional[float]:
        """
        Convert the value to float.
        
        Returns:
            The numeric value, or None when the text is not a number
        """
        try:
            return float(self.value.strip())
        except (AttributeError, ValueError):
            return None

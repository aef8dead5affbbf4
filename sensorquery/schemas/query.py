from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from sensorquery.core.config import settings

from .data_point import utc_now


# Hierarchy levels from outermost to innermost
HIERARCHY_LEVELS = ("collector_id", "gateway_id", "equipment_id", "tag_id")


def _default_start() -> datetime:
    return utc_now() - timedelta(hours=24)


def _default_limit() -> Optional[int]:
    return settings.default_query_limit


class QueryParams(BaseModel):
    """
    Backend-neutral description of what to fetch.
    
    Each ID filter is an optional comma-separated list: several IDs mean
    "any of these", an empty or missing filter means no restriction.
    start_time < end_time is checked by query builders and connections,
    not here, so that callers get a single rejection point.
    """
    collector_id: Optional[str] = None
    gateway_id: Optional[str] = None
    equipment_id: Optional[str] = None
    tag_id: Optional[str] = None
    start_time: datetime = Field(default_factory=_default_start)
    end_time: datetime = Field(default_factory=utc_now)
    limit: Optional[int] = Field(default_factory=_default_limit, gt=0)
    
    def is_valid(self) -> bool:
        return self.start_time < self.end_time
    
    def filters(self) -> dict[str, Optional[str]]:
        """Return the hierarchy filters keyed by level name, outermost first."""
        return {level: getattr(self, level) for level in HIERARCHY_LEVELS}

"""Wire DTOs for the historian HTTP API (JSON field names are the API's)."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class InlineCredentials(BaseModel):
    """InfluxDB credentials sent with each request instead of a managed connection id."""
    host: str
    port: int
    org: str
    bucket: str
    token: str


class AggregationRequest(BaseModel):
    type: str
    window_period: str


class QueryRequest(BaseModel):
    """Body of POST /api/query."""
    model_config = ConfigDict(populate_by_name=True)
    
    connection_id: Optional[int] = None
    inline_credentials: Optional[InlineCredentials] = None
    measurement: str
    collector_ids: Optional[list[str]] = Field(default=None, alias="coletor_ids")
    gateway_ids: Optional[list[str]] = None
    equipment_ids: Optional[list[str]] = None
    tag_ids: Optional[list[str]] = None
    start_time: datetime
    end_time: datetime
    limit: int
    aggregation: Optional[AggregationRequest] = None


class DataPointDTO(BaseModel):
    # The API may return numeric JSON for values and IDs
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)
    
    time: datetime
    collector_id: Optional[str] = Field(default=None, alias="coletor_id")
    gateway_id: Optional[str] = None
    equipment_id: Optional[str] = None
    tag_id: Optional[str] = None
    value: Optional[str] = Field(default=None, alias="valor")


class QueryResponse(BaseModel):
    data: Optional[list[DataPointDTO]] = None
    total_count: int = 0
    query_time_ms: float = 0.0


class TagDTO(BaseModel):
    id: str
    name: str


class TagsResponse(BaseModel):
    connection_id: int
    connection_name: Optional[str] = None
    connection_type: Optional[str] = None
    tags: Optional[list[TagDTO]] = None
    count: int = 0

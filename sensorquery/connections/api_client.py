import time
from datetime import timedelta
from typing import Optional

import httpx
from pydantic import ValidationError

from sensorquery.core.config import settings
from sensorquery.core.exceptions import DataSourceError
from sensorquery.core.logging import get_logger
from sensorquery.schemas import DataPoint, QueryRequest, QueryResponse, TagsResponse


logger = get_logger(__name__)


class ApiClient:
    """
    Async client for the historian HTTP API.

    Endpoints:
        GET  /health                 liveness check
        POST /api/query              query (optionally aggregated) data
        GET  /api/tags/{connection}  tag discovery for a managed connection
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = (base_url or settings.api_url).rstrip("/")
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds or settings.api_timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )

        logger.info("api_client.initialized", base_url=base_url)

    async def test_connection(self) -> tuple[bool, str, timedelta]:
        """
        Check /health.

        Returns:
            (success, message, latency); never raises for HTTP or network errors
        """
        started = time.perf_counter()

        try:
            response = await self._client.get("/health")
        except httpx.TimeoutException as e:
            logger.error("api_client.health_timeout", error=str(e))
            return False, "Request timeout", _elapsed(started)
        except httpx.HTTPError as e:
            logger.error("api_client.health_failed", error=str(e))
            return False, f"HTTP request failed: {e}", _elapsed(started)

        latency = _elapsed(started)
        if response.is_success:
            logger.info("api_client.health_ok", latency_ms=round(latency.total_seconds() * 1000))
            return True, "API connection successful", latency

        message = f"API returned status code: {response.status_code}"
        logger.warning("api_client.health_failed", status_code=response.status_code)
        return False, message, latency

    async def query(self, request: QueryRequest) -> list[DataPoint]:
        """
        Send a query request.

        Raises:
            DataSourceError: On HTTP errors, non-2xx responses or an unreadable body
        """
        payload = request.model_dump(mode="json", by_alias=True)
        logger.debug("api_client.query_request", measurement=request.measurement, limit=request.limit)

        try:
            response = await self._client.post("/api/query", json=payload)
            if not response.is_success:
                raise DataSourceError(
                    f"API query failed with status {response.status_code}: {response.text}"
                )
            body = QueryResponse.model_validate_json(response.content)
        except httpx.HTTPError as e:
            logger.error("api_client.query_http_error", error=str(e))
            raise DataSourceError(f"Failed to query data from API: {e}") from e
        except ValidationError as e:
            logger.error("api_client.query_bad_response", error=str(e))
            raise DataSourceError(f"Failed to parse API response: {e}") from e

        if not body.data:
            logger.warning("api_client.empty_response")
            return []

        logger.info(
            "api_client.query_completed",
            total_count=body.total_count,
            query_time_ms=round(body.query_time_ms),
        )
        return [
            DataPoint(
                time=dto.time,
                collector_id=dto.collector_id or "",
                gateway_id=dto.gateway_id or "",
                equipment_id=dto.equipment_id or "",
                tag_id=dto.tag_id or "",
                value=dto.value or "",
            )
            for dto in body.data
        ]

    async def get_tags(self, connection_id: int) -> list[tuple[str, str]]:
        """
        List (id, name) tags for a connection managed by the API.

        Raises:
            DataSourceError: On HTTP errors or an unreadable body
        """
        try:
            response = await self._client.get(f"/api/tags/{connection_id}")
            if not response.is_success:
                raise DataSourceError(
                    f"Failed to get tags with status {response.status_code}: {response.text}"
                )
            body = TagsResponse.model_validate_json(response.content)
        except (httpx.HTTPError, ValidationError) as e:
            logger.error("api_client.tags_failed", connection_id=connection_id, error=str(e))
            raise DataSourceError(f"Failed to get tags from API: {e}") from e

        return [(tag.id, tag.name) for tag in body.tags or []]

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("api_client.closed")


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)

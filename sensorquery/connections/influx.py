import time
from datetime import timedelta
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from sensorquery.core.config import settings
from sensorquery.core.exceptions import DataSourceError
from sensorquery.core.influx import InfluxQueryClient
from sensorquery.core.logging import get_logger
from sensorquery.parsers import FluxResponseParser
from sensorquery.queries import FluxQueryBuilder
from sensorquery.schemas import (
    AggregationFunction,
    BackendKind,
    ConnectionInfo,
    ConnectionResult,
    DataPoint,
    QueryParams,
)

from .base import ConnectionBase


logger = get_logger(__name__)


class InfluxConfig(BaseModel):
    """Decrypted settings for a direct InfluxDB 2.x connection."""
    url: str
    token: str
    org: str
    bucket: str
    measurement: str = Field(default_factory=lambda: settings.raw_measurement)
    timeout_seconds: int = Field(default_factory=lambda: settings.influx_timeout_seconds)


class InfluxConnection(ConnectionBase):
    """
    Connection to InfluxDB 2.x over the Flux query API.

    Supports aggregation push-down through aggregateWindow.
    """

    def __init__(
        self,
        config: InfluxConfig,
        query_builder: Optional[FluxQueryBuilder] = None,
        parser: Optional[FluxResponseParser] = None,
        client: Optional[InfluxQueryClient] = None,
    ):
        self.config = config
        self.query_builder = query_builder or FluxQueryBuilder(config.bucket, config.measurement)
        self.parser = parser or FluxResponseParser()
        self.client = client or InfluxQueryClient(
            url=config.url,
            token=config.token,
            org=config.org,
            timeout_seconds=config.timeout_seconds,
        )
        self.last_query: Optional[str] = None
        self.last_raw_response: Optional[str] = None
        # Filled by test_connection
        self.server_version: Optional[str] = None

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind.INFLUXDB

    async def test_connection(self) -> ConnectionResult:
        """Ping the server and run a minimal query against the bucket."""
        started = time.perf_counter()

        try:
            if not await self.client.ping():
                return ConnectionResult.failure(
                    f"InfluxDB at {self.config.url} did not answer ping",
                    latency=_elapsed(started),
                )

            await self.client.execute_query(self.query_builder.build_test_query())
            self.server_version = await self.client.version()
            latency = _elapsed(started)

            logger.info("influx.connection_ok", url=self.config.url, latency_ms=latency.total_seconds() * 1000)
            return ConnectionResult.success(
                f"Connected to InfluxDB bucket '{self.config.bucket}'",
                latency=latency,
                metadata={"org": self.config.org, "bucket": self.config.bucket, "version": self.server_version},
            )
        except Exception as e:
            logger.warning("influx.connection_failed", url=self.config.url, error=str(e))
            return ConnectionResult.failure(
                f"InfluxDB connection failed: {e}",
                error=e,
                latency=_elapsed(started),
            )

    async def query_data(self, params: QueryParams) -> list[DataPoint]:
        """
        Fetch raw points matching params.

        Raises:
            InvalidQueryError: If params is None or the time range is empty
            DataSourceError: If the query fails
        """
        params = self.ensure_valid_params(params)
        return await self._execute(self.query_builder.build_data_query(params))

    async def query_aggregated_data(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str,
    ) -> list[DataPoint]:
        """
        Fetch points aggregated by the server per window.

        Args:
            params: Filters and time range
            function: Aggregate evaluated in each window
            window_period: Window length such as "5m"

        Raises:
            InvalidQueryError: If params or window_period are invalid
            DataSourceError: If the query fails
        """
        params = self.ensure_valid_params(params)
        flux = self.query_builder.build_aggregated_query(params, function, window_period)
        return await self._execute(flux)

    async def distinct_values(self, column: str, params: QueryParams) -> list[str]:
        """List the distinct values of a tag column in the time range (discovery helper)."""
        params = self.ensure_valid_params(params)
        flux = self.query_builder.build_distinct_values_query(column, params)
        self.last_query = flux

        try:
            response = await self.client.execute_query(flux)
        except Exception as e:
            logger.error("influx.distinct_failed", column=column, error=str(e))
            raise DataSourceError(f"InfluxDB discovery query failed: {e}") from e

        return self.parser.parse_distinct_values(response, column)

    def get_connection_info(self) -> ConnectionInfo:
        parsed = urlparse(self.config.url)
        return ConnectionInfo(
            backend_kind=self.backend_kind,
            host=parsed.hostname or self.config.url,
            database_name=self.config.bucket,
            username=self.config.org,
            is_secure=parsed.scheme == "https",
            server_version=self.server_version,
        )

    async def close(self) -> None:
        await self.client.close()

    async def _execute(self, flux: str) -> list[DataPoint]:
        self.last_query = flux
        logger.debug("influx.query", flux=flux)

        started = time.perf_counter()
        try:
            response = await self.client.execute_query(flux)
        except Exception as e:
            logger.error("influx.query_failed", bucket=self.config.bucket, error=str(e))
            raise DataSourceError(f"InfluxDB query failed: {e}") from e

        self.last_raw_response = response
        points = self.parser.parse(response)

        logger.info(
            "influx.query_completed",
            bucket=self.config.bucket,
            record_count=len(points),
            duration_ms=round(_elapsed(started).total_seconds() * 1000, 1),
        )
        return points


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)

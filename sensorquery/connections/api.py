"""
Connections that reach InfluxDB through the historian HTTP API.

The API runs next to InfluxDB (in a container), so the InfluxDB credentials
travel inline with every request instead of a managed connection id.
"""
from typing import Optional

from pydantic import BaseModel, Field

from sensorquery.core.config import settings
from sensorquery.core.exceptions import InvalidConfigurationError
from sensorquery.core.logging import get_logger
from sensorquery.queries import split_filter_values
from sensorquery.schemas import (
    AggregationFunction,
    AggregationRequest,
    BackendKind,
    ConnectionInfo,
    ConnectionResult,
    DataPoint,
    InlineCredentials,
    QueryParams,
    QueryRequest,
)

from .api_client import ApiClient
from .base import ConnectionBase


logger = get_logger(__name__)

# Host name the containerised API uses to reach services on the caller's machine
DOCKER_HOST_ALIAS = "host.docker.internal"


class ApiConfig(BaseModel):
    """Decrypted settings for an API-fronted InfluxDB source."""
    api_url: str = Field(default_factory=lambda: settings.api_url)
    influx_host: str = "vortex_influxdb"
    influx_port: int = 8086
    influx_org: str = "vortex"
    influx_bucket: str = "dados_airflow"
    influx_token: str = ""
    timeout_seconds: int = Field(default_factory=lambda: settings.api_timeout_seconds)

    def is_valid(self) -> bool:
        return (
            bool(self.influx_host and self.influx_host.strip())
            and self.influx_port > 0
            and bool(self.influx_org and self.influx_org.strip())
            and bool(self.influx_bucket and self.influx_bucket.strip())
            and bool(self.influx_token and self.influx_token.strip())
            and self.timeout_seconds > 0
        )

    def inline_credentials(self) -> InlineCredentials:
        host = DOCKER_HOST_ALIAS if self.influx_host == "localhost" else self.influx_host
        return InlineCredentials(
            host=host,
            port=self.influx_port,
            org=self.influx_org,
            bucket=self.influx_bucket,
            token=self.influx_token,
        )


def _filter_list(values: Optional[str]) -> Optional[list[str]]:
    # None means "no filter" to the API
    return split_filter_values(values) or None


class ApiConnectionBase(ConnectionBase):
    """Shared request building and lifecycle for the API-fronted connections."""

    measurement: str = ""
    label: str = "Historian API"

    def __init__(self, config: ApiConfig, client: Optional[ApiClient] = None):
        if not config.is_valid():
            raise InvalidConfigurationError("Invalid API configuration: missing InfluxDB credentials")

        self.config = config
        self.client = client or ApiClient(config.api_url, config.timeout_seconds)
        self.last_query: Optional[str] = None

        logger.info(
            "api_connection.initialized",
            backend=self.backend_kind.value,
            influx_host=config.influx_host,
            influx_port=config.influx_port,
        )

    async def test_connection(self) -> ConnectionResult:
        try:
            success, message, latency = await self.client.test_connection()
        except Exception as e:
            logger.error("api_connection.test_failed", error=str(e))
            return ConnectionResult.failure(f"Failed to connect to {self.label}: {e}", error=e)

        if not success:
            return ConnectionResult.failure(message, latency=latency)

        return ConnectionResult.success(
            f"Connected to {self.label} - InfluxDB: {self.config.influx_host}:{self.config.influx_port}",
            latency=latency,
            metadata={
                "api_url": self.config.api_url,
                "influx_host": self.config.influx_host,
                "influx_port": self.config.influx_port,
                "influx_org": self.config.influx_org,
                "influx_bucket": self.config.influx_bucket,
                "measurement": self.measurement,
            },
        )

    async def query_data(self, params: QueryParams) -> list[DataPoint]:
        """
        Raises:
            InvalidQueryError: If params is None or the time range is empty
            DataSourceError: If the API call fails
        """
        params = self.ensure_valid_params(params)
        request = self.build_request(params)

        logger.info(
            "api_connection.query",
            measurement=self.measurement,
            collector_id=params.collector_id,
            gateway_id=params.gateway_id,
            equipment_id=params.equipment_id,
            tag_id=params.tag_id,
        )
        points = await self.client.query(request)
        logger.info("api_connection.query_completed", measurement=self.measurement, record_count=len(points))
        return points

    async def get_tags(self, connection_id: int) -> list[tuple[str, str]]:
        return await self.client.get_tags(connection_id)

    def build_request(
        self,
        params: QueryParams,
        aggregation: Optional[AggregationRequest] = None,
    ) -> QueryRequest:
        request = QueryRequest(
            inline_credentials=self.config.inline_credentials(),
            measurement=self.measurement,
            collector_ids=_filter_list(params.collector_id),
            gateway_ids=_filter_list(params.gateway_id),
            equipment_ids=_filter_list(params.equipment_id),
            tag_ids=_filter_list(params.tag_id),
            start_time=params.start_time,
            end_time=params.end_time,
            limit=params.limit or settings.default_query_limit,
            aggregation=aggregation,
        )
        # Never keep the token in the debug copy
        self.last_query = request.model_dump_json(by_alias=True, exclude={"inline_credentials": {"token"}})
        return request

    def get_connection_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            backend_kind=self.backend_kind,
            host=f"{self.config.api_url} -> {self.config.influx_host}:{self.config.influx_port}",
            database_name=f"{self.config.influx_org}/{self.config.influx_bucket} ({self.measurement})",
            username=self.label,
            is_secure=self.config.api_url.lower().startswith("https://"),
            server_version=f"{self.label} (inline credentials)",
        )

    async def close(self) -> None:
        await self.client.close()


class HistorianApiConnection(ApiConnectionBase):
    """Raw measurement through the API; aggregation is pushed down to the API."""

    label = "Historian API"

    def __init__(self, config: ApiConfig, client: Optional[ApiClient] = None):
        self.measurement = settings.raw_measurement
        super().__init__(config, client)

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind.HISTORIAN_API

    async def query_aggregated_data(
        self,
        params: QueryParams,
        function: AggregationFunction,
        window_period: str,
    ) -> list[DataPoint]:
        """
        Ask the API to aggregate each window server side.

        Args:
            params: Filters and time range
            function: Aggregate evaluated per window
            window_period: Window length such as "5m"

        Raises:
            InvalidQueryError: If params is None or the time range is empty
            DataSourceError: If the API call fails
        """
        params = self.ensure_valid_params(params)
        function = AggregationFunction(function)

        request = self.build_request(
            params,
            AggregationRequest(type=function.flux_function, window_period=window_period),
        )

        logger.info(
            "api_connection.aggregated_query",
            function=function.flux_function,
            window_period=window_period,
        )
        points = await self.client.query(request)
        logger.info("api_connection.aggregated_query_completed", record_count=len(points))
        return points


class PreAggregatedApiConnection(ApiConnectionBase):
    """
    Pre-aggregated measurement through the API.

    Rows already carry their aggregation in their IDs, so there is no
    aggregation capability here; the local filtering strategy selects rows.
    """

    label = "Pre-aggregated Historian API"

    def __init__(self, config: ApiConfig, client: Optional[ApiClient] = None):
        self.measurement = settings.aggregated_measurement
        super().__init__(config, client)

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind.PREAGGREGATED_API

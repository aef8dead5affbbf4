from typing import Optional

from influxdb_client import Dialect
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from .config import settings
from .logging import get_logger


logger = get_logger(__name__)

# Header row only, no annotation rows: every result table starts with its own header line
RAW_CSV_DIALECT = Dialect(header=True, annotations=[], delimiter=",")


class InfluxQueryClient:
    """
    Thin async transport around InfluxDBClientAsync.
    
    The underlying client is created on first use so that it binds to the
    running event loop, and is owned by this object until close().
    """
    
    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        timeout_seconds: Optional[int] = None,
    ):
        self.url = url
        self.org = org
        self._token = token
        self._timeout_ms = (timeout_seconds or settings.influx_timeout_seconds) * 1000
        self._client: Optional[InfluxDBClientAsync] = None
    
    async def get_client(self) -> InfluxDBClientAsync:
        """
        Get or create the InfluxDB client instance.
        
        Returns:
            InfluxDB async client
        """
        if self._client is None:
            self._client = InfluxDBClientAsync(
                url=self.url,
                token=self._token,
                org=self.org,
                timeout=self._timeout_ms,
            )
        
        return self._client
    
    async def execute_query(self, flux: str) -> str:
        """
        Execute a Flux query and return the raw CSV response body.
        
        Args:
            flux: Flux query string
        
        Returns:
            CSV text; may contain several result tables, each with its own header
        """
        client = await self.get_client()
        query_api = client.query_api()
        
        return await query_api.query_raw(flux, org=self.org, dialect=RAW_CSV_DIALECT)
    
    async def ping(self) -> bool:
        """Return True when the server /ping endpoint answers."""
        client = await self.get_client()
        return await client.ping()

    async def version(self) -> str:
        """Server version as reported in the /ping response headers."""
        client = await self.get_client()
        return await client.version()

    async def close(self) -> None:
        """Close the InfluxDB client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.debug("influx.client_closed", url=self.url)

from typing import Callable, Optional
from urllib.parse import urlparse

from sensorquery.connections import (
    ApiConfig,
    DataSourceConnection,
    HistorianApiConnection,
    InfluxConfig,
    InfluxConnection,
    PostgresConfig,
    PostgresConnection,
    PreAggregatedApiConnection,
)
from sensorquery.core.config import settings
from sensorquery.core.exceptions import InvalidConfigurationError, UnsupportedBackendError
from sensorquery.core.logging import get_logger
from sensorquery.core.security import ENCRYPTION_PREFIX, CredentialEncryptor, FernetCredentialEncryptor
from sensorquery.parsers import FluxResponseParser
from sensorquery.queries import FluxQueryBuilder, SqlQueryBuilder
from sensorquery.schemas import BackendKind, ConnectionSettings, DataSourceConfig, TableSchema


logger = get_logger(__name__)

DEFAULT_INFLUX_URL = "http://localhost:8086"
DEFAULT_TABLE = "dados_airflow"


def extract_host(url: Optional[str]) -> str:
    """Host part of a URL or of a bare "host:port" string."""
    if not url or not url.strip():
        return "localhost"

    parsed = urlparse(url if "://" in url else f"//{url}")
    return parsed.hostname or url.split(":")[0]


def extract_port(url: Optional[str], default_port: int) -> int:
    """Port part of a URL or of a bare "host:port" string, else default_port."""
    if not url or not url.strip():
        return default_port

    parsed = urlparse(url if "://" in url else f"//{url}")
    try:
        return parsed.port or default_port
    except ValueError:
        return default_port


class DatabaseConnectionFactory:
    """
    Builds ready-to-use connections from stored data source configurations.

    Stored secrets are decrypted through the encryptor. The caller owns the
    returned connection and must close it (or use it with "async with").
    """

    def __init__(self, encryptor: Optional[CredentialEncryptor] = None):
        self._encryptor = encryptor
        self._factories: dict[BackendKind, Callable[[DataSourceConfig], DataSourceConnection]] = {
            BackendKind.HISTORIAN_API: self._create_historian_api_connection,
            BackendKind.PREAGGREGATED_API: self._create_preaggregated_api_connection,
            BackendKind.INFLUXDB: self._create_influx_connection,
            BackendKind.POSTGRESQL: self._create_postgres_connection,
        }

    @property
    def encryptor(self) -> CredentialEncryptor:
        # Created on first use so configs with plain or empty secrets need no key
        if self._encryptor is None:
            self._encryptor = FernetCredentialEncryptor()
        return self._encryptor

    def create_connection(self, config: DataSourceConfig) -> DataSourceConnection:
        """
        Create the connection for a data source configuration.

        Args:
            config: Backend kind, connection settings and table schema

        Returns:
            A new, unopened connection

        Raises:
            InvalidConfigurationError: If config is None or misses required fields
            UnsupportedBackendError: If the backend kind has no implementation
            CredentialError: If a stored secret cannot be decrypted
        """
        if config is None:
            raise InvalidConfigurationError("Data source configuration is required")

        if not config.is_valid():
            raise InvalidConfigurationError(
                f"Invalid configuration for {config.backend_kind.display_name}: required fields are missing"
            )

        factory = self._factories.get(config.backend_kind)
        if factory is None:
            raise UnsupportedBackendError(
                f"Backend '{config.backend_kind.value}' is not implemented yet. "
                f"Supported types: {', '.join(self.supported_kinds())}"
            )

        logger.info("connection_factory.create", backend=config.backend_kind.value)
        return factory(config)

    def create_default_config(self, backend_kind: BackendKind) -> DataSourceConfig:
        """Pre-filled configuration for a backend kind (secrets left empty)."""
        backend_kind = BackendKind(backend_kind)

        if backend_kind.is_api or backend_kind.is_time_series:
            connection_settings = ConnectionSettings(
                url=DEFAULT_INFLUX_URL,
                org="vortex",
                bucket="vortex_data",
                encrypted_token="",
            )
            return DataSourceConfig(backend_kind=backend_kind, connection_settings=connection_settings)

        defaults = {
            BackendKind.POSTGRESQL: ("vortex", "postgres", "public"),
            BackendKind.MYSQL: ("vortex", "root", ""),
            BackendKind.ORACLE: ("ORCL", "system", ""),
            BackendKind.SQLSERVER: ("vortex", "sa", "dbo"),
        }
        database_name, username, schema_name = defaults[backend_kind]

        return DataSourceConfig(
            backend_kind=backend_kind,
            connection_settings=ConnectionSettings(
                host="localhost",
                port=backend_kind.default_port,
                database_name=database_name,
                username=username,
                encrypted_password="",
                use_ssl=False,
            ),
            table_schema=TableSchema(schema_name=schema_name, table_name=DEFAULT_TABLE),
        )

    def is_supported(self, backend_kind: BackendKind) -> bool:
        return backend_kind in self._factories

    def supported_kinds(self) -> list[str]:
        return [kind.value for kind in self._factories]

    def _decrypt(self, value: Optional[str]) -> str:
        if not value:
            return ""
        # Plain values never need a key
        if self._encryptor is None and not value.startswith(ENCRYPTION_PREFIX):
            logger.warning("credential.decrypt_plaintext")
            return value
        return self.encryptor.decrypt(value)

    def _api_config(self, config: DataSourceConfig) -> ApiConfig:
        cs = config.connection_settings
        url = cs.url or DEFAULT_INFLUX_URL

        return ApiConfig(
            api_url=cs.custom_fields.get("api_url", settings.api_url),
            influx_host=extract_host(url),
            influx_port=extract_port(url, BackendKind.INFLUXDB.default_port),
            influx_org=cs.org or "vortex",
            influx_bucket=cs.bucket or "vortex_data",
            influx_token=self._decrypt(cs.encrypted_token),
            timeout_seconds=settings.api_timeout_seconds,
        )

    def _create_historian_api_connection(self, config: DataSourceConfig) -> DataSourceConnection:
        return HistorianApiConnection(self._api_config(config))

    def _create_preaggregated_api_connection(self, config: DataSourceConfig) -> DataSourceConnection:
        return PreAggregatedApiConnection(self._api_config(config))

    def _create_influx_connection(self, config: DataSourceConfig) -> DataSourceConnection:
        cs = config.connection_settings
        influx_config = InfluxConfig(
            url=cs.url or DEFAULT_INFLUX_URL,
            token=self._decrypt(cs.encrypted_token),
            org=cs.org or "vortex",
            bucket=cs.bucket or "vortex_data",
        )

        return InfluxConnection(
            influx_config,
            query_builder=FluxQueryBuilder(influx_config.bucket, influx_config.measurement),
            parser=FluxResponseParser(),
        )

    def _create_postgres_connection(self, config: DataSourceConfig) -> DataSourceConnection:
        cs = config.connection_settings
        table_schema = config.table_schema
        if not table_schema.table_name:
            table_schema = table_schema.model_copy(update={"table_name": DEFAULT_TABLE})

        pg_config = PostgresConfig(
            host=cs.host or "localhost",
            port=cs.port or BackendKind.POSTGRESQL.default_port,
            database_name=cs.database_name or "",
            username=cs.username or "",
            password=self._decrypt(cs.encrypted_password),
            use_ssl=cs.use_ssl,
            connection_string=cs.connection_string,
            table_schema=table_schema,
        )

        return PostgresConnection(pg_config, query_builder=SqlQueryBuilder(table_schema))

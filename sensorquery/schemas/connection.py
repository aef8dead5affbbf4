from datetime import timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .table_schema import TableSchema


class BackendKind(str, Enum):
    """Data store or API family a connection talks to."""
    INFLUXDB = "influxdb"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ORACLE = "oracle"
    SQLSERVER = "sqlserver"
    HISTORIAN_API = "historian_api"
    PREAGGREGATED_API = "preaggregated_api"
    
    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]
    
    @property
    def is_relational(self) -> bool:
        return self in (
            BackendKind.POSTGRESQL,
            BackendKind.MYSQL,
            BackendKind.ORACLE,
            BackendKind.SQLSERVER,
        )
    
    @property
    def is_time_series(self) -> bool:
        return self is BackendKind.INFLUXDB
    
    @property
    def is_api(self) -> bool:
        return self in (BackendKind.HISTORIAN_API, BackendKind.PREAGGREGATED_API)
    
    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_DISPLAY_NAMES = {
    BackendKind.INFLUXDB: "InfluxDB",
    BackendKind.POSTGRESQL: "PostgreSQL",
    BackendKind.MYSQL: "MySQL",
    BackendKind.ORACLE: "Oracle Database",
    BackendKind.SQLSERVER: "SQL Server",
    BackendKind.HISTORIAN_API: "Historian API (raw data)",
    BackendKind.PREAGGREGATED_API: "Historian API (pre-aggregated data)",
}

_DEFAULT_PORTS = {
    BackendKind.INFLUXDB: 8086,
    BackendKind.POSTGRESQL: 5432,
    BackendKind.MYSQL: 3306,
    BackendKind.ORACLE: 1521,
    BackendKind.SQLSERVER: 1433,
    BackendKind.HISTORIAN_API: 8000,
    BackendKind.PREAGGREGATED_API: 8000,
}


class ConnectionSettings(BaseModel):
    """
    Stored connection fields for every backend kind.
    
    Secrets are kept encrypted at rest (encrypted_password, encrypted_token)
    and decrypted by the connection factory.
    """
    # Relational
    host: Optional[str] = None
    port: int = 0
    username: Optional[str] = None
    encrypted_password: Optional[str] = None
    database_name: Optional[str] = None
    use_ssl: bool = False
    connection_string: Optional[str] = None
    
    # InfluxDB / API
    url: Optional[str] = None
    encrypted_token: Optional[str] = None
    org: Optional[str] = None
    bucket: Optional[str] = None
    
    custom_fields: dict[str, str] = Field(default_factory=dict)


class DataSourceConfig(BaseModel):
    """Backend kind plus everything needed to open a connection to it."""
    backend_kind: BackendKind = BackendKind.HISTORIAN_API
    connection_settings: ConnectionSettings = Field(default_factory=ConnectionSettings)
    table_schema: TableSchema = Field(default_factory=TableSchema)
    config_version: int = 2
    
    def is_valid(self) -> bool:
        """
        Check that the fields required by the declared backend kind are present.
        
        API and InfluxDB backends need a token; relational backends need either
        a connection string or host, port, database name and username.
        """
        cs = self.connection_settings
        if cs is None:
            return False
        
        if self.backend_kind.is_api or self.backend_kind.is_time_series:
            return bool(cs.encrypted_token)
        
        if self.backend_kind.is_relational:
            if cs.connection_string:
                return True
            return bool(cs.host) and cs.port > 0 and bool(cs.database_name) and bool(cs.username)
        
        return False


class ConnectionInfo(BaseModel):
    """Read-only description of an open connection."""
    model_config = ConfigDict(frozen=True)
    
    backend_kind: BackendKind
    host: str = ""
    database_name: str = ""
    username: Optional[str] = None
    is_secure: bool = False
    server_version: Optional[str] = None
    
    def __str__(self) -> str:
        return f"{self.backend_kind.display_name} - {self.host}/{self.database_name}"


class ConnectionResult(BaseModel):
    """Read-only outcome of a connectivity test."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
    
    is_successful: bool
    message: str
    latency: timedelta = timedelta(0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[BaseException] = Field(default=None, exclude=True)
    
    @classmethod
    def success(
        cls,
        message: str = "Connection established successfully",
        latency: timedelta = timedelta(0),
        metadata: Optional[dict[str, Any]] = None,
    ) -> "ConnectionResult":
        return cls(is_successful=True, message=message, latency=latency, metadata=metadata or {})
    
    @classmethod
    def failure(
        cls,
        message: str,
        error: Optional[BaseException] = None,
        latency: timedelta = timedelta(0),
    ) -> "ConnectionResult":
        return cls(is_successful=False, message=message, error=error, latency=latency)

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SENSORQUERY_",
        case_sensitive=False,
        extra="ignore",
    )
    
    # App
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")
    
    # Queries
    default_query_limit: int = Field(default=1000)
    raw_measurement: str = Field(default="dados_rabbitmq")
    aggregated_measurement: str = Field(default="dados_airflow")
    value_field: str = Field(default="valor")
    
    # InfluxDB
    influx_timeout_seconds: int = Field(default=120)
    
    # Relational
    sql_command_timeout_seconds: int = Field(default=60)
    
    # Historian HTTP API
    api_url: str = Field(default="http://localhost:8000")
    api_timeout_seconds: int = Field(default=30)
    
    # Credentials (Fernet key, urlsafe base64)
    credential_key: str = Field(default="")


# Singleton instance
settings = Settings()

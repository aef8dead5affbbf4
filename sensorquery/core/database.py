from typing import Optional, Union

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .config import settings


def create_engine(
    url: Union[str, URL],
    command_timeout: Optional[int] = None,
    use_ssl: bool = False,
) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine for a relational data source.

    Args:
        url: SQLAlchemy database URL (e.g. postgresql+asyncpg://user:pw@host:5432/db)
        command_timeout: Statement timeout in seconds (asyncpg only)
        use_ssl: Require TLS (asyncpg only)

    Returns:
        AsyncEngine owned by the caller; dispose() it when done
    """
    connect_args = {}
    if str(url).startswith("postgresql+asyncpg"):
        connect_args["command_timeout"] = command_timeout or settings.sql_command_timeout_seconds
        if use_ssl:
            connect_args["ssl"] = "require"

    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args,
    )

"""Exception hierarchy raised by the query and aggregation layers."""


class SensorQueryError(Exception):
    """Base class for every error raised by sensorquery."""


class InvalidQueryError(SensorQueryError, ValueError):
    """Query parameters are missing or inconsistent (e.g. start_time >= end_time)."""


class InvalidConfigurationError(SensorQueryError, ValueError):
    """A data source or aggregation configuration is incomplete."""


class UnsupportedBackendError(SensorQueryError, NotImplementedError):
    """The requested backend kind or capability is not available."""


class DataSourceError(SensorQueryError):
    """A backend query failed; the transport error is chained as __cause__."""


class CredentialError(SensorQueryError):
    """A stored credential could not be decrypted."""

"""Custom exceptions for the response monitor package."""


class MonitorError(Exception):
    """Base exception for all monitor errors."""
    pass


class ConfigurationError(MonitorError):
    """Settings are missing or invalid; the monitor cannot be built."""
    pass


class TransportError(MonitorError):
    """The mailbox session failed (connect, login, select, search or fetch)."""
    pass


class SinkError(MonitorError):
    """A response record could not be appended to the sink file."""
    pass

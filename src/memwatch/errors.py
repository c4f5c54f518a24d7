"""Exceptions raised by memwatch."""


class MemwatchError(Exception):
    """Base class for memwatch errors."""


class ServiceError(MemwatchError):
    """The supervision service is unreachable or rejected a call."""


class ConfigurationError(MemwatchError):
    """Threshold or connection configuration is malformed."""

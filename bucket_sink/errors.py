"""
Exception hierarchy for bucket_sink.

Configuration errors are fatal at construction time; storage errors are
transient and surface to the host as a retry.
"""


class BucketSinkError(Exception):
    """Base class for all bucket_sink errors."""
    pass


class ConfigurationError(BucketSinkError):
    """Raised when an output or worker cannot be built from its settings."""
    pass


class TemplateError(ConfigurationError):
    """Raised when an object name template cannot be parsed."""

    def __init__(self, template: str, reason: str):
        self.template = template
        self.reason = reason
        super().__init__(f"Invalid object name template '{template}': {reason}")


class StorageError(BucketSinkError):
    """Raised when opening, writing or closing a remote object fails."""
    pass


__all__ = [
    "BucketSinkError",
    "ConfigurationError",
    "TemplateError",
    "StorageError",
]

"""Exceptions raised by envcrypt operations."""


class EnvcryptError(Exception):
    """Base class for all envcrypt errors."""
    pass


class ConfigError(EnvcryptError):
    """Host configuration is invalid or incomplete (e.g. no stage resolved)."""
    pass


class ValidationError(EnvcryptError):
    """Command options failed validation before any I/O took place."""
    pass


class StoreCorruptError(EnvcryptError):
    """Secret store file is missing, unreadable, or not a valid document."""
    pass


class SecretNotFoundError(EnvcryptError):
    """Requested variable is absent from the targeted namespace."""

    def __init__(self, variable: str, namespace: str):
        self.variable = variable
        self.namespace = namespace
        super().__init__(f"Could not find {variable} in {namespace} environment")


class RemoteServiceError(EnvcryptError):
    """Key-management service call failed."""
    pass

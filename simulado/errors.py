"""Exception types raised by the Simulado core."""


class SimuladoError(Exception):
    """Base class for all Simulado errors."""


class StoreError(SimuladoError):
    """A read or write against the hosted backend failed."""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ConfigError(SimuladoError, ValueError):
    pass


class InvalidLimitError(SimuladoError, ValueError):
    pass

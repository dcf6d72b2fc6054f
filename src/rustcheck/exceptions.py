"""rustcheck exceptions."""


class RustCheckError(Exception):
    """Base exception for rustcheck."""

    pass


class ConfigError(RustCheckError):
    """Configuration error."""

    pass


class SetupError(RustCheckError):
    """Sandbox directory or file could not be created."""

    pass


class InvalidDependencyError(RustCheckError, ValueError):
    """Dependency name or version failed validation."""

    pass


class InvocationError(RustCheckError):
    """External tool could not be spawned."""

    pass


class InvocationTimeoutError(InvocationError):
    """External tool exceeded its time budget."""

    pass


class CapacityError(RustCheckError):
    """Admission control refused the invocation."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

class WatchError(Exception):
    """Base class for every fatal ecr-watch error."""


class ConfigError(WatchError):
    """Missing or malformed configuration."""


class PatternError(ConfigError):
    """The tag pattern is not a valid regular expression."""


class SessionError(WatchError):
    """An AWS session or credentials could not be established."""


class RegistryError(WatchError):
    """An ECR API call failed."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause

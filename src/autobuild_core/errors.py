"""Exception hierarchy for autobuild."""


class AutobuildError(Exception):
    """Base class for all autobuild errors."""


class ConfigError(AutobuildError):
    """Configuration could not be loaded. Fatal before watching starts."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class ConfigNotFoundError(ConfigError):
    """Config file is absent."""


class ConfigMalformedError(ConfigError):
    """Config file is not parseable structured data."""


class ConfigInvalidError(ConfigError):
    """Config parsed but violates a schema rule."""


class UnknownTargetError(AutobuildError):
    """Requested build target is not configured."""

    def __init__(self, target: str, available: list[str] | None = None):
        self.target = target
        self.available = available or []
        hint = f" (available: {', '.join(self.available)})" if self.available else ""
        super().__init__(f"Unknown build target: {target}{hint}")


class AlreadyRunningError(AutobuildError):
    """Another watch session is active."""


class VcsActionError(AutobuildError):
    """A git command failed."""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class NotificationUnavailableError(AutobuildError):
    """No OS notification mechanism is available."""

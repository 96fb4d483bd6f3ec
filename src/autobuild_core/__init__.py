"""autobuild-core: Config, classification, debouncing and dispatch for autobuild."""

__version__ = "0.1.0"

# Components
from autobuild_core.classifier import classify, glob_match
from autobuild_core.config import load_build_config, validate_config
from autobuild_core.debounce import DebounceGate, should_trigger
from autobuild_core.dispatcher import BuildDispatcher

# Errors
from autobuild_core.errors import (
    AlreadyRunningError,
    AutobuildError,
    ConfigError,
    ConfigInvalidError,
    ConfigMalformedError,
    ConfigNotFoundError,
    UnknownTargetError,
)

# Models
from autobuild_core.models import (
    BuildConfig,
    BuildOutcome,
    BuildTarget,
    ClassificationResult,
    SessionStatus,
    WatchState,
)

__all__ = [
    "__version__",
    # Models
    "BuildConfig",
    "BuildOutcome",
    "BuildTarget",
    "ClassificationResult",
    "SessionStatus",
    "WatchState",
    # Errors
    "AutobuildError",
    "AlreadyRunningError",
    "ConfigError",
    "ConfigInvalidError",
    "ConfigMalformedError",
    "ConfigNotFoundError",
    "UnknownTargetError",
    # Components
    "BuildDispatcher",
    "DebounceGate",
    "classify",
    "glob_match",
    "should_trigger",
    # Config
    "load_build_config",
    "validate_config",
]

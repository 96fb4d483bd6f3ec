"""autobuild: Debounced build orchestrator driven by file changes."""

__version__ = "0.1.0"

# Public API
from autobuild.supervisor import WatchSupervisor, build_once

__all__ = [
    "__version__",
    # Primary components
    "WatchSupervisor",
    "build_once",
]

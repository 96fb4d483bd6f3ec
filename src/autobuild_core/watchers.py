"""Abstract change-source protocol for file watching implementations."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol


class ChangeKind(str, Enum):
    """Kind of raw filesystem event."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileChange:
    """One raw filesystem event."""

    kind: ChangeKind
    path: Path


class ChangeSource(Protocol):
    """Protocol for file watcher implementations.

    A change source pushes FileChange values into the queue it was created
    with; it must release every OS handle in stop().
    """

    def start(self) -> None:
        """Start watching."""
        ...

    def stop(self) -> None:
        """Stop watching. Must be safe to call more than once."""
        ...


class ChangeSourceFactory(Protocol):
    """Creates a change source rooted at a directory, feeding a queue."""

    def __call__(
        self, root: Path, queue: "asyncio.Queue[FileChange]", loop: asyncio.AbstractEventLoop
    ) -> ChangeSource: ...

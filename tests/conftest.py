"""Pytest configuration and fixtures."""

import sys
import threading
import time
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from autobuild_core.config import load_build_config  # noqa: E402
from autobuild_core.models import BuildOutcome  # noqa: E402
from autobuild_core.watchers import ChangeKind, FileChange  # noqa: E402

CONFIG_TEMPLATE = """
[autoTrigger]
enabled = {enabled}
watchPaths = ["src/**"]
ignorePaths = ["**/node_modules/**"]
fileExtensions = [".ts"]
buildCooldown = {cooldown}
buildTarget = "web"

[buildTargets.web]
command = {command}
description = "Build the web frontend"

[buildTargets.fail]
command = {fail_command}
description = "Always fails"

[notifications]
enabled = true
showBuildComplete = true
showBuildError = true

[github]
autoCommit = false
autoPush = false
commitMessage = "auto build {{timestamp}}"
"""


def toml_list(argv: list[str]) -> str:
    return "[" + ", ".join(f"'{a}'" for a in argv) + "]"


@pytest.fixture
def project_root(tmp_path):
    """A minimal project tree with manifest and build-source dir."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src-tauri").mkdir()
    (root / "package.json").write_text("{}")
    return root


@pytest.fixture
def write_config(project_root):
    """Write autobuild.toml into the project and return its path."""

    def _write(enabled=True, cooldown=1, command=None, fail_command=None, text=None):
        path = project_root / "autobuild.toml"
        if text is None:
            command = command or [sys.executable, "-c", 'print("built")']
            fail_command = fail_command or [sys.executable, "-c", "import sys; sys.exit(3)"]
            text = CONFIG_TEMPLATE.format(
                enabled=str(enabled).lower(),
                cooldown=cooldown,
                command=toml_list(command),
                fail_command=toml_list(fail_command),
            )
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def config(write_config):
    return load_build_config(write_config())


class FakeChangeSource:
    """Change source driven by tests instead of the OS."""

    instances: list["FakeChangeSource"] = []

    def __init__(self, root, queue, loop):
        self.root = root
        self.queue = queue
        self.loop = loop
        self.started = False
        self.stopped = 0
        FakeChangeSource.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped += 1

    def emit(self, rel_path: str, kind: ChangeKind = ChangeKind.CHANGED):
        self.queue.put_nowait(FileChange(kind=kind, path=Path(self.root) / rel_path))


@pytest.fixture
def fake_source():
    FakeChangeSource.instances.clear()
    yield FakeChangeSource
    FakeChangeSource.instances.clear()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, bool]] = []

    def send(self, title, message, success):
        self.sent.append((title, message, success))


@pytest.fixture
def notifier():
    return RecordingNotifier()


class FakeDispatcher:
    """Dispatcher stand-in counting spawns; can block until released."""

    def __init__(self, succeed: bool = True, block: bool = False):
        self.succeed = succeed
        self.calls: list[str] = []
        self.release = threading.Event()
        self.running = threading.Event()
        self.concurrent = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()
        if not block:
            self.release.set()

    def resolve(self, target_name, config):
        from autobuild_core.errors import UnknownTargetError

        if target_name not in config.build_targets:
            raise UnknownTargetError(target_name)
        return config.build_targets[target_name]

    def run(self, target_name, config):
        self.resolve(target_name, config)
        with self._lock:
            self.calls.append(target_name)
            self.concurrent += 1
            self.max_concurrent = max(self.max_concurrent, self.concurrent)
        self.running.set()
        self.release.wait(timeout=5)
        with self._lock:
            self.concurrent -= 1
        return BuildOutcome(
            target=target_name,
            started_at=time.time(),
            duration=0.01,
            succeeded=self.succeed,
            failure_reason=None if self.succeed else "boom",
        )


class FakeGit:
    def __init__(self):
        from autobuild_core.models import VcsStatus

        self.commits: list[str] = []
        self._status = VcsStatus(is_repository=True, branch="main")

    def status(self):
        return self._status

    def changed_files(self):
        return []


@pytest.fixture
def fake_git():
    return FakeGit()

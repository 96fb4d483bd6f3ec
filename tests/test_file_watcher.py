"""Tests for the watchdog-backed change source."""

import asyncio

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from autobuild_core.file_watcher import WatchdogChangeSource, _QueueingHandler
from autobuild_core.watchers import ChangeKind


async def _drain(queue):
    await asyncio.sleep(0)
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.mark.asyncio
async def test_handler_posts_file_events_in_order():
    queue = asyncio.Queue()
    handler = _QueueingHandler(queue, asyncio.get_running_loop())

    handler.on_created(FileCreatedEvent("/p/src/a.ts"))
    handler.on_modified(FileModifiedEvent("/p/src/a.ts"))
    handler.on_deleted(FileDeletedEvent("/p/src/a.ts"))

    changes = await _drain(queue)
    assert [c.kind for c in changes] == [ChangeKind.CREATED, ChangeKind.CHANGED, ChangeKind.DELETED]
    assert all(str(c.path).replace("\\", "/") == "/p/src/a.ts" for c in changes)


@pytest.mark.asyncio
async def test_handler_ignores_directories():
    queue = asyncio.Queue()
    handler = _QueueingHandler(queue, asyncio.get_running_loop())
    handler.on_created(DirCreatedEvent("/p/src/new"))
    assert await _drain(queue) == []


@pytest.mark.asyncio
async def test_move_is_delete_plus_create():
    queue = asyncio.Queue()
    handler = _QueueingHandler(queue, asyncio.get_running_loop())
    handler.on_moved(FileMovedEvent("/p/src/a.ts", "/p/src/b.ts"))

    changes = await _drain(queue)
    assert [(c.kind, c.path.name) for c in changes] == [
        (ChangeKind.DELETED, "a.ts"),
        (ChangeKind.CREATED, "b.ts"),
    ]


def test_handler_on_closed_loop_drops_event():
    loop = asyncio.new_event_loop()
    queue = asyncio.Queue()
    loop.close()
    handler = _QueueingHandler(queue, loop)
    handler.on_modified(FileModifiedEvent("/p/src/a.ts"))
    assert queue.empty()


@pytest.mark.asyncio
async def test_start_missing_root_raises(tmp_path):
    source = WatchdogChangeSource(tmp_path / "missing", asyncio.Queue(), asyncio.get_running_loop())
    with pytest.raises(FileNotFoundError):
        source.start()
    source.stop()


@pytest.mark.asyncio
async def test_real_observer_delivers_change(tmp_path):
    queue = asyncio.Queue()
    source = WatchdogChangeSource(tmp_path, queue, asyncio.get_running_loop())
    source.start()
    try:
        await asyncio.sleep(0.2)
        (tmp_path / "hello.ts").write_text("x")
        change = await asyncio.wait_for(queue.get(), timeout=5)
        assert change.path.name == "hello.ts"
    finally:
        source.stop()
        source.stop()
    assert not source.observer.is_alive()

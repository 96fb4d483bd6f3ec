"""Tests for the session lock and status store."""

import os
import time
from unittest.mock import patch

import pytest

from autobuild_core.errors import AlreadyRunningError
from autobuild_core.models import SessionStatus, WatchState
from autobuild_core.session import UNREADABLE_LOCK_GRACE, SessionStore, is_process_alive


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / ".autobuild")


def test_current_process_is_alive():
    assert is_process_alive(os.getpid())
    assert not is_process_alive(0)


def test_acquire_writes_pid_and_release_removes_it(store):
    store.acquire(os.getpid())
    assert store.read_pid() == os.getpid()
    assert store.active_pid() == os.getpid()

    store.release()
    assert not store.lock_path.exists()
    assert store.active_pid() is None


def test_second_acquire_while_owner_alive_fails(store, tmp_path):
    store.acquire(os.getpid())
    other = SessionStore(tmp_path / ".autobuild")

    with patch("autobuild_core.session.is_process_alive", return_value=True):
        with pytest.raises(AlreadyRunningError, match=str(os.getpid())):
            other.acquire(os.getpid() + 1)


def test_stale_lock_is_replaced(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text("999999")

    with patch("autobuild_core.session.is_process_alive", return_value=False):
        store.acquire(os.getpid())

    assert store.read_pid() == os.getpid()


def test_release_without_acquire_keeps_foreign_lock(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text("12345")
    store.release()
    assert store.lock_path.exists()


def test_status_roundtrip(store):
    status = SessionStatus(state=WatchState.BUILDING, last_trigger_time=12.5, active_target="web", builds_run=2)
    store.write_status(status)

    loaded = store.read_status()
    assert loaded.state is WatchState.BUILDING
    assert loaded.last_trigger_time == 12.5
    assert loaded.active_target == "web"
    assert loaded.builds_run == 2


def test_unreadable_status_is_none(store):
    assert store.read_status() is None
    store.state_dir.mkdir(parents=True)
    store.status_path.write_text('{"state": "exploded"}')
    assert store.read_status() is None


def test_request_stop_without_session(store):
    assert store.request_stop() is None


def test_request_stop_terminates_owner(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text("4242")
    with (
        patch("autobuild_core.session.is_process_alive", return_value=True),
        patch("autobuild_core.session.psutil.Process") as mock_process,
    ):
        assert store.request_stop() == 4242

    mock_process.assert_called_once_with(4242)
    mock_process.return_value.terminate.assert_called_once()


def test_second_store_in_same_process_is_blocked(store, tmp_path):
    store.acquire()
    other = SessionStore(tmp_path / ".autobuild")

    with pytest.raises(AlreadyRunningError, match=str(os.getpid())):
        other.acquire()

    other.release()
    assert store.read_pid() == os.getpid()
    store.release()
    assert not store.lock_path.exists()


def test_leftover_lock_with_own_pid_is_stale(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text(str(os.getpid()))

    store.acquire()

    assert store.read_pid() == os.getpid()
    store.release()


def test_fresh_unreadable_lock_is_honoured(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text("")

    with pytest.raises(AlreadyRunningError, match="being acquired"):
        store.acquire()
    assert store.lock_path.read_text() == ""


def test_old_unreadable_lock_is_replaced(store):
    store.state_dir.mkdir(parents=True)
    store.lock_path.write_text("garbage")
    old = time.time() - UNREADABLE_LOCK_GRACE - 5
    os.utime(store.lock_path, (old, old))

    store.acquire()

    assert store.read_pid() == os.getpid()
    store.release()

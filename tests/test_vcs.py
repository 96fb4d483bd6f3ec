"""Tests for the VCS post-build action and git status."""

import shutil
import subprocess
from dataclasses import replace
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from autobuild_core.errors import VcsActionError
from autobuild_core.models import BuildOutcome, VcsSettings
from autobuild_core.vcs import GitClient, format_commit_message, run_vcs_post_action

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _outcome(succeeded=True):
    return BuildOutcome(target="web", started_at=0.0, duration=1.0, succeeded=succeeded)


@pytest.fixture
def commit_config(config):
    return replace(config, vcs=VcsSettings(auto_commit=True, auto_push=False, commit_message_template="build {timestamp}"))


@pytest.fixture
def git_mock():
    git = MagicMock(spec=GitClient)
    git.changed_files.return_value = [" M src/app.ts"]
    return git


def test_format_commit_message():
    now = datetime(2024, 3, 9, 7, 5, 1)
    assert format_commit_message("auto build {timestamp}", now) == "auto build 2024-03-09 07:05:01"
    assert format_commit_message("no placeholder", now) == "no placeholder"


class TestRunVcsPostAction:
    def test_noop_when_auto_commit_disabled(self, config, git_mock):
        result = run_vcs_post_action(_outcome(), config, git_mock)
        assert result.skipped_reason == "auto-commit disabled"
        git_mock.changed_files.assert_not_called()

    def test_noop_when_build_failed(self, commit_config, git_mock):
        result = run_vcs_post_action(_outcome(succeeded=False), commit_config, git_mock)
        assert result.committed is False
        git_mock.commit_all.assert_not_called()

    def test_clean_tree_skips_commit(self, commit_config, git_mock):
        git_mock.changed_files.return_value = []
        result = run_vcs_post_action(_outcome(), commit_config, git_mock)
        assert result.skipped_reason == "no changes to commit"
        git_mock.commit_all.assert_not_called()

    def test_commits_with_templated_message(self, commit_config, git_mock):
        now = datetime(2024, 1, 2, 3, 4, 5)
        result = run_vcs_post_action(_outcome(), commit_config, git_mock, now=now)

        assert result.committed is True
        assert result.pushed is False
        git_mock.commit_all.assert_called_once_with("build 2024-01-02 03:04:05")
        git_mock.push.assert_not_called()

    def test_pushes_when_enabled(self, commit_config, git_mock):
        config = replace(commit_config, vcs=replace(commit_config.vcs, auto_push=True))
        result = run_vcs_post_action(_outcome(), config, git_mock)
        assert result.pushed is True
        git_mock.push.assert_called_once()

    def test_push_failure_is_reported_not_raised(self, commit_config, git_mock, caplog):
        config = replace(commit_config, vcs=replace(commit_config.vcs, auto_push=True))
        git_mock.push.side_effect = VcsActionError("git push exited with 128: no upstream")

        result = run_vcs_post_action(_outcome(), config, git_mock)

        assert result.committed is True
        assert result.pushed is False
        assert "no upstream" in result.error
        assert "VCS post-build action failed" in caplog.text


@requires_git
class TestGitClient:
    @pytest.fixture
    def repo(self, tmp_path):
        subprocess.run(["git", "init", "-q", "-b", "main"], cwd=tmp_path, check=True)
        subprocess.run(["git", "config", "user.email", "dev@example.com"], cwd=tmp_path, check=True)
        subprocess.run(["git", "config", "user.name", "Dev"], cwd=tmp_path, check=True)
        return tmp_path

    def test_status_outside_repository(self, tmp_path):
        status = GitClient(tmp_path / "nowhere").status()
        assert status.is_repository is False

    def test_status_of_fresh_repository(self, repo):
        (repo / "a.txt").write_text("a")
        status = GitClient(repo).status()
        assert status.is_repository
        assert status.branch == "main"
        assert status.has_changes
        assert status.changed_files == 1

    def test_commit_all_cleans_tree(self, repo):
        (repo / "a.txt").write_text("a")
        git = GitClient(repo)
        git.commit_all("first")
        assert git.changed_files() == []
        log = subprocess.run(["git", "log", "--format=%s"], cwd=repo, capture_output=True, text=True)
        assert log.stdout.strip() == "first"

    def test_push_without_upstream_raises(self, repo):
        (repo / "a.txt").write_text("a")
        git = GitClient(repo)
        git.commit_all("first")
        with pytest.raises(VcsActionError):
            git.push()

"""Shared pytest fixtures for the test suite."""

from __future__ import annotations

import math
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest


def make_tag(name: str, commit_sha: str = "default_sha") -> MagicMock:
    """Create a mock tag object with the given name.

    Args:
        name: The tag name (e.g., 'v2025.3-alpha.1').
        commit_sha: The SHA of the commit the tag points to.
    """
    tag = MagicMock()
    tag.name = name
    tag.commit = MagicMock()
    tag.commit.sha = commit_sha
    return tag


def make_pull(number: int, title: str, head_ref: str, base: str = "develop", draft: bool = False) -> MagicMock:
    """Create a mock pull request object as returned by PyGithub."""
    pull = MagicMock()
    pull.number = number
    pull.title = title
    pull.html_url = f"https://github.com/owner/repo/pull/{number}"
    pull.head.ref = head_ref
    pull.base.ref = base
    pull.draft = draft
    return pull


def make_artifact(name: str, run_id: int | None, artifact_id: int = 1) -> MagicMock:
    """Create a mock workflow artifact belonging to a run."""
    artifact = MagicMock()
    artifact.name = name
    artifact.id = artifact_id
    if run_id is None:
        artifact.workflow_run = None
    else:
        artifact.workflow_run.id = run_id
    return artifact


class FakeAnalyzer:
    """Stand-in for ForkProvenanceAnalyzer driven by precomputed distances.

    Args:
        distances: Fork distance per head, then per base branch.
        tips: Commit at the tip of each branch.
        fork_points: Fork point per (base, head); missing pairs have none.
        pull_heads: Head commit per pull request number.
    """

    def __init__(
        self,
        distances: dict[str, dict[str, float]],
        tips: dict[str, str] | None = None,
        fork_points: dict[tuple[str, str], str] | None = None,
        pull_heads: dict[int, str] | None = None,
    ) -> None:
        self.distances = distances
        self.tips = tips or {}
        self.fork_points = fork_points or {}
        self.pull_heads = pull_heads or {}
        self.fetched: list[tuple[str, ...]] = []

    def fetch_branches(self, *branches: str) -> None:
        self.fetched.append(branches)

    def fetch_pull_request_head(self, number: int) -> str | None:
        return self.pull_heads.get(number)

    def tip(self, branch: str) -> str | None:
        return self.tips.get(branch)

    def fork_point(self, base: str, head: str) -> str | None:
        return self.fork_points.get((base, head))

    def fork_distance(self, base: str, head: str) -> float:
        return self.distances.get(head, {}).get(base, math.inf)

    def fork_distances(self, branches: Any, head: str) -> dict[str, float]:
        return {branch: self.fork_distance(branch, head) for branch in branches}


@pytest.fixture
def mock_github_api() -> MagicMock:
    """Create a mock GitHubAPI instance for unit tests."""
    mock_api = MagicMock()
    mock_api.list_tags.return_value = []
    mock_api.list_open_pulls.return_value = []
    mock_api.list_run_artifacts.return_value = []
    mock_api.list_repository_artifacts.return_value = []
    mock_api.branch_exists.return_value = True
    mock_api.compare_status.return_value = "ahead"
    return mock_api


@pytest.fixture
def workflow_files(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """Point the GitHub Actions file commands at temporary files."""
    files = {}
    for variable in ("GITHUB_OUTPUT", "GITHUB_ENV", "GITHUB_STATE", "GITHUB_STEP_SUMMARY"):
        path = tmp_path / variable.lower()
        path.write_text("")
        monkeypatch.setenv(variable, str(path))
        files[variable] = path
    return files


@pytest.fixture
def mock_pygithub() -> Generator[dict[str, Any], None, None]:
    """Patch PyGithub for unit tests."""
    with patch("release_startup.github_api.Github") as mock_github:
        mock_repo = MagicMock()
        mock_github.return_value.get_repo.return_value = mock_repo
        yield {"github": mock_github, "repo": mock_repo}


@pytest.fixture
def sample_tags() -> list[str]:
    """Sample release tag names, in no particular order."""
    return [
        "v2025.2",
        "v2025.3-alpha.1",
        "v2025.3-alpha.2",
        "v2025.3-beta.2",
        "v2025.2.1",
        "v2024.7",
        "latest",
        "v1.2.3",
    ]

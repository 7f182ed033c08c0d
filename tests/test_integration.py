# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Integration tests for the Release Startup Action.

These tests build a real upstream repository with develop, release and main
histories, clone it, and run the provenance checks and release flows against
it. The GitHub API is mocked; git is not.

Upstream history used by every test::

    main:         c1 - m2
    release:      c1 - r1
    develop:      c1 - d1
    hotfix/good:  m2 - g1
    hotfix/bad:   d1 - b1
    hotfix/beta:  r1 - t1
    feature/ok:   d1 - f1

    refs/pull/1/head -> g1   (a main hotfix proposed into develop)
    refs/pull/2/head -> f1   (a regular feature)
"""

from __future__ import annotations

import math
import shutil
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from release_startup.errors import BlockingHotfixPRError, BranchMismatchError, RerunDetectedError
from release_startup.git import GitRunner
from release_startup.guards import BranchGuard
from release_startup.idempotency import FLAG_ARTIFACT_NAME, RunIdempotencyGuard
from release_startup.main import ActionInputs, GitHubContext, run
from release_startup.provenance import ForkProvenanceAnalyzer
from release_startup.workflow import RunSummary
from tests.conftest import make_pull, make_tag

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

YEAR = date.today().year


@dataclass
class Upstream:
    """An upstream repository and the commits of interest in it."""

    path: Path
    commits: dict[str, str]

    @property
    def url(self) -> str:
        return f"file://{self.path}"


def _commit(git: GitRunner, message: str) -> str:
    git.run("commit", "--allow-empty", "--quiet", "-m", message, check=True)
    return git.run("rev-parse", "HEAD", check=True).stdout.strip()


@pytest.fixture
def git_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Give git a predictable identity and no user or system configuration."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    for role in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{role}_NAME", "Release Bot")
        monkeypatch.setenv(f"GIT_{role}_EMAIL", "release-bot@example.com")


@pytest.fixture
def upstream(tmp_path: Path, git_environment: None) -> Upstream:
    path = tmp_path / "upstream"
    path.mkdir()
    git = GitRunner(path)
    git.run("init", "--quiet", check=True)
    git.run("symbolic-ref", "HEAD", "refs/heads/main", check=True)

    commits = {"c1": _commit(git, "initial")}
    git.run("branch", "release", check=True)
    git.run("branch", "develop", check=True)
    commits["m2"] = _commit(git, "main work")

    for branch, base, key in (
        ("release", "release", "r1"),
        ("develop", "develop", "d1"),
        ("hotfix/good", "main", "g1"),
        ("hotfix/bad", "develop", "b1"),
        ("hotfix/beta", "release", "t1"),
        ("feature/ok", "develop", "f1"),
    ):
        if branch == base:
            git.run("checkout", "--quiet", branch, check=True)
        else:
            git.run("checkout", "--quiet", "-b", branch, base, check=True)
        commits[key] = _commit(git, f"{branch} work")

    git.run("checkout", "--quiet", "main", check=True)
    git.run("update-ref", "refs/pull/1/head", commits["g1"], check=True)
    git.run("update-ref", "refs/pull/2/head", commits["f1"], check=True)
    return Upstream(path=path, commits=commits)


@pytest.fixture
def clone(tmp_path: Path, upstream: Upstream) -> GitRunner:
    path = tmp_path / "clone"
    path.mkdir()
    git = GitRunner(path)
    git.clone(upstream.url, "develop", depth=None)
    return git


def _pulls_by_base(pulls: dict[str, list[Any]]) -> Any:
    return lambda base: pulls.get(base, [])


class TestForkDistances:
    """Fork distances measured on a real repository."""

    def test_distances_from_each_branch(self, clone: GitRunner, upstream: Upstream) -> None:
        analyzer = ForkProvenanceAnalyzer(clone)
        analyzer.fetch_branches("develop", "main", "release", "hotfix/good", "hotfix/bad")

        good = analyzer.fork_distances(["develop", "main", "release"], upstream.commits["g1"])
        bad = analyzer.fork_distances(["develop", "main", "release"], upstream.commits["b1"])

        assert good == {"develop": 2, "main": 1, "release": 2}
        assert bad == {"develop": 1, "main": 2, "release": 2}

    def test_fork_point_is_the_branch_commit(self, clone: GitRunner, upstream: Upstream) -> None:
        analyzer = ForkProvenanceAnalyzer(clone)
        analyzer.fetch_branches("main", "hotfix/good")

        assert analyzer.fork_point("main", upstream.commits["g1"]) == upstream.commits["m2"]
        assert analyzer.tip("hotfix/good") == upstream.commits["g1"]

    def test_unrelated_history_is_infinitely_far(self, clone: GitRunner) -> None:
        orphan = GitRunner(clone.cwd)
        orphan.run("checkout", "--quiet", "--orphan", "orphan", check=True)
        head = _commit(orphan, "unrelated")

        assert math.isinf(ForkProvenanceAnalyzer(clone).fork_distance("main", head))

    def test_pull_request_heads(self, clone: GitRunner, upstream: Upstream) -> None:
        analyzer = ForkProvenanceAnalyzer(clone)

        assert analyzer.fetch_pull_request_head(1) == upstream.commits["g1"]
        assert analyzer.fetch_pull_request_head(2) == upstream.commits["f1"]
        assert analyzer.fetch_pull_request_head(99) is None


class TestHotfixBranchCheck:
    """The hotfix ancestry check on a real repository."""

    def test_hotfix_from_main(self, clone: GitRunner, mock_github_api: MagicMock) -> None:
        report = BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone)).assert_correct_hotfix_branch(
            "hotfix/good", "main"
        )

        assert report.passed
        assert report.distances == {"develop": 2, "main": 1, "release": 2}

    def test_hotfix_from_release(self, clone: GitRunner, mock_github_api: MagicMock) -> None:
        report = BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone)).assert_correct_hotfix_branch(
            "hotfix/beta", "release"
        )

        assert report.closest == "release"

    def test_hotfix_from_develop_is_rejected(
        self, clone: GitRunner, mock_github_api: MagicMock, workflow_files: dict[str, Path]
    ) -> None:
        with pytest.raises(BranchMismatchError, match="'hotfix/bad' was not created from 'main'"):
            BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone), RunSummary()).assert_correct_hotfix_branch(
                "hotfix/bad", "main"
            )

        assert "closer to `develop`" in workflow_files["GITHUB_STEP_SUMMARY"].read_text()

    def test_main_hotfix_is_rejected_for_beta(self, clone: GitRunner, mock_github_api: MagicMock) -> None:
        with pytest.raises(BranchMismatchError):
            BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone)).assert_correct_hotfix_branch(
                "hotfix/good", "release"
            )

    def test_missing_branch(self, clone: GitRunner, mock_github_api: MagicMock) -> None:
        with pytest.raises(BranchMismatchError, match="could not be fetched"):
            BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone)).assert_correct_hotfix_branch(
                "hotfix/none", "main"
            )


class TestOpenPullRequestCheck:
    """The open pull request check on a real repository."""

    def test_main_hotfix_into_develop_is_blocking(
        self, clone: GitRunner, mock_github_api: MagicMock, workflow_files: dict[str, Path]
    ) -> None:
        mock_github_api.list_open_pulls.side_effect = _pulls_by_base(
            {"develop": [make_pull(1, "Crash fix", "hotfix/good"), make_pull(2, "Feature", "feature/ok")]}
        )
        guard = BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone), RunSummary())

        with pytest.raises(BlockingHotfixPRError, match="1 blocking"):
            guard.assert_open_prs("develop", ["main", "release"], "Blocking:", "{count} blocking")

        summary = workflow_files["GITHUB_STEP_SUMMARY"].read_text()
        assert "[Crash fix](https://github.com/owner/repo/pull/1)" in summary
        assert "Feature" not in summary

    def test_regular_feature_passes(self, clone: GitRunner, mock_github_api: MagicMock) -> None:
        mock_github_api.list_open_pulls.side_effect = _pulls_by_base({"develop": [make_pull(2, "Feature", "feature/ok")]})

        BranchGuard(mock_github_api, ForkProvenanceAnalyzer(clone)).assert_open_prs(
            "develop", ["main", "release"], "Blocking:", "{count} blocking"
        )


class TestReleaseFlows:
    """run() with real provenance checks and a mocked GitHub API."""

    @pytest.fixture
    def api(self, mock_github_api: MagicMock) -> MagicMock:
        created = MagicMock()
        created.number = 8
        mock_github_api.create_pull.return_value = created
        mock_github_api.get_pull.return_value.mergeable = True
        mock_github_api.merge_pull.return_value.merged = True
        mock_github_api.merge_pull.return_value.sha = "merge-sha"
        mock_github_api.list_tags.return_value = [make_tag(f"v{YEAR}.2"), make_tag(f"v{YEAR}.3-alpha.1")]
        return mock_github_api

    def test_production_hotfix(self, clone: GitRunner, api: MagicMock, workflow_files: dict[str, Path]) -> None:
        outputs = run(
            api,
            GitHubContext(ref_name="main", repository="owner/repo"),
            ActionInputs(token="token", stage="production", reference="hotfix/good", hotfix=True, exports=False, artifact=False),
            git=clone,
            uploader=MagicMock(),
            sleep=MagicMock(),
        )

        assert outputs.version == f"v{YEAR}.2.1"
        assert outputs.reference == "merge-sha"

    def test_production_hotfix_without_checkout(
        self, tmp_path: Path, upstream: Upstream, api: MagicMock, workflow_files: dict[str, Path]
    ) -> None:
        workspace = tmp_path / "workspace"
        workspace.mkdir()
        git = GitRunner(workspace)

        outputs = run(
            api,
            GitHubContext(ref_name="main", repository="owner/repo"),
            ActionInputs(token="token", stage="production", reference="hotfix/good", hotfix=True, exports=False, artifact=False),
            git=git,
            uploader=MagicMock(),
            sleep=MagicMock(),
            remote_url=upstream.url,
        )

        assert git.is_work_tree()
        assert git.rev_parse("origin/hotfix/good") == upstream.commits["g1"]
        assert outputs.version == f"v{YEAR}.2.1"

    def test_production_hotfix_from_develop(
        self, clone: GitRunner, api: MagicMock, workflow_files: dict[str, Path]
    ) -> None:
        with pytest.raises(BranchMismatchError):
            run(
                api,
                GitHubContext(ref_name="main", repository="owner/repo"),
                ActionInputs(token="token", stage="production", reference="hotfix/bad", hotfix=True, artifact=False),
                git=clone,
                uploader=MagicMock(),
            )

        api.create_pull.assert_not_called()
        assert workflow_files["GITHUB_OUTPUT"].read_text() == ""

    def test_blocked_alpha_then_rerun(
        self, clone: GitRunner, api: MagicMock, workflow_files: dict[str, Path]
    ) -> None:
        api.list_open_pulls.side_effect = _pulls_by_base({"develop": [make_pull(1, "Crash fix", "hotfix/good")]})
        artifacts: list[MagicMock] = []
        api.list_run_artifacts.side_effect = lambda run_id: list(artifacts)
        uploader = MagicMock()

        def upload(name: str, files: list[Path], root: Path, retention_days: int) -> str:
            assert files[0].exists()
            flag = MagicMock()
            flag.name = name
            artifacts.append(flag)
            return "1"

        uploader.upload.side_effect = upload
        context = GitHubContext(ref_name="develop", repository="owner/repo", run_id=77)
        inputs = ActionInputs(token="token", stage="alpha", exports=False, artifact=False)

        with pytest.raises(BlockingHotfixPRError):
            run(api, context, inputs, git=clone, uploader=uploader)

        assert [a.name for a in artifacts] == [FLAG_ARTIFACT_NAME]

        with pytest.raises(RerunDetectedError):
            run(api, context, inputs, git=clone, uploader=uploader)

    def test_checkout_is_bootstrapped(
        self, tmp_path: Path, upstream: Upstream, mock_github_api: MagicMock
    ) -> None:
        workspace = tmp_path / "workspace"
        workspace.mkdir()
        git = GitRunner(workspace)
        branch_guard = BranchGuard(mock_github_api, ForkProvenanceAnalyzer(git))
        mock_github_api.list_open_pulls.side_effect = _pulls_by_base({"develop": [make_pull(2, "Feature", "feature/ok")]})

        RunIdempotencyGuard(mock_github_api, MagicMock(), branch_guard, git).ensure_fresh_workflow_run(
            77, "alpha", upstream.url
        )

        assert git.is_work_tree()
        assert git.rev_parse("origin/main") == upstream.commits["m2"]

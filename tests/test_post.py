# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Unit tests for the post step that removes the temporary branch."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from github.GithubException import GithubException

from release_startup.post import cleanup, main


class TestCleanup:
    """Tests for cleanup()."""

    def test_deletes_recorded_branch(self, mock_github_api: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATE_delete", "true")
        monkeypatch.setenv("STATE_branch", "rebase-abc-rsa")

        assert cleanup(mock_github_api) is True
        mock_github_api.delete_branch.assert_called_once_with("rebase-abc-rsa")

    @pytest.mark.parametrize("flag", ["false", ""])
    def test_nothing_to_delete(self, flag: str, mock_github_api: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATE_delete", flag)
        monkeypatch.setenv("STATE_branch", "rebase-abc-rsa")

        assert cleanup(mock_github_api) is False
        mock_github_api.delete_branch.assert_not_called()


class TestMain:
    """Tests for the post step entry point."""

    def test_skips_api_when_nothing_to_delete(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("STATE_delete", raising=False)

        with patch("release_startup.post.GitHubAPI") as mock_api_class:
            main()

        mock_api_class.assert_not_called()

    def test_delete_failure_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATE_delete", "true")
        monkeypatch.setenv("STATE_branch", "rebase-abc-rsa")
        monkeypatch.setenv("INPUT_TOKEN", "token")

        with patch("release_startup.post.GitHubAPI") as mock_api_class:
            mock_api_class.return_value.delete_branch.side_effect = GithubException(422, {"message": "nope"}, None)
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        mock_api_class.assert_called_once_with(token="token")

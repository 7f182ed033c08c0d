# Copyright (c) 2026 Mark Ferrell. MIT License.
"""GitHub API wrapper for tag, branch, pull request and artifact operations.

References:
    - GitHub REST API: https://docs.github.com/en/rest
    - PyGithub Documentation: https://pygithub.readthedocs.io/
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from github import Github
from github.GithubException import GithubException

if TYPE_CHECKING:
    from github.Artifact import Artifact
    from github.PullRequest import PullRequest
    from github.PullRequestMergeStatus import PullRequestMergeStatus
    from github.Tag import Tag


class GitHubAPI:
    """Wrapper around PyGithub for the operations a release needs.

    Handles authentication via token input, defaulting to GITHUB_TOKEN
    environment variable if not provided.

    References:
        - Authentication: https://docs.github.com/en/rest/authentication
        - GITHUB_TOKEN: https://docs.github.com/en/actions/security-for-github-actions/security-guides/automatic-token-authentication
    """

    def __init__(self, token: str | None = None, repository: str | None = None) -> None:
        """Initialize the GitHub API client.

        Args:
            token: GitHub token for authentication. Defaults to GITHUB_TOKEN env var.
            repository: Repository in 'owner/repo' format. Defaults to GITHUB_REPOSITORY env var.

        References:
            - Get a repository: https://docs.github.com/en/rest/repos/repos#get-a-repository
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._repository = repository or os.environ.get("GITHUB_REPOSITORY", "")

        if not self._token:
            raise ValueError("GitHub token is required. Set GITHUB_TOKEN or pass token parameter.")
        if not self._repository:
            raise ValueError("Repository is required. Set GITHUB_REPOSITORY or pass repository parameter.")

        self._github = Github(self._token)
        self._repo = self._github.get_repo(self._repository)

    @property
    def repository(self) -> str:
        return self._repository

    @property
    def html_url(self) -> str:
        return self._repo.html_url

    def list_tags(self) -> list[Tag]:
        """List all tags in the repository.

        References:
            - List repository tags: https://docs.github.com/en/rest/repos/repos#list-repository-tags
        """
        return list(self._repo.get_tags())

    def branch_exists(self, branch_name: str) -> bool:
        """Check if a branch exists in the repository.

        References:
            - Get a branch: https://docs.github.com/en/rest/branches/branches#get-a-branch
        """
        try:
            self._repo.get_branch(branch_name)
            return True
        except GithubException:
            return False

    def compare_status(self, base: str, head: str) -> str:
        """Return how ``head`` relates to ``base``: ahead, behind, identical or diverged.

        References:
            - Compare two commits: https://docs.github.com/en/rest/commits/commits#compare-two-commits
        """
        return self._repo.compare(base, head).status

    def get_tag_commit_sha(self, tag_name: str) -> str | None:
        """Get the commit SHA that a tag points to.

        Args:
            tag_name: Name of the tag.

        Returns:
            Commit SHA string, or None if tag doesn't exist.

        References:
            - Get a reference: https://docs.github.com/en/rest/git/refs#get-a-reference
            - Get a tag: https://docs.github.com/en/rest/git/tags#get-a-tag
        """
        try:
            ref = self._repo.get_git_ref(f"tags/{tag_name}")
            # Handle annotated tags (need to dereference)
            tag_sha = ref.object.sha
            if ref.object.type == "tag":
                tag_obj = self._repo.get_git_tag(tag_sha)
                return tag_obj.object.sha
            return tag_sha
        except GithubException:
            return None

    def create_branch(self, branch_name: str, commit_sha: str) -> None:
        """Create a branch pointing to a commit.

        References:
            - Create a reference: https://docs.github.com/en/rest/git/refs#create-a-reference
        """
        self._repo.create_git_ref(ref=f"refs/heads/{branch_name}", sha=commit_sha)

    def delete_branch(self, branch_name: str) -> None:
        """Delete a branch.

        References:
            - Delete a reference: https://docs.github.com/en/rest/git/refs#delete-a-reference
        """
        self._repo.get_git_ref(f"heads/{branch_name}").delete()

    def list_open_pulls(self, base_branch: str) -> list[PullRequest]:
        """List open pull requests targeting ``base_branch``.

        References:
            - List pull requests: https://docs.github.com/en/rest/pulls/pulls#list-pull-requests
        """
        return list(self._repo.get_pulls(state="open", base=base_branch))

    def create_pull(self, base: str, head: str, title: str, body: str) -> PullRequest:
        """Open a pull request from ``head`` into ``base``.

        References:
            - Create a pull request: https://docs.github.com/en/rest/pulls/pulls#create-a-pull-request
        """
        return self._repo.create_pull(base=base, head=head, title=title, body=body)

    def get_pull(self, number: int) -> PullRequest:
        """Fetch a pull request, including its current mergeability.

        References:
            - Get a pull request: https://docs.github.com/en/rest/pulls/pulls#get-a-pull-request
        """
        return self._repo.get_pull(number)

    def merge_pull(self, number: int) -> PullRequestMergeStatus:
        """Merge a pull request with a merge commit.

        References:
            - Merge a pull request: https://docs.github.com/en/rest/pulls/pulls#merge-a-pull-request
        """
        return self._repo.get_pull(number).merge(merge_method="merge")

    def close_pull(self, number: int, title: str) -> None:
        """Close a pull request and retitle it.

        References:
            - Update a pull request: https://docs.github.com/en/rest/pulls/pulls#update-a-pull-request
        """
        self._repo.get_pull(number).edit(state="closed", title=title)

    def list_run_artifacts(self, run_id: int) -> list[Artifact]:
        """List the artifacts attached to a workflow run.

        References:
            - List workflow run artifacts: https://docs.github.com/en/rest/actions/artifacts#list-workflow-run-artifacts
        """
        return list(self._repo.get_workflow_run(run_id).get_artifacts())

    def list_repository_artifacts(self, name: str | None = None) -> list[Artifact]:
        """List artifacts across all workflow runs, optionally filtered by name.

        References:
            - List artifacts for a repository: https://docs.github.com/en/rest/actions/artifacts#list-artifacts-for-a-repository
        """
        if name is None:
            return list(self._repo.get_artifacts())
        return list(self._repo.get_artifacts(name=name))

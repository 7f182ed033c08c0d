# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Promotion of a release through a generated pull request.

References:
    - Pull requests: https://docs.github.com/en/rest/pulls/pulls
    - Mergeability: https://docs.github.com/en/rest/guides/using-the-rest-api-to-interact-with-your-git-database#checking-mergeability-of-pull-requests
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from release_startup.errors import InvalidInputError, MergeTimeoutError, PullRequestError

if TYPE_CHECKING:
    from github.PullRequest import PullRequest

    from release_startup.github_api import GitHubAPI

logger = logging.getLogger(__name__)

TEMPORARY_BRANCH_TEMPLATE = "rebase-{sha}-rsa"


@dataclass
class MergePolicy:
    """Bounds on waiting for GitHub to compute pull request mergeability."""

    max_attempts: int = 60
    interval: float = 5.0
    deadline: float | None = None


def wait_for_mergeable(
    api: GitHubAPI,
    number: int,
    policy: MergePolicy,
    sleep: Callable[[float], object] = time.sleep,
    cancel: threading.Event | None = None,
) -> PullRequest:
    """Poll a pull request until its mergeability is known.

    Args:
        api: GitHubAPI instance.
        number: Pull request number.
        policy: Attempt count, interval and optional deadline in seconds.
        sleep: Sleep function, replaceable in tests.
        cancel: Event that aborts the wait when set.

    Returns:
        The pull request with ``mergeable`` set to True or False.

    Raises:
        MergeTimeoutError: If mergeability is still unknown when the attempts
            or the deadline run out, or the wait is cancelled.
    """
    started = time.monotonic()

    for attempt in range(1, policy.max_attempts + 1):
        pull = api.get_pull(number)
        if pull.mergeable is not None:
            logger.debug("Mergeable: %s (attempt %d)", pull.mergeable, attempt)
            return pull

        if policy.deadline is not None and time.monotonic() - started >= policy.deadline:
            break

        logger.debug("Mergeability of #%d not computed yet, retrying in %ss", number, policy.interval)
        if cancel is not None:
            if cancel.wait(policy.interval):
                raise MergeTimeoutError(f"Waiting for pull request #{number} to become mergeable was cancelled.")
        else:
            sleep(policy.interval)

    raise MergeTimeoutError(f"GitHub did not report whether pull request #{number} is mergeable in time.")


def promote(
    api: GitHubAPI,
    head: str,
    target: str,
    title: str,
    body: str,
    policy: MergePolicy,
    sleep: Callable[[float], object] = time.sleep,
) -> str:
    """Open a pull request from ``head`` into ``target`` and merge it.

    A pull request that cannot be merged is closed with a ``[FAILED]`` title.

    Returns:
        The SHA of the merge commit.

    Raises:
        PullRequestError: If the pull request is not mergeable or the merge fails.
        MergeTimeoutError: If mergeability was never computed.
    """
    pull = api.create_pull(base=target, head=head, title=title, body=body)
    number = pull.number
    failed_title = f"[FAILED] {title}"
    logger.info("Created pull request #%d '%s'", number, title)

    try:
        pull = wait_for_mergeable(api, number, policy, sleep=sleep)
    except MergeTimeoutError:
        api.close_pull(number, failed_title)
        raise

    if not pull.mergeable:
        api.close_pull(number, failed_title)
        raise PullRequestError(f"The pull request #{number} '{failed_title}' is not mergeable.")

    status = api.merge_pull(number)
    logger.debug("Merge result: sha=%s merged=%s", status.sha, status.merged)

    if not status.merged:
        api.close_pull(number, failed_title)
        raise PullRequestError(f"Failed to merge the pull request #{number} '{failed_title}'.")

    return status.sha


def prepare_source_branch(api: GitHubAPI, tag: str) -> str:
    """Create a temporary branch at the commit of a release tag.

    Returns:
        The name of the temporary branch.

    Raises:
        InvalidInputError: If the tag does not exist.
    """
    sha = api.get_tag_commit_sha(tag)
    if sha is None:
        raise InvalidInputError(f"The reference '{tag}' could not be resolved to a release tag.")

    logger.debug("SHA: '%s'", sha)
    branch_name = TEMPORARY_BRANCH_TEMPLATE.format(sha=sha)
    api.create_branch(branch_name, sha)
    logger.debug("Temporary Branch Name: '%s'", branch_name)
    return branch_name

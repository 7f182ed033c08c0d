# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Post step: delete the temporary branch created for a beta or production promotion."""

from __future__ import annotations

import logging
import os
import sys

from github.GithubException import GithubException

from release_startup.github_api import GitHubAPI
from release_startup.main import configure_logging
from release_startup.workflow import get_state

logger = logging.getLogger(__name__)


def cleanup(api: GitHubAPI) -> bool:
    """Delete the temporary branch recorded in the saved state.

    Returns:
        True if a branch was deleted.
    """
    if get_state("delete") != "true":
        logger.debug("No temporary branch to delete")
        return False

    branch = get_state("branch")
    logger.debug("Attempting to delete the temporary branch '%s'", branch)
    api.delete_branch(branch)
    logger.info("Branch '%s' is deleted.", branch)
    return True


def main() -> None:
    """Entry point for the post step."""
    configure_logging(os.environ.get("INPUT_DEBUG", "false").lower() == "true")

    if get_state("delete") != "true":
        return

    try:
        cleanup(GitHubAPI(token=os.environ.get("INPUT_TOKEN") or None))
    except (ValueError, GithubException) as e:
        logger.error("Failed to delete the temporary branch: %s", e)
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()

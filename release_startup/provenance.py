# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Branch provenance from git ancestry.

Measures how many commits a head has gained since it diverged from each
canonical branch. The branch with the smallest distance is the one the head
was most recently derived from.

References:
    - git merge-base --fork-point: https://git-scm.com/docs/git-merge-base#_discussion_on_fork_point_mode
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence

from release_startup.git import GitRunner

logger = logging.getLogger(__name__)

INFINITE_DISTANCE = math.inf

# Every pull request head is fetched into this one ref, so heads are
# analyzed one at a time.
PULL_REQUEST_HEAD_REF = "refs/remotes/origin/release-startup-pr-head"


class MergeBaseCache:
    """Memo of fork points keyed by (base, head), scoped to one analysis session."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], str | None] = {}

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: tuple[str, str]) -> str | None:
        return self._entries.get(key)

    def set(self, key: tuple[str, str], value: str | None) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()


class ForkProvenanceAnalyzer:
    """Computes fork points and fork distances against remote-tracking branches."""

    def __init__(self, git: GitRunner, remote: str = "origin", cache: MergeBaseCache | None = None) -> None:
        self.git = git
        self.remote = remote
        self.cache = cache if cache is not None else MergeBaseCache()

    def remote_ref(self, branch: str) -> str:
        return f"{self.remote}/{branch}"

    def fetch_branches(self, *branches: str) -> None:
        """Fetch branch tips into remote-tracking refs, deepening shallow clones first."""
        refspecs = [f"+refs/heads/{branch}:refs/remotes/{self.remote}/{branch}" for branch in branches]
        unshallow = self.git.is_shallow()
        if unshallow:
            logger.debug("Repository is shallow, fetching full history")
        result = self.git.fetch(self.remote, *refspecs, unshallow=unshallow)
        if not result.ok:
            logger.warning("Failed to fetch %s: %s", ", ".join(branches), result.stderr.strip())

    def fetch_pull_request_head(self, number: int) -> str | None:
        """Fetch the head commit of a pull request and return its SHA."""
        result = self.git.fetch(self.remote, f"+refs/pull/{number}/head:{PULL_REQUEST_HEAD_REF}")
        if not result.ok:
            logger.warning("Failed to fetch head of pull request #%d: %s", number, result.stderr.strip())
            return None
        return self.git.rev_parse(PULL_REQUEST_HEAD_REF)

    def tip(self, branch: str) -> str | None:
        """Return the commit at the tip of the remote-tracking branch."""
        return self.git.rev_parse(self.remote_ref(branch))

    def fork_point(self, base: str, head: str) -> str | None:
        """Return the commit where ``head`` forked from ``base``.

        Tries ``git merge-base --fork-point`` first, which needs the reflog of
        the remote-tracking branch, then falls back to a plain merge base.

        Args:
            base: Canonical branch name (without the remote prefix).
            head: Any commit-ish to test.

        Returns:
            The fork point SHA, or None if neither query yields one.
        """
        key = (base, head)
        if key in self.cache:
            return self.cache.get(key)

        base_ref = self.remote_ref(base)
        result = self.git.run("merge-base", "--fork-point", base_ref, head)
        commit = result.stdout.strip() if result.ok else ""

        if not commit:
            logger.debug("No fork point between '%s' and '%s', trying plain merge-base", base_ref, head)
            result = self.git.run("merge-base", base_ref, head)
            commit = result.stdout.strip() if result.ok else ""

        fork = commit or None
        self.cache.set(key, fork)
        return fork

    def fork_distance(self, base: str, head: str) -> int | float:
        """Count the commits on ``head`` since it forked from ``base``.

        Returns:
            The number of commits reachable from ``head`` but not from the
            fork point, or ``INFINITE_DISTANCE`` when no fork point exists.
        """
        fork = self.fork_point(base, head)
        if fork is None:
            return INFINITE_DISTANCE

        result = self.git.run("rev-list", "--count", f"{fork}..{head}")
        if not result.ok:
            logger.warning("Failed to count commits between %s and %s: %s", fork[:7], head, result.stderr.strip())
            return INFINITE_DISTANCE
        return int(result.stdout.strip() or 0)

    def fork_distances(self, branches: Iterable[str], head: str) -> dict[str, int | float]:
        """Compute the fork distance from each branch to ``head``, in order."""
        return {branch: self.fork_distance(branch, head) for branch in branches}


def choose_closest(distances: Mapping[str, int | float], preference_order: Sequence[str]) -> str:
    """Pick the branch with the smallest fork distance.

    Scans ``preference_order`` left to right. A later branch replaces the
    current best only with a strictly smaller finite distance, so ties go to
    the branch listed first.

    Args:
        distances: Fork distance per branch; missing branches count as infinite.
        preference_order: Branches in tie-break order.

    Returns:
        The closest branch.

    Raises:
        ValueError: If ``preference_order`` is empty.

    Examples:
        >>> choose_closest({"main": 2, "release": 2}, ["main", "release"])
        'main'
        >>> choose_closest({"main": 2, "release": 2}, ["release", "main"])
        'release'
        >>> choose_closest({"main": math.inf, "release": 5}, ["main", "release"])
        'release'
    """
    if not preference_order:
        raise ValueError("At least one candidate branch is required")

    best = preference_order[0]
    best_distance = distances.get(best, INFINITE_DISTANCE)

    for branch in preference_order[1:]:
        distance = distances.get(branch, INFINITE_DISTANCE)
        if math.isfinite(distance) and distance < best_distance:
            best = branch
            best_distance = distance

    return best


def format_distance(distance: int | float) -> str:
    """Render a fork distance for humans, using '∞' for unrelated heads."""
    return "∞" if math.isinf(distance) else str(int(distance))

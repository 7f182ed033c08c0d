# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Release stages and the long-lived branches they promote into.

The promotion pipeline is develop -> release -> main, mapped 1:1 onto the
alpha, beta and production stages.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class StageBranch(str, Enum):
    """Canonical long-lived branches, in promotion pipeline order."""

    DEVELOP = "develop"
    RELEASE = "release"
    MAIN = "main"

    @property
    def position(self) -> int:
        """Return the position of the branch in the promotion pipeline."""
        return list(StageBranch).index(self)

    def __str__(self) -> str:
        return self.value


class ReleaseStage(str, Enum):
    """Release stages bound to their target and default source branches."""

    ALPHA = "alpha"
    BETA = "beta"
    PRODUCTION = "production"

    @property
    def target(self) -> StageBranch:
        """Return the branch this stage releases onto."""
        return _TARGETS[self]

    @property
    def source(self) -> StageBranch:
        """Return the branch this stage releases from when no reference is given."""
        return _SOURCES[self]

    def __str__(self) -> str:
        return self.value


_TARGETS = {
    ReleaseStage.ALPHA: StageBranch.DEVELOP,
    ReleaseStage.BETA: StageBranch.RELEASE,
    ReleaseStage.PRODUCTION: StageBranch.MAIN,
}

_SOURCES = {
    ReleaseStage.ALPHA: StageBranch.DEVELOP,
    ReleaseStage.BETA: StageBranch.DEVELOP,
    ReleaseStage.PRODUCTION: StageBranch.RELEASE,
}

STAGE_NAMES = [stage.value for stage in ReleaseStage]
BRANCH_NAMES = [branch.value for branch in StageBranch]


def parse_stage(name: str) -> ReleaseStage | None:
    """Return the stage named ``name``, or None if it is not a known stage.

    Examples:
        >>> parse_stage("beta")
        <ReleaseStage.BETA: 'beta'>
        >>> parse_stage("gamma") is None
        True
    """
    try:
        return ReleaseStage(name)
    except ValueError:
        return None


def is_stage_branch(branch_name: str | None) -> bool:
    """Check whether a branch is one of develop, release or main."""
    return branch_name in BRANCH_NAMES


def is_detached(stage: ReleaseStage, reference: str, hotfix: bool) -> bool:
    """Check whether a release uses an explicit reference instead of its source branch.

    Args:
        stage: The release stage.
        reference: The free-text reference input (commit, branch or tag).
        hotfix: Whether this is a hotfix release.

    Returns:
        True if the release is detached from its default source branch.

    Examples:
        >>> is_detached(ReleaseStage.ALPHA, "", False)
        False
        >>> is_detached(ReleaseStage.ALPHA, "develop", False)
        False
        >>> is_detached(ReleaseStage.ALPHA, "abc1234", False)
        True
    """
    return not hotfix and reference != "" and reference != stage.source.value

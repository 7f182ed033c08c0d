# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Error taxonomy for the release startup action.

Every failure raised by the action carries an ``ErrorKind`` so callers can
branch on the kind of failure without inspecting exception types.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Kinds of failure surfaced by the action."""

    INVALID_INPUT = "invalid_input"
    INVALID_VERSION = "invalid_version"
    BLOCKING_PRS = "blocking_prs"
    BRANCH_MISMATCH = "branch_mismatch"
    RERUN_DETECTED = "rerun_detected"
    MERGE_TIMEOUT = "merge_timeout"
    PULL_REQUEST = "pull_request"
    ARTIFACT = "artifact"


class ReleaseError(Exception):
    """Base class for all release failures."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(ReleaseError):
    """Action inputs are inconsistent; raised before any network or git I/O."""

    kind = ErrorKind.INVALID_INPUT


class InvalidVersionError(ReleaseError):
    """A prior version is missing or malformed for the requested transition."""

    kind = ErrorKind.INVALID_VERSION


class BlockingHotfixPRError(ReleaseError):
    """Open pull requests carry changes from a forbidden upstream branch."""

    kind = ErrorKind.BLOCKING_PRS


class BranchMismatchError(ReleaseError):
    """A hotfix branch was not forked from its intended stage branch."""

    kind = ErrorKind.BRANCH_MISMATCH


class RerunDetectedError(ReleaseError):
    """A previous attempt of this workflow run already found blocking PRs."""

    kind = ErrorKind.RERUN_DETECTED


class MergeTimeoutError(ReleaseError):
    """GitHub did not compute pull request mergeability in time."""

    kind = ErrorKind.MERGE_TIMEOUT


class PullRequestError(ReleaseError):
    """A generated pull request could not be merged."""

    kind = ErrorKind.PULL_REQUEST


class ArtifactUploadError(ReleaseError):
    """Uploading a workflow artifact failed."""

    kind = ErrorKind.ARTIFACT

# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Calendar-based release versioning.

Versions follow ``v<year>.<revision>[.<patch>][-<alpha|beta>.<iteration>[.<fix>]]``.
Production releases bump the revision (or restart it at 1 in a new year),
prereleases carry an iteration counter, and hotfixes append a patch or fix
component to the version they repair.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date

from release_startup.errors import InvalidVersionError
from release_startup.stages import ReleaseStage, StageBranch

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"^v(20\d{2})\.(\d+)(?:\.(\d+))?(?:-(alpha|beta)\.(\d+)(?:\.(\d+))?)?$")

# Prerelease ordering within the same year/revision/patch
_PRERELEASE_RANK = {"alpha": 0, "beta": 1, None: 2}


@dataclass(frozen=True)
class Version:
    """Structured form of a release version tag."""

    year: int
    revision: int
    patch: int | None = None
    prerelease: str | None = None
    iteration: int | None = None
    fix: int | None = None

    def __str__(self) -> str:
        """Return the canonical tag (e.g., 'v2025.3-alpha.2')."""
        text = f"v{self.year}.{self.revision}"
        if self.patch is not None:
            text += f".{self.patch}"
        if self.prerelease is not None:
            text += f"-{self.prerelease}.{self.iteration or 0}"
            if self.fix is not None:
                text += f".{self.fix}"
        return text

    @property
    def is_alpha(self) -> bool:
        return self.prerelease == "alpha"

    @property
    def is_beta(self) -> bool:
        return self.prerelease == "beta"


@dataclass(frozen=True)
class ReleaseTag:
    """A version tag together with the stage branch it was released on."""

    tag: str
    branch: StageBranch

    @classmethod
    def from_tag(cls, tag: str) -> ReleaseTag:
        return cls(tag=tag, branch=branch_for_tag(tag))


def parse_version(text: str | None) -> Version | None:
    """Parse a version tag into its components.

    Args:
        text: The tag to parse (e.g., 'v2025.3', 'v2025.3.1', 'v2025.3-beta.2.1').

    Returns:
        A Version, or None if the text is absent or does not follow the grammar.

    Examples:
        >>> parse_version("v2025.3-alpha.2")
        Version(year=2025, revision=3, patch=None, prerelease='alpha', iteration=2, fix=None)
        >>> parse_version("1.2.3") is None
        True
    """
    if not text:
        return None

    match = VERSION_PATTERN.match(text)
    if not match:
        return None

    year, revision, patch, prerelease, iteration, fix = match.groups()
    return Version(
        year=int(year),
        revision=int(revision),
        patch=int(patch) if patch is not None else None,
        prerelease=prerelease,
        iteration=int(iteration) if iteration is not None else None,
        fix=int(fix) if fix is not None else None,
    )


def is_alpha_version(text: str | None) -> bool:
    """Check if a tag is a plain alpha release (``v<year>.<rev>-alpha.<iter>``).

    Examples:
        >>> is_alpha_version("v2025.3-alpha.2")
        True
        >>> is_alpha_version("v2025.3.1-alpha.2")
        False
    """
    version = parse_version(text)
    return version is not None and version.is_alpha and version.patch is None and version.fix is None


def branch_for_tag(tag: str) -> StageBranch:
    """Return the stage branch a tag was released on, judged by its suffix."""
    if "-alpha." in tag:
        return StageBranch.DEVELOP
    if "-beta." in tag:
        return StageBranch.RELEASE
    return StageBranch.MAIN


def compute_next_version(
    stage: ReleaseStage | str,
    reference: str,
    hotfix: bool,
    previous_version: str | None,
    last_production_version: str | None,
    latest_stage_version_for_hotfix: str | None = None,
    current_year: int | None = None,
) -> str:
    """Compute the version of the next release.

    Args:
        stage: The release stage (alpha, beta or production).
        reference: The explicit reference input; for beta, an alpha version to promote.
        hotfix: Whether this is a hotfix release.
        previous_version: The caller-chosen prior version: the last alpha
            when releasing alpha or beta, the last target version otherwise.
        last_production_version: The most recent production tag, if any.
        latest_stage_version_for_hotfix: The most recent beta tag, used for beta hotfixes.
        current_year: Calendar year to release in. Defaults to today's year.

    Returns:
        The next version tag.

    Raises:
        InvalidVersionError: If a prior version required by the transition is
            missing or malformed.

    Examples:
        >>> compute_next_version("alpha", "", False, "v2025.3-alpha.1", "v2025.2", current_year=2025)
        'v2025.3-alpha.2'
        >>> compute_next_version("beta", "", False, "v2025.3-alpha.2", "v2025.2", current_year=2025)
        'v2025.3-beta.2'
        >>> compute_next_version("production", "", True, "v2025.2", "v2025.2", current_year=2025)
        'v2025.2.1'
    """
    stage = ReleaseStage(stage)
    year_now = current_year if current_year is not None else date.today().year

    if hotfix and stage is ReleaseStage.BETA:
        return _next_beta_hotfix(latest_stage_version_for_hotfix)

    working = _working_version(parse_version(last_production_version), hotfix, year_now)
    logger.debug("Working version: '%s'", working)

    if hotfix or stage is ReleaseStage.PRODUCTION:
        return str(working)

    if stage is ReleaseStage.BETA:
        return _next_beta(reference or previous_version)

    return _next_alpha(working, parse_version(previous_version))


def _next_beta_hotfix(previous_beta: str | None) -> str:
    """Append or increment the fix component of the latest beta release."""
    if not previous_beta:
        raise InvalidVersionError(
            "No previous 'beta' release was found to be used as the base for the 'beta' hotfix release."
        )

    version = parse_version(previous_beta)
    if version is None or not version.is_beta:
        raise InvalidVersionError(
            f"The previous 'beta' release {previous_beta} doesn't have a correct version tag "
            "and cannot be used as the base for a 'beta' hotfix release."
        )

    return str(replace(version, fix=(version.fix or 0) + 1))


def _working_version(production: Version | None, hotfix: bool, year_now: int) -> Version:
    """Derive the production-level version the next release builds on."""
    if production is None:
        return Version(year=year_now, revision=1)

    spike = production.year != year_now

    if hotfix:
        return Version(
            year=production.year,
            revision=production.revision,
            patch=(production.patch or 0) + 1,
        )

    return Version(year=year_now, revision=1 if spike else production.revision + 1)


def _next_beta(alpha_tag: str | None) -> str:
    """Turn an alpha release into the matching beta release."""
    if not alpha_tag:
        raise InvalidVersionError(
            "No previous 'alpha' release was found to be used as the base for the 'beta' release."
        )

    if not is_alpha_version(alpha_tag):
        raise InvalidVersionError(
            f"The previous 'alpha' release {alpha_tag} doesn't have a correct version tag "
            "and cannot be used as the base for a 'beta' release."
        )

    return alpha_tag.replace("alpha", "beta")


def _next_alpha(working: Version, previous_alpha: Version | None) -> str:
    """Continue the alpha series of the working version or start a new one."""
    if (
        previous_alpha is not None
        and previous_alpha.is_alpha
        and (previous_alpha.year, previous_alpha.revision) == (working.year, working.revision)
    ):
        iteration = (previous_alpha.iteration or 0) + 1
    else:
        iteration = 1

    return str(Version(year=working.year, revision=working.revision, prerelease="alpha", iteration=iteration))


def version_sort_key(tag: str) -> tuple[int, int, int, int, int, int, str]:
    """Return a key ordering tags from oldest to most recent.

    Within the same year, revision and patch, alpha sorts before beta and
    both sort before the final release. The tag itself breaks any remaining
    tie so distinct strings never compare equal.

    Raises:
        InvalidVersionError: If the tag is not a version tag.
    """
    version = parse_version(tag)
    if version is None:
        raise InvalidVersionError(f"Invalid version format: {tag}")

    return (
        version.year,
        version.revision,
        version.patch or 0,
        _PRERELEASE_RANK[version.prerelease],
        version.iteration or 0,
        version.fix or 0,
        tag,
    )


def compare_versions(a: str, b: str) -> int:
    """Compare two version tags in descending recency order.

    Returns:
        A negative number if ``a`` is more recent than ``b``, a positive
        number if it is older, and 0 only when both are the same tag.

    Examples:
        >>> compare_versions("v2025.3", "v2025.3-beta.1")
        -1
        >>> compare_versions("v2025.3-alpha.4", "v2025.3-beta.1")
        1
    """
    key_a = version_sort_key(a)
    key_b = version_sort_key(b)
    if key_a == key_b:
        return 0
    return -1 if key_a > key_b else 1


def build_extended_version(version: str) -> str:
    """Insert a ``.0`` patch segment into versions that lack one.

    Examples:
        >>> build_extended_version("v2025.3-alpha.2")
        'v2025.3.0-alpha.2'
        >>> build_extended_version("v2025.3.1")
        'v2025.3.1'
        >>> build_extended_version("not-a-version")
        'not-a-version'
    """
    match = VERSION_PATTERN.match(version)
    if not match or match.group(3) is not None:
        return version

    split_at = match.end(2)
    return f"{version[:split_at]}.0{version[split_at:]}"


def build_plain_version(version: str) -> str:
    """Strip the leading 'v' from a version tag."""
    return version[1:] if version.startswith("v") else version


def collect_release_tags(names: Iterable[str]) -> list[ReleaseTag]:
    """Keep the version tags among ``names``, ordered oldest to most recent.

    Args:
        names: Tag names as listed by the repository.

    Returns:
        ReleaseTag records sorted so the most recent tag is last.
    """
    tags = [ReleaseTag.from_tag(name) for name in names if parse_version(name) is not None]
    tags.sort(key=lambda release: version_sort_key(release.tag))
    return tags


def latest_release(tags: list[ReleaseTag], branch: StageBranch | str) -> str | None:
    """Return the most recent tag released on ``branch``, or None."""
    branch = StageBranch(branch)
    on_branch = [release.tag for release in tags if release.branch is branch]
    return on_branch[-1] if on_branch else None

# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Branch provenance policies that block illegitimate promotions.

Two checks are built on fork distances:

* open pull requests into a stage branch must not be based on a branch
  further down the pipeline (e.g. a hotfix made from ``main`` but merged
  into ``develop``);
* a hotfix branch must have been forked from the stage branch it fixes.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from release_startup.errors import BlockingHotfixPRError, BranchMismatchError, InvalidInputError
from release_startup.provenance import INFINITE_DISTANCE, choose_closest, format_distance
from release_startup.stages import StageBranch
from release_startup.workflow import RunSummary

if TYPE_CHECKING:
    from release_startup.github_api import GitHubAPI
    from release_startup.provenance import ForkProvenanceAnalyzer

logger = logging.getLogger(__name__)

CANONICAL_BRANCHES = [StageBranch.DEVELOP.value, StageBranch.MAIN.value, StageBranch.RELEASE.value]


@dataclass
class PullRequestCandidate:
    """An open pull request considered by the open-PR guard."""

    number: int
    title: str
    url: str
    head_ref: str
    base_branch: str
    is_draft: bool = False

    @classmethod
    def from_pull(cls, pull: Any) -> PullRequestCandidate:
        """Build a candidate from a PyGithub pull request."""
        return cls(
            number=pull.number,
            title=pull.title,
            url=pull.html_url,
            head_ref=pull.head.ref,
            base_branch=pull.base.ref,
            is_draft=bool(pull.draft),
        )

    def as_markdown(self) -> str:
        return f"- [{self.title}]({self.url})"


@dataclass
class HotfixBranchReport:
    """Outcome of the hotfix ancestry check.

    ``distances`` are the values compared, with branches that share the stage
    branch's tip set to infinity. ``raw_distances`` are the measured values.
    """

    branch: str
    stage_branch: str
    distances: dict[str, int | float]
    closest: str
    competing: list[str] = field(default_factory=list)
    forked_at_tip: bool = False
    raw_distances: dict[str, int | float] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.closest == self.stage_branch and (not self.competing or self.forked_at_tip)

    @property
    def closer_branch(self) -> str:
        """Return the competing branch with the smallest finite distance."""
        finite = [branch for branch in self.competing if math.isfinite(self.distances[branch])]
        if finite:
            return min(finite, key=lambda branch: self.distances[branch])
        return self.competing[0] if self.competing else self.closest


class BranchGuard:
    """Runs the branch provenance policies and reports violations."""

    def __init__(
        self,
        api: GitHubAPI,
        analyzer: ForkProvenanceAnalyzer,
        summary: RunSummary | None = None,
    ) -> None:
        self.api = api
        self.analyzer = analyzer
        self.summary = summary if summary is not None else RunSummary()

    def list_candidates(self, base_branch: str, include_drafts: bool = False) -> list[PullRequestCandidate]:
        """List open pull requests into ``base_branch``, dropping drafts unless asked not to."""
        candidates = [PullRequestCandidate.from_pull(pull) for pull in self.api.list_open_pulls(base_branch)]
        candidates = [c for c in candidates if c.base_branch == base_branch]
        if not include_drafts:
            candidates = [c for c in candidates if not c.is_draft]
        return candidates

    def find_offenders(
        self,
        base_branch: str,
        forbidden: Sequence[str],
        candidates: Sequence[PullRequestCandidate],
    ) -> list[PullRequestCandidate]:
        """Return the candidates whose head is closer to a forbidden branch than to the base.

        Heads are fetched one at a time into a single local ref, so distances
        for one pull request are computed before the next head is fetched.
        """
        preference = [base_branch, *forbidden]
        self.analyzer.fetch_branches(*preference)

        offenders = []
        for candidate in candidates:
            head = self.analyzer.fetch_pull_request_head(candidate.number)
            if head is None:
                logger.warning("Skipping pull request #%d: head could not be fetched", candidate.number)
                continue

            distances = self.analyzer.fork_distances(preference, head)
            closest = choose_closest(distances, preference)
            logger.debug(
                "PR #%d (%s): distances %s, closest '%s'",
                candidate.number,
                candidate.head_ref,
                {branch: format_distance(d) for branch, d in distances.items()},
                closest,
            )

            if closest != base_branch and closest in forbidden and math.isfinite(distances[closest]):
                logger.info("Pull request #%d '%s' is based on '%s'", candidate.number, candidate.title, closest)
                offenders.append(candidate)

        return offenders

    def assert_open_prs(
        self,
        base_branch: str,
        forbidden: Sequence[str],
        heading: str,
        message: str,
        include_drafts: bool = False,
    ) -> None:
        """Fail if an open pull request into ``base_branch`` was made from a forbidden branch.

        Args:
            base_branch: The branch the pull requests target (e.g. 'develop').
            forbidden: Upstream branches pull requests must not be based on.
            heading: Run summary heading for the offender list.
            message: Error message; ``{count}`` is replaced by the offender count.
            include_drafts: Whether draft pull requests are checked too.

        Raises:
            BlockingHotfixPRError: If at least one offender exists.
        """
        candidates = self.list_candidates(base_branch, include_drafts)
        if not candidates:
            logger.info("No open pull requests into '%s' to check", base_branch)
            return

        offenders = self.find_offenders(base_branch, forbidden, candidates)
        if not offenders:
            logger.info("None of %d open pull requests into '%s' is blocking", len(candidates), base_branch)
            return

        self.summary.add_raw(heading).add_raw("\n".join(o.as_markdown() for o in offenders)).write()
        raise BlockingHotfixPRError(message.format(count=len(offenders)))

    def check_hotfix_branch(self, branch: str, stage_branch: StageBranch | str) -> HotfixBranchReport:
        """Measure which canonical branch a hotfix branch was forked from.

        A canonical branch whose tip is the same commit as the stage branch's
        tip cannot compete with it and is treated as infinitely far away.
        """
        intended = StageBranch(stage_branch)
        if intended not in (StageBranch.MAIN, StageBranch.RELEASE):
            raise InvalidInputError(f"Hotfixes can only target 'main' or 'release', not '{intended}'.")

        competitor = StageBranch.RELEASE if intended is StageBranch.MAIN else StageBranch.MAIN
        preference = [intended.value, competitor.value, StageBranch.DEVELOP.value]

        self.analyzer.fetch_branches(branch, *CANONICAL_BRANCHES)
        head = self.analyzer.tip(branch)
        if head is None:
            raise BranchMismatchError(f"The hotfix branch '{branch}' could not be fetched.")

        distances = self.analyzer.fork_distances(CANONICAL_BRANCHES, head)
        raw_distances = dict(distances)
        tips = {name: self.analyzer.tip(name) for name in CANONICAL_BRANCHES}
        intended_tip = tips[intended.value]

        shares_tip = {
            name
            for name in CANONICAL_BRANCHES
            if name != intended.value and tips[name] is not None and tips[name] == intended_tip
        }
        for name in shares_tip:
            distances[name] = INFINITE_DISTANCE

        closest = choose_closest(distances, preference)
        intended_distance = distances[intended.value]
        competing = [
            name
            for name in CANONICAL_BRANCHES
            if name != intended.value and name not in shares_tip and distances[name] <= intended_distance
        ]

        fork = self.analyzer.fork_point(intended.value, head)
        return HotfixBranchReport(
            branch=branch,
            stage_branch=intended.value,
            distances=distances,
            closest=closest,
            competing=competing,
            forked_at_tip=fork is not None and fork == intended_tip,
            raw_distances=raw_distances,
        )

    def assert_correct_hotfix_branch(self, branch: str, stage_branch: StageBranch | str) -> HotfixBranchReport:
        """Fail unless ``branch`` was forked from ``stage_branch``.

        Args:
            branch: The hotfix branch name.
            stage_branch: 'main' for production hotfixes, 'release' for beta hotfixes.

        Returns:
            The report of a passing check.

        Raises:
            BranchMismatchError: If the branch is closer to, or tied with,
                another canonical branch.
        """
        report = self.check_hotfix_branch(branch, stage_branch)
        logger.info(
            "Hotfix branch '%s' distances: %s",
            branch,
            ", ".join(f"{name}={format_distance(d)}" for name, d in report.raw_distances.items()),
        )

        if report.passed:
            return report

        rows = "\n".join(
            f"| `{name}` | {format_distance(report.raw_distances[name])} |" for name in CANONICAL_BRANCHES
        )
        self.summary.add_raw("### Hotfix branch check failed").add_raw(
            f"A hotfix branch must be created from `{report.stage_branch}` and be closer to it than "
            f"to any other stage branch, but `{branch}` appears to be closer to `{report.closer_branch}`."
        ).add_raw("| Branch | Commits since fork point |\n| --- | --- |\n" + rows).write()

        raise BranchMismatchError(f"The hotfix branch '{branch}' was not created from '{report.stage_branch}'.")

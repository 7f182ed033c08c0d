# Copyright (c) 2026 Mark Ferrell. MIT License.
"""Release Startup Action - Core modules."""

from release_startup.guards import BranchGuard
from release_startup.provenance import ForkProvenanceAnalyzer, choose_closest
from release_startup.versioning import build_extended_version, compare_versions, compute_next_version

__all__ = [
    "BranchGuard",
    "ForkProvenanceAnalyzer",
    "build_extended_version",
    "choose_closest",
    "compare_versions",
    "compute_next_version",
]

"""
command_history/resolver.py

PathResolver — first-match-wins transcript path resolution.

The priority order for each variant is plain data (a ResolutionChain), so it
can be inspected and tested without touching the filesystem logic.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathCandidate:
    """
    One entry of a ResolutionChain.

    Attributes:
        label : Where the path came from ("override", "session_raw", …).
        path  : Candidate location; None when that source is unset.
    """
    label: str
    path: Optional[str]


@dataclass(frozen=True)
class ResolvedPath:
    label: str
    path: str


class ResolutionChain:
    """Ordered, immutable list of PathCandidates."""

    def __init__(self, candidates: Iterable[PathCandidate]) -> None:
        self._candidates: Tuple[PathCandidate, ...] = tuple(candidates)

    @property
    def candidates(self) -> Tuple[PathCandidate, ...]:
        return self._candidates

    @property
    def labels(self) -> list[str]:
        return [c.label for c in self._candidates]

    def __iter__(self):
        return iter(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __repr__(self) -> str:
        return f"ResolutionChain({self.labels!r})"


def is_usable(path: Optional[str]) -> bool:
    """True when `path` is set, is a regular file, and is readable."""
    if not path:
        return False
    return os.path.isfile(path) and os.access(path, os.R_OK)


def resolve(chain: ResolutionChain) -> Optional[ResolvedPath]:
    """Return the first usable candidate of `chain`, or None."""
    for candidate in chain:
        if is_usable(candidate.path):
            logger.debug("Resolved transcript via %s: %s", candidate.label, candidate.path)
            return ResolvedPath(label=candidate.label, path=candidate.path)
        if candidate.path:
            logger.debug("Skipping %s candidate (missing or unreadable): %s",
                         candidate.label, candidate.path)
    return None

"""
Search candidates and best-candidate bookkeeping
Shared by the image and animated target-size searches
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .error_handler import EncodeError

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """Result of one codec backend invocation.

    Image trials carry their encoded bytes in ``data``; animated trials point
    at an on-disk artifact through ``path``.
    """
    size: int
    scale: float
    width: int
    height: Optional[int] = None
    quality: Optional[int] = None
    fps: Optional[int] = None
    data: Optional[bytes] = None
    path: Optional[str] = None

    def describe(self) -> str:
        dims = f"{self.width}x{self.height}" if self.height else f"{self.width}w"
        knob = f"q={self.quality}" if self.quality is not None else f"fps={self.fps}"
        return f"scale={self.scale:.2f} {dims} {knob} -> {self.size} bytes"

    def params(self) -> Dict[str, Any]:
        return {
            'scale': self.scale,
            'width': self.width,
            'height': self.height,
            'quality': self.quality,
            'fps': self.fps,
        }


@dataclass
class SearchOutcome:
    """Final decision of a search run"""
    candidate: Candidate
    extension: str
    mime_type: str
    achieved: bool
    trials: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return self.candidate.size

    @property
    def data(self) -> Optional[bytes]:
        return self.candidate.data

    @property
    def path(self) -> Optional[str]:
        return self.candidate.path


class CandidateTracker:
    """Two-tier selection: best candidate at or under the target, else the smallest seen.

    Among under-target candidates the largest size wins, which at a fixed
    scale is the highest quality. On equal size the later candidate wins only
    within one scale, so a tie across scales keeps the larger scale.
    """

    def __init__(self, target_bytes: int):
        self.target_bytes = target_bytes
        self.best_under: Optional[Candidate] = None
        self.smallest: Optional[Candidate] = None
        self.trials = 0

    def consider(self, candidate: Candidate) -> bool:
        """Record a candidate. Returns True if it met the target."""
        self.trials += 1

        if self.smallest is None or candidate.size < self.smallest.size:
            self.smallest = candidate

        if candidate.size <= self.target_bytes:
            if self._beats_best_under(candidate):
                self.best_under = candidate
            return True
        return False

    def _beats_best_under(self, candidate: Candidate) -> bool:
        best = self.best_under
        if best is None or candidate.size > best.size:
            return True
        return candidate.size == best.size and candidate.scale == best.scale

    @property
    def achieved(self) -> bool:
        return self.best_under is not None

    def winner(self) -> Candidate:
        if self.best_under is not None:
            return self.best_under
        if self.smallest is None:
            raise EncodeError("Search produced no candidates")
        return self.smallest

    def outcome(self, extension: str, mime_type: str) -> SearchOutcome:
        winner = self.winner()
        return SearchOutcome(
            candidate=winner,
            extension=extension,
            mime_type=mime_type,
            achieved=self.achieved,
            trials=self.trials,
        )

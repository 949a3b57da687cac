"""
Animated Target-Size Search
Scale ladder x frame-rate ladder grid for multi-frame formats, stopping at the
first trial that fits. Trials are written to the request workspace and at most
one of them is kept on disk at a time.
"""

import logging
import os
import time
from typing import Callable, Optional

from .candidates import Candidate, SearchOutcome
from .codec_backend import AnimatedBackend
from .error_handler import EncodeError
from .file_validator import MEDIA_FORMATS, MediaFormat
from .ladders import FrameRateLadder, ScaleLadder, animated_width
from .workspace import BestArtifactSlot, Workspace

logger = logging.getLogger(__name__)

FAILURE_POLICIES = ('abort', 'skip')


class AnimatedTargetSizeSearch:
    """
    Grid search over (scale, fps), highest of each first.

    on_encode_failure:
        'abort' - the first failing trial ends the search and the error propagates
        'skip'  - the failing pair is logged and the grid continues
    """

    def __init__(self, backend: AnimatedBackend, scale_ladder: Optional[ScaleLadder] = None,
                 frame_rates: Optional[FrameRateLadder] = None, min_width: int = 80,
                 on_encode_failure: str = 'abort', output_format: Optional[MediaFormat] = None):
        if on_encode_failure not in FAILURE_POLICIES:
            raise ValueError(f"on_encode_failure must be one of {FAILURE_POLICIES}: {on_encode_failure}")
        self.backend = backend
        self.scale_ladder = scale_ladder or ScaleLadder()
        self.frame_rates = frame_rates or FrameRateLadder()
        self.min_width = min_width
        self.on_encode_failure = on_encode_failure
        self.output_format = output_format or MEDIA_FORMATS['gif']

    @classmethod
    def from_config(cls, backend: AnimatedBackend, config) -> "AnimatedTargetSizeSearch":
        return cls(
            backend,
            scale_ladder=ScaleLadder(tuple(config.get('animated.scale_ladder', ScaleLadder().factors))),
            frame_rates=FrameRateLadder(tuple(config.get('animated.frame_rates', FrameRateLadder().rates))),
            min_width=int(config.get('animated.min_width', 80)),
            on_encode_failure=str(config.get('animated.on_encode_failure', 'abort')),
        )

    def run(self, source_path: str, width: int, target_bytes: int, workspace: Workspace,
            on_trial: Optional[Callable[[Candidate], None]] = None) -> SearchOutcome:
        """
        Search the grid until a trial fits or the grid is exhausted.

        The returned candidate's file lives in the workspace and belongs to the
        caller; every other trial file has been deleted.

        Raises:
            EncodeError: first failure under 'abort', or every trial failed under 'skip'
        """
        start = time.time()
        trials = 0
        failures = 0
        achieved = False
        extension = self.output_format.extension
        logger.info(f"Animated search: width {width}, target {target_bytes} bytes, "
                    f"{len(self.scale_ladder)}x{len(self.frame_rates)} grid, policy={self.on_encode_failure}")

        with BestArtifactSlot(workspace) as slot:
            for scale in self.scale_ladder:
                trial_width = animated_width(width, scale, self.min_width)
                for fps in self.frame_rates:
                    output_path = workspace.path_for(f"trial_{int(scale * 100)}_{fps}", f".{extension}")
                    trials += 1
                    try:
                        self.backend.encode(source_path, trial_width, fps, output_path)
                        size = workspace_file_size(output_path)
                    except EncodeError as e:
                        workspace.remove(output_path)
                        if self.on_encode_failure == 'abort':
                            logger.error(f"Animated trial scale={scale:.2f} fps={fps} failed, aborting: {e}")
                            raise
                        failures += 1
                        logger.warning(f"Animated trial scale={scale:.2f} fps={fps} failed, skipping: {e}")
                        continue
                    except Exception:
                        workspace.remove(output_path)
                        raise

                    candidate = Candidate(size=size, scale=scale, width=trial_width, fps=fps, path=output_path)
                    promoted = slot.offer(candidate)
                    logger.debug(f"Trial {trials}: {candidate.describe()} {'best' if promoted else 'discarded'}")
                    if on_trial:
                        on_trial(candidate)

                    if size <= target_bytes:
                        achieved = True
                        break
                if achieved:
                    break

            best = slot.release()

        if best is None:
            raise EncodeError(f"All {failures} animated trials failed")

        outcome = SearchOutcome(
            candidate=best,
            extension=extension,
            mime_type=self.output_format.mime_type,
            achieved=achieved,
            trials=trials,
            details={'failures': failures, 'elapsed_seconds': round(time.time() - start, 3)},
        )
        logger.info(f"Animated search finished after {trials} trials: {best.describe()} achieved={achieved}")
        return outcome


def workspace_file_size(file_path: str) -> int:
    try:
        return os.path.getsize(file_path)
    except OSError as e:
        raise EncodeError(f"Trial output missing: {file_path}") from e

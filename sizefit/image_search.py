"""
Image Target-Size Search
Scale ladder x binary search over quality for single-frame formats.
All trials stay in memory.
"""

import logging
import time
from typing import Callable, Optional

from .candidates import Candidate, CandidateTracker, SearchOutcome
from .codec_backend import ImageBackend
from .file_validator import MediaFormat
from .ladders import ScaleLadder, fit_inside

logger = logging.getLogger(__name__)

TrialCallback = Callable[[Candidate], None]


class ImageTargetSizeSearch:
    """
    Drives an image backend over every scale of the ladder, binary searching
    quality at each one.

    Every scale is tried: a smaller scale at the same byte budget can afford a
    higher quality. The result is the largest under-target candidate found
    anywhere in the run, or the smallest candidate overall when nothing fits.
    Output size is assumed non-decreasing in quality at a fixed scale; an
    encoder that breaks this only makes the search less thorough.
    """

    def __init__(self, backend: ImageBackend, scale_ladder: Optional[ScaleLadder] = None,
                 min_quality: int = 20, max_quality: int = 95, max_iterations: int = 7,
                 min_dimension: int = 64):
        if not 0 < min_quality <= max_quality <= 100:
            raise ValueError(f"Invalid quality range [{min_quality}, {max_quality}]")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.backend = backend
        self.scale_ladder = scale_ladder or ScaleLadder()
        self.min_quality = min_quality
        self.max_quality = max_quality
        self.max_iterations = max_iterations
        self.min_dimension = min_dimension

    @classmethod
    def from_config(cls, backend: ImageBackend, config) -> "ImageTargetSizeSearch":
        return cls(
            backend,
            scale_ladder=ScaleLadder(tuple(config.get('image_search.scale_ladder', ScaleLadder().factors))),
            min_quality=int(config.get('image_search.quality.min', 20)),
            max_quality=int(config.get('image_search.quality.max', 95)),
            max_iterations=int(config.get('image_search.max_iterations', 7)),
            min_dimension=int(config.get('image_search.min_dimension', 64)),
        )

    def run(self, source_bytes: bytes, width: int, height: int, target_bytes: int,
            output_format: MediaFormat, on_trial: Optional[TrialCallback] = None) -> SearchOutcome:
        """
        Search for the best encode of source_bytes at or under target_bytes.

        Args:
            source_bytes: Encoded source image
            width: Probed source width
            height: Probed source height
            target_bytes: Size target (> 0)
            output_format: Raster format to encode to
            on_trial: Called with every candidate as it is produced

        Returns:
            SearchOutcome; achieved is True iff some candidate met the target

        Raises:
            EncodeError: an undecodable source or the first backend failure
                aborts the whole search
        """
        source = self.backend.prepare(source_bytes)
        tracker = CandidateTracker(target_bytes)
        start = time.time()
        logger.info(f"Image search: {width}x{height} -> {output_format.name}, target {target_bytes} bytes, "
                    f"{len(self.scale_ladder)} scales")

        for scale in self.scale_ladder:
            box_width, box_height = self.scale_ladder.box_for(scale, width, height, self.min_dimension)
            out_width, out_height = fit_inside(width, height, box_width, box_height)
            self._search_quality(source, scale, box_width, box_height, out_width, out_height,
                                 output_format, tracker, on_trial)

        outcome = tracker.outcome(output_format.extension, output_format.mime_type)
        outcome.details['elapsed_seconds'] = round(time.time() - start, 3)
        logger.info(f"Image search finished after {outcome.trials} trials: {outcome.candidate.describe()} "
                    f"achieved={outcome.achieved}")
        return outcome

    def _search_quality(self, source, scale: float, box_width: int, box_height: int,
                        out_width: int, out_height: int, output_format: MediaFormat,
                        tracker: CandidateTracker, on_trial: Optional[TrialCallback]):
        low, high = self.min_quality, self.max_quality
        iterations = 0
        while low <= high and iterations < self.max_iterations:
            iterations += 1
            quality = (low + high) // 2
            data = self.backend.encode(source, box_width, box_height, output_format.name, quality)
            candidate = Candidate(size=len(data), scale=scale, width=out_width, height=out_height,
                                  quality=quality, data=data)
            fits = tracker.consider(candidate)
            logger.debug(f"Trial {tracker.trials}: {candidate.describe()} {'fits' if fits else 'over'}")
            if on_trial:
                on_trial(candidate)

            if fits:
                low = quality + 1
            else:
                high = quality - 1

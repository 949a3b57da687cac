"""
Request Dispatcher
Validates a request, probes the source, picks the search for its format and
returns a structured result for the CLI or HTTP boundary to relay. Also runs
the two fixed-parameter operations: video to GIF conversion and exact resizing.
"""

import os
import shutil
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from .animated_search import AnimatedTargetSizeSearch
from .candidates import Candidate, SearchOutcome
from .codec_backend import AnimatedBackend, FFmpegGifCodec, ImageBackend, PillowImageCodec
from .config_manager import ConfigManager
from .file_validator import MEDIA_FORMATS, FileValidator, MediaFormat
from .image_search import ImageTargetSizeSearch
from .media_probe import MediaProbe
from .search_pool import SearchPool
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """What the boundary relays: output bytes or file, size metadata and type.

    target_bytes is None for conversions and resizes, which have no size target.
    """
    achieved: bool
    size: int
    original_size: int
    target_bytes: Optional[int]
    extension: str
    mime_type: str
    data: Optional[bytes] = None
    path: Optional[str] = None
    source_format: str = ''
    trials: int = 0
    params: Dict[str, Any] = field(default_factory=dict)

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        with open(self.path, 'rb') as handle:
            return handle.read()

    def save_to(self, destination: str) -> str:
        """Write the output to destination; file outputs are moved out of their workspace."""
        parent = os.path.dirname(os.path.abspath(destination))
        os.makedirs(parent, exist_ok=True)
        if self.data is not None:
            with open(destination, 'wb') as handle:
                handle.write(self.data)
        else:
            shutil.move(self.path, destination)
            self.path = destination
        return destination

    def headers(self) -> Dict[str, str]:
        headers = {
            'X-Original-Size-Bytes': str(self.original_size),
            'X-Compressed-Size-Bytes': str(self.size),
        }
        if self.target_bytes is not None:
            headers['X-Target-Bytes'] = str(self.target_bytes)
            headers['X-Target-Achieved'] = 'true' if self.achieved else 'false'
        return headers


class MediaDispatcher:
    """Rejects bad requests up front, then delegates to the matching search.

    Order of rejection: target, format, probe. Searches run inside the shared
    SearchPool so the number of concurrent encoders stays bounded.
    """

    def __init__(self, config: Optional[ConfigManager] = None,
                 image_backend: Optional[ImageBackend] = None,
                 animated_backend: Optional[AnimatedBackend] = None,
                 probe: Optional[MediaProbe] = None,
                 pool: Optional[SearchPool] = None,
                 resizer: Optional[PillowImageCodec] = None):
        self.config = config or ConfigManager()
        self.image_backend = image_backend or PillowImageCodec(
            webp_method=int(self.config.get('image_search.webp_method', 4)))
        self.animated_backend = animated_backend or FFmpegGifCodec(
            timeout_seconds=int(self.config.get('animated.encode_timeout_seconds', 300)),
            max_colors=int(self.config.get('animated.max_colors', 256)))
        self.probe = probe or MediaProbe()
        self.pool = pool or SearchPool.from_config(self.config)
        self.image_search = ImageTargetSizeSearch.from_config(self.image_backend, self.config)
        self.animated_search = AnimatedTargetSizeSearch.from_config(self.animated_backend, self.config)
        self.fallback_format = str(self.config.get('target_size.fallback_format', 'jpeg'))
        self.supported_extensions = self.config.get('target_size.supported_extensions')
        self.resizer = resizer or PillowImageCodec(
            webp_method=int(self.config.get('image_search.webp_method', 4)))

    def compress(self, source_path: str, target: Union[int, str, None], workspace: Workspace,
                 filename: Optional[str] = None, mime_type: Optional[str] = None,
                 target_mb: Union[float, str, None] = None,
                 on_trial: Optional[Callable[[Candidate], None]] = None) -> DispatchResult:
        """
        Run one target-size request.

        Args:
            source_path: Uploaded or local source file
            target: Target in bytes (or None when target_mb is given)
            workspace: Request workspace; animated outputs are left in it for the caller
            filename: Original client file name, used for extension-based classification
            mime_type: Declared content type
            target_mb: Target in megabytes

        Raises:
            InvalidTargetError, UnsupportedFormatError, ProbeError, EncodeError, CapacityError
        """
        target_bytes = FileValidator.parse_target_bytes(target, target_mb)
        source_format = FileValidator.classify_format(source_path, filename=filename, mime_type=mime_type,
                                                      allowed=self.supported_extensions)
        info = self.probe.inspect(source_path)
        logger.info(f"Request {os.path.basename(filename or source_path)}: {source_format.name} "
                    f"{info.width}x{info.height}, {info.file_size} bytes -> target {target_bytes} bytes")

        with self.pool.slot():
            if source_format.animated:
                outcome = self.animated_search.run(source_path, info.width, target_bytes, workspace,
                                                   on_trial=on_trial)
            else:
                output_format = FileValidator.output_format_for(source_format, self.fallback_format)
                with open(source_path, 'rb') as handle:
                    source_bytes = handle.read()
                outcome = self.image_search.run(source_bytes, info.width, info.height, target_bytes,
                                                output_format, on_trial=on_trial)

        return self._to_result(outcome, source_format, info.file_size, target_bytes)

    def convert(self, source_path: str, workspace: Workspace, fps: Union[int, str, None] = None,
                width: Union[int, str, None] = None, height: Union[int, str, None] = None,
                filename: Optional[str] = None) -> DispatchResult:
        """
        Turn a video (or animation) into a looping palette GIF.

        Blank parameters take the configured defaults; a height of 0 keeps
        the source aspect ratio. The GIF is left in the workspace.

        Raises:
            InvalidParameterError, ProbeError, EncodeError, CapacityError
        """
        max_dimension = int(self.config.get('convert.max_dimension', 4096))
        fps = FileValidator.parse_dimension(fps, 'fps', default=int(self.config.get('convert.fps', 15)),
                                            maximum=int(self.config.get('convert.max_fps', 60)))
        width = FileValidator.parse_dimension(width, 'width', default=int(self.config.get('convert.width', 480)),
                                              maximum=max_dimension)
        height = FileValidator.parse_dimension(height, 'height', default=int(self.config.get('convert.height', 0)),
                                               maximum=max_dimension, allow_zero=True)
        info = self.probe.inspect(source_path)
        logger.info(f"Convert {os.path.basename(filename or source_path)}: {info.format} "
                    f"{info.width}x{info.height} -> GIF {width}x{height or 'auto'} at {fps} fps")

        output_path = workspace.path_for('converted', '.gif')
        with self.pool.slot():
            self.animated_backend.encode(source_path, width, fps, output_path, height=height)

        gif = MEDIA_FORMATS['gif']
        result = DispatchResult(
            achieved=True,
            size=os.path.getsize(output_path),
            original_size=info.file_size,
            target_bytes=None,
            extension=gif.extension,
            mime_type=gif.mime_type,
            path=output_path,
            source_format=info.format,
            trials=1,
            params={'width': width, 'height': height, 'fps': fps},
        )
        logger.info(f"Converted to {result.size} bytes GIF")
        return result

    def resize(self, source_path: str, width: Union[int, str, None], height: Union[int, str, None] = None,
               filename: Optional[str] = None, mime_type: Optional[str] = None) -> DispatchResult:
        """
        Resize a still image to width x height, letterboxed on transparency.

        Without a height the aspect ratio is kept. JPEG, PNG and WEBP keep their
        format; a GIF source is resized from its first frame into the fallback format.

        Raises:
            InvalidParameterError, UnsupportedFormatError, ProbeError, EncodeError, CapacityError
        """
        max_dimension = int(self.config.get('resize.max_dimension', 10000))
        width = FileValidator.parse_dimension(width, 'width', maximum=max_dimension)
        height = FileValidator.parse_dimension(height, 'height', default=0, maximum=max_dimension,
                                               allow_zero=True)
        source_format = FileValidator.classify_format(source_path, filename=filename, mime_type=mime_type,
                                                      allowed=self.supported_extensions)
        info = self.probe.inspect(source_path)
        output_format = FileValidator.output_format_for(source_format, self.fallback_format)
        logger.info(f"Resize {os.path.basename(filename or source_path)}: {info.width}x{info.height} "
                    f"-> {width}x{height or 'auto'} {output_format.name}")

        with self.pool.slot():
            with open(source_path, 'rb') as handle:
                source_bytes = handle.read()
            data = self.resizer.resize_contain(source_bytes, width, height or None, output_format.name,
                                               quality=int(self.config.get('resize.quality', 80)))

        return DispatchResult(
            achieved=True,
            size=len(data),
            original_size=info.file_size,
            target_bytes=None,
            extension=output_format.extension,
            mime_type=output_format.mime_type,
            data=data,
            source_format=source_format.name,
            trials=1,
            params={'width': width, 'height': height},
        )

    @staticmethod
    def _to_result(outcome: SearchOutcome, source_format: MediaFormat, original_size: int,
                   target_bytes: int) -> DispatchResult:
        result = DispatchResult(
            achieved=outcome.achieved,
            size=outcome.size,
            original_size=original_size,
            target_bytes=target_bytes,
            extension=outcome.extension,
            mime_type=outcome.mime_type,
            data=outcome.data,
            path=outcome.path,
            source_format=source_format.name,
            trials=outcome.trials,
            params=outcome.candidate.params(),
        )
        logger.info(f"Result: {result.size} bytes ({result.extension}) achieved={result.achieved} "
                    f"after {result.trials} trials")
        return result

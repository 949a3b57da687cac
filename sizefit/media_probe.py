"""
Media Probe
Reads the basic metadata (dimensions, format, animation) that seeds a search
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import UnidentifiedImageError

from .codec_backend import DECOMPRESSION_BOMB_ERRORS, open_checked
from .error_handler import ProbeError
from .ffmpeg_utils import FFmpegUtils

logger = logging.getLogger(__name__)

# EXIF orientations that rotate the image by 90 or 270 degrees
_TRANSPOSED_ORIENTATIONS = {5, 6, 7, 8}
_EXIF_ORIENTATION_TAG = 0x0112


@dataclass
class MediaInfo:
    width: int
    height: int
    format: str
    is_animated: bool = False
    frame_count: int = 1
    file_size: int = 0


class MediaProbe:
    """Probe backed by Pillow, falling back to ffprobe for dimensions"""

    def __init__(self, use_ffprobe_fallback: bool = True):
        self.use_ffprobe_fallback = use_ffprobe_fallback

    def inspect(self, source_path: str) -> MediaInfo:
        if not os.path.exists(source_path):
            raise ProbeError(f"File does not exist: {source_path}")
        file_size = os.path.getsize(source_path)
        if file_size == 0:
            raise ProbeError(f"File is empty: {source_path}")

        try:
            info = self._inspect_with_pil(source_path)
        except DECOMPRESSION_BOMB_ERRORS as e:
            # The ffmpeg fallback would read the size; the decode would not
            raise ProbeError(f"Image is too large to decode safely: {e}") from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            if not self.use_ffprobe_fallback:
                raise ProbeError(f"Could not read image metadata: {e}") from e
            logger.debug(f"Pillow could not open {source_path} ({e}), trying ffprobe")
            data = FFmpegUtils.probe_media(source_path)
            info = MediaInfo(
                width=data['width'],
                height=data['height'],
                format=str(data['format']).lower(),
                is_animated=data['frame_count'] > 1,
                frame_count=max(1, data['frame_count']),
            )

        if info.width <= 0 or info.height <= 0:
            raise ProbeError(f"Invalid dimensions {info.width}x{info.height} for {source_path}")

        info.file_size = file_size
        logger.debug(f"Probed {os.path.basename(source_path)}: {info.width}x{info.height} "
                     f"{info.format} frames={info.frame_count}")
        return info

    @staticmethod
    def _inspect_with_pil(source_path: str) -> MediaInfo:
        with open_checked(source_path) as img:
            width, height = img.size
            orientation: Optional[int] = None
            try:
                orientation = img.getexif().get(_EXIF_ORIENTATION_TAG)
            except Exception as e:
                logger.debug(f"Could not read EXIF orientation: {e}")
            if orientation in _TRANSPOSED_ORIENTATIONS:
                width, height = height, width

            frame_count = int(getattr(img, 'n_frames', 1) or 1)
            return MediaInfo(
                width=width,
                height=height,
                format=(img.format or 'unknown').lower(),
                is_animated=bool(getattr(img, 'is_animated', False)),
                frame_count=frame_count,
            )

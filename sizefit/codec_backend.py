"""
Codec Backends
Single-shot encoders driven by the searches: Pillow for still images,
FFmpeg for animated output. Each call either returns an encoded result or
raises EncodeError.
"""

import io
import os
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from PIL import Image, ImageOps

from .error_handler import EncodeError
from .ffmpeg_utils import FFmpegUtils
from .file_validator import MEDIA_FORMATS, MediaFormat
from .ladders import fit_inside

logger = logging.getLogger(__name__)

# The warning only escapes as an exception under an "error" warnings filter
DECOMPRESSION_BOMB_ERRORS = (Image.DecompressionBombError, Image.DecompressionBombWarning)


def open_checked(source) -> Image.Image:
    """Image.open that refuses anything above Image.MAX_IMAGE_PIXELS.

    Pillow itself only warns between that limit and twice it.
    """
    img = Image.open(source)
    limit = Image.MAX_IMAGE_PIXELS
    pixels = img.width * img.height
    if limit and pixels > limit:
        img.close()
        raise Image.DecompressionBombError(
            f"Image size ({pixels} pixels) exceeds limit of {limit} pixels, could be decompression bomb")
    return img


class ImageBackend(ABC):
    """Encodes one still image at a bounding box and quality"""

    def prepare(self, source_bytes: bytes):
        """Decode the source once before a search; the result is passed to every encode."""
        return source_bytes

    @abstractmethod
    def encode(self, source, width: int, height: int, fmt: str, quality: int) -> bytes:
        """Fit the prepared source inside width x height (no upscaling) and encode.

        Raises:
            EncodeError: when the source cannot be decoded or the encode fails.
        """


class AnimatedBackend(ABC):
    """Encodes one looping animated output at a width and frame rate"""

    @abstractmethod
    def encode(self, source_path: str, width: int, fps: int, output_path: str, height: int = 0) -> str:
        """Write the output to output_path and return it. A height of 0 keeps the aspect ratio.

        Raises:
            EncodeError: when the encoder fails or produces no output.
        """


class PillowImageCodec(ImageBackend):
    """Pillow encoder for JPEG, PNG and WEBP output"""

    def __init__(self, webp_method: int = 4, jpeg_background=(255, 255, 255)):
        self.webp_method = webp_method
        self.jpeg_background = tuple(jpeg_background)

    def prepare(self, source_bytes: bytes) -> Image.Image:
        try:
            with open_checked(io.BytesIO(source_bytes)) as img:
                img.load()
                transposed = ImageOps.exif_transpose(img)
                return transposed if transposed is not None else img.copy()
        except (OSError, ValueError) + DECOMPRESSION_BOMB_ERRORS as e:
            raise EncodeError(f"Could not decode source image: {e}") from e

    def encode(self, source: Union[bytes, Image.Image], width: int, height: int,
               fmt: str, quality: int) -> bytes:
        media_format = self._raster_format(fmt)
        source = source if isinstance(source, Image.Image) else self.prepare(source)

        try:
            size = fit_inside(source.width, source.height, width, height)
            img = source if size == source.size else source.resize(size, Image.Resampling.LANCZOS)
            return self._save(img, media_format, quality)
        except (OSError, ValueError) as e:
            raise EncodeError(f"{fmt.upper()} encode failed at {width}x{height} q={quality}: {e}",
                              params={'width': width, 'height': height, 'quality': quality}) from e

    def resize_contain(self, source: Union[bytes, Image.Image], width: int, height: Optional[int],
                       fmt: str, quality: int = 80) -> bytes:
        """
        Resize to exactly width x height, letterboxing on a transparent background.

        Without a height the output is width wide at the source aspect ratio.
        Upscaling is allowed. PNG output stays lossless.
        """
        media_format = self._raster_format(fmt)
        source = source if isinstance(source, Image.Image) else self.prepare(source)

        try:
            if not height:
                height = max(1, int(round(source.height * width / source.width)))
                canvas = source.resize((width, height), Image.Resampling.LANCZOS)
            else:
                ratio = min(width / source.width, height / source.height)
                fitted_size = (max(1, int(round(source.width * ratio))),
                               max(1, int(round(source.height * ratio))))
                fitted = source.convert('RGBA').resize(fitted_size, Image.Resampling.LANCZOS)
                canvas = Image.new('RGBA', (width, height), (0, 0, 0, 0))
                canvas.paste(fitted, ((width - fitted_size[0]) // 2, (height - fitted_size[1]) // 2))
            return self._save(canvas, media_format, quality, quantize_png=False)
        except (OSError, ValueError) as e:
            raise EncodeError(f"{fmt.upper()} resize to {width}x{height} failed: {e}",
                              params={'width': width, 'height': height}) from e

    @staticmethod
    def _raster_format(fmt: str) -> MediaFormat:
        media_format = MEDIA_FORMATS.get(fmt)
        if media_format is None or media_format.animated:
            raise EncodeError(f"Unsupported image output format: {fmt}")
        return media_format

    def _save(self, img: Image.Image, media_format: MediaFormat, quality: int,
              quantize_png: bool = True) -> bytes:
        buffer = io.BytesIO()
        if media_format.name == 'jpeg':
            self._to_rgb(img).save(buffer, format=media_format.pil_format, quality=int(quality),
                                   optimize=True, progressive=True)
        elif media_format.name == 'webp':
            img = img if img.mode in ('RGB', 'RGBA') else img.convert('RGBA')
            img.save(buffer, format=media_format.pil_format, quality=int(quality), method=self.webp_method)
        else:
            if quantize_png:
                img = self._quantize(img, quality)
            img.save(buffer, format=media_format.pil_format, optimize=True)
        return buffer.getvalue()

    def _to_rgb(self, img: Image.Image) -> Image.Image:
        if img.mode == 'RGB':
            return img
        if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
            rgba = img.convert('RGBA')
            background = Image.new('RGB', rgba.size, self.jpeg_background)
            background.paste(rgba, mask=rgba.getchannel('A'))
            return background
        return img.convert('RGB')

    @staticmethod
    def _quantize(img: Image.Image, quality: int) -> Image.Image:
        # PNG has no quality knob; quality selects the palette size
        colors = max(2, min(256, int(round(256 * quality / 100))))
        img = img if img.mode in ('RGB', 'RGBA') else img.convert('RGBA')
        return img.quantize(colors=colors, method=Image.Quantize.FASTOCTREE)


class FFmpegGifCodec(AnimatedBackend):
    """FFmpeg palette-based GIF encoder"""

    def __init__(self, timeout_seconds: int = 300, max_colors: int = 256):
        self.timeout_seconds = timeout_seconds
        self.max_colors = max_colors

    def encode(self, source_path: str, width: int, fps: int, output_path: str, height: int = 0) -> str:
        cmd = FFmpegUtils.build_gif_command(source_path, output_path, width, fps, self.max_colors,
                                            height=height)
        try:
            FFmpegUtils.run_command(cmd, timeout=self.timeout_seconds)
        except EncodeError as e:
            e.params.update({'width': width, 'fps': fps})
            raise

        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise EncodeError(f"FFmpeg produced no output for width={width} fps={fps}",
                              params={'width': width, 'fps': fps})
        return output_path

"""
File Validation Module
Classifies incoming media by format and validates requested target sizes
"""

import math
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from .error_handler import InvalidParameterError, InvalidTargetError, UnsupportedFormatError

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class MediaFormat:
    """Canonical description of a supported format"""
    name: str           # canonical key: jpeg, png, webp, gif
    pil_format: str     # Pillow save() format name
    mime_type: str
    extension: str      # preferred output extension
    animated: bool = False


MEDIA_FORMATS: Dict[str, MediaFormat] = {
    'jpeg': MediaFormat('jpeg', 'JPEG', 'image/jpeg', 'jpg'),
    'png': MediaFormat('png', 'PNG', 'image/png', 'png'),
    'webp': MediaFormat('webp', 'WEBP', 'image/webp', 'webp'),
    'gif': MediaFormat('gif', 'GIF', 'image/gif', 'gif', animated=True),
}

RASTER_FORMATS = ('jpeg', 'png', 'webp')

_EXTENSION_ALIASES = {
    'jpg': 'jpeg',
    'jpeg': 'jpeg',
    'jpe': 'jpeg',
    'png': 'png',
    'webp': 'webp',
    'gif': 'gif',
}

_MIME_ALIASES = {
    'image/jpeg': 'jpeg',
    'image/jpg': 'jpeg',
    'image/pjpeg': 'jpeg',
    'image/png': 'png',
    'image/webp': 'webp',
    'image/gif': 'gif',
}


class FileValidator:
    """Validates media type and target size before any search runs"""

    @staticmethod
    def parse_target_bytes(target_bytes: Union[int, str, None] = None,
                           target_mb: Union[float, str, None] = None) -> int:
        """
        Resolve the requested size target to a positive byte count.

        Args:
            target_bytes: Explicit byte count (takes precedence)
            target_mb: Size in megabytes, converted with 1 MB = 1048576 bytes

        Returns:
            Positive integer byte count

        Raises:
            InvalidTargetError: if nothing usable was supplied or the value is not positive
        """
        if target_bytes is not None and str(target_bytes).strip() != '':
            try:
                value = float(str(target_bytes).strip())
            except ValueError:
                raise InvalidTargetError(f"Target size is not a number: {target_bytes!r}")
            if not math.isfinite(value) or value != int(value):
                raise InvalidTargetError(f"Target size must be a whole number of bytes: {target_bytes!r}")
            resolved = int(value)
        elif target_mb is not None and str(target_mb).strip() != '':
            try:
                value = float(str(target_mb).strip())
            except ValueError:
                raise InvalidTargetError(f"Target size is not a number: {target_mb!r}")
            if not math.isfinite(value):
                raise InvalidTargetError(f"Target size must be finite: {target_mb!r}")
            resolved = int(round(value * BYTES_PER_MB))
        else:
            raise InvalidTargetError("Target size is required")

        if resolved <= 0:
            raise InvalidTargetError("Target size must be greater than 0")
        return resolved

    @staticmethod
    def sniff_format(file_path: str) -> Optional[str]:
        """Identify a supported format from the file signature, or None"""
        try:
            with open(file_path, 'rb') as handle:
                head = handle.read(12)
        except OSError as e:
            logger.debug(f"Could not read signature of {file_path}: {e}")
            return None

        if head.startswith(b'\xff\xd8\xff'):
            return 'jpeg'
        if head.startswith(b'\x89PNG\r\n\x1a\n'):
            return 'png'
        if head[:6] in (b'GIF87a', b'GIF89a'):
            return 'gif'
        if head[:4] == b'RIFF' and head[8:12] == b'WEBP':
            return 'webp'
        return None

    @staticmethod
    def classify_format(file_path: str, filename: Optional[str] = None,
                        mime_type: Optional[str] = None,
                        allowed: Optional[Iterable[str]] = None) -> MediaFormat:
        """
        Classify a file by declared content type, then extension, then signature.

        Raises:
            UnsupportedFormatError: when none of the three identify an allowed format
        """
        allowed_names = {_EXTENSION_ALIASES.get(a.lower().lstrip('.'), a.lower()) for a in allowed} \
            if allowed else set(MEDIA_FORMATS)

        candidates = []
        if mime_type:
            candidates.append(_MIME_ALIASES.get(mime_type.split(';')[0].strip().lower()))
        name = filename or file_path
        extension = Path(name).suffix.lower().lstrip('.')
        if extension:
            candidates.append(_EXTENSION_ALIASES.get(extension))
        candidates.append(FileValidator.sniff_format(file_path))

        for candidate in candidates:
            if candidate and candidate in allowed_names:
                return MEDIA_FORMATS[candidate]

        raise UnsupportedFormatError(
            f"Unsupported file type for {os.path.basename(name)!r}: only JPG, PNG, WEBP, or GIF files are supported"
        )

    @staticmethod
    def output_format_for(source: MediaFormat, fallback: str = 'jpeg') -> MediaFormat:
        """Keep raster sources in their own format, otherwise use the fallback"""
        if source.name in RASTER_FORMATS:
            return source
        key = _EXTENSION_ALIASES.get(fallback.lower(), fallback.lower())
        if key not in RASTER_FORMATS:
            raise UnsupportedFormatError(f"Fallback format must be one of {', '.join(RASTER_FORMATS)}: {fallback}")
        return MEDIA_FORMATS[key]

    @staticmethod
    def parse_dimension(value: Union[int, str, None], name: str, default: Optional[int] = None,
                        maximum: Optional[int] = None, allow_zero: bool = False) -> int:
        """
        Parse a width, height or frame rate form value.

        A missing or blank value gives the default; without a default it is required.
        Zero is only accepted when allow_zero is set (height 0 means "keep aspect").

        Raises:
            InvalidParameterError: if the value is required, not a whole number or out of range
        """
        if value is None or str(value).strip() == '':
            if default is None:
                raise InvalidParameterError(f"{name} is required")
            return default

        try:
            parsed = int(str(value).strip())
        except ValueError:
            raise InvalidParameterError(f"{name} must be a whole number: {value!r}")

        if parsed < 0 or (parsed == 0 and not allow_zero):
            raise InvalidParameterError(f"{name} must be greater than 0")
        if maximum is not None and parsed > maximum:
            raise InvalidParameterError(f"{name} must be at most {maximum}")
        return parsed

"""
FFmpeg Utilities Module
Command building, execution and probing for the animated codec backend
"""

import json
import os
import shutil
import subprocess
import logging
from typing import Any, Dict, List, Optional

from .error_handler import EncodeError, ProbeError

logger = logging.getLogger(__name__)


class FFmpegUtils:
    """Shared utilities for FFmpeg operations"""

    @staticmethod
    def is_tool_available(tool: str) -> bool:
        return shutil.which(tool) is not None

    @staticmethod
    def _safe_file_path(file_path: str) -> str:
        """Absolute, normalized path; stray quotes removed on Windows"""
        abs_path = os.path.abspath(file_path)
        if os.name == 'nt':
            abs_path = abs_path.replace('"', '')
        return abs_path

    @staticmethod
    def add_ffmpeg_perf_flags(cmd: List[str], threads: Optional[int] = None) -> List[str]:
        """Insert quiet-output and threading flags after the program name.

        Mutates and returns the same list for convenience.
        """
        if not cmd:
            return cmd
        insert_index = 1 if cmd[0].lower() == 'ffmpeg' else 0

        perf_flags: List[str] = ['-hide_banner', '-loglevel', 'error']
        if '-threads' not in cmd:
            perf_flags.extend(['-threads', str(threads or max(1, min(4, os.cpu_count() or 1)))])

        for i, flag in enumerate(perf_flags):
            cmd.insert(insert_index + i, flag)
        return cmd

    @staticmethod
    def build_gif_command(input_path: str, output_path: str, width: int, fps: int,
                          max_colors: int = 256, height: int = 0) -> List[str]:
        """Single-pass palette GIF: split the scaled stream into palettegen and paletteuse.

        Without a positive height it is derived from the width (``scale=W:-1``).
        The output loops forever.
        """
        scale = f"{width}:{height}" if height and height > 0 else f"{width}:-1"
        chain = f"[0:v]fps={fps},scale={scale}:flags=lanczos"
        filter_complex = (
            f"{chain},split[a][b];"
            f"[a]palettegen=max_colors={max_colors}[p];"
            f"[b][p]paletteuse=dither=bayer:bayer_scale=5"
        )
        cmd = [
            'ffmpeg', '-y',
            '-i', FFmpegUtils._safe_file_path(input_path),
            '-filter_complex', filter_complex,
            '-loop', '0',
            '-f', 'gif',
            FFmpegUtils._safe_file_path(output_path),
        ]
        return FFmpegUtils.add_ffmpeg_perf_flags(cmd)

    @staticmethod
    def run_command(cmd: List[str], timeout: int = 300) -> subprocess.CompletedProcess:
        """Run an ffmpeg command, raising EncodeError on failure or timeout"""
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise EncodeError(f"FFmpeg timed out after {timeout}s") from e
        except FileNotFoundError as e:
            raise EncodeError("FFmpeg executable not found on PATH") from e

        if result.returncode != 0:
            stderr = (result.stderr or '').strip()
            logger.debug(f"FFmpeg stderr: {stderr}")
            raise EncodeError(f"FFmpeg exited with code {result.returncode}: {stderr[-500:]}")
        return result

    @staticmethod
    def probe_media(media_path: str, timeout: int = 30) -> Dict[str, Any]:
        """Return width, height and format name of the first video stream using ffprobe"""
        safe_path = FFmpegUtils._safe_file_path(media_path)
        cmd = [
            'ffprobe', '-v', 'quiet', '-print_format', 'json',
            '-show_format', '-show_streams', '-select_streams', 'v:0', safe_path
        ]
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                timeout=timeout,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise ProbeError(f"ffprobe could not run on {media_path}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {media_path}: {(result.stderr or '').strip()}")

        try:
            data = json.loads(result.stdout) if (result.stdout or '').strip() else {}
        except json.JSONDecodeError as e:
            raise ProbeError(f"Invalid ffprobe output for {media_path}") from e

        video_stream = next((s for s in data.get('streams', []) if s.get('codec_type') == 'video'), None)
        if not video_stream:
            raise ProbeError(f"No video stream found in {media_path}")

        try:
            width = int(video_stream['width'])
            height = int(video_stream['height'])
        except (KeyError, TypeError, ValueError) as e:
            raise ProbeError(f"ffprobe reported no dimensions for {media_path}") from e

        try:
            frame_count = int(video_stream.get('nb_frames', 0))
        except (TypeError, ValueError):
            frame_count = 0

        return {
            'width': width,
            'height': height,
            'format': data.get('format', {}).get('format_name', video_stream.get('codec_name', 'unknown')),
            'frame_count': frame_count,
        }

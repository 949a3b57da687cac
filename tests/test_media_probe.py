"""
Tests for MediaProbe metadata extraction
"""

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from PIL import Image

from fakes import make_png_header
from sizefit.error_handler import ProbeError
from sizefit.media_probe import MediaProbe


def test_still_image_dimensions(image_file):
    path = image_file('photo.png', size=(320, 200))
    info = MediaProbe().inspect(path)

    assert (info.width, info.height) == (320, 200)
    assert info.format == 'png'
    assert not info.is_animated
    assert info.file_size > 0


def test_animated_gif_frame_count(image_file):
    path = image_file('clip.gif', size=(64, 48), fmt='GIF', frames=3)
    info = MediaProbe().inspect(path)

    assert info.is_animated
    assert info.frame_count == 3
    assert (info.width, info.height) == (64, 48)


def test_exif_rotation_swaps_dimensions(tmp_path):
    path = tmp_path / 'rotated.jpg'
    exif = Image.Exif()
    exif[0x0112] = 6
    Image.new('RGB', (300, 100)).save(str(path), format='JPEG', exif=exif)

    info = MediaProbe().inspect(str(path))
    assert (info.width, info.height) == (100, 300)


def test_missing_and_empty_files_raise(tmp_path):
    with pytest.raises(ProbeError):
        MediaProbe().inspect(str(tmp_path / 'missing.png'))

    empty = tmp_path / 'empty.png'
    empty.write_bytes(b'')
    with pytest.raises(ProbeError, match="empty"):
        MediaProbe().inspect(str(empty))


def test_unreadable_file_without_fallback_raises(tmp_path):
    path = tmp_path / 'broken.png'
    path.write_bytes(b'\x89PNG\r\n\x1a\ntruncated')
    with pytest.raises(ProbeError):
        MediaProbe(use_ffprobe_fallback=False).inspect(str(path))


def test_ffprobe_fallback_reads_dimensions(tmp_path):
    path = tmp_path / 'odd.webp'
    path.write_bytes(b'RIFF....WEBPgarbage')
    payload = {
        'streams': [{'codec_type': 'video', 'width': 640, 'height': 360, 'nb_frames': '12'}],
        'format': {'format_name': 'webp_pipe'},
    }
    result = SimpleNamespace(returncode=0, stdout=json.dumps(payload), stderr='')

    with patch('sizefit.ffmpeg_utils.subprocess.run', return_value=result):
        info = MediaProbe().inspect(str(path))

    assert (info.width, info.height) == (640, 360)
    assert info.is_animated
    assert info.frame_count == 12


def test_ffprobe_failure_is_a_probe_error(tmp_path):
    path = tmp_path / 'odd.png'
    path.write_bytes(b'garbage')
    result = SimpleNamespace(returncode=1, stdout='', stderr='Invalid data found when processing input')

    with patch('sizefit.ffmpeg_utils.subprocess.run', return_value=result):
        with pytest.raises(ProbeError):
            MediaProbe().inspect(str(path))


@pytest.mark.parametrize("side", [15000, 20000])
def test_oversized_image_is_refused_without_fallback(tmp_path, side):
    # 15000^2 only triggers Pillow's warning, 20000^2 its hard error
    path = tmp_path / 'huge.png'
    path.write_bytes(make_png_header(side, side))

    with patch('sizefit.ffmpeg_utils.subprocess.run') as run:
        with pytest.raises(ProbeError, match="too large"):
            MediaProbe().inspect(str(path))
    run.assert_not_called()

"""
Tests for the Pillow still-image codec and the FFmpeg GIF codec wrapper
"""

import io
import os
import subprocess
import tempfile
import unittest
from unittest.mock import patch

import pytest
from PIL import Image

from fakes import make_image_bytes, make_png_header
from sizefit.codec_backend import FFmpegGifCodec, PillowImageCodec
from sizefit.error_handler import EncodeError
from sizefit.ffmpeg_utils import FFmpegUtils


def _open(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class TestPillowImageCodec(unittest.TestCase):

    def setUp(self):
        self.codec = PillowImageCodec()
        self.source = make_image_bytes((320, 240), 'PNG')

    def test_jpeg_quality_controls_size(self):
        low = self.codec.encode(self.source, 320, 240, 'jpeg', 30)
        high = self.codec.encode(self.source, 320, 240, 'jpeg', 90)

        self.assertLess(len(low), len(high))
        self.assertEqual(_open(low).format, 'JPEG')

    def test_output_fits_box_with_source_aspect(self):
        data = self.codec.encode(self.source, 160, 160, 'jpeg', 80)
        self.assertEqual(_open(data).size, (160, 120))

    def test_never_upscales(self):
        data = self.codec.encode(self.source, 1000, 1000, 'webp', 80)
        img = _open(data)
        self.assertEqual(img.format, 'WEBP')
        self.assertEqual(img.size, (320, 240))

    def test_png_quality_selects_palette_size(self):
        small = self.codec.encode(self.source, 320, 240, 'png', 5)
        large = self.codec.encode(self.source, 320, 240, 'png', 100)

        img = _open(small)
        self.assertEqual(img.format, 'PNG')
        self.assertEqual(img.mode, 'P')
        self.assertLess(len(small), len(large))

    def test_transparent_source_flattens_for_jpeg(self):
        rgba = make_image_bytes((64, 48), 'PNG', mode='RGBA')
        data = self.codec.encode(rgba, 64, 48, 'jpeg', 70)
        self.assertEqual(_open(data).mode, 'RGB')

    def test_exif_rotation_is_applied(self):
        buffer = io.BytesIO()
        exif = Image.Exif()
        exif[0x0112] = 6
        Image.new('RGB', (80, 40), (200, 10, 10)).save(buffer, format='JPEG', exif=exif)

        data = self.codec.encode(buffer.getvalue(), 1000, 1000, 'jpeg', 80)
        self.assertEqual(_open(data).size, (40, 80))

    def test_undecodable_source_raises(self):
        with self.assertRaises(EncodeError):
            self.codec.encode(b'definitely not an image', 100, 100, 'jpeg', 50)

    def test_animated_output_format_rejected(self):
        with self.assertRaises(EncodeError):
            self.codec.encode(self.source, 100, 100, 'gif', 50)

    def test_prepared_source_is_reused_without_decoding_again(self):
        prepared = self.codec.prepare(self.source)
        with patch("sizefit.codec_backend.Image.open", side_effect=AssertionError("decoded twice")):
            data = self.codec.encode(prepared, 160, 160, 'webp', 60)
        self.assertEqual(_open(data).size, (160, 120))

    def test_oversized_source_is_an_encode_error(self):
        with self.assertRaises(EncodeError):
            self.codec.prepare(make_png_header(15000, 15000))

    def test_resize_contain_pads_with_transparency(self):
        data = self.codec.resize_contain(self.source, 100, 100, 'png')
        img = _open(data)
        self.assertEqual(img.size, (100, 100))
        self.assertEqual(img.mode, 'RGBA')
        # 320x240 fits as 100x75, centred with 12px bands above and below
        self.assertEqual(img.getpixel((50, 5))[3], 0)
        self.assertEqual(img.getpixel((50, 50))[3], 255)

    def test_resize_contain_upscales_and_keeps_aspect_without_height(self):
        data = self.codec.resize_contain(self.source, 640, None, 'jpeg')
        self.assertEqual(_open(data).size, (640, 480))

    def test_resize_contain_flattens_padding_for_jpeg(self):
        data = self.codec.resize_contain(self.source, 100, 100, 'jpeg', quality=90)
        img = _open(data)
        self.assertEqual(img.mode, 'RGB')
        self.assertEqual(img.size, (100, 100))


class TestFFmpegGifCodec(unittest.TestCase):
    """Command construction and failure handling with subprocess patched out"""

    def setUp(self):
        fd, self.input_path = tempfile.mkstemp(suffix=".gif")
        os.close(fd)
        with open(self.input_path, "wb") as handle:
            handle.write(b"GIF89a")
        self.output_path = self.input_path + ".trial.gif"
        self.captured_cmd = None

    def tearDown(self):
        for path in (self.input_path, self.output_path):
            if path and os.path.exists(path):
                os.remove(path)

    def _fake_run(self, returncode=0, write=b"GIF89a-output"):
        def fake_run(cmd, **_kwargs):
            self.captured_cmd = cmd
            if write:
                with open(self.output_path, "wb") as handle:
                    handle.write(write)

            class Result:
                stdout = ""
                stderr = "" if returncode == 0 else "Invalid data found"

            Result.returncode = returncode
            return Result()
        return fake_run

    def test_command_scales_width_sets_fps_and_loops(self):
        with patch("sizefit.ffmpeg_utils.subprocess.run", side_effect=self._fake_run()):
            result = FFmpegGifCodec(max_colors=128).encode(self.input_path, 320, 12, self.output_path)

        self.assertEqual(result, self.output_path)
        filter_graph = self.captured_cmd[self.captured_cmd.index('-filter_complex') + 1]
        self.assertIn('fps=12', filter_graph)
        self.assertIn('scale=320:-1', filter_graph)
        self.assertIn('palettegen=max_colors=128', filter_graph)
        self.assertEqual(self.captured_cmd[self.captured_cmd.index('-loop') + 1], '0')
        self.assertEqual(self.captured_cmd[-1], os.path.abspath(self.output_path))
        self.assertIn('-hide_banner', self.captured_cmd)

    def test_explicit_height_is_passed_to_scale(self):
        with patch("sizefit.ffmpeg_utils.subprocess.run", side_effect=self._fake_run()):
            FFmpegGifCodec().encode(self.input_path, 480, 15, self.output_path, height=270)

        filter_graph = self.captured_cmd[self.captured_cmd.index('-filter_complex') + 1]
        self.assertIn('scale=480:270:flags=lanczos', filter_graph)
        self.assertIn('paletteuse=dither=bayer:bayer_scale=5', filter_graph)

    def test_nonzero_exit_raises_with_params(self):
        with patch("sizefit.ffmpeg_utils.subprocess.run", side_effect=self._fake_run(returncode=1, write=None)):
            with self.assertRaises(EncodeError) as ctx:
                FFmpegGifCodec().encode(self.input_path, 200, 10, self.output_path)
        self.assertEqual(ctx.exception.params, {'width': 200, 'fps': 10})

    def test_empty_output_raises(self):
        with patch("sizefit.ffmpeg_utils.subprocess.run", side_effect=self._fake_run(write=b"")):
            with self.assertRaises(EncodeError):
                FFmpegGifCodec().encode(self.input_path, 200, 10, self.output_path)

    def test_timeout_raises(self):
        with patch("sizefit.ffmpeg_utils.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(cmd='ffmpeg', timeout=1)):
            with self.assertRaises(EncodeError):
                FFmpegGifCodec(timeout_seconds=1).encode(self.input_path, 200, 10, self.output_path)


def test_missing_ffmpeg_binary_is_an_encode_error():
    with patch("sizefit.ffmpeg_utils.subprocess.run", side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(EncodeError, match="not found"):
            FFmpegUtils.run_command(['ffmpeg', '-version'])


def test_perf_flags_inserted_after_program_name():
    cmd = FFmpegUtils.add_ffmpeg_perf_flags(['ffmpeg', '-i', 'in.gif', 'out.gif'], threads=2)
    assert cmd[:6] == ['ffmpeg', '-hide_banner', '-loglevel', 'error', '-threads', '2']

import os

import pytest

from fakes import make_image_bytes
from sizefit.workspace import Workspace


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace(root=str(tmp_path / "workspaces"))
    ws.open()
    yield ws
    ws.cleanup()


@pytest.fixture
def image_file(tmp_path):
    """Factory writing a noise image of the given format into tmp_path"""
    def _write(name='photo.png', size=(200, 150), fmt='PNG', mode='RGB', frames=1):
        path = os.path.join(str(tmp_path), name)
        with open(path, 'wb') as handle:
            handle.write(make_image_bytes(size, fmt, mode, frames))
        return path
    return _write

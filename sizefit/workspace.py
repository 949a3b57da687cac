"""
Request-scoped workspaces
Temporary directories for uploads and animated trial outputs, plus the
single-slot holder that keeps at most one best artifact on disk.
"""

import os
import random
import shutil
import threading
import time
import uuid
import logging
import tempfile
from pathlib import Path
from typing import List, Optional, Set

from .candidates import Candidate

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "sizefit_req_"


def default_workspace_root() -> str:
    return os.path.join(tempfile.gettempdir(), "sizefit")


def remove_file(file_path: str, max_retries: int = 3) -> bool:
    """Best-effort delete with retry for Windows file locking. Never raises."""
    for retry in range(max_retries):
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
            return True
        except (OSError, PermissionError) as e:
            if retry < max_retries - 1:
                time.sleep(0.1 * (retry + 1))
            else:
                logger.warning(f"Failed to clean up {file_path} after {max_retries} retries: {e}")
    return False


class Workspace:
    """A uniquely named directory owned by one request.

    Use as a context manager; the directory and everything left in it are
    removed on exit. Open workspaces are registered so a sweep never removes
    one that is still in use.
    """
    _active_paths: Set[str] = set()
    _registry_lock = threading.Lock()

    def __init__(self, root: Optional[str] = None):
        self.root = root or default_workspace_root()
        self.path: Optional[str] = None

    @classmethod
    def create(cls, root: Optional[str] = None) -> "Workspace":
        workspace = cls(root)
        workspace.open()
        return workspace

    @classmethod
    def is_active(cls, path: str) -> bool:
        with cls._registry_lock:
            return os.path.abspath(path) in cls._active_paths

    def open(self) -> str:
        if self.path is None:
            os.makedirs(self.root, exist_ok=True)
            self.path = tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.root)
            with self._registry_lock:
                self._active_paths.add(os.path.abspath(self.path))
            logger.debug(f"Created workspace {self.path}")
        return self.path

    def path_for(self, prefix: str, suffix: str) -> str:
        """Unique file name inside the workspace; the file is not created."""
        directory = self.open()
        thread_id = threading.get_ident()
        token = f"{uuid.uuid4().hex[:8]}{random.randint(1000, 9999)}"
        return os.path.join(directory, f"{prefix}_{thread_id}_{token}{suffix}")

    def remove(self, file_path: str) -> bool:
        return remove_file(file_path)

    def list_files(self) -> List[str]:
        if self.path is None or not os.path.isdir(self.path):
            return []
        return sorted(str(p) for p in Path(self.path).iterdir())

    def cleanup(self):
        if self.path and os.path.exists(self.path):
            shutil.rmtree(self.path, ignore_errors=True)
            if os.path.exists(self.path):
                logger.warning(f"Workspace could not be fully removed: {self.path}")
            else:
                logger.debug(f"Removed workspace {self.path}")
        if self.path:
            with self._registry_lock:
                self._active_paths.discard(os.path.abspath(self.path))
        self.path = None

    def __enter__(self) -> "Workspace":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    @staticmethod
    def sweep_stale(root: Optional[str] = None, older_than_seconds: float = 60.0) -> int:
        """Remove abandoned request workspaces under root. Returns the count removed."""
        root = root or default_workspace_root()
        if not os.path.isdir(root):
            return 0
        cutoff = time.time() - older_than_seconds
        removed = 0
        for entry in Path(root).glob(f"{WORKSPACE_PREFIX}*"):
            if Workspace.is_active(str(entry)):
                continue
            try:
                if entry.is_dir() and entry.stat().st_mtime < cutoff:
                    shutil.rmtree(entry, ignore_errors=True)
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not sweep workspace {entry}: {e}")
        if removed:
            logger.info(f"Swept {removed} stale workspace(s) from {root}")
        return removed


class BestArtifactSlot:
    """Holds at most one on-disk candidate artifact.

    ``offer`` promotes a strictly smaller candidate and disposes the one it
    replaces, otherwise it disposes the offered candidate. Whatever is still
    held when the slot closes is disposed unless it was ``release``d first.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace
        self._current: Optional[Candidate] = None

    @property
    def current(self) -> Optional[Candidate]:
        return self._current

    def offer(self, candidate: Candidate) -> bool:
        if self._current is None or candidate.size < self._current.size:
            previous, self._current = self._current, candidate
            if previous is not None:
                self._dispose(previous)
            return True
        self._dispose(candidate)
        return False

    def release(self) -> Optional[Candidate]:
        """Hand the held candidate to the caller, who then owns its artifact."""
        candidate, self._current = self._current, None
        return candidate

    def close(self):
        if self._current is not None:
            self._dispose(self._current)
            self._current = None

    def _dispose(self, candidate: Candidate):
        if candidate.path:
            self.workspace.remove(candidate.path)

    def __enter__(self) -> "BestArtifactSlot":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

"""
Tests for request workspaces, the single best-artifact slot and stale sweeping
"""

import os
import time
import unittest

from sizefit.candidates import Candidate
from sizefit.server import WorkspaceSweeper
from sizefit.workspace import BestArtifactSlot, Workspace, remove_file


def _artifact(workspace, size, scale=1.0):
    path = workspace.path_for('trial', '.gif')
    with open(path, 'wb') as handle:
        handle.write(b'\0' * size)
    return Candidate(size=size, scale=scale, width=100, fps=10, path=path)


class TestBestArtifactSlot(unittest.TestCase):

    def setUp(self):
        self.workspace = Workspace.create()

    def tearDown(self):
        self.workspace.cleanup()

    def test_smaller_candidate_replaces_and_disposes_previous(self):
        with BestArtifactSlot(self.workspace) as slot:
            first = _artifact(self.workspace, 500)
            second = _artifact(self.workspace, 300)
            self.assertTrue(slot.offer(first))
            self.assertTrue(slot.offer(second))

            self.assertFalse(os.path.exists(first.path))
            self.assertEqual(slot.current, second)
            self.assertEqual(self.workspace.list_files(), [second.path])

    def test_larger_or_equal_candidate_is_disposed(self):
        with BestArtifactSlot(self.workspace) as slot:
            best = _artifact(self.workspace, 300)
            slot.offer(best)
            bigger = _artifact(self.workspace, 800)
            same = _artifact(self.workspace, 300)
            self.assertFalse(slot.offer(bigger))
            self.assertFalse(slot.offer(same))

            self.assertEqual(self.workspace.list_files(), [best.path])

    def test_release_hands_over_ownership(self):
        with BestArtifactSlot(self.workspace) as slot:
            kept = _artifact(self.workspace, 100)
            slot.offer(kept)
            released = slot.release()

        self.assertIs(released, kept)
        self.assertTrue(os.path.exists(kept.path))
        self.assertIsNone(slot.current)

    def test_close_disposes_held_artifact(self):
        slot = BestArtifactSlot(self.workspace)
        held = _artifact(self.workspace, 100)
        slot.offer(held)
        slot.close()

        self.assertFalse(os.path.exists(held.path))

    def test_in_memory_candidates_need_no_disposal(self):
        with BestArtifactSlot(self.workspace) as slot:
            slot.offer(Candidate(size=10, scale=1.0, width=10, height=10, quality=50, data=b'x' * 10))
            slot.offer(Candidate(size=5, scale=0.5, width=5, height=5, quality=50, data=b'x' * 5))
            self.assertEqual(slot.current.size, 5)


def test_workspace_context_removes_directory(tmp_path):
    with Workspace(str(tmp_path)) as workspace:
        directory = workspace.path
        path = workspace.path_for('upload', '.png')
        with open(path, 'wb') as handle:
            handle.write(b'data')
        assert os.path.dirname(path) == directory
        assert Workspace.is_active(directory)

    assert not os.path.exists(directory)
    assert not Workspace.is_active(directory)
    assert workspace.path is None


def test_path_for_is_unique(workspace):
    paths = {workspace.path_for('trial_100_15', '.gif') for _ in range(50)}
    assert len(paths) == 50


def test_cleanup_is_idempotent(workspace):
    workspace.cleanup()
    workspace.cleanup()
    assert workspace.list_files() == []


def test_remove_file_tolerates_missing_paths(tmp_path):
    assert remove_file(str(tmp_path / 'never-created.gif'))


def test_sweep_removes_only_stale_inactive_workspaces(tmp_path):
    root = str(tmp_path)
    abandoned = Workspace(root)
    abandoned.open()
    abandoned_path = abandoned.path
    # Simulate an interrupted request: directory left behind but no longer registered
    Workspace._active_paths.discard(os.path.abspath(abandoned_path))

    in_flight = Workspace(root)
    in_flight.open()

    old = time.time() - 3600
    os.utime(abandoned_path, (old, old))
    os.utime(in_flight.path, (old, old))
    unrelated = tmp_path / 'keep-me'
    unrelated.mkdir()
    os.utime(str(unrelated), (old, old))

    removed = Workspace.sweep_stale(root, older_than_seconds=60)

    assert removed == 1
    assert not os.path.exists(abandoned_path)
    assert os.path.exists(in_flight.path)
    assert unrelated.exists()
    in_flight.cleanup()


def test_sweep_keeps_recent_workspaces(tmp_path):
    root = str(tmp_path)
    recent = Workspace(root)
    recent.open()
    Workspace._active_paths.discard(os.path.abspath(recent.path))

    assert Workspace.sweep_stale(root, older_than_seconds=60) == 0
    assert os.path.exists(recent.path)
    recent.cleanup()


def test_sweep_of_missing_root_is_a_no_op(tmp_path):
    assert Workspace.sweep_stale(str(tmp_path / 'missing')) == 0


def test_sweeper_job_runs_sweep(tmp_path):
    stale = tmp_path / 'sizefit_req_stale'
    stale.mkdir()
    old = time.time() - 3600
    os.utime(str(stale), (old, old))

    sweeper = WorkspaceSweeper(str(tmp_path), max_age_seconds=60, interval_seconds=1)
    assert len(sweeper.scheduler.jobs) == 1
    sweeper.scheduler.run_all()

    assert not stale.exists()

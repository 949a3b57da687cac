"""
Tests for SearchPool admission control
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from sizefit.error_handler import CapacityError
from sizefit.search_pool import MEMORY_PER_SEARCH_BYTES, SearchPool, recommended_workers


def test_rejects_immediately_when_running_and_queue_are_full():
    pool = SearchPool(max_workers=1, max_queued=0, queue_timeout=5)

    with pool.slot():
        started = time.time()
        with pytest.raises(CapacityError):
            with pool.slot():
                pass
        assert time.time() - started < 1

    assert pool.stats()['active'] == 0


def test_queued_request_times_out():
    pool = SearchPool(max_workers=1, max_queued=1, queue_timeout=0.05)

    with pool.slot():
        with pytest.raises(CapacityError, match="Timed out"):
            with pool.slot():
                pass

    assert pool.stats() == {'active': 0, 'queued': 0, 'max_workers': 1, 'max_queued': 1}


def test_concurrency_never_exceeds_max_workers():
    pool = SearchPool(max_workers=2, max_queued=10, queue_timeout=10)
    lock = threading.Lock()
    state = {'running': 0, 'peak': 0}

    def work():
        with lock:
            state['running'] += 1
            state['peak'] = max(state['peak'], state['running'])
        time.sleep(0.05)
        with lock:
            state['running'] -= 1

    threads = [threading.Thread(target=pool.run, args=(work,)) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert state['peak'] <= 2
    assert pool.stats()['active'] == 0


def test_slot_is_released_when_the_search_raises():
    pool = SearchPool(max_workers=1, max_queued=0)

    with pytest.raises(ValueError):
        pool.run(lambda: (_ for _ in ()).throw(ValueError("boom")))

    assert pool.run(lambda: 'ok') == 'ok'


def test_recommended_workers_respects_memory():
    memory = SimpleNamespace(available=2 * MEMORY_PER_SEARCH_BYTES)
    with patch('sizefit.search_pool.psutil.cpu_count', return_value=16), \
            patch('sizefit.search_pool.psutil.virtual_memory', return_value=memory):
        assert recommended_workers() == 2


def test_recommended_workers_is_at_least_one():
    memory = SimpleNamespace(available=0)
    with patch('sizefit.search_pool.psutil.cpu_count', return_value=None), \
            patch('sizefit.search_pool.psutil.virtual_memory', return_value=memory):
        assert recommended_workers() == 1


def test_zero_workers_means_auto():
    with patch('sizefit.search_pool.recommended_workers', return_value=3):
        assert SearchPool(max_workers=0).max_workers == 3

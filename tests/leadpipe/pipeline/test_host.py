"""Tests for leadpipe.pipeline.host — worker supervision and shutdown."""
from unittest.mock import MagicMock

import pytest

from leadpipe.pipeline.host import WorkerHost
from leadpipe.pipeline.states import Stage


class FakeProcess:
    """Stands in for multiprocessing.Process."""

    def __init__(self, target=None, args=(), name=None):
        self.target = target
        self.args = args
        self.name = name
        self.alive = False
        self.exitcode = None
        self.terminated = False
        self.killed = False
        self.stubborn = False

    def start(self):
        self.alive = True

    def is_alive(self):
        return self.alive

    def terminate(self):
        self.terminated = True
        if not self.stubborn:
            self.alive = False
            self.exitcode = 0

    def kill(self):
        self.killed = True
        self.alive = False
        self.exitcode = -9

    def join(self, timeout=None):
        pass


@pytest.fixture
def spawned():
    return []


@pytest.fixture
def host(spawned):
    def factory(**kwargs):
        proc = FakeProcess(**kwargs)
        spawned.append(proc)
        return proc

    return WorkerHost(job_queue=MagicMock(), concurrency=2, shutdown_grace=0,
                      process_factory=factory)


class TestStart:

    def test_spawns_concurrency_workers_per_stage(self, host, spawned):
        host.start()
        assert sorted(host.workers) == [
            'analyze-0', 'analyze-1', 'draft-0', 'draft-1', 'scrape-0', 'scrape-1',
        ]
        assert all(p.alive for p in spawned)
        assert ('scrape', 'scrape-1') in [p.args for p in spawned]

    def test_stage_subset(self, spawned):
        host = WorkerHost(stages=['draft'], process_factory=lambda **kw: FakeProcess(**kw))
        host.start()
        assert list(host.workers) == ['draft-0']
        assert host.stages == [Stage.DRAFT]

    def test_concurrency_floor(self):
        assert WorkerHost(concurrency=0).concurrency == 1


class TestMaintain:

    def test_restarts_dead_worker(self, host, spawned):
        host.start()
        dead = host.workers['analyze-1']
        dead.alive = False
        dead.exitcode = 1

        host.maintain()

        replacement = host.workers['analyze-1']
        assert replacement is not dead
        assert replacement.alive
        assert replacement.args == ('analyze', 'analyze-1')
        assert len(spawned) == 7

    def test_enforces_retention(self, host):
        host.start()
        host.maintain()
        host.job_queue.prune_completed.assert_called_once()
        host.job_queue.log_status.assert_called_once()

    def test_queue_errors_do_not_stop_supervision(self, host):
        host.start()
        host.job_queue.prune_completed.side_effect = ConnectionError('redis down')
        host.maintain()

    def test_no_restart_while_stopping(self, host, spawned):
        host.start()
        host.workers['scrape-0'].alive = False
        host.request_stop()
        host.maintain()
        assert len(spawned) == 6


class TestShutdown:

    def test_warm_stops_every_worker(self, host, spawned):
        host.start()
        host.shutdown()
        assert all(p.terminated for p in spawned)
        assert not any(p.killed for p in spawned)
        assert host.stopping
        host.job_queue.close.assert_called_once()

    def test_kills_workers_past_grace(self, host, spawned):
        host.start()
        busy = host.workers['draft-0']
        busy.stubborn = True

        host.shutdown()

        assert busy.killed
        assert not host.workers['draft-1'].killed

    def test_run_returns_after_stop(self, host, spawned, monkeypatch):
        monkeypatch.setattr('leadpipe.pipeline.host.signal.signal', MagicMock())
        host.maintenance_interval = 0
        host.request_stop()

        host.run()

        assert len(spawned) == 6
        assert all(p.terminated for p in spawned)

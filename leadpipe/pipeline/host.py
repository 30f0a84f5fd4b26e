"""
Worker Host — runs one RQ worker process per (stage, concurrency slot).

The supervising process owns no job state. It spawns the workers, restarts
any that die, prunes completed jobs on an interval and, on SIGINT/SIGTERM,
asks every worker for a warm shutdown: finish the job in hand, stop pulling
new ones. Workers still busy when the grace period runs out are killed;
their jobs are picked up again by RQ's abandoned-job handling.
"""
import logging
import multiprocessing
import os
import signal
import socket
import threading
import time
from typing import List

from rq import SimpleWorker

from leadpipe import config
from leadpipe.logging_config import configure_logging
from leadpipe.pipeline import tasks
from leadpipe.pipeline.processors import build_processors
from leadpipe.pipeline.states import Stage, STAGE_ORDER

logger = logging.getLogger('pipeline.host')


def build_context():
    """Open every resource one worker process needs. Returns (context, redis_conn, job_queue)."""
    from leadpipe.extensions import make_redis, make_store, make_job_queue, make_capabilities
    from leadpipe.services.circuit_breaker import build_breakers
    from leadpipe.services.notifications import SlackNotifier

    connection = make_redis()
    store, engine = make_store()
    job_queue = make_job_queue(connection)
    scraper, generator = make_capabilities(build_breakers(connection))
    notifier = SlackNotifier(config.SLACK_WEBHOOK_URL)

    context = tasks.PipelineContext(
        processors=build_processors(store, job_queue, scraper, generator, notifier),
        closers=[connection.close, engine.dispose, generator.close, scraper.close],
    )
    return context, connection, job_queue


def run_stage_worker(stage, worker_name):
    """Process entrypoint: serve one stage's queue until asked to stop."""
    # Own process group, so a terminal Ctrl+C reaches only the host, which
    # then forwards exactly one SIGTERM (a second signal would make RQ
    # abort the running job).
    os.setpgrp()
    configure_logging(worker_name=worker_name)

    context, connection, job_queue = build_context()
    tasks.bind(context)
    try:
        worker = SimpleWorker(
            [job_queue.queue(stage)],
            connection=connection,
            name=f'{worker_name}@{socket.gethostname()}:{os.getpid()}',
        )
        logger.info("Worker %s started on %s", worker_name, job_queue.queue(stage).name)
        # the scheduler moves backed-off retries onto the queue when due
        worker.work(with_scheduler=True)
    finally:
        tasks.unbind()
        logger.info("Worker %s closed", worker_name)


class WorkerHost:
    """
    Usage:
        host = WorkerHost(job_queue=make_job_queue(make_redis()))
        host.run()       # blocks until SIGINT/SIGTERM
    """

    def __init__(self, job_queue=None, stages=None, concurrency=1, shutdown_grace=60,
                 maintenance_interval=60, process_factory=None, target=run_stage_worker):
        self.job_queue = job_queue
        self.stages: List[Stage] = [Stage(s) for s in (stages or STAGE_ORDER)]
        self.concurrency = max(1, concurrency)
        self.shutdown_grace = shutdown_grace
        self.maintenance_interval = maintenance_interval
        self.process_factory = process_factory or multiprocessing.Process
        self.target = target
        self.workers = {}                 # worker name → process
        self._stop = threading.Event()

    @classmethod
    def from_config(cls, job_queue=None):
        return cls(
            job_queue=job_queue,
            concurrency=config.WORKER_CONCURRENCY,
            shutdown_grace=config.SHUTDOWN_GRACE,
            maintenance_interval=config.MAINTENANCE_INTERVAL,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self):
        logger.info("--- Worker Host starting (concurrency %d per queue) ---", self.concurrency)
        for stage in self.stages:
            for slot in range(self.concurrency):
                self._spawn(f'{stage.value}-{slot}', stage)
        logger.info("--- %d workers running ---", len(self.workers))

    def run(self):
        """Start workers and supervise them until a shutdown signal arrives."""
        signal.signal(signal.SIGINT, self.request_stop)
        signal.signal(signal.SIGTERM, self.request_stop)
        self.start()
        try:
            while not self._stop.wait(self.maintenance_interval):
                self.maintain()
        finally:
            self.shutdown()

    def request_stop(self, signum=None, frame=None):
        if signum is not None:
            logger.info("Received %s, closing workers...", signal.Signals(signum).name)
        self._stop.set()

    @property
    def stopping(self):
        return self._stop.is_set()

    def maintain(self):
        """Restart dead workers and enforce job retention."""
        for name, proc in list(self.workers.items()):
            if not proc.is_alive() and not self.stopping:
                logger.warning("Worker %s exited (code %s), restarting", name, proc.exitcode)
                stage = Stage(name.rsplit('-', 1)[0])
                self._spawn(name, stage)

        if self.job_queue is None:
            return
        try:
            self.job_queue.prune_completed()
            self.job_queue.log_status()
        except Exception:
            logger.error("Queue maintenance failed", exc_info=True)

    def shutdown(self):
        """Warm-stop every worker, wait up to the grace period, then kill stragglers."""
        self._stop.set()
        for name, proc in self.workers.items():
            if proc.is_alive():
                proc.terminate()    # SIGTERM → RQ warm shutdown

        deadline = time.monotonic() + self.shutdown_grace
        for name, proc in self.workers.items():
            proc.join(max(0.0, deadline - time.monotonic()))

        for name, proc in self.workers.items():
            if proc.is_alive():
                logger.warning("Worker %s still busy after %ss grace, killing", name, self.shutdown_grace)
                proc.kill()
                proc.join()

        if self.job_queue is not None:
            try:
                self.job_queue.close()
            except Exception:
                logger.warning("Error closing queue connection", exc_info=True)
        logger.info("Workers closed.")

    def _spawn(self, name, stage):
        proc = self.process_factory(target=self.target, args=(stage.value, name), name=name)
        proc.start()
        self.workers[name] = proc
        return proc

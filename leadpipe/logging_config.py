"""
Process-wide logging setup for the API and the stage workers.

Every process calls configure_logging() once: create_app() for the API,
run_stage_worker() for each worker the host spawns, worker.py for the host
itself. Records are stamped with the worker name so the interleaved output
of the per-queue processes can be told apart.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone


class WorkerNameFilter(logging.Filter):
    """Attach the owning worker's name (or '-') to every record."""

    def __init__(self, worker_name=None):
        super().__init__()
        self.worker_name = worker_name or '-'

    def filter(self, record):
        record.worker = self.worker_name
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'worker': getattr(record, 'worker', '-'),
            'process': record.process,
            'message': record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


TEXT_FORMAT = '[%(worker)s] [%(asctime)s] %(levelname)s %(name)s — %(message)s'

# Chatty at INFO: HTTP clients, the OpenAI SDK, RQ's scheduler polling
QUIET_LOGGERS = ('urllib3', 'openai', 'httpcore', 'httpx', 'rq.scheduler')


def _level_from_env():
    name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app=None, worker_name=None):
    """
    Replace the root handlers with a single stderr handler.

    LOG_LEVEL (default INFO) and LOG_FORMAT ("text" or "json") are read at
    call time. Safe to call repeatedly; handlers are never duplicated.
    """
    level = _level_from_env()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(WorkerNameFilter(worker_name))
    if os.getenv('LOG_FORMAT', 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.propagate = True

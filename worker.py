"""
Worker entry point — `python worker.py` starts one worker per stage queue.
"""
from leadpipe.extensions import make_redis, make_job_queue
from leadpipe.logging_config import configure_logging
from leadpipe.pipeline.host import WorkerHost


def main():
    configure_logging(worker_name='host')
    host = WorkerHost.from_config(job_queue=make_job_queue(make_redis()))
    host.run()


if __name__ == '__main__':
    main()

#!/usr/bin/env python3
"""
List dead-letter jobs for a stage, with the failure reason and stack.

Usage:
    python scripts/inspect_failed_jobs.py analyze            # last 5 failed analyze jobs
    python scripts/inspect_failed_jobs.py scrape --limit 20
    python scripts/inspect_failed_jobs.py draft --requeue JOB_ID

Requires: Redis running (REDIS_URL).
"""
import argparse

from leadpipe.extensions import make_redis, make_job_queue
from leadpipe.pipeline.states import Stage


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('stage', choices=[s.value for s in Stage])
    parser.add_argument('--limit', type=int, default=5)
    parser.add_argument('--requeue', metavar='JOB_ID', help='move this dead-letter job back onto its queue')
    args = parser.parse_args()

    jobs = make_job_queue(make_redis())
    try:
        if args.requeue:
            jobs.requeue_failed(args.stage, args.requeue)
            print(f"Requeued {args.requeue}")
            return

        letters = jobs.failed_jobs(args.stage, limit=args.limit)
        print(f"Found {len(letters)} failed jobs in the {args.stage} queue")
        for letter in letters:
            print(f"\nJob ID: {letter.job_id}  lead={letter.lead_id}  ended={letter.ended_at}")
            print(letter.reason or '(no failure reason recorded)')
    finally:
        jobs.close()


if __name__ == '__main__':
    main()

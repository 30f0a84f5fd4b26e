#!/usr/bin/env python3
"""
Print a lead's read model and where in the pipeline it stopped.

Usage:
    python scripts/debug_lead.py LEAD_ID

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import argparse
import json

from leadpipe.extensions import make_store


def main():
    parser = argparse.ArgumentParser(description="Inspect one lead")
    parser.add_argument('lead_id')
    args = parser.parse_args()

    store, engine = make_store()
    try:
        detail = store.lead_detail(args.lead_id)
        if detail is None:
            print(f"Lead {args.lead_id} not found")
            return

        print(json.dumps(detail, indent=2, default=str))
        if detail['failed_stage']:
            print(f"\nStopped at stage '{detail['failed_stage']}' with status {detail['status']}")
            if detail['scraped_data'] is None:
                print("No scraped data — the scrape stage never succeeded.")
    finally:
        engine.dispose()


if __name__ == '__main__':
    main()

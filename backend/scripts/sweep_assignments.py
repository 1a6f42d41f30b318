#!/usr/bin/env python
"""Expire stale delivery assignments and flag late deliveries.

Read paths already sweep lazily; run this from cron so couriers are released even when
nobody is looking at the board.

Usage:
  python -m scripts.sweep_assignments            # one pass
  python -m scripts.sweep_assignments --json     # machine-readable summary

Reads DATABASE_URL / LOG_LEVEL like the web app (python-dotenv).
"""
from __future__ import annotations
import argparse, json, logging, pathlib, sys

BACKEND = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from distribution import create_app, get_db  # noqa: E402
from distribution.services.audit import add_audit  # noqa: E402
from distribution.services.wiring import assignment_engine  # noqa: E402

logger = logging.getLogger('distribution.sweep')


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description="Run the assignment expiry / lateness sweep once")
    p.add_argument('--json', action='store_true', help='Print the result as JSON')
    args = p.parse_args(argv)

    app = create_app()
    with app.app_context():
        result = assignment_engine().refresh()
        if result['expired'] or result['late']:
            add_audit('ASSIGNMENT.SWEEP', meta={'expired': len(result['expired']), 'late': len(result['late']), 'source': 'cron'})
            get_db().commit()
    if args.json:
        print(json.dumps(result))
    else:
        logger.info('sweep done: %d expired, %d late', len(result['expired']), len(result['late']))
    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main(sys.argv[1:]))

#!/usr/bin/env python3
"""
Welfare Ledger Entry Point

Starts the API server, or with --apply-interest runs the quarterly interest
batch once (for a scheduler such as cron) and exits non-zero on failures.
"""

import argparse
import sys
from datetime import date

from welfare_ledger.config import get_config
from welfare_ledger.logging_config import setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Welfare ledger engine")
    parser.add_argument("--apply-interest", action="store_true",
                        help="Run the quarterly interest batch and exit")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None,
                        help="Charge the fiscal quarter containing this day (YYYY-MM-DD)")
    parser.add_argument("--max-failures", type=int, default=0,
                        help="Failures tolerated before the batch exits with status 1")
    parser.add_argument("--debug", action="store_true", help="Enable auto-reload")
    return parser.parse_args(argv)


def run_interest_batch(as_of, max_failures: int) -> int:
    from welfare_ledger.api.system import LedgerSystem

    system = LedgerSystem(use_sqlite=True)
    try:
        batch = system.interest_service.run_quarterly_batch(as_of=as_of)
    finally:
        system.close()
    print(batch.summary_message())
    return 0 if batch.is_successful(max_failures) else 1


def main(argv=None) -> int:
    args = parse_args(argv)
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    if args.apply_interest:
        return run_interest_batch(args.as_of, args.max_failures)

    from welfare_ledger.api import run_server

    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    try:
        run_server(host=config.api_host, port=config.api_port, debug=args.debug)
    except KeyboardInterrupt:
        print("\nShutting down welfare ledger...")
    return 0


if __name__ == "__main__":
    sys.exit(main())

# scripts/smoke.py
"""
Smoke test for the optimistic cache engine.

Runs the toggle-twice race for every combination of remote outcomes and
checks that the cache always converges to the server's value.

Usage
-----
    $ python scripts/smoke.py
    $ python scripts/smoke.py --latency 0.2 --trace-dir artifacts/trace
"""

import argparse
import asyncio
import logging
import sys
from itertools import product
from pathlib import Path

from dotenv import load_dotenv

from optimistic_cache.demo.race import run_toggle_race

env_path = Path(".env")
if env_path.exists():
    load_dotenv(env_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)


def main() -> int:
    """Execute every race variant; return a process exit code."""
    parser = argparse.ArgumentParser(description="Run the optimistic-cache smoke test")
    parser.add_argument("--latency", type=float, default=0.05, help="Simulated round trip (s)")
    parser.add_argument("--trace-dir", type=Path, default=None, help="Write traces here")
    args = parser.parse_args()

    failures = 0
    for fail_first, fail_second in product((False, True), repeat=2):
        trace_dir = None
        if args.trace_dir is not None:
            trace_dir = args.trace_dir / f"a{int(fail_first)}_b{int(fail_second)}"
        report = asyncio.run(
            run_toggle_race(
                fail_first=fail_first,
                fail_second=fail_second,
                latency=args.latency,
                trace_dir=trace_dir,
            )
        )
        ok = report.final == report.server
        failures += 0 if ok else 1
        print(
            f"{'✅' if ok else '❌'} A={report.results['A']:<18} B={report.results['B']:<18}"
            f" before_refetch={report.before_refetch} final={report.final} server={report.server}"
        )

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())

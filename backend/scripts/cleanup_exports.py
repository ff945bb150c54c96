"""
Export Cleanup Script
=====================

Runs one expired-export sweep outside of Celery (cron, manual cleanup).

Usage:
    python -m scripts.cleanup_exports [--export-dir exports]
"""

import argparse
import asyncio
import json
import sys

from timefly_exports.core.config import settings
from timefly_exports.core.logging import configure_logging
from timefly_exports.tasks.maintenance import cleanup_expired_exports


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete expired export files and mark their audit rows cleaned up.")
    parser.add_argument(
        "--export-dir",
        default=settings.EXPORT_DIR,
        help=f"Directory holding export artifacts (default {settings.EXPORT_DIR}).",
    )
    args = parser.parse_args()

    configure_logging()
    try:
        result = asyncio.run(cleanup_expired_exports(export_dir=args.export_dir))
    except Exception as e:
        print(f"Export cleanup failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

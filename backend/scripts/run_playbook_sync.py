#!/usr/bin/env python3
"""Run one playbook sync immediately (ops use).

Same run as the weekly trigger: the window comes from the run ledger, so
running this between scheduled runs only processes what is new.

Usage:
    cd backend
    uv run python -m scripts.run_playbook_sync
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

# Ensure CWD is backend/ so sqlite:///data/playbook_sync.db resolves correctly
os.chdir(BACKEND_DIR)

from playbook_sync.config import settings  # noqa: E402
from playbook_sync.db.database import create_db_and_tables  # noqa: E402
from playbook_sync.sync.pipeline import create_pipeline  # noqa: E402


async def _run() -> dict:
    pipeline = create_pipeline()
    result = await asyncio.wait_for(pipeline.run(), timeout=settings.sync_max_duration_seconds)
    return result.to_dict()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_db_and_tables()
    result = asyncio.run(_run())
    print(json.dumps(result, indent=2))
    return 0 if result["status"] != "failed" else 1


if __name__ == "__main__":
    sys.exit(main())

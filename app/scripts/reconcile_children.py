"""
Repair parents' children lists against the student accounts that actually exist.

Safe to run at any time (idempotent): a second run right after the first writes nothing.
Usage: python -m app.scripts.reconcile_children
"""

import asyncio
import logging
import sys

from app.api.v1.bulk_uploads.service import reconcile_children
from app.core.exceptions import ServiceError
from app.core.log_config import configure_logging
from app.db.session import AsyncSessionLocal


logger = logging.getLogger(__name__)


async def run() -> int:
    async with AsyncSessionLocal() as session:
        return await reconcile_children(session)


def main() -> int:
    configure_logging()
    try:
        repaired = asyncio.run(run())
    except ServiceError as e:
        logger.error("Reconciliation job failed: %s", e.message)
        return 1
    logger.info("Reconciliation completed: parents_repaired=%s", repaired)
    return 0


if __name__ == "__main__":
    sys.exit(main())

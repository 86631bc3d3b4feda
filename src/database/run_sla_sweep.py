"""
SLA Sweep Command
Runs one SLA sweep against the configured database

Usage:
    finance-sla-sweep
    python -m src.database.run_sla_sweep
"""

import asyncio
import sys

from src.config.database import Base, SessionLocal, engine
from src.models.finance_request import FinanceRequest  # noqa: F401
from src.services.sla_sweeper import sla_sweeper
from src.utils.exceptions import WorkflowError
from src.utils.logger import setup_logger

logger = setup_logger()


async def run_sweep() -> int:
    """Run one sweep and return the number of breaches newly logged"""
    db = SessionLocal()
    try:
        result = await sla_sweeper.run(db)
        return result.breaches_logged
    finally:
        db.close()


def main() -> int:
    """
    Exit codes: 0 success, 1 workflow error, 2 any other failure
    """
    try:
        Base.metadata.create_all(bind=engine)
        breaches = asyncio.run(run_sweep())
    except WorkflowError as e:
        print(f"✗ {e.__class__.__name__}: {e.message}")
        logger.error(f"SLA sweep failed: {e.__class__.__name__}: {e.message}")
        return 1
    except Exception as e:
        print(f"✗ SLA sweep failed: {str(e)}")
        logger.opt(exception=e).error("SLA sweep failed")
        return 2

    print(f"SLA sweep complete: {breaches} breach(es) logged")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
SLA Cron Routes
Trigger the SLA sweep and report SLA status
"""

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from src.config.database import get_db
from src.config.settings import settings
from src.services.sla_sweeper import sla_sweeper
from src.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


def verify_cron_secret(authorization: Optional[str] = Header(None)):
    """Require `Authorization: Bearer <CRON_SECRET>` when a secret is configured"""
    if not settings.CRON_SECRET:
        return
    if authorization != f"Bearer {settings.CRON_SECRET}":
        logger.warning("Rejected SLA cron call with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret"
        )


@router.post("/check-sla", dependencies=[Depends(verify_cron_secret)])
async def run_sla_check(db: Session = Depends(get_db)):
    """Run one SLA sweep; safe to call repeatedly"""
    result = await sla_sweeper.run(db)
    return {
        "success": True,
        "message": f"SLA sweep complete: {result.breaches_logged} breach(es) logged",
        **result.to_dict()
    }


@router.get("/check-sla", dependencies=[Depends(verify_cron_secret)])
async def get_sla_status(db: Session = Depends(get_db)):
    """Pending and overdue approval steps"""
    return {"success": True, **sla_sweeper.status(db)}

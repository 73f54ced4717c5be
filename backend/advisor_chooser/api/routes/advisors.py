"""
Advisor self-service endpoints.

Every route here sits behind the membership guard.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from advisor_chooser.core.auth import require_advisor
from advisor_chooser.core.errors import NotFoundError
from advisor_chooser.core.subscription_guard import require_active_subscription
from advisor_chooser.db.base import get_db
from advisor_chooser.models import Advisor, User
from advisor_chooser.schemas import LeadsToggle, SubscriptionSnapshot
from advisor_chooser.services.subscription import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_advisor)])


@router.get("/me/subscription", response_model=SubscriptionSnapshot)
async def get_my_subscription(current_user: User = Depends(require_active_subscription)):
    return subscription_service.snapshot(current_user)


@router.patch("/me/leads")
async def toggle_leads(
    payload: LeadsToggle,
    current_user: User = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    """Pause or resume lead delivery. Paused advisors drop out of seller matches."""
    advisor = db.query(Advisor).filter(Advisor.user_id == current_user.id).first()
    if advisor is None:
        raise NotFoundError("Advisor profile not found")

    advisor.send_leads = payload.send_leads
    db.commit()

    logger.info(f"Advisor {advisor.id} set send_leads={payload.send_leads}")
    return {"send_leads": advisor.send_leads}

"""
API endpoints for seller to advisor matching.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from advisor_chooser.core.auth import require_seller
from advisor_chooser.core.rate_limit import limiter
from advisor_chooser.db.base import get_db
from advisor_chooser.models import User
from advisor_chooser.schemas import AdvisorCard, MatchStats, SortBy
from advisor_chooser.services.matching import matching_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/matches", response_model=List[AdvisorCard])
@limiter.limit("60/minute")
async def get_matches(
    request: Request,
    sort_by: Optional[SortBy] = Query(None),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=0, le=100),
    current_user: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    """
    Advisors matching the current seller's profile.

    Without `limit` every match is returned.
    """
    return matching_service.find_matches(current_user.id, db, sort_by=sort_by, page=page, limit=limit)


@router.get("/stats", response_model=MatchStats)
async def get_match_stats(
    current_user: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    return matching_service.get_match_stats(current_user.id, db)

"""
Admin endpoints for coupon management.

All endpoints require a superuser.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from advisor_chooser.core.auth import get_admin_user
from advisor_chooser.db.base import get_db
from advisor_chooser.models import User
from advisor_chooser.schemas import CouponCreate, CouponDetail, CouponUsageUpdate
from advisor_chooser.services.coupons import coupon_service
from advisor_chooser.services.stripe_gateway import StripeGateway, get_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=CouponDetail, status_code=status.HTTP_201_CREATED)
def create_coupon(
    payload: CouponCreate,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    coupon = coupon_service.create(payload, db)
    logger.info(f"Admin {admin.email} created coupon {coupon.code}")
    return coupon


@router.get("", response_model=List[CouponDetail])
def list_coupons(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    return coupon_service.list_coupons(db)


@router.patch("/{code}/usage", response_model=CouponDetail)
def extend_coupon_usage(
    code: str,
    payload: CouponUsageUpdate,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    """Raise the usage cap and/or change the expiry of a coupon."""
    return coupon_service.extend_usage(code, payload, db)


@router.delete("/{code}")
def delete_coupon(
    code: str,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
):
    deleted = coupon_service.delete(code, db, gateway)
    logger.info(f"Admin {admin.email} deleted coupon {deleted}")
    return {"message": "Coupon deleted successfully", "code": deleted}

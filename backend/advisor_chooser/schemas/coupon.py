"""
Pydantic schemas for coupon administration.
"""
import uuid
from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator

from advisor_chooser.schemas.fields import coerce_bool, coerce_optional_number

CouponType = Literal["percentage", "fixed", "free_trial"]


class CouponCreate(BaseModel):
    """
    Admin request to create a percentage coupon.

    Expiry can be given as a full timestamp (expires_at) or as a date with an
    optional HH:MM time (expires_date / expires_time, end of day by default).
    """
    code: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    value: float = Field(..., ge=1, le=100)
    usage_limit: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None
    expires_date: Optional[str] = None
    expires_time: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("value", "usage_limit", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return coerce_optional_number(v)

    @model_validator(mode="after")
    def resolve_expiry(self):
        if self.expires_at is None and self.expires_date:
            self.expires_at = parse_expiry(self.expires_date, self.expires_time)
        return self


class CouponUsageUpdate(BaseModel):
    """Extend a coupon's usage cap and/or expiry."""
    additional_uses: Optional[int] = Field(None, ge=1)
    new_total_limit: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None
    expires_date: Optional[str] = None
    expires_time: Optional[str] = None
    clear_expiration: bool = False

    @field_validator("additional_uses", "new_total_limit", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return coerce_optional_number(v)

    @field_validator("clear_expiration", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return coerce_bool(v)

    @model_validator(mode="after")
    def check_fields(self):
        if self.additional_uses is not None and self.new_total_limit is not None:
            raise ValueError("Provide either additional_uses or new_total_limit, not both")
        if self.expires_at is None and self.expires_date:
            self.expires_at = parse_expiry(self.expires_date, self.expires_time)
        if self.clear_expiration and self.expires_at is not None:
            raise ValueError("Cannot set and clear the expiration at the same time")
        if (
            self.additional_uses is None
            and self.new_total_limit is None
            and self.expires_at is None
            and not self.clear_expiration
        ):
            raise ValueError("Nothing to update")
        return self


class CouponDetail(BaseModel):
    id: uuid.UUID
    code: str
    type: CouponType
    value: float
    is_active: bool
    expires_at: Optional[datetime] = None
    usage_limit: Optional[int] = None
    used_count: int
    created_at: datetime

    class Config:
        from_attributes = True


def parse_expiry(date_str: str, time_str: Optional[str] = None) -> datetime:
    """Combine YYYY-MM-DD with an optional HH:MM; missing time means 23:59:59."""
    try:
        day = datetime.strptime(date_str.strip(), "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid expiration date: {date_str}") from e

    if not time_str or not time_str.strip():
        return day.replace(hour=23, minute=59, second=59)

    try:
        clock = datetime.strptime(time_str.strip(), "%H:%M")
    except ValueError as e:
        raise ValueError(f"Invalid expiration time: {time_str}") from e
    return day.replace(hour=clock.hour, minute=clock.minute, second=0)

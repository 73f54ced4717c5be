"""
Pydantic schemas for seller to advisor matching.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field

SortBy = Literal["default", "years", "company"]


class AdvisorCard(BaseModel):
    """Advisor as presented to a matching seller."""
    id: uuid.UUID
    user_id: uuid.UUID
    company_name: str
    advisor_name: str
    advisor_email: str
    phone: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    intro_video_url: Optional[str] = None
    licensing: Optional[str] = None
    currency: str = "USD"
    industries: List[str] = Field(default_factory=list)
    geographies: List[str] = Field(default_factory=list)
    matched_industries: List[str] = Field(default_factory=list)
    matched_geographies: List[str] = Field(default_factory=list)
    revenue_min: Optional[float] = None
    revenue_max: Optional[float] = None
    years_experience: int = 0
    number_of_transactions: int = 0
    testimonials: List[str] = Field(default_factory=list)
    worked_with_cimamplify: bool = False
    created_at: datetime


class MatchStats(BaseModel):
    total_matches: int
    industries: List[str]
    geographies: List[str]

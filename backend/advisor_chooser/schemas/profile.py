"""
Parse-boundary schemas for advisor and seller profile forms.

Profile forms are submitted as multipart/form-data, so list, number and
boolean fields arrive as strings. These schemas normalise them before any
domain code reads them.

Profile create and edit endpoints live in the account service, which
imports these forms; this backend only reads the stored profiles.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from advisor_chooser.schemas.fields import (
    coerce_bool,
    coerce_optional_number,
    coerce_string_list,
)


class AdvisorProfileForm(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    industries: List[str] = Field(..., min_length=1)
    geographies: List[str] = Field(..., min_length=1)
    revenue_min: Optional[float] = Field(None, ge=0)
    revenue_max: Optional[float] = Field(None, ge=0)
    years_experience: int = Field(0, ge=0)
    number_of_transactions: int = Field(0, ge=0)
    currency: str = "USD"
    phone: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    licensing: Optional[str] = None
    testimonials: List[str] = Field(default_factory=list)
    send_leads: bool = True
    worked_with_cimamplify: bool = False

    @field_validator("industries", "geographies", "testimonials", mode="before")
    @classmethod
    def parse_lists(cls, v):
        return coerce_string_list(v)

    @field_validator("revenue_min", "revenue_max", "years_experience", "number_of_transactions", mode="before")
    @classmethod
    def parse_numbers(cls, v):
        return coerce_optional_number(v)

    @field_validator("send_leads", "worked_with_cimamplify", mode="before")
    @classmethod
    def parse_bools(cls, v):
        return coerce_bool(v)

    @model_validator(mode="after")
    def check_revenue_range(self):
        if (
            self.revenue_min is not None
            and self.revenue_max is not None
            and self.revenue_min > self.revenue_max
        ):
            raise ValueError("revenue_min cannot exceed revenue_max")
        return self


class SellerProfileForm(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    contact_name: Optional[str] = None
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_title: Optional[str] = None
    industry: str = Field(..., min_length=1)
    geography: str = Field(..., min_length=1)
    annual_revenue: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    phone: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None

    @field_validator("industry", "geography")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("annual_revenue", mode="before")
    @classmethod
    def parse_revenue(cls, v):
        return coerce_optional_number(v)


class LeadsToggle(BaseModel):
    send_leads: bool

    @field_validator("send_leads", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return coerce_bool(v)

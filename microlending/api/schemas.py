"""
Pydantic schemas for API requests
"""

from typing import Optional
from pydantic import BaseModel, Field


# Loan schemas
class QuoteRequest(BaseModel):
    principal: str = Field(..., description="Decimal amount as string")
    rate_percent: str = Field(..., description="Flat interest for the whole loan, e.g. \"10\"")
    installment_count: int


class CreateLoanRequest(BaseModel):
    principal: str = Field(..., description="Decimal amount as string")
    rate_percent: str = Field(..., description="Flat interest for the whole loan")
    installment_count: Optional[int] = None  # Configured default when omitted
    loan_date: Optional[str] = None  # YYYY-MM-DD, today when omitted
    mora_rate_percent: Optional[str] = None
    client_id: Optional[str] = None


class SetAnchorRequest(BaseModel):
    anchor_date: Optional[str] = Field(None, description="First installment date (YYYY-MM-DD), null to clear")
    suppress: bool = False


class SetWeekdayRequest(BaseModel):
    weekday: Optional[int] = Field(None, description="0=Monday ... 6=Sunday, null to clear")


# Payment schemas
class PostPaymentRequest(BaseModel):
    loan_id: str
    amount: str = Field(..., description="Decimal amount as string")
    payment_date: Optional[str] = None  # YYYY-MM-DD, today when omitted
    installment_number: Optional[int] = None


class EditPaymentRequest(BaseModel):
    amount: Optional[str] = None
    payment_date: Optional[str] = None

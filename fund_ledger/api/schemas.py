"""
Pydantic schemas for API requests

Amount fields accept JSON numbers or strings as typed by a collector, such as
"1,250.50" or "Rs. 900".
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from ..money import decimal_from_string


def _amount_input(value: Any) -> Any:
    if isinstance(value, str):
        return decimal_from_string(value)
    return value


class CreateAccountRequest(BaseModel):
    name: str
    mobile: Optional[str] = ""
    created_on: Optional[date] = Field(None, description="Schedule start date, defaults to today")


class UpdateNameRequest(BaseModel):
    name: str


class UpdateMobileRequest(BaseModel):
    mobile: Optional[str] = ""


class FundAmountRequest(BaseModel):
    fund_amount: Decimal

    @field_validator('fund_amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount_input(value)


class BulkFundUpdateRequest(BaseModel):
    updates: Dict[str, Decimal] = Field(..., description="Fund amount per account number")

    @field_validator('updates', mode='before')
    @classmethod
    def parse_amounts(cls, value):
        if isinstance(value, dict):
            return {key: _amount_input(amount) for key, amount in value.items()}
        return value


class CollectPaymentRequest(BaseModel):
    amount: Decimal
    collected_on: Optional[datetime] = None

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount_input(value)


class UpdateDueDetailsRequest(BaseModel):
    due_amount: Decimal
    loan_interest: Decimal
    apply_to_all: bool = False

    @field_validator('due_amount', 'loan_interest', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount_input(value)


class ChangeLoanRequest(BaseModel):
    new_loan_amount: Decimal
    updated_by: str
    reason: Optional[str] = None

    @field_validator('new_loan_amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount_input(value)


class RepaymentRequest(BaseModel):
    amount: Decimal
    repayment_date: Optional[date] = None
    notes: Optional[str] = ""

    @field_validator('amount', mode='before')
    @classmethod
    def parse_amount(cls, value):
        return _amount_input(value)

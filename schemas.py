import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from models import (
    CycleFrequency,
    MonthlyStartType,
    RecurrenceFrequency,
    TransactionType,
)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    initial_balance_cents: int = 0
    kind: Optional[str] = Field(default=None, max_length=40)
    icon: Optional[str] = Field(default=None, max_length=16)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = Field(default=None, max_length=7)

    @model_validator(mode="after")
    def _not_transfer(self) -> "CategoryIn":
        if self.type == TransactionType.transfer:
            raise ValueError("Transfers do not use categories")
        return self


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    date: dt.date
    time: dt.time = dt.time(0, 0)
    account_id: int
    category_id: Optional[int] = None
    destination_account_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "TransactionIn":
        if self.type == TransactionType.transfer:
            if self.destination_account_id is None:
                raise ValueError("Transfers require a destination account")
            if self.category_id is not None:
                raise ValueError("Transfers cannot have a category")
            if self.destination_account_id == self.account_id:
                raise ValueError("Transfer source and destination must differ")
        else:
            if self.category_id is None:
                raise ValueError("Income and expense transactions require a category")
            if self.destination_account_id is not None:
                raise ValueError("Only transfers have a destination account")
        return self


class RecurringRuleIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    type: TransactionType
    account_id: int
    category_id: int
    frequency: RecurrenceFrequency
    start_date: date
    end_date: Optional[date] = None
    is_variable: bool = False
    is_active: bool = True

    @model_validator(mode="after")
    def _check_rule(self) -> "RecurringRuleIn":
        if self.type == TransactionType.transfer:
            raise ValueError("Recurring rules must be income or expense")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class BudgetIn(BaseModel):
    category_id: Optional[int] = None
    amount_cents: int = Field(..., gt=0)


class CycleSettingsIn(BaseModel):
    frequency: CycleFrequency
    start_day: int
    monthly_start_type: Optional[MonthlyStartType] = None

    @model_validator(mode="after")
    def _check_combination(self) -> "CycleSettingsIn":
        if self.frequency == CycleFrequency.weekly:
            self.monthly_start_type = None
            if not 0 <= self.start_day <= 6:
                raise ValueError("Weekly cycles start on a weekday between 0 and 6")
            return self
        if self.monthly_start_type is None:
            raise ValueError("Monthly cycles require a monthly start type")
        if self.monthly_start_type == MonthlyStartType.fixed:
            if not 1 <= self.start_day <= 28:
                raise ValueError("Fixed monthly cycles start on a day between 1 and 28")
        elif not 0 <= self.start_day <= 6:
            raise ValueError("Weekday-relative cycles need a weekday between 0 and 6")
        return self

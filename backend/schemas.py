from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from utils.currency import MAX_AMOUNT


Category = Literal["accommodation", "food", "transport", "activities", "shopping", "other"]
SplitType = Literal["EQUAL", "PERCENTAGE", "CUSTOM"]
ExpenseStatus = Literal["pending", "partially_settled", "settled"]


class UserBase(BaseModel):
    email: EmailStr
    full_name: Optional[str] = None

class UserCreate(UserBase):
    password: str
    payment_handle: Optional[str] = None

class User(UserBase):
    id: int
    is_active: bool
    payment_handle: Optional[str] = None

    class Config:
        from_attributes = True

class PaymentHandleUpdate(BaseModel):
    payment_handle: Optional[str] = None

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    email: Optional[str] = None


class GroupBase(BaseModel):
    name: str
    default_currency: str = "INR"
    budget_min: Optional[int] = Field(default=None, ge=0, le=MAX_AMOUNT)
    budget_max: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT)

    @field_validator('default_currency')
    @classmethod
    def validate_currency(cls, v):
        valid_currencies = ['INR', 'USD', 'EUR', 'GBP', 'JPY', 'CAD']
        if v not in valid_currencies:
            raise ValueError(f'Currency must be one of {valid_currencies}')
        return v

class GroupCreate(GroupBase):
    pass

class Group(GroupBase):
    id: int
    created_by_id: int

    class Config:
        from_attributes = True

class GroupBudgetUpdate(BaseModel):
    budget_min: Optional[int] = Field(default=None, ge=0, le=MAX_AMOUNT)
    budget_max: Optional[int] = Field(default=None, gt=0, le=MAX_AMOUNT)

class GroupMemberAdd(BaseModel):
    email: str
    role: Literal["admin", "member"] = "member"

class GroupMember(BaseModel):
    id: int
    user_id: int
    full_name: str
    email: str
    role: str
    payment_handle: Optional[str] = None

    class Config:
        from_attributes = True

class GroupWithMembers(Group):
    members: list[GroupMember]


# Expense schemas. Amounts are in paise (smallest currency unit).
class SplitEntryIn(BaseModel):
    user_id: int
    amount: Optional[int] = None
    percentage: Optional[float] = Field(default=None, allow_inf_nan=False)

class SplitRequest(BaseModel):
    split_method: SplitType
    split_between: list[int] = []  # EQUAL participants
    entries: list[SplitEntryIn] = []  # PERCENTAGE / CUSTOM entries

class ExpenseCreate(BaseModel):
    description: str = Field(min_length=1)
    amount: int
    category: Category = "other"
    paid_by: Optional[int] = None  # Defaults to the current user
    split_method: SplitType = "EQUAL"
    split_between: list[int] = []
    custom_splits: list[SplitEntryIn] = []
    date: Optional[str] = None
    notes: Optional[str] = None
    receipt_image: Optional[str] = None

class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[int] = None
    category: Optional[Category] = None
    date: Optional[str] = None
    notes: Optional[str] = None
    receipt_image: Optional[str] = None

class ExpenseStatusUpdate(BaseModel):
    status: ExpenseStatus

class ExpenseSplitDetail(BaseModel):
    user_id: int
    user_name: str
    amount_owed: int
    percentage: Optional[float] = None
    settled: bool
    settled_at: Optional[datetime] = None

class ExpenseWithSplits(BaseModel):
    id: int
    group_id: int
    description: str
    amount: int
    currency: str
    category: str
    payer_id: int
    split_type: str
    status: str
    date: str
    notes: Optional[str] = None
    receipt_image: Optional[str] = None
    created_by_id: int
    created_at: datetime
    splits: list[ExpenseSplitDetail]


class Balance(BaseModel):
    """Net position of one member: positive means they are owed money."""
    user_id: int
    full_name: str
    paid: int
    owed_share: int
    net: int
    pending_payments: int = 0
    status: Literal["owed", "owes", "settled"] = "settled"
    expenses_paid: int = 0
    expenses_involved: int = 0  # Splits on expenses someone else paid

class CategoryBreakdown(BaseModel):
    category: str
    total: int
    count: int
    percentage: float

class RecentExpense(BaseModel):
    id: int
    description: str
    amount: int
    category: str
    date: str
    status: str

class GroupBudget(BaseModel):
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    currency: str

class ExpenseSummary(BaseModel):
    group_id: int
    total_expenses: int
    expense_count: int
    member_count: int
    share_per_person: int
    category_breakdown: list[CategoryBreakdown]
    budget: GroupBudget
    budget_used: Optional[float] = None
    is_balanced: bool = True
    recent_expenses: list[RecentExpense] = []

class SettlementSuggestion(BaseModel):
    from_user_id: int
    from_name: str
    to_user_id: int
    to_name: str
    amount: int
    currency: str
    description: str
    payment_link: Optional[str] = None


class AmountByDate(BaseModel):
    date: str
    amount: int

class CategoryShare(BaseModel):
    category: str
    amount: int
    percentage: float

class MemberContribution(BaseModel):
    user_id: int
    full_name: str
    amount: int
    percentage: float

class ExpenseAnalytics(BaseModel):
    period: str
    start_date: str
    end_date: str
    total_spent: int
    average_per_day: float
    most_expensive_category: Optional[CategoryShare] = None
    top_spender: Optional[MemberContribution] = None
    daily_breakdown: list[AmountByDate]
    category_distribution: list[CategoryShare]
    member_contributions: list[MemberContribution]

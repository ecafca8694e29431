from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel


MAX_AMOUNT = Decimal("1000000000")

# Money is sent as a JSON number. Amounts are bounded below 1e9 with two
# decimal places, which a float round-trips.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ----------------------------
# AUTH SCHEMAS
# ----------------------------

class UserRegister(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AuthResult(CamelModel):
    is_success: bool
    token: Optional[str] = None
    display_name: Optional[str] = None
    errors: List[str] = []


class UserProfile(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str


# ----------------------------
# ACCOUNT SCHEMAS
# ----------------------------

class AccountCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=50)
    initial_balance: Decimal = Field(
        ..., ge=0, le=MAX_AMOUNT, max_digits=18, decimal_places=2
    )


class AccountRead(CamelModel):
    id: int
    name: str
    type: str
    initial_balance: Money
    # Derived on every read, never stored
    current_balance: Money


# ----------------------------
# CATEGORY SCHEMAS
# ----------------------------

class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    is_expense: bool = True


class CategoryRead(CamelModel):
    id: int
    name: str
    is_expense: bool


# ----------------------------
# TRANSACTION SCHEMAS
# ----------------------------

class TransactionCreate(CamelModel):
    date: datetime
    # Signed: positive is money in, negative is money out
    amount: Decimal = Field(
        ..., ge=-MAX_AMOUNT, le=MAX_AMOUNT, max_digits=18, decimal_places=2
    )
    description: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(None, max_length=500)
    account_id: int
    category_id: int


class TransactionRead(CamelModel):
    id: int
    date: datetime
    amount: Money
    description: str
    notes: Optional[str] = None
    account_id: int
    account_name: str
    category_id: int
    category_name: str


class TransactionSummary(CamelModel):
    group_name: str
    total_income: Money
    total_expenses: Money
    net_flow: Money

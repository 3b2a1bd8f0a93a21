"""SQLModel models for parties: customers, suppliers, salesmen, GL accounts and users."""
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    town: Optional[str] = Field(default=None, index=True)
    phone: Optional[str] = None
    email: Optional[str] = None

    # Tax profile
    registration_type: str = Field(default="unregistered")  # registered | unregistered | exempt
    is_non_filer: bool = Field(default=False)
    ntn: Optional[str] = None

    credit_limit: float = Field(default=0.0)
    payment_terms_days: int = Field(default=30)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Supplier(SQLModel, table=True):
    __tablename__ = "suppliers"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    phone: Optional[str] = None
    email: Optional[str] = None
    registration_type: str = Field(default="registered")
    payment_terms_days: int = Field(default=30)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Account(SQLModel, table=True):
    """Chart-of-accounts entry (cash, sales, purchases, trade-offer adjustment …)."""

    __tablename__ = "accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    account_type: str = Field(index=True)  # asset | liability | equity | income | expense
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Salesman(SQLModel, table=True):
    __tablename__ = "salesmen"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)  # stored upper-case
    name: str = Field(index=True)
    phone: Optional[str] = None
    email: Optional[str] = None

    commission_rate: float = Field(default=0.0)  # percent, 0–100
    route: Optional[str] = None

    # Monthly targets used by the performance report
    sales_target: float = Field(default=0.0)
    collections_target: float = Field(default=0.0)

    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    full_name: Optional[str] = None
    password_hash: str
    role: str = Field(default="sales")  # admin | manager | accountant | sales
    is_active: bool = Field(default=True)
    last_login_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

"""Pydantic request bodies for API endpoints."""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pharmadist.models.cash import PAYMENT_METHODS
from pharmadist.models.ledger import ACCOUNT_TYPES, REFERENCE_TYPES
from pharmadist.services.tax import ADVANCE_TAX_RATES, GST_RATES


# ── Auth ──────────────────────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    full_name: Optional[str] = None
    role: Literal["admin", "manager", "accountant", "sales"] = "sales"


# ── Parties ───────────────────────────────────────────────────────────────────


class CustomerIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    town: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    registration_type: Literal["registered", "unregistered", "exempt"] = "unregistered"
    is_non_filer: bool = False
    ntn: Optional[str] = None
    credit_limit: float = Field(default=0.0, ge=0)
    payment_terms_days: int = Field(default=30, ge=0, le=365)
    is_active: bool = True


class SupplierIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = None
    email: Optional[str] = None
    registration_type: Literal["registered", "unregistered", "exempt"] = "registered"
    payment_terms_days: int = Field(default=30, ge=0, le=365)
    is_active: bool = True


class AccountIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    account_type: Literal["asset", "liability", "equity", "income", "expense"]
    is_active: bool = True


class SalesmanIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    commission_rate: float = Field(default=0.0, ge=0, le=100)
    route: Optional[str] = Field(default=None, max_length=200)
    sales_target: float = Field(default=0.0, ge=0)
    collections_target: float = Field(default=0.0, ge=0)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()


class SalesmanUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = None
    email: Optional[str] = None
    commission_rate: Optional[float] = Field(default=None, ge=0, le=100)
    route: Optional[str] = Field(default=None, max_length=200)
    sales_target: Optional[float] = Field(default=None, ge=0)
    collections_target: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


# ── Invoices ──────────────────────────────────────────────────────────────────


class InvoiceLineIn(BaseModel):
    item_code: Optional[str] = None
    item_name: str = Field(min_length=1, max_length=200)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    quantity: float = Field(gt=0)
    scheme_quantity: float = Field(default=0.0, ge=0)
    unit_price: float = Field(ge=0)
    discount_percent: float = Field(default=0.0, ge=0, le=100)
    gst_rate: float = 18.0

    @field_validator("gst_rate")
    @classmethod
    def _gst_rate(cls, v: float) -> float:
        if v not in GST_RATES:
            raise ValueError("GST rate must be 0, 4 or 18")
        return v


def _check_advance_rate(v: Optional[float]) -> Optional[float]:
    if v is not None and v not in ADVANCE_TAX_RATES:
        raise ValueError("Advance tax rate must be 0, 0.5 or 2.5")
    return v


class InvoiceCreate(BaseModel):
    invoice_type: Literal["sales", "purchase"]
    invoice_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    salesman_id: Optional[int] = None
    supplier_bill_number: Optional[str] = None
    # None → derived from the party's registration / filer status
    advance_tax_rate: Optional[float] = None
    is_non_filer: Optional[bool] = None
    to1_percent: float = Field(default=0.0, ge=0, le=100)
    to2_percent: float = Field(default=0.0, ge=0, le=100)
    adjustment_account_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    lines: list[InvoiceLineIn] = Field(min_length=1)

    @field_validator("advance_tax_rate")
    @classmethod
    def _advance(cls, v: Optional[float]) -> Optional[float]:
        return _check_advance_rate(v)

    @model_validator(mode="after")
    def _check(self) -> "InvoiceCreate":
        if self.due_date and self.due_date < self.invoice_date:
            raise ValueError("Due date cannot be before invoice date")
        if self.invoice_type == "sales" and not self.customer_id:
            raise ValueError("customer_id is required for sales invoices")
        if self.invoice_type == "purchase" and not self.supplier_id:
            raise ValueError("supplier_id is required for purchase invoices")
        return self


class InvoiceUpdate(BaseModel):
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    salesman_id: Optional[int] = None
    supplier_bill_number: Optional[str] = None
    advance_tax_rate: Optional[float] = None
    is_non_filer: Optional[bool] = None
    to1_percent: Optional[float] = Field(default=None, ge=0, le=100)
    to2_percent: Optional[float] = Field(default=None, ge=0, le=100)
    adjustment_account_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    lines: Optional[list[InvoiceLineIn]] = Field(default=None, min_length=1)

    @field_validator("advance_tax_rate")
    @classmethod
    def _advance(cls, v: Optional[float]) -> Optional[float]:
        return _check_advance_rate(v)


class ReasonIn(BaseModel):
    reason: str = Field(min_length=1, max_length=300)


class MarkPaidIn(BaseModel):
    # None → settle the full balance
    amount: Optional[float] = Field(default=None, gt=0)


# ── Ledger ────────────────────────────────────────────────────────────────────


class LedgerPartyIn(BaseModel):
    account_type: str
    account_id: int

    @field_validator("account_type")
    @classmethod
    def _type(cls, v: str) -> str:
        if v not in ACCOUNT_TYPES:
            raise ValueError(f"account_type must be one of {', '.join(ACCOUNT_TYPES)}")
        return v


class DoubleEntryIn(BaseModel):
    debit: LedgerPartyIn
    credit: LedgerPartyIn
    amount: float = Field(ge=0.01)
    description: str = Field(min_length=1, max_length=500)
    reference_type: str = "adjustment"
    reference_id: Optional[int] = None
    transaction_date: Optional[date] = None

    @field_validator("reference_type")
    @classmethod
    def _ref(cls, v: str) -> str:
        if v not in REFERENCE_TYPES:
            raise ValueError(f"reference_type must be one of {', '.join(REFERENCE_TYPES)}")
        return v


class ReverseIn(BaseModel):
    reference_type: str
    reference_id: Optional[int] = None
    reason: str = Field(min_length=1, max_length=300)


# ── Cash ──────────────────────────────────────────────────────────────────────


class AllocationIn(BaseModel):
    invoice_id: int
    amount: float = Field(gt=0)


class _CashIn(BaseModel):
    amount: float = Field(ge=0.01)
    payment_method: str = "cash"
    reference_number: Optional[str] = None
    bank_name: Optional[str] = None
    cheque_number: Optional[str] = None
    cheque_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    allocations: list[AllocationIn] = []

    @field_validator("payment_method")
    @classmethod
    def _method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
        return v

    @model_validator(mode="after")
    def _method_details(self):
        if self.payment_method == "cheque" and not self.cheque_number:
            raise ValueError("cheque_number is required for cheque payments")
        if self.payment_method == "bank_transfer" and not self.reference_number:
            raise ValueError("reference_number is required for bank transfers")
        return self


class ReceiptCreate(_CashIn):
    customer_id: int
    salesman_id: Optional[int] = None
    receipt_date: date = Field(default_factory=date.today)
    post_dated_cheque: bool = False


class PaymentCreate(_CashIn):
    supplier_id: int
    payment_date: date = Field(default_factory=date.today)


class ClearIn(BaseModel):
    cleared_date: Optional[date] = None


# ── Bank reconciliation ──────────────────────────────────────────────────────


class ReconciliationCreate(BaseModel):
    bank_account_name: str = Field(min_length=1, max_length=100)
    bank_account_number: str = Field(min_length=1, max_length=50)
    bank_name: str = Field(min_length=1, max_length=100)
    reconciliation_date: date = Field(default_factory=date.today)
    statement_start_date: date
    statement_end_date: date
    opening_bank_balance: float = 0.0
    closing_bank_balance: float = 0.0
    # None → taken from the cash book
    opening_book_balance: Optional[float] = None
    closing_book_balance: Optional[float] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _period(self) -> "ReconciliationCreate":
        if self.statement_start_date > self.statement_end_date:
            raise ValueError("Statement start date must be on or before end date")
        return self


class StatementLineIn(BaseModel):
    statement_date: date
    type: Literal["credit", "debit"]
    amount: float = Field(gt=0)
    reference: Optional[str] = None
    description: Optional[str] = None


class MatchRequest(BaseModel):
    # Empty → use imported statement lines for the account and period
    statement_lines: list[StatementLineIn] = []


class ItemUpdate(BaseModel):
    status: Optional[Literal["matched", "unmatched", "discrepancy"]] = None
    discrepancy_reason: Optional[str] = Field(default=None, max_length=300)
    discrepancy_amount: Optional[float] = None
    notes: Optional[str] = Field(default=None, max_length=500)


# ── Recovery summaries ───────────────────────────────────────────────────────


class RecoveryAccountIn(BaseModel):
    customer_id: int
    invoice_amount: float = Field(default=0.0, ge=0)
    balance: float = Field(default=0.0, ge=0)
    recovery_amount: float = Field(default=0.0, ge=0)


class RecoverySummaryCreate(BaseModel):
    summary_date: date = Field(default_factory=date.today)
    salesman_id: int
    town: str = Field(min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    accounts: list[RecoveryAccountIn] = Field(min_length=1)


class RecoverySummaryUpdate(BaseModel):
    summary_date: Optional[date] = None
    salesman_id: Optional[int] = None
    town: Optional[str] = Field(default=None, min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)
    accounts: Optional[list[RecoveryAccountIn]] = Field(default=None, min_length=1)


# ── Tax ───────────────────────────────────────────────────────────────────────


class TaxCalculationIn(BaseModel):
    subtotal: float = Field(ge=0)
    gst_rate: float = 18.0
    advance_tax_rate: float = 0.0
    is_non_filer: bool = False

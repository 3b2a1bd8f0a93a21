"""Pydantic response schemas for API endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class Page(BaseModel, Generic[T]):
    total: int
    page: int
    page_size: int
    items: list[T]


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return {"success": True, "data": data, "message": message}


class HealthResponse(BaseModel):
    status: str
    db: str
    version: str = "1.0.0"
    inbox: str


class SettingsRead(BaseModel):
    company_name: str
    currency: str
    inbox_path: str
    watcher_active: bool
    db_path: str
    auth_enabled: bool
    match_amount_tolerance: float
    match_date_window_days: int
    recent_inbox_imports: list[dict] = []


# ── Auth ──────────────────────────────────────────────────────────────────────


class UserRead(BaseModel):
    id: int
    username: str
    full_name: Optional[str]
    role: str
    is_active: bool
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


# ── Parties ───────────────────────────────────────────────────────────────────


class CustomerRead(BaseModel):
    id: int
    code: str
    name: str
    town: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    registration_type: str
    is_non_filer: bool
    ntn: Optional[str]
    credit_limit: float
    payment_terms_days: int
    is_active: bool

    class Config:
        from_attributes = True


class SupplierRead(BaseModel):
    id: int
    code: str
    name: str
    phone: Optional[str]
    email: Optional[str]
    registration_type: str
    payment_terms_days: int
    is_active: bool

    class Config:
        from_attributes = True


class AccountRead(BaseModel):
    id: int
    code: str
    name: str
    account_type: str
    is_active: bool

    class Config:
        from_attributes = True


class SalesmanRead(BaseModel):
    id: int
    code: str
    name: str
    phone: Optional[str]
    email: Optional[str]
    commission_rate: float
    route: Optional[str]
    sales_target: float
    collections_target: float
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ── Invoices ──────────────────────────────────────────────────────────────────


class InvoiceLineRead(BaseModel):
    id: int
    order: int
    item_code: Optional[str]
    item_name: str
    batch_number: Optional[str]
    expiry_date: Optional[date]
    quantity: float
    scheme_quantity: float
    unit_price: float
    discount_percent: float
    gst_rate: float
    gross_amount: float
    discount_amount: float
    taxable_amount: float
    gst_amount: float
    advance_tax_amount: float
    non_filer_amount: float
    tax_amount: float
    line_total: float

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    id: int
    invoice_number: str
    invoice_type: str
    invoice_date: date
    due_date: Optional[date]
    customer_id: Optional[int]
    supplier_id: Optional[int]
    salesman_id: Optional[int]
    supplier_bill_number: Optional[str]
    status: str
    payment_status: str
    subtotal: float
    total_discount: float
    total_tax: float
    grand_total: float
    paid_amount: float
    balance_due: float
    advance_tax_rate: float
    is_non_filer: bool
    to1_percent: float
    to1_amount: float
    to2_percent: float
    to2_amount: float
    adjustment_account_id: Optional[int]
    notes: Optional[str]
    created_by: Optional[str]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceRead):
    lines: list[InvoiceLineRead] = []


# ── Ledger ────────────────────────────────────────────────────────────────────


class LedgerEntryRead(BaseModel):
    id: int
    account_type: str
    account_id: int
    transaction_type: str
    amount: float
    description: str
    reference_type: str
    reference_id: Optional[int]
    transaction_date: date
    currency: str
    exchange_rate: float
    is_reversal: bool
    reversal_reason: Optional[str]
    reversed_entry_id: Optional[int]
    created_by: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# ── Cash ──────────────────────────────────────────────────────────────────────


class AllocationRead(BaseModel):
    invoice_id: int
    amount: float

    class Config:
        from_attributes = True


class ReceiptRead(BaseModel):
    id: int
    receipt_number: str
    receipt_date: date
    customer_id: int
    salesman_id: Optional[int]
    amount: float
    payment_method: str
    reference_number: Optional[str]
    bank_name: Optional[str]
    cheque_number: Optional[str]
    cheque_date: Optional[date]
    post_dated_cheque: bool
    cheque_status: Optional[str]
    status: str
    cleared_date: Optional[date]
    bounce_reason: Optional[str]
    description: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    allocations: list[AllocationRead] = []

    class Config:
        from_attributes = True


class PaymentRead(BaseModel):
    id: int
    payment_number: str
    payment_date: date
    supplier_id: int
    amount: float
    payment_method: str
    reference_number: Optional[str]
    bank_name: Optional[str]
    cheque_number: Optional[str]
    cheque_date: Optional[date]
    status: str
    cleared_date: Optional[date]
    description: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    allocations: list[AllocationRead] = []

    class Config:
        from_attributes = True


# ── Bank reconciliation ──────────────────────────────────────────────────────


class ReconciliationItemRead(BaseModel):
    id: int
    order: int
    transaction_type: str
    transaction_id: Optional[int]
    transaction_number: Optional[str]
    transaction_date: Optional[date]
    amount: float
    bank_statement_date: Optional[date]
    bank_statement_amount: Optional[float]
    bank_statement_reference: Optional[str]
    bank_statement_description: Optional[str]
    status: str
    discrepancy_reason: Optional[str]
    discrepancy_amount: Optional[float]
    notes: Optional[str]

    class Config:
        from_attributes = True


class ReconciliationRead(BaseModel):
    id: int
    reconciliation_number: str
    bank_account_name: str
    bank_account_number: str
    bank_name: str
    reconciliation_date: date
    statement_start_date: date
    statement_end_date: date
    opening_book_balance: float
    opening_bank_balance: float
    closing_book_balance: float
    closing_bank_balance: float
    total_receipts: float
    total_payments: float
    matched_count: int
    unmatched_count: int
    discrepancy_count: int
    total_discrepancy_amount: float
    is_reconciled: bool
    status: str
    notes: Optional[str]
    created_by: Optional[str]
    completed_at: Optional[datetime]
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ReconciliationDetail(ReconciliationRead):
    items: list[ReconciliationItemRead] = []


class StatementLineRead(BaseModel):
    id: int
    bank_account_number: str
    statement_date: date
    transaction_type: str
    amount: float
    reference: Optional[str]
    description: Optional[str]
    import_log_id: Optional[int]

    class Config:
        from_attributes = True


class ImportLogRead(BaseModel):
    id: int
    file_name: str
    bank_account_number: Optional[str]
    status: str
    lines_processed: int
    lines_inserted: int
    lines_skipped: int
    error_message: Optional[str]
    warnings: Optional[str]
    started_at: datetime
    finished_at: Optional[datetime]

    class Config:
        from_attributes = True


class ImportResponse(BaseModel):
    id: int
    file_name: str
    status: str
    lines_inserted: int
    lines_skipped: int
    error_message: Optional[str]
    warnings: Optional[list[str]]
    started_at: datetime
    finished_at: Optional[datetime]


# ── Recovery summaries ───────────────────────────────────────────────────────


class RecoveryAccountRead(BaseModel):
    id: int
    customer_id: int
    customer_name: Optional[str] = None
    invoice_amount: float
    balance: float
    recovery_amount: float

    class Config:
        from_attributes = True


class RecoverySummaryRead(BaseModel):
    id: int
    summary_date: date
    salesman_id: int
    salesman_name: Optional[str] = None
    town: str
    notes: Optional[str]
    total_invoice_amount: float
    total_balance: float
    total_recovery: float
    recovery_percentage: float
    outstanding_amount: float
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    accounts: list[RecoveryAccountRead] = []

    class Config:
        from_attributes = True

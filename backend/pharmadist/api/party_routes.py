"""
Master data routes: customers, suppliers, GL accounts and salesmen.

Endpoints:
  GET/POST        /api/customers
  GET/PUT/DELETE  /api/customers/{id}
  GET             /api/customers/{id}/credit
  GET/POST        /api/suppliers
  GET/PUT/DELETE  /api/suppliers/{id}
  GET/POST        /api/accounts
  GET             /api/accounts/{id}
  GET/POST        /api/salesmen
  GET/PUT/DELETE  /api/salesmen/{id}

Deletes are soft: the record is deactivated so ledger history stays intact.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, col, func, or_, select

from pharmadist.core.database import get_session
from pharmadist.core.errors import ConflictError, NotFoundError
from pharmadist.core.security import CurrentUser, get_current_user, require_finance
from pharmadist.models.party import Account, Customer, Salesman, Supplier
from pharmadist.schemas.requests import (
    AccountIn,
    CustomerIn,
    SalesmanIn,
    SalesmanUpdate,
    SupplierIn,
)
from pharmadist.schemas.responses import (
    AccountRead,
    CustomerRead,
    Envelope,
    Page,
    SalesmanRead,
    SupplierRead,
    ok,
)
from pharmadist.services.ledger import customer_credit_summary

party_router = APIRouter(prefix="/api")


# ── Helpers ───────────────────────────────────────────────────────────────────


def _get(session: Session, model, record_id: int, label: str):
    record = session.get(model, record_id)
    if not record:
        raise NotFoundError(label, record_id)
    return record


def _unique_code(session: Session, model, code: str, label: str, exclude_id: Optional[int] = None):
    stmt = select(model).where(func.upper(model.code) == code.strip().upper())
    existing = session.exec(stmt).first()
    if existing and existing.id != exclude_id:
        raise ConflictError(
            f"{label} code '{code}' already exists", details={"field": "code", "value": code}
        )


def _page(session: Session, stmt, order_by, read_model, page: int, page_size: int) -> Page:
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(stmt.order_by(order_by).offset((page - 1) * page_size).limit(page_size)).all()
    return Page(
        total=total,
        page=page,
        page_size=page_size,
        items=[read_model.model_validate(r) for r in rows],
    )


def _apply(record, values: dict) -> None:
    for key, value in values.items():
        setattr(record, key, value)
    if hasattr(record, "updated_at"):
        record.updated_at = datetime.utcnow()


def _search(stmt, model, search: Optional[str]):
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(col(model.code).ilike(like), col(model.name).ilike(like)))
    return stmt


# ── Customers ─────────────────────────────────────────────────────────────────


@party_router.get("/customers", response_model=Envelope[Page[CustomerRead]])
def list_customers(
    search: Optional[str] = Query(default=None),
    town: Optional[str] = Query(default=None),
    active: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = _search(select(Customer), Customer, search)
    if town:
        stmt = stmt.where(col(Customer.town).ilike(f"%{town.strip()}%"))
    if active is not None:
        stmt = stmt.where(Customer.is_active == active)
    return ok(_page(session, stmt, Customer.name, CustomerRead, page, page_size))


@party_router.post("/customers", response_model=Envelope[CustomerRead], status_code=201)
def create_customer(
    body: CustomerIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    _unique_code(session, Customer, body.code, "Customer")
    customer = Customer(**body.model_dump())
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return ok(CustomerRead.model_validate(customer), "Customer created")


@party_router.get("/customers/{customer_id}", response_model=Envelope[CustomerRead])
def get_customer(
    customer_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(CustomerRead.model_validate(_get(session, Customer, customer_id, "Customer")))


@party_router.put("/customers/{customer_id}", response_model=Envelope[CustomerRead])
def update_customer(
    customer_id: int,
    body: CustomerIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    customer = _get(session, Customer, customer_id, "Customer")
    _unique_code(session, Customer, body.code, "Customer", exclude_id=customer.id)
    _apply(customer, body.model_dump())
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return ok(CustomerRead.model_validate(customer), "Customer updated")


@party_router.delete("/customers/{customer_id}", response_model=Envelope[CustomerRead])
def deactivate_customer(
    customer_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    customer = _get(session, Customer, customer_id, "Customer")
    _apply(customer, {"is_active": False})
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return ok(CustomerRead.model_validate(customer), "Customer deactivated")


@party_router.get("/customers/{customer_id}/credit")
def customer_credit(
    customer_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(customer_credit_summary(session, customer_id))


# ── Suppliers ─────────────────────────────────────────────────────────────────


@party_router.get("/suppliers", response_model=Envelope[Page[SupplierRead]])
def list_suppliers(
    search: Optional[str] = Query(default=None),
    active: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = _search(select(Supplier), Supplier, search)
    if active is not None:
        stmt = stmt.where(Supplier.is_active == active)
    return ok(_page(session, stmt, Supplier.name, SupplierRead, page, page_size))


@party_router.post("/suppliers", response_model=Envelope[SupplierRead], status_code=201)
def create_supplier(
    body: SupplierIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    _unique_code(session, Supplier, body.code, "Supplier")
    supplier = Supplier(**body.model_dump())
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return ok(SupplierRead.model_validate(supplier), "Supplier created")


@party_router.get("/suppliers/{supplier_id}", response_model=Envelope[SupplierRead])
def get_supplier(
    supplier_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(SupplierRead.model_validate(_get(session, Supplier, supplier_id, "Supplier")))


@party_router.put("/suppliers/{supplier_id}", response_model=Envelope[SupplierRead])
def update_supplier(
    supplier_id: int,
    body: SupplierIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    supplier = _get(session, Supplier, supplier_id, "Supplier")
    _unique_code(session, Supplier, body.code, "Supplier", exclude_id=supplier.id)
    _apply(supplier, body.model_dump())
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return ok(SupplierRead.model_validate(supplier), "Supplier updated")


@party_router.delete("/suppliers/{supplier_id}", response_model=Envelope[SupplierRead])
def deactivate_supplier(
    supplier_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    supplier = _get(session, Supplier, supplier_id, "Supplier")
    _apply(supplier, {"is_active": False})
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return ok(SupplierRead.model_validate(supplier), "Supplier deactivated")


# ── GL accounts ───────────────────────────────────────────────────────────────


@party_router.get("/accounts", response_model=Envelope[list[AccountRead]])
def list_accounts(
    account_type: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = select(Account)
    if account_type:
        stmt = stmt.where(Account.account_type == account_type)
    return ok([AccountRead.model_validate(a) for a in session.exec(stmt.order_by(Account.code)).all()])


@party_router.post("/accounts", response_model=Envelope[AccountRead], status_code=201)
def create_account(
    body: AccountIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    _unique_code(session, Account, body.code, "Account")
    account = Account(**body.model_dump())
    session.add(account)
    session.commit()
    session.refresh(account)
    return ok(AccountRead.model_validate(account), "Account created")


@party_router.get("/accounts/{account_id}", response_model=Envelope[AccountRead])
def get_account(
    account_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(AccountRead.model_validate(_get(session, Account, account_id, "Account")))


# ── Salesmen ──────────────────────────────────────────────────────────────────


@party_router.get("/salesmen", response_model=Envelope[Page[SalesmanRead]])
def list_salesmen(
    search: Optional[str] = Query(default=None),
    active: Optional[bool] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    stmt = _search(select(Salesman), Salesman, search)
    if active is not None:
        stmt = stmt.where(Salesman.is_active == active)
    return ok(_page(session, stmt, Salesman.code, SalesmanRead, page, page_size))


@party_router.post("/salesmen", response_model=Envelope[SalesmanRead], status_code=201)
def create_salesman(
    body: SalesmanIn,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    _unique_code(session, Salesman, body.code, "Salesman")
    salesman = Salesman(**body.model_dump())
    session.add(salesman)
    session.commit()
    session.refresh(salesman)
    return ok(SalesmanRead.model_validate(salesman), "Salesman created")


@party_router.get("/salesmen/{salesman_id}", response_model=Envelope[SalesmanRead])
def get_salesman(
    salesman_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
):
    return ok(SalesmanRead.model_validate(_get(session, Salesman, salesman_id, "Salesman")))


@party_router.put("/salesmen/{salesman_id}", response_model=Envelope[SalesmanRead])
def update_salesman(
    salesman_id: int,
    body: SalesmanUpdate,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    salesman = _get(session, Salesman, salesman_id, "Salesman")
    _apply(salesman, body.model_dump(exclude_unset=True))
    session.add(salesman)
    session.commit()
    session.refresh(salesman)
    return ok(SalesmanRead.model_validate(salesman), "Salesman updated")


@party_router.delete("/salesmen/{salesman_id}", response_model=Envelope[SalesmanRead])
def deactivate_salesman(
    salesman_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(require_finance),
):
    salesman = _get(session, Salesman, salesman_id, "Salesman")
    _apply(salesman, {"is_active": False})
    session.add(salesman)
    session.commit()
    session.refresh(salesman)
    return ok(SalesmanRead.model_validate(salesman), "Salesman deactivated")

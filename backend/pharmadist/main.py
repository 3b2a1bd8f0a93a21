"""
Pharma distribution ledger – FastAPI application entry point.

Run with:
    uvicorn pharmadist.main:app --reload --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from pharmadist.api.cash_routes import cash_router
from pharmadist.api.invoice_routes import invoice_router
from pharmadist.api.ledger_routes import ledger_router
from pharmadist.api.party_routes import party_router
from pharmadist.api.print_routes import print_router
from pharmadist.api.reconciliation_routes import reconciliation_router, statement_router
from pharmadist.api.recovery_routes import recovery_router
from pharmadist.api.report_routes import report_router, tax_router
from pharmadist.api.routes import router
from pharmadist.core.config import settings
from pharmadist.core.database import create_db_and_tables
from pharmadist.core.errors import register_exception_handlers
from pharmadist.core.logging import setup_logging
from pharmadist.etl.watcher import start_watcher, stop_watcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown hooks."""
    setup_logging()
    logger.info("Starting pharma distribution backend …")
    create_db_and_tables()
    logger.info("Database tables ready")
    if settings.WATCHER_ENABLED:
        start_watcher()
    else:
        logger.info("Statement inbox watcher disabled")
    yield
    if settings.WATCHER_ENABLED:
        stop_watcher()
    logger.info("Pharma distribution backend shut down")


app = FastAPI(
    title="Pharma Distribution Ledger API",
    description=(
        "Local REST API for a pharmaceutical distributor: double-entry ledger, "
        "invoicing, cash, salesman commission, recovery sheets and bank reconciliation"
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS – allow frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(router)
app.include_router(party_router)
app.include_router(invoice_router)
app.include_router(ledger_router)
app.include_router(cash_router)
app.include_router(statement_router)
app.include_router(reconciliation_router)
app.include_router(recovery_router)
app.include_router(report_router)
app.include_router(tax_router)
app.include_router(print_router)


@app.get("/")
def root():
    return {"message": "Pharma Distribution Ledger API", "docs": "/docs"}

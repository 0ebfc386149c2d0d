"""LedgerLink - Xero bank statement staging and reconciliation API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledgerlink.api.handlers import register_exception_handlers
from ledgerlink.config import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup: create tables and validate the coding rules
    from ledgerlink.database import Base, engine
    from ledgerlink.services.coding_rules import get_coding_rules

    # Import all models so they're registered with Base
    from ledgerlink import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    rules = get_coding_rules()
    logging.getLogger(__name__).info(f"Loaded {len(rules)} coding rules")

    yield


app = FastAPI(
    title=settings.app_name,
    description="Stage bank statement lines, code them and push them to Xero",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from ledgerlink.api import credentials, payroll, transactions, xero  # noqa: E402

app.include_router(credentials.router, prefix="/api")
app.include_router(xero.router, prefix="/api")
app.include_router(xero.callback_router, prefix="/api")
app.include_router(transactions.router, prefix="/api")
app.include_router(payroll.router, prefix="/api")

"""Feedesk - FastAPI entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ServerSelectionTimeoutError

from feedesk.api import (
    batch_fees,
    dashboard,
    emi_templates,
    fee_components,
    installments,
    receipts,
    scholarships,
    student_fees,
)
from feedesk.config import settings
from feedesk.db import db_shutdown, init_db
from feedesk.services.emi_templates import ensure_default_templates
from feedesk.services.errors import FeeError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await init_db()
        await ensure_default_templates()
    except ServerSelectionTimeoutError as e:
        logger.error(
            "MongoDB is not running. Start it with: docker compose up -d (from project root)"
        )
        raise RuntimeError(
            "MongoDB connection failed. Start MongoDB (e.g. docker compose up -d)."
        ) from e
    yield
    await db_shutdown()


app = FastAPI(
    title=settings.app_name,
    description="School fee structures, EMI schedules, installment ledger and receipts",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


@app.exception_handler(FeeError)
async def fee_error_handler(request: Request, exc: FeeError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(fee_components.router, prefix="/api/fees/components", tags=["Fee Components"])
app.include_router(batch_fees.router, prefix="/api/fees/batch-structures", tags=["Batch Fee Structures"])
app.include_router(student_fees.router, prefix="/api/fees/student-structures", tags=["Student Fee Structures"])
app.include_router(scholarships.router, prefix="/api/fees/scholarships", tags=["Scholarships"])
app.include_router(installments.router, prefix="/api/fees/installments", tags=["Installments"])
app.include_router(receipts.router, prefix="/api/fees/receipts", tags=["Receipts"])
app.include_router(dashboard.router, prefix="/api/fees/dashboard", tags=["Fee Dashboard"])
app.include_router(emi_templates.router, prefix="/api/emi-templates", tags=["EMI Plan Templates"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}

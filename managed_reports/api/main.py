"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from managed_reports.api.routers import catalog, indicators
from managed_reports.core.errors import QueryExecutionError, ValidationError
from managed_reports.core.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="Managed Reports",
    version="0.1.0",
    description="Case-management report indicators over a governed report layer",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(indicators.router, prefix="/indicators", tags=["Indicators"])
app.include_router(catalog.router, tags=["Catalog"])


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.errors})


@app.exception_handler(QueryExecutionError)
def query_error_handler(request: Request, exc: QueryExecutionError) -> JSONResponse:
    logger.error("Query execution failed for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": "Report query failed"})


@app.get("/health")
def health():
    return {"status": "ok"}

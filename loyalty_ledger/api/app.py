"""
FastAPI application entry point with health check and metrics routes.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from loyalty_ledger import __version__
from loyalty_ledger.api.routes import customers
from loyalty_ledger.api.middleware.error_handler import (
    ledger_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from loyalty_ledger.lib.errors import LedgerError
from loyalty_ledger.lib.logging import (
    bind_log_context,
    clear_log_context,
    get_logger,
    log_with_context,
)
from loyalty_ledger.lib.metrics import get_metrics_collector
from loyalty_ledger.lib.settings import settings

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """
    
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        
        # Request state for error bodies, log context for every record
        request.state.correlation_id = correlation_id
        clear_log_context()
        bind_log_context(correlation_id=correlation_id)
        
        log_with_context(
            logger,
            "info",
            "Incoming request",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )
        
        response = await call_next(request)
        
        response.headers["X-Correlation-ID"] = correlation_id
        
        log_with_context(logger, "info", "Response sent", status_code=response.status_code)
        
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.
    """
    logger.info(f"{settings.app_name} starting up...")
    yield
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Customer identity, purchase aggregates and spend rankings per business",
    lifespan=lifespan,
)


# Correlation ID middleware
app.add_middleware(CorrelationIdMiddleware)


# Register exception handlers
app.add_exception_handler(LedgerError, ledger_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# Include routers
app.include_router(customers.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.
    
    Metrics exposed:
    - purchases_recorded_total: Purchases applied, by outcome (created, updated)
    - purchase_conflicts_total: Duplicate-creation races, by resolution
    - purchase_rejections_total: Purchases refused, by reason
    - ranking_requests_total: Rankings computed, by whether a date filter was used
    
    Returns:
        Prometheus text format metrics
    """
    metrics = get_metrics_collector()
    return PlainTextResponse(
        content=metrics.export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )

"""
FastAPI Application Entry Point - Order Prioritization Service
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from order_prioritization.api import health, orders
from order_prioritization.config import settings
from order_prioritization.database import init_db
from order_prioritization.exceptions import OrderEngineError
from order_prioritization.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "validation_failure": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "out_of_range": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "persistence_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Create FastAPI application
app = FastAPI(
    title="Order Prioritization Service",
    description="Computes fulfillment priority for orders and serves the operations dashboard",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(orders.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(OrderEngineError)
def order_engine_error_handler(request: Request, exc: OrderEngineError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {"loc": (), "msg": "invalid request"}
    field = ".".join(str(part) for part in first["loc"] if part not in ("body", "query", "path"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_failure",
            "detail": f"{field or 'request'}: {first['msg']}",
            "field": field or "request",
            "errors": jsonable_encoder(errors),
        },
    )


@app.on_event("startup")
def startup_event():
    """Initialize database on startup"""
    logger.info("Starting %s...", settings.SERVICE_NAME)
    init_db()
    logger.info("Database initialized")
    logger.info("Customer Service URL: %s", settings.CUSTOMER_SERVICE_URL)
    logger.info("Events %s (RabbitMQ exchange %s)",
                "enabled" if settings.EVENTS_ENABLED else "disabled", settings.RABBITMQ_EXCHANGE)
    logger.info("%s is running on port %s", settings.SERVICE_NAME, settings.SERVICE_PORT)


@app.on_event("shutdown")
def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down %s...", settings.SERVICE_NAME)

"""
Health check endpoint
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from order_prioritization.config import settings
from order_prioritization.database import get_db
from order_prioritization.services.customer_client import CustomerServiceClient

router = APIRouter(tags=["health"])


def get_customer_client() -> CustomerServiceClient:
    return CustomerServiceClient()


@router.get("/health")
def health_check(
    db: Session = Depends(get_db),
    customer_client: CustomerServiceClient = Depends(get_customer_client)
):
    """
    Health check endpoint

    Checks:
    - Database connectivity
    - Customer Service connectivity (degraded only; orders still flow)
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {str(e)}"

    customer_service_status = customer_client.check_health()

    if db_status != "healthy":
        overall_status = "unhealthy"
    elif customer_service_status != "healthy":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return {
        "service": settings.SERVICE_NAME,
        "status": overall_status,
        "database": db_status,
        "customer_service": customer_service_status,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/")
def root():
    """Root endpoint"""
    return {
        "service": settings.SERVICE_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }

"""
HTTP Client for Customer Service with retry logic
"""
import logging
import httpx
from dataclasses import dataclass
from typing import Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from order_prioritization.config import settings

logger = logging.getLogger(__name__)


class CustomerServiceError(Exception):
    """Base exception for Customer Service errors"""
    pass


class CustomerServiceUnavailableError(CustomerServiceError):
    """Customer Service is unavailable"""
    pass


@dataclass(frozen=True)
class CustomerProfile:
    """Customer classification used for prioritization"""
    customer_id: str
    is_vip: bool = False
    total_orders: int = 0
    name: Optional[str] = None

    @property
    def is_repeat(self) -> bool:
        return self.total_orders > 1


class CustomerServiceClient:
    """Client for communicating with Customer Service"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.CUSTOMER_SERVICE_URL).rstrip("/")
        self.timeout = timeout or settings.CUSTOMER_SERVICE_TIMEOUT

    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type(CustomerServiceUnavailableError),
        reraise=True
    )
    def get_customer(self, customer_id: str) -> Optional[CustomerProfile]:
        """
        Get customer classification by ID from Customer Service

        Args:
            customer_id: Customer ID

        Returns:
            Customer profile or None if the customer is unknown

        Raises:
            CustomerServiceUnavailableError: If service is unavailable
            CustomerServiceError: On any other unexpected response
        """
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(f"{self.base_url}/customers/{customer_id}")
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.warning("Error calling Customer Service: %s", e)
            raise CustomerServiceUnavailableError(f"Customer Service unavailable: {e}")

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CustomerServiceError(f"Unexpected status code: {response.status_code}")

        try:
            data = response.json()
            is_vip = data.get("is_vip", False)
            if not isinstance(is_vip, bool):
                raise TypeError(f"is_vip must be a boolean, got {is_vip!r}")
            total_orders = int(data.get("total_orders") or 0)
            name = data.get("name") or " ".join(
                part for part in (data.get("first_name"), data.get("last_name")) if part
            ) or None
            if name is not None and not isinstance(name, str):
                raise TypeError(f"name must be a string, got {name!r}")
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Malformed Customer Service response for %s: %s", customer_id, e)
            raise CustomerServiceError(f"Malformed Customer Service response: {e}") from e

        return CustomerProfile(
            customer_id=str(customer_id),
            is_vip=is_vip,
            total_orders=total_orders,
            name=name,
        )

    def check_health(self) -> str:
        """Return 'healthy' or a description of the failure"""
        try:
            with httpx.Client(timeout=2.0) as client:
                response = client.get(f"{self.base_url}/health")
            if response.status_code == 200:
                return "healthy"
            return f"unhealthy: status {response.status_code}"
        except httpx.HTTPError as e:
            return f"unhealthy: {str(e)}"

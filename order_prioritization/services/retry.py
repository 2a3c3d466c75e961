"""
Retry policies for repository access
"""
import logging

from tenacity import (
    Retrying,
    retry,
    stop_after_attempt,
    wait_exponential,
    wait_random,
    retry_if_exception_type,
    before_sleep_log,
)

from order_prioritization.config import settings
from order_prioritization.exceptions import ConcurrencyConflict, PersistenceFailure

logger = logging.getLogger(__name__)


# Transient repository failures: bounded exponential backoff, then surface
PERSISTENCE_POLICY = dict(
    stop=stop_after_attempt(settings.PERSISTENCE_MAX_RETRIES),
    wait=wait_exponential(multiplier=settings.PERSISTENCE_RETRY_DELAY, max=2),
    retry=retry_if_exception_type(PersistenceFailure),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True
)
persistence_retry = retry(**PERSISTENCE_POLICY)


def persistence_retrying() -> Retrying:
    """Iterator form of persistence_retry, for calls that inspect each attempt"""
    return Retrying(**PERSISTENCE_POLICY)


# Lost optimistic-concurrency race: re-run the whole read-modify-write
conflict_retry = retry(
    stop=stop_after_attempt(settings.CONFLICT_MAX_RETRIES),
    wait=wait_random(0, settings.CONFLICT_RETRY_JITTER),
    retry=retry_if_exception_type(ConcurrencyConflict),
    before_sleep=before_sleep_log(logger, logging.INFO),
    reraise=True
)

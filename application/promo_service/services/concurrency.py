import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.concurrency")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    ``func`` must open and close its own transaction so every attempt starts
    clean. Retries on OperationalError (locks, busy database) and
    StaleDataError, sleeping ``backoff_base * 2**attempt`` in between.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            if attempt >= attempts - 1:
                logger.error(f"run_with_retry_exhausted | attempts={attempts} error={exc}", exc_info=True)
                raise
            logger.warning(f"run_with_retry_retrying | attempt={attempt + 1} error={exc}")
            time.sleep(backoff_base * (2 ** attempt))

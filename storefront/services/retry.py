from typing import Callable, TypeVar

import structlog

from storefront.errors import ConcurrencyConflict

log = structlog.get_logger(__name__)

T = TypeVar("T")


def retry_on_conflict(operation: str, attempts: int, fn: Callable[[], T]) -> T:
    """Run ``fn`` until it stops losing compare-and-set races.

    ``fn`` must open its own transaction so a lost race leaves nothing behind.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts):
        try:
            return fn()
        except ConcurrencyConflict as e:
            log.info(f"{operation}.conflict_retry", resource=e.resource,
                     resource_id=e.resource_id, attempt=attempt)
    try:
        return fn()
    except ConcurrencyConflict as e:
        log.warning(f"{operation}.conflict_exhausted", resource=e.resource,
                    resource_id=e.resource_id, attempts=attempts)
        raise ConcurrencyConflict(e.resource, e.resource_id, attempts=attempts) from e

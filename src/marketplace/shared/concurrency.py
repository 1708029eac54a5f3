"""Retry helper for narrow ledger operations that lose a version race."""

import structlog
from protean.exceptions import ExpectedVersionError

from marketplace.errors import ConcurrencyConflict

logger = structlog.get_logger(__name__)

DEFAULT_ATTEMPTS = 3


def retry_on_conflict(operation, attempts: int = DEFAULT_ATTEMPTS, **log_context):
    """Run ``operation`` until it stops hitting stale-version writes.

    ``operation`` must be a self-contained unit (typically one
    ``current_domain.process(...)`` call) so each attempt reloads fresh state.
    Raises ConcurrencyConflict once ``attempts`` are used up.
    """
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ExpectedVersionError as exc:
            last_error = exc
            logger.warning("Stale ledger write, retrying", attempt=attempt, attempts=attempts, **log_context)

    raise ConcurrencyConflict(f"Operation still conflicting after {attempts} attempts") from last_error

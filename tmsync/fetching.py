"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Bounded retries around dependency reads from source systems.

A dependency read either produces a record, reports that the record does not
exist, or keeps failing transiently until the attempts run out. Callers get a
Found or NotFound back instead of an exception so that an unreadable dependency
can be skipped without aborting the unit that needed it.
"""

import time
from collections.abc import Callable
from typing import TypeVar

from requests.exceptions import ConnectionError, Timeout

from tmsync.core.logging import get_logger
from tmsync.domain.models import Found, NotFound
from tmsync.sources import TransientSourceError

T = TypeVar("T")

logger = get_logger("tmsync.fetching")

TRANSIENT_ERRORS = (TransientSourceError, ConnectionError, Timeout)

MISSING = "missing"
EXHAUSTED = "exhausted"


def fetch_with_retry(
    fetch: Callable[[], T | None],
    key: str,
    attempts: int = 5,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Found[T] | NotFound:
    """
    Read a dependency, retrying transient failures.

    Args:
        fetch: Performs one read; returns None when the record does not exist
        key: Key of the record, for logs and the NotFound result
        attempts: Total number of reads before giving up
        initial_delay: Delay before the second attempt in seconds
        backoff_factor: Multiplier applied to the delay after every attempt
        sleep: Sleep function

    Returns:
        Found with the record, NotFound(reason="missing") when the source has no
        such record, or NotFound(reason="exhausted") when every attempt failed
    """
    delay = initial_delay
    for attempt in range(1, attempts + 1):
        try:
            record = fetch()
        except TRANSIENT_ERRORS as e:
            if attempt == attempts:
                logger.warning(
                    f"Giving up on {key} after {attempts} attempts: {e}",
                    context={"key": key, "attempts": attempts},
                )
                return NotFound(key=key, reason=EXHAUSTED)
            logger.info(
                f"Read of {key} failed ({e}), retrying in {delay:.2f}s "
                f"(attempt {attempt}/{attempts})"
            )
            sleep(delay)
            delay *= backoff_factor
            continue
        if record is None:
            return NotFound(key=key, reason=MISSING)
        return Found(record)
    return NotFound(key=key, reason=EXHAUSTED)

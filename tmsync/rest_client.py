"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Common plumbing of the source system REST clients.

Provides authentication, offset pagination and retries with exponential backoff
on network errors and on the HTTP statuses servers use for temporary trouble.
A request that still fails after the last retry surfaces as a
TransientSourceError so that callers can tell it apart from a permanent error.
"""

import functools
import logging
import random
import time
from collections.abc import Iterator
from typing import Any

import requests
from requests.exceptions import ConnectionError, HTTPError, Timeout

from tmsync.core.config import SourceConfig
from tmsync.sources import TransientSourceError

logger = logging.getLogger("tmsync.rest_client")

RETRY_CODES = (429, 500, 502, 503, 504)


def retry(
    max_retries: int = 3,
    retry_codes: tuple = RETRY_CODES,
    initial_delay: float = 0.1,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
):
    """Retry decorator with exponential backoff for API calls.

    Args:
        max_retries: Maximum number of retry attempts
        retry_codes: HTTP status codes to retry on
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Factor to multiply delay by on each retry
        jitter: Whether to add random jitter to delay

    Returns:
        Decorated function
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            retries = 0
            delay = initial_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except (ConnectionError, Timeout) as e:
                    reason = f"Network error: {e}"
                    error = e
                except HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else None
                    if status_code not in retry_codes:
                        logger.error(f"HTTP error {status_code} not eligible for retry: {e}")
                        raise
                    reason = f"HTTP error {status_code}"
                    error = e

                retries += 1
                if retries > max_retries:
                    logger.error(f"Max retries ({max_retries}) exceeded: {error}")
                    raise TransientSourceError(str(error)) from error

                current_delay = min(delay, max_delay)
                if jitter:
                    current_delay = current_delay * (1 + random.random() * 0.25)
                logger.warning(
                    f"{reason}. Retrying in {current_delay:.2f}s "
                    f"(attempt {retries}/{max_retries})"
                )
                time.sleep(current_delay)
                delay *= backoff_factor

        return wrapper

    return decorator


class RestClient:
    """Base class of the source system clients."""

    api_path = ""

    def __init__(self, config: SourceConfig, session: requests.Session | None = None):
        """Initialize the client.

        Args:
            config: Connection settings of the source system
            session: Optional requests session to reuse
        """
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if config.username:
            self.session.auth = (config.username, config.api_token)
        elif config.api_token:
            self.session.headers["Authorization"] = f"Bearer {config.api_token}"
        self._send = retry(max_retries=config.max_retries, initial_delay=0.5)(self._send_once)

        logger.debug(f"{type(self).__name__} initialized for {config.base_url}")

    def url(self, path: str) -> str:
        return f"{self.config.base_url}{self.api_path}{path}"

    def _send_once(self, method: str, path: str, params: dict[str, Any] | None, json_data: Any):
        response = self.session.request(
            method, self.url(path), params=params, json=json_data, timeout=self.config.timeout
        )
        if response.status_code == 404:
            return response
        response.raise_for_status()
        return response

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        allow_missing: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path below the API root
            params: Query parameters
            json_data: JSON request body
            allow_missing: Return None instead of raising on 404

        Returns:
            The decoded body, or None for an empty body or an allowed 404
        """
        response = self._send(method, path, params, json_data)
        if response.status_code == 404:
            if allow_missing:
                logger.debug(f"{method} {path} returned 404")
                return None
            response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def get(self, path: str, params: dict[str, Any] | None = None, allow_missing: bool = False):
        return self.request("GET", path, params=params, allow_missing=allow_missing)

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        items_key: str | None = None,
        start_param: str = "startAt",
        size_param: str = "maxResults",
        total_key: str | None = "total",
    ) -> Iterator[Any]:
        """Iterate over every item of an offset-paginated resource.

        Stops at the first short or empty page, or once ``total_key`` of the
        page says every item has been returned.
        """
        page_size = self.config.page_size
        offset = 0
        while True:
            page_params = {**(params or {}), start_param: offset, size_param: page_size}
            page = self.get(path, params=page_params)
            if items_key is None or not isinstance(page, dict):
                items = page or []
            else:
                items = page.get(items_key) or []
            yield from items

            offset += len(items)
            logger.debug(f"Fetched {offset} items from {path}")
            if len(items) < page_size:
                return
            total = page.get(total_key) if total_key and isinstance(page, dict) else None
            if total is not None and offset >= int(total):
                return

"""
HTTP helper shared by the venue clients.

JSON request with exponential backoff, mirroring the retry policy used
for exchange calls:

Retries on:
- 429 (rate limit)
- 5xx (server errors)
- Network errors (timeout, connection)

Does NOT retry on:
- 4xx (except 429) - client errors like 400, 401, 403
"""

import logging
import random
import time
from typing import Any, Dict, Optional

import requests

from core.exceptions import VenueError
from infra.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 20.0


def request_json(
    method: str,
    url: str,
    *,
    venue: str,
    params: Optional[Dict[str, Any]] = None,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    max_retries: int = 3,
    rate_limiter: Optional[RateLimiter] = None,
    session: Optional[requests.Session] = None,
) -> Any:
    """
    Make an HTTP request and decode the JSON body.

    Raises:
        VenueError: on non-retryable status or once retries are exhausted
    """
    sender = session or requests
    last_error: Optional[str] = None
    last_status: Optional[int] = None

    for attempt in range(max_retries):
        if rate_limiter is not None:
            rate_limiter.acquire(venue)

        try:
            response = sender.request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            text = e.response.text if e.response is not None else str(e)

            if status_code is not None and 400 <= status_code < 500 and status_code != 429:
                if status_code == 404:
                    logger.debug(f"{venue} 404: {url}")
                else:
                    logger.error(f"{venue} client error: {status_code} - {text}")
                raise VenueError(venue, f"HTTP {status_code}: {text}", status_code=status_code)

            if status_code == 429:
                logger.warning(f"Rate limited (429) by {venue}, attempt {attempt + 1}/{max_retries}")
            else:
                logger.warning(f"Server error ({status_code}) from {venue}, attempt {attempt + 1}/{max_retries}")
            last_error = f"HTTP {status_code}: {text}"
            last_status = status_code

        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"Network error on {venue}: {e}, attempt {attempt + 1}/{max_retries}")
            last_error = str(e)
            last_status = None

        except ValueError as e:
            # Body was not JSON
            raise VenueError(venue, f"Invalid JSON response: {e}")

        if attempt < max_retries - 1:
            backoff = (2 ** attempt) + random.uniform(0, 1)
            logger.info(f"Retrying {venue} in {backoff:.1f}s...")
            time.sleep(backoff)

    logger.error(f"All {max_retries} retries exhausted for {venue}")
    raise VenueError(venue, last_error or f"failed after {max_retries} attempts", status_code=last_status)

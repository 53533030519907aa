"""
AirLabs schedules API client.

Fetches the current schedule snapshot for one airport in one direction:

    GET <base_url>/schedules?api_key=...&dep_iata=SFO
    GET <base_url>/schedules?api_key=...&arr_iata=SFO

The body carries the records under ``response``; failures come back as an
``error`` object. Records are returned raw; mapping to FlightRecord happens
in the reconciliation engine.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from ..exceptions import UpstreamError
from ..utils.config import FlightBoardConfig

logger = logging.getLogger(__name__)


class AirLabsClient:
    """
    Client for the AirLabs schedules endpoint.

    Handles:
    - GET requests to /schedules with a direction filter
    - Minimum interval between requests, shared across threads
    - Mapping of network, HTTP and API errors to UpstreamError
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://airlabs.co/api/v9",
        timeout: float = 10.0,
        min_interval: float = 0.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._min_interval = min_interval

        self.session = session or requests.Session()
        self.last_request_time: float = 0
        self._rate_lock = threading.Lock()

        if not api_key:
            logger.warning("AirLabs client initialized without an API key")

    @classmethod
    def from_config(cls, config: FlightBoardConfig) -> "AirLabsClient":
        """Create client from application configuration."""
        return cls(
            api_key=config.airlabs_api_key,
            base_url=config.airlabs_base_url,
            timeout=config.airlabs_timeout_seconds,
            min_interval=config.airlabs_min_interval_seconds,
        )

    def _wait_for_rate_limit(self) -> None:
        """Enforce the minimum interval between requests; callers queue on the lock."""
        if self._min_interval <= 0:
            return
        with self._rate_lock:
            elapsed = time.monotonic() - self.last_request_time
            if elapsed < self._min_interval:
                sleep_time = self._min_interval - elapsed
                logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
                time.sleep(sleep_time)
            self.last_request_time = time.monotonic()

    def fetch(self, direction_filter_key: str, airport_code: str) -> List[Dict[str, Any]]:
        """
        Fetch the schedule snapshot for one airport and direction.

        Args:
            direction_filter_key: ``dep_iata`` or ``arr_iata``
            airport_code: IATA airport code

        Returns:
            Raw schedule records; empty when the body has no ``response`` list

        Raises:
            UpstreamError: On network, HTTP, decode or API errors
        """
        self._wait_for_rate_limit()

        url = f"{self.base_url}/schedules"
        params = {"api_key": self.api_key, direction_filter_key: airport_code}

        logger.debug(f"Fetching schedules: {url} {direction_filter_key}={airport_code}")

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()

        except requests.exceptions.Timeout as e:
            logger.error(f"AirLabs timeout for {direction_filter_key}={airport_code}")
            raise UpstreamError(f"Upstream timeout: {e}") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 429:
                logger.warning("AirLabs rate limit exceeded")
            else:
                logger.error(f"AirLabs API error: {status}")
            raise UpstreamError(f"Upstream HTTP {status}", status_code=status) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"AirLabs request failed: {e}")
            raise UpstreamError(f"Upstream request failed: {e}") from e
        except ValueError as e:
            logger.error(f"AirLabs returned a non-JSON body: {e}")
            raise UpstreamError(f"Upstream body is not JSON: {e}") from e

        if not isinstance(body, dict):
            return []

        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.error(f"AirLabs rejected request: {message}")
            raise UpstreamError(f"Upstream error: {message}")

        records = body.get("response")
        if not isinstance(records, list):
            return []

        logger.info(f"Received {len(records)} schedules for {direction_filter_key}={airport_code}")
        return records

    def close(self) -> None:
        self.session.close()

"""Tracking service client - Direct HTTP communication with the tracking server."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

_LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT = 60  # Page rendering on the server side is slow


@dataclass
class ServiceResponse:
    """Status code and decoded JSON body of one tracking service call."""

    status: int
    body: Any

    @property
    def ok(self) -> bool:
        """Return True for a 2xx status."""
        return 200 <= self.status < 300


class TrackingServiceClient:
    """Client for the server that renders carrier pages into tracking JSON."""

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = REQUEST_TIMEOUT,
    ):
        """Initialize tracking service client.

        Args:
            base_url: Root URL of the tracking server
            session: Optional aiohttp session (will create one if not provided)
            timeout: Total timeout of a single request in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=10)

    @property
    def base_url(self) -> str:
        """Return the root URL of the tracking server."""
        return self._base_url

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> ServiceResponse:
        """Make HTTP request to the tracking server.

        Args:
            method: HTTP method (GET or POST)
            endpoint: Route path
            data: Request body data

        Returns:
            ServiceResponse with the decoded JSON body

        Raises:
            aiohttp.ClientError: On transport errors
            asyncio.TimeoutError: When the server does not answer in time
            ValueError: When the body is not JSON
        """
        url = f"{self._base_url}{endpoint}"
        # Use provided session or create a temporary one
        use_temporary_session = self._session is None
        session = self._session or aiohttp.ClientSession()

        try:
            async with session.request(
                method,
                url,
                headers=self._headers,
                json=data,
                timeout=self._timeout,
            ) as response:
                body = await response.json(content_type=None)
                return ServiceResponse(status=response.status, body=body)
        finally:
            # Only close session if we created it (not if it was provided)
            if use_temporary_session:
                await session.close()

    async def test_connection(self) -> bool:
        """Test that the tracking server is reachable.

        Returns:
            True if the server answered, False otherwise
        """
        use_temporary_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            async with session.get(self._base_url + "/", timeout=self._timeout) as response:
                return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            _LOGGER.debug("Tracking server %s is unreachable: %s", self._base_url, err)
            return False
        finally:
            if use_temporary_session:
                await session.close()

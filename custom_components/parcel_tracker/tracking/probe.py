"""Probe tracking server routes until one of them answers with tracking data."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import aiohttp

from ..app.exceptions import AllCandidatesExhausted
from ..const import (
    TRACK_CARRIER_ENDPOINT,
    TRACK_ENDPOINT,
    TRACK_LEGACY_ENDPOINT,
    TRACK_LOOKUP_ENDPOINT,
)
from .client import TrackingServiceClient

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeCandidate:
    """One route that may answer a tracking query."""

    path: str
    method: str = "POST"
    send_body: bool = True

    def resolve(self, tracking_number: str, carrier: str) -> str:
        """Return the path with tracking number and carrier filled in, URL-quoted."""
        return self.path.format(
            tracking_number=quote(tracking_number, safe=""),
            carrier=quote(carrier, safe=""),
        )

    async def attempt(
        self, client: TrackingServiceClient, tracking_number: str, carrier: str
    ) -> Optional[Dict[str, Any]]:
        """Query this route.

        Returns:
            The decoded payload, or None when the route failed for any reason
        """
        path = self.resolve(tracking_number, carrier)
        data = None
        if self.send_body and self.method.upper() != "GET":
            data = {"trackingNumber": tracking_number, "carrier": carrier}

        try:
            response = await client.request(self.method.upper(), path, data=data)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            _LOGGER.debug("%s %s failed: %s", self.method, path, err)
            return None

        if not response.ok:
            _LOGGER.debug("%s %s returned HTTP %s", self.method, path, response.status)
            return None
        if not isinstance(response.body, dict):
            _LOGGER.debug("%s %s returned a non-object body", self.method, path)
            return None
        if "error" in response.body:
            _LOGGER.debug(
                "%s %s reported an error: %s", self.method, path, response.body["error"]
            )
            return None
        return response.body


def default_candidates(carrier: str) -> List[ProbeCandidate]:
    """Return the routes to try for a carrier, most specific first."""
    candidates = [
        ProbeCandidate(TRACK_CARRIER_ENDPOINT),
        ProbeCandidate(TRACK_ENDPOINT),
        ProbeCandidate(TRACK_LOOKUP_ENDPOINT, method="GET", send_body=False),
    ]
    if TRACK_CARRIER_ENDPOINT.format(carrier=carrier) != TRACK_LEGACY_ENDPOINT:
        candidates.append(ProbeCandidate(TRACK_LEGACY_ENDPOINT))
    return candidates


class EndpointProbe:
    """Try tracking routes in order and stop at the first usable answer."""

    def __init__(self, client: TrackingServiceClient) -> None:
        """Initialize with the client used for every route."""
        self._client = client

    async def probe(
        self,
        tracking_number: str,
        carrier: str,
        candidates: Optional[Sequence[ProbeCandidate]] = None,
    ) -> Dict[str, Any]:
        """Return the first successful tracking payload.

        Raises:
            AllCandidatesExhausted: If no route produced a usable payload
        """
        if candidates is None:
            candidates = default_candidates(carrier)

        for index, candidate in enumerate(candidates, 1):
            payload = await candidate.attempt(self._client, tracking_number, carrier)
            if payload is not None:
                _LOGGER.debug(
                    "Tracking %s answered by candidate %d (%s %s)",
                    tracking_number,
                    index,
                    candidate.method,
                    candidate.path,
                )
                return payload

        raise AllCandidatesExhausted(tracking_number, len(candidates))

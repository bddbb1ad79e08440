"""Minimal algod REST client used to observe sync progress."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.errors import StatusError
from algorun.core.types import NodeEndpoint

logger = structlog.get_logger()

TOKEN_HEADER = "X-Algo-API-Token"


class AlgodClient:
    """Query algod's ``/v2/status`` endpoint.

    A status endpoint that fails right after a fresh start means the
    installation is broken, so every failure is raised as StatusError and
    nothing is retried.
    """

    def __init__(self, endpoint: NodeEndpoint, client: httpx.Client, timeout: float = 5.0):
        self.endpoint = endpoint
        self.client = client
        self.timeout = timeout

    @property
    def status_url(self) -> str:
        return f"{self.endpoint.url}/v2/status"

    def status(self, token: CancellationToken | None = None) -> dict[str, Any]:
        """Fetch the node status document.

        Raises:
            StatusError: On transport failure, non-2xx or a non-object body
            CancelledError: If the token already fired
        """
        token = token or never_cancelled()
        token.check()
        url = self.status_url

        try:
            response = self.client.get(
                url,
                headers={TOKEN_HEADER: self.endpoint.token},
                timeout=token.clamp(self.timeout),
            )
            response.raise_for_status()
            data: Any = response.json()
        except httpx.HTTPStatusError as e:
            raise StatusError(
                f"algod status returned HTTP {e.response.status_code}",
                url=url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise StatusError(f"algod status unavailable: {e}", url=url) from e
        except ValueError as e:
            raise StatusError(f"algod status is not valid JSON: {e}", url=url) from e

        if not isinstance(data, dict):
            raise StatusError("algod status is not a JSON object", url=url)
        return data

    def last_round(self, token: CancellationToken | None = None) -> int:
        """Current round counter."""
        data = self.status(token)
        try:
            return int(data["last-round"])
        except (KeyError, TypeError, ValueError) as e:
            raise StatusError(
                f"algod status has no usable last-round: {e}", url=self.status_url
            ) from e

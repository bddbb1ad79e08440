"""Fast catchup to the latest published mainnet catchpoint."""

from __future__ import annotations

import httpx
import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.config import ReleaseConfig
from algorun.core.errors import CatchpointFetchError
from algorun.core.process import CommandResult, NodeController

logger = structlog.get_logger()


class CatchupTrigger:
    """Fetch a catchpoint label and hand it to ``goal node catchup``."""

    def __init__(
        self,
        client: httpx.Client,
        controller: NodeController,
        config: ReleaseConfig | None = None,
    ):
        self.client = client
        self.controller = controller
        self.config = config or ReleaseConfig()

    def fetch_catchpoint(self, token: CancellationToken | None = None) -> str:
        """Download the current catchpoint label.

        Raises:
            CatchpointFetchError: On transport failure, non-2xx or empty body
        """
        token = token or never_cancelled()
        token.check()
        url = self.config.catchpoint_url

        try:
            response = self.client.get(url, timeout=token.clamp(self.config.timeout))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CatchpointFetchError(
                f"Catchpoint endpoint returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CatchpointFetchError(f"Catchpoint endpoint unavailable: {e}") from e

        label = response.text.strip()
        if not label:
            raise CatchpointFetchError("Catchpoint endpoint returned an empty label")

        logger.info("catchpoint_fetched", catchpoint=label)
        return label

    def trigger_catchup(self, token: CancellationToken | None = None) -> str:
        """Fetch the label and start the catchup.

        Returns:
            The catchpoint label used

        Raises:
            CatchpointFetchError: If the label cannot be fetched
            ProcessError: If goal rejects the catchup command
        """
        label = self.fetch_catchpoint(token)
        result: CommandResult = self.controller.catchup(label)
        logger.debug("catchup_command_output", output=result.output)
        return label

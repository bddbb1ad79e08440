"""Release channel resolution against the GitHub releases listing."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.config import ReleaseConfig
from algorun.core.errors import DownloadError, NotFoundError
from algorun.core.types import ResolvedVersion

logger = structlog.get_logger()


class VersionResolver:
    """Resolve a release channel name to a concrete release tag.

    The listing is taken in the order GitHub returns it (newest first) and
    the first well-formed tag containing the channel substring wins. Tags
    without a version number or channel suffix are skipped. Tags are not
    re-sorted by version.
    """

    def __init__(self, client: httpx.Client, config: ReleaseConfig | None = None):
        """Initialize resolver.

        Args:
            client: Shared HTTP client
            config: Release endpoints, defaults to upstream go-algorand
        """
        self.client = client
        self.config = config or ReleaseConfig()

    @property
    def releases_url(self) -> str:
        base = self.config.github_api_url.rstrip("/")
        return f"{base}/repos/{self.config.owner}/{self.config.repo}/releases"

    def list_tags(self, token: CancellationToken | None = None) -> list[str]:
        """Fetch release tag names in listing order.

        Args:
            token: Cancellation token bounding the request

        Returns:
            Tag names

        Raises:
            DownloadError: If the listing cannot be fetched
        """
        token = token or never_cancelled()
        token.check()

        url = self.releases_url
        try:
            response = self.client.get(
                url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=token.clamp(self.config.timeout),
            )
            response.raise_for_status()
            releases: Any = response.json()
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"Release listing returned HTTP {e.response.status_code}",
                url=url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Release listing unavailable: {e}", url=url) from e
        except ValueError as e:
            raise DownloadError(f"Release listing is not valid JSON: {e}", url=url) from e

        if not isinstance(releases, list):
            raise DownloadError("Release listing is not a list", url=url)

        tags = [
            release["tag_name"]
            for release in releases
            if isinstance(release, dict) and isinstance(release.get("tag_name"), str)
        ]
        logger.debug("release_listing_fetched", url=url, count=len(tags))
        return tags

    def resolve(
        self, channel: str, token: CancellationToken | None = None
    ) -> ResolvedVersion:
        """Resolve a channel to the first matching release.

        Args:
            channel: Channel substring, e.g. "stable" or "beta"
            token: Cancellation token bounding the request

        Returns:
            Resolved version

        Raises:
            NotFoundError: If no tag contains the channel
            DownloadError: If the listing cannot be fetched
        """
        for tag in self.list_tags(token):
            if channel not in tag:
                continue
            try:
                version = ResolvedVersion.from_tag(tag)
            except NotFoundError:
                logger.debug("release_tag_skipped", tag=tag, reason="malformed")
                continue
            logger.info(
                "release_resolved",
                channel=channel,
                tag=version.raw_tag,
                version=version.semver,
            )
            return version

        raise NotFoundError(f"No release found matching {channel!r}", channel=channel)

"""Release archive download with a local cache and progress ticks."""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from pathlib import Path

import httpx
import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.config import FetchConfig
from algorun.core.errors import DownloadError

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int | None], None]


class _ProgressTicker:
    """Report bytes transferred on a fixed interval from a background thread.

    ``finish()`` stops the thread and always emits one last report with the
    final count, so the caller sees completion even when the last interval
    did not line up with the end of the transfer.
    """

    def __init__(self, callback: ProgressCallback, interval: float, total: int | None):
        self._callback = callback
        self._interval = interval
        self._total = total
        self._bytes = 0
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self._run, name="download-progress", daemon=True)

    @property
    def bytes_done(self) -> int:
        with self._lock:
            return self._bytes

    def start(self) -> None:
        self._thread.start()

    def advance(self, count: int) -> None:
        with self._lock:
            self._bytes += count

    def _run(self) -> None:
        while not self._done.wait(self._interval):
            self._callback(self.bytes_done, self._total)

    def finish(self) -> int:
        self._done.set()
        self._thread.join()
        final = self.bytes_done
        self._callback(final, self._total)
        return final


class ArchiveFetcher:
    """Download release artifacts into a cache directory.

    A file already present under its final name is trusted as-is; nothing
    is re-validated and no request is made unless ``force`` is set.
    Downloads are written to ``<name>.part`` and renamed into place only
    after the body has been fully received.
    """

    def __init__(
        self,
        client: httpx.Client,
        config: FetchConfig | None = None,
        timeout: float = 30.0,
    ):
        """Initialize fetcher.

        Args:
            client: Shared HTTP client
            config: Download settings
            timeout: Per-request timeout in seconds
        """
        self.client = client
        self.config = config or FetchConfig()
        self.timeout = timeout

    @staticmethod
    def target_path(url: str, dest_dir: Path) -> Path:
        """Local path a URL is cached under."""
        name = httpx.URL(url).path.rsplit("/", 1)[-1]
        if not name:
            raise DownloadError(f"Cannot derive a file name from {url}", url=url)
        return dest_dir / name

    def fetch(
        self,
        url: str,
        dest_dir: Path,
        force: bool = False,
        token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> Path:
        """Fetch ``url`` into ``dest_dir`` unless already cached.

        Args:
            url: Artifact URL
            dest_dir: Cache directory
            force: Re-download even if a cached copy exists
            token: Cancellation token
            progress: Called with (bytes_done, total_bytes_or_None)

        Returns:
            Path of the local file

        Raises:
            DownloadError: On a non-2xx response or transport failure
            CancelledError: If the token fires mid-download
        """
        token = token or never_cancelled()
        target = self.target_path(url, dest_dir)

        if target.exists() and not force:
            logger.info("download_skipped", path=str(target), reason="cached")
            return target

        token.check()
        dest_dir.mkdir(parents=True, exist_ok=True)
        part_path = target.with_name(target.name + ".part")

        try:
            size = self._download(url, part_path, token, progress)
            os.replace(part_path, target)
        except BaseException:
            part_path.unlink(missing_ok=True)
            raise

        logger.info("download_complete", url=url, path=str(target), size=size)
        return target

    def _download(
        self,
        url: str,
        part_path: Path,
        token: CancellationToken,
        progress: ProgressCallback | None,
    ) -> int:
        logger.info("download_started", url=url)
        try:
            with self.client.stream("GET", url, timeout=token.clamp(self.timeout)) as response:
                if response.is_error:
                    raise DownloadError(
                        f"Download of {url} failed with HTTP {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )

                length = response.headers.get("Content-Length")
                total = int(length) if length and length.isdigit() else None
                ticker = _ProgressTicker(
                    progress or (lambda done, total: None),
                    self.config.progress_interval,
                    total,
                )
                ticker.start()
                try:
                    with open(part_path, "wb") as f:
                        for chunk in response.iter_bytes(self.config.chunk_size):
                            token.check()
                            f.write(chunk)
                            ticker.advance(len(chunk))
                finally:
                    size = ticker.finish()
        except httpx.HTTPError as e:
            raise DownloadError(f"Download of {url} failed: {e}", url=url) from e

        return size

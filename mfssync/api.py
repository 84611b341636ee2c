"""API client for the store daemon's MFS RPC interface."""

from __future__ import annotations

import json
import logging
import random
import time
from pathlib import Path
from typing import Any

import httpx

from .config import build_api_url, config
from .exceptions import (
    MfsAPIError,
    MfsInvalidResponseError,
    MfsNetworkError,
    MfsNotFoundError,
    MfsRateLimitError,
)
from .models import MfsEntry, MfsStat, entries_from_listing
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

# Status codes that indicate a transient condition worth retrying
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}

# Substrings of daemon error messages that mean "no such path"
NOT_FOUND_MESSAGES = ("does not exist", "not found", "no link named")


class MfsClient:
    """Client for the store daemon's RPC API (``/api/v0``)."""

    def __init__(
        self,
        api_host: str | None = None,
        api_port: int | None = None,
        api_url: str | None = None,
        autoflush: bool = True,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the store client.

        Args:
            api_host: Daemon API host (uses config if not provided)
            api_port: Daemon API port (uses config if not provided)
            api_url: Full RPC base URL; overrides host and port
            autoflush: Whether MFS write calls flush to the root immediately
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if api_url is None:
            api_url = build_api_url(
                api_host or config.api_host,
                api_port if api_port is not None else config.api_port,
            )
        self.api_url = api_url.rstrip("/")
        self.autoflush = autoflush
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> MfsClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _should_retry(
        self, exception: Exception, attempt: int, max_retries: int
    ) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)
            max_retries: Retry budget for this request

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= max_retries:
            return False

        # Network errors and throttling are transient
        if isinstance(exception, (MfsNetworkError, MfsRateLimitError)):
            return True

        # The daemon answers logical failures with HTTP 500, so only gateway
        # style errors are retried
        if isinstance(exception, httpx.HTTPStatusError):
            return exception.response.status_code in RETRYABLE_STATUS_CODES

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str | None:
        """Pull the ``Message`` field out of a daemon error body."""
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    return (
                        error_data.get("Message")
                        or error_data.get("message")
                        or error_data.get("error")
                    )
        except ValueError:
            text = response.text.strip()
            return text or None
        return None

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int, max_retries: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to an mfssync exception.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number
            max_retries: Retry budget for this request

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        message = self._extract_error_message(e.response)

        if status_code == 429:
            error: Exception = MfsRateLimitError("Rate limit exceeded")
            return (error, attempt < max_retries)

        if message and any(m in message.lower() for m in NOT_FOUND_MESSAGES):
            return (MfsNotFoundError(message), False)

        if status_code == 404:
            return (MfsNotFoundError(message or "API endpoint not found"), False)

        error_msg = f"API request failed with status {status_code}"
        if message:
            error_msg = f"{error_msg}: {message}"
        error = MfsAPIError(error_msg)
        return (error, self._should_retry(e, attempt, max_retries))

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        """Decode a JSON (or newline-delimited JSON) response body.

        Streaming commands such as ``add`` answer with one JSON object per
        line; the last object carries the final result.
        """
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        if "json" not in content_type:
            raise MfsInvalidResponseError(f"Unexpected response type: {content_type}")

        try:
            return response.json()
        except ValueError:
            pass

        lines = [line for line in response.text.splitlines() if line.strip()]
        try:
            return json.loads(lines[-1])
        except (IndexError, ValueError) as e:
            raise MfsInvalidResponseError(
                "Invalid JSON response from store daemon"
            ) from e

    def _request(
        self,
        endpoint: str,
        max_retries: int | None = None,
        **kwargs: Any,
    ) -> Any:
        """Make an RPC request with retry logic.

        All RPC endpoints are invoked with POST.

        Args:
            endpoint: RPC command path, e.g. ``files/ls``
            max_retries: Override the client's retry budget
            **kwargs: Additional arguments passed to httpx

        Returns:
            Decoded response data

        Raises:
            MfsAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        retries = self.max_retries if max_retries is None else max_retries
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(retries + 1):
            try:
                start = time.monotonic()
                response = client.post(url, **kwargs)
                response.raise_for_status()
                logger.debug(
                    "%s took %.3fs", endpoint, time.monotonic() - start
                )
                return self._decode_body(response)

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt, retries)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Retrying {endpoint} in {delay:.2f}s: {error}")
                    time.sleep(delay)
                    continue
                raise error from e
            except MfsAPIError:
                raise
            except httpx.RequestError as e:
                error = MfsNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt, retries):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Retrying {endpoint} in {delay:.2f}s: {error}")
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise MfsAPIError("Request failed after all retry attempts")

    # =========================
    # MFS Operations
    # =========================

    def files_ls(self, path: str) -> list[MfsEntry]:
        """List the children of an MFS directory.

        Args:
            path: Absolute MFS path

        Returns:
            Entries with name, size, hash and type
        """
        params = {"arg": path, "long": True, "U": True}
        return entries_from_listing(self._request("files/ls", params=params))

    def files_mkdir(self, path: str, parents: bool = False) -> None:
        """Create an MFS directory.

        Args:
            path: Absolute MFS path
            parents: Create missing parent directories
        """
        params = {"arg": path, "parents": parents, "flush": self.autoflush}
        self._request("files/mkdir", params=params)

    def files_rm(
        self, path: str, recursive: bool = True, force: bool = False
    ) -> None:
        """Remove an MFS path.

        Args:
            path: Absolute MFS path
            recursive: Remove directories and their contents
            force: Forcibly remove the target
        """
        params = {
            "arg": path,
            "recursive": recursive,
            "force": force,
            "flush": self.autoflush,
        }
        self._request("files/rm", params=params)

    def files_stat(self, path: str) -> MfsStat:
        """Stat an MFS path.

        Args:
            path: Absolute MFS path

        Returns:
            Hash, size and type of the path
        """
        return MfsStat.from_api_response(
            self._request("files/stat", params={"arg": path})
        )

    def files_cp(self, source: str, dest: str) -> None:
        """Copy a path (MFS or ``/ipfs/<hash>``) to an MFS destination.

        The destination must not exist.
        """
        params = [
            ("arg", source),
            ("arg", dest),
            ("flush", "true" if self.autoflush else "false"),
        ]
        self._request("files/cp", params=params)

    def files_flush(self, path: str = "/") -> str:
        """Flush an MFS path and its ancestors to the store.

        Returns:
            Hash of the flushed path
        """
        result = self._request("files/flush", params={"arg": path})
        return result.get("Cid", "") if isinstance(result, dict) else ""

    # =========================
    # Content Operations
    # =========================

    def add(self, file_path: Path, nocopy: bool = False, pin: bool = False) -> str:
        """Add a local file's content to the store.

        Args:
            file_path: Local path to the file
            nocopy: Reference the file by its absolute path (filestore)
                instead of storing a copy of its bytes
            pin: Whether to pin the added content

        Returns:
            Content hash of the added file
        """
        params = {"pin": pin, "nocopy": nocopy, "quieter": True}
        # Retrying would need a fresh file handle, so uploads are tried once
        with open(file_path, "rb") as f:
            if nocopy:
                headers = {"Abspath": str(Path(file_path).absolute())}
                files = {
                    "file": (file_path.name, f, "application/octet-stream", headers)
                }
            else:
                files = {"file": (file_path.name, f, "application/octet-stream")}
            result = self._request("add", max_retries=0, params=params, files=files)

        content_hash = result.get("Hash") if isinstance(result, dict) else None
        if not content_hash:
            raise MfsInvalidResponseError("Add response missing content hash")
        return content_hash

    def version(self) -> dict[str, Any]:
        """Get version information of the store daemon."""
        return self._request("version")

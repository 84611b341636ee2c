"""mfssync - mirror a local directory into a content-addressed MFS tree."""

from .api import MfsClient
from .exceptions import (
    FilenameEncodingError,
    MfsAPIError,
    MfsConfigError,
    MfsInvalidResponseError,
    MfsNetworkError,
    MfsNotFoundError,
    MfsRateLimitError,
    MfsSyncError,
    SymlinkResolutionError,
    UnsupportedEntryError,
)
from .utils import parse_duration, parse_timestamp

__version__ = "0.4.0"

__all__ = [
    "MfsClient",
    "MfsSyncError",
    "MfsAPIError",
    "MfsConfigError",
    "MfsInvalidResponseError",
    "MfsNetworkError",
    "MfsNotFoundError",
    "MfsRateLimitError",
    "FilenameEncodingError",
    "SymlinkResolutionError",
    "UnsupportedEntryError",
    "parse_duration",
    "parse_timestamp",
]

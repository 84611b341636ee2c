"""Exceptions raised by mfssync."""


class MfsSyncError(Exception):
    """Base class for all mfssync errors."""


class MfsConfigError(MfsSyncError):
    """Configuration could not be parsed or is incomplete."""


class MfsAPIError(MfsSyncError):
    """The store daemon rejected a request or returned an error."""


class MfsNetworkError(MfsAPIError):
    """The store daemon could not be reached."""


class MfsNotFoundError(MfsAPIError):
    """The requested MFS path does not exist."""


class MfsRateLimitError(MfsAPIError):
    """The store daemon (or a proxy in front of it) throttled the request."""


class MfsInvalidResponseError(MfsAPIError):
    """The store daemon returned a body that could not be decoded."""


class FilenameEncodingError(MfsSyncError):
    """A local file name cannot be represented as a remote path component."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Could not parse file name {name!r} as unicode")


class SymlinkResolutionError(MfsSyncError):
    """A symlink target cannot be mapped into the synced tree."""


class UnsupportedEntryError(MfsSyncError):
    """A local entry is neither a regular file, a directory nor a symlink."""

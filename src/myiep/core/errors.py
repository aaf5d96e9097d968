"""
Error Taxonomy

Every failure the tracker surfaces is one of these. Local failures
(StorageError, NotFoundError, InvalidFormatError) abort the user action that
triggered them. Remote failures (AuthError, NetworkError, RemoteError) are
folded into the sync status by the controller and never block local use.
"""


class MyIEPError(Exception):
    """Base class for tracker errors."""

    pass


class StorageError(MyIEPError):
    """Local database fault (I/O, quota, corruption)."""

    pass


class NotFoundError(MyIEPError):
    """Referenced record does not exist."""

    pass


class InvalidFormatError(MyIEPError):
    """Import or migration payload could not be parsed."""

    pass


class AuthError(MyIEPError):
    """Remote session is missing or no longer valid."""

    pass


class NetworkError(MyIEPError):
    """Transient transport failure; the next sync trigger retries."""

    pass


class RemoteError(MyIEPError):
    """Remote service rejected the request."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

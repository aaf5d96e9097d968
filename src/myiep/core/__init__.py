"""
Core building blocks: errors, identifiers, validation, persistence models.
"""

from .errors import (
    AuthError,
    InvalidFormatError,
    MyIEPError,
    NetworkError,
    NotFoundError,
    RemoteError,
    StorageError,
)
from .ids import generate_id

__all__ = [
    "MyIEPError",
    "StorageError",
    "NotFoundError",
    "AuthError",
    "NetworkError",
    "RemoteError",
    "InvalidFormatError",
    "generate_id",
]

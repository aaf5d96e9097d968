"""
Remote backup gateways.
"""

from .base import CloudBackupGateway, RemoteMedia, SnapshotMetadata
from .drive import GoogleDriveGateway, extract_file_id
from .memory import InMemoryGateway

__all__ = [
    "CloudBackupGateway",
    "RemoteMedia",
    "SnapshotMetadata",
    "GoogleDriveGateway",
    "InMemoryGateway",
    "extract_file_id",
]

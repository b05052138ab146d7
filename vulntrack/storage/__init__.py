"""Storage backends for vulnerability records."""

from .base import VulnerabilityStorage, StorageTransaction
from .sqlite import SqliteVulnerabilityStorage, SqliteTransaction

__all__ = [
    'VulnerabilityStorage', 'StorageTransaction',
    'SqliteVulnerabilityStorage', 'SqliteTransaction'
]

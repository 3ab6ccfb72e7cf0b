from .storage_provider import LocalStorageProvider
from .lease_store import InMemoryLeaseStore
from .progress_store import InMemoryProgressStore

__all__ = [
    'LocalStorageProvider',
    'InMemoryLeaseStore',
    'InMemoryProgressStore',
]

from .storage_provider import StorageProvider
from .classification_provider import ClassificationProvider
from .lease_store import LeaseStore
from .progress_store import ProgressStore

__all__ = [
    'StorageProvider',
    'ClassificationProvider',
    'LeaseStore',
    'ProgressStore',
]

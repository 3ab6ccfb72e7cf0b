from .storage_provider import AzureStorageProvider
from .classification_provider import AzureCustomVisionProvider
from .lease_store import AzureBlobLeaseStore
from .progress_store import AzureBlobProgressStore

__all__ = [
    "AzureStorageProvider",
    "AzureCustomVisionProvider",
    "AzureBlobLeaseStore",
    "AzureBlobProgressStore",
]

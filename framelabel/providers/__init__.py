"""Provider system for framelabel."""

from .base import (
    StorageProvider,
    ClassificationProvider,
    LeaseStore,
    ProgressStore,
)
from .factory import ProviderFactory, Providers

__all__ = [
    # Base classes
    'StorageProvider',
    'ClassificationProvider',
    'LeaseStore',
    'ProgressStore',
    # Factory
    'ProviderFactory',
    'Providers',
]

from dataclasses import dataclass
from typing import Dict, Optional, Type
from loguru import logger

from .base import (
    StorageProvider,
    ClassificationProvider,
    LeaseStore,
    ProgressStore,
)
from .azure_providers import (
    AzureStorageProvider,
    AzureCustomVisionProvider,
    AzureBlobLeaseStore,
    AzureBlobProgressStore,
)
from .custom_providers import (
    LocalStorageProvider,
    InMemoryLeaseStore,
    InMemoryProgressStore,
)
from ..exceptions import ConfigurationException
from ..config.settings import FrameLabelConfig


class ProviderFactory:
    """Factory class for creating provider instances."""

    _storage_providers: Dict[str, Type[StorageProvider]] = {
        'azure': AzureStorageProvider,
        'local': LocalStorageProvider,
    }

    _classification_providers: Dict[str, Type[ClassificationProvider]] = {
        'azure_custom_vision': AzureCustomVisionProvider,
    }

    _lease_stores: Dict[str, Type[LeaseStore]] = {
        'azure': AzureBlobLeaseStore,
        'memory': InMemoryLeaseStore,
    }

    _progress_stores: Dict[str, Type[ProgressStore]] = {
        'azure': AzureBlobProgressStore,
        'memory': InMemoryProgressStore,
    }

    @staticmethod
    def _lookup(registry: Dict[str, type], provider_name: str, kind: str) -> type:
        if provider_name not in registry:
            raise ConfigurationException(
                f"Unknown {kind} provider: {provider_name}. "
                f"Supported providers: {list(registry.keys())}"
            )
        logger.info(f"Creating {kind} provider: {provider_name}")
        return registry[provider_name]

    @classmethod
    def create_storage_provider(
        cls, provider_name: str = None, config: Optional[FrameLabelConfig] = None
    ) -> StorageProvider:
        """
        Create storage provider instance.

        Args:
            provider_name: Name of the provider (optional, defaults to config)
            config: Loaded configuration (optional, read from the environment)

        Raises:
            ConfigurationException: If provider is not supported
        """
        config = config or FrameLabelConfig()
        provider_name = provider_name or config.storage.provider
        provider_class = cls._lookup(cls._storage_providers, provider_name, "storage")
        return provider_class(config.storage.model_dump())

    @classmethod
    def create_classification_provider(
        cls,
        storage: StorageProvider,
        provider_name: str = None,
        config: Optional[FrameLabelConfig] = None,
    ) -> ClassificationProvider:
        """Create the classification oracle; it reads images through ``storage``."""
        config = config or FrameLabelConfig()
        provider_name = provider_name or config.classification.provider
        provider_class = cls._lookup(cls._classification_providers, provider_name, "classification")
        return provider_class(config.classification.model_dump(), storage)

    @classmethod
    def create_lease_store(cls, provider_name: str = None, config: Optional[FrameLabelConfig] = None) -> LeaseStore:
        config = config or FrameLabelConfig()
        provider_name = provider_name or config.lease_store.provider
        store_class = cls._lookup(cls._lease_stores, provider_name, "lease store")
        return store_class({**config.storage.model_dump(), **config.lease_store.model_dump()})

    @classmethod
    def create_progress_store(
        cls, provider_name: str = None, config: Optional[FrameLabelConfig] = None
    ) -> ProgressStore:
        config = config or FrameLabelConfig()
        provider_name = provider_name or config.lease_store.provider
        store_class = cls._lookup(cls._progress_stores, provider_name, "progress store")
        return store_class({**config.storage.model_dump(), **config.lease_store.model_dump()})

    @classmethod
    def register_storage_provider(cls, name: str, provider_class: Type[StorageProvider]):
        """Register a new storage provider."""
        cls._storage_providers[name] = provider_class

    @classmethod
    def register_classification_provider(cls, name: str, provider_class: Type[ClassificationProvider]):
        """Register a new classification provider."""
        cls._classification_providers[name] = provider_class


@dataclass
class Providers:
    """
    The collaborators a pipeline step talks to.

    ``classification`` is created on first use so steps that never call the
    oracle do not need its endpoint configured.
    """
    storage: StorageProvider
    lease_store: LeaseStore
    progress_store: ProgressStore
    config: FrameLabelConfig
    _classification: Optional[ClassificationProvider] = None

    @classmethod
    def from_config(cls, config: Optional[FrameLabelConfig] = None) -> "Providers":
        config = config or FrameLabelConfig()
        return cls(
            storage=ProviderFactory.create_storage_provider(config=config),
            lease_store=ProviderFactory.create_lease_store(config=config),
            progress_store=ProviderFactory.create_progress_store(config=config),
            config=config,
        )

    @property
    def classification(self) -> ClassificationProvider:
        if self._classification is None:
            self._classification = ProviderFactory.create_classification_provider(self.storage, config=self.config)
        return self._classification

    @classification.setter
    def classification(self, provider: ClassificationProvider):
        self._classification = provider

    async def close(self):
        if self._classification is not None:
            await self._classification.close()
        await self.lease_store.close()
        await self.progress_store.close()
        await self.storage.close()

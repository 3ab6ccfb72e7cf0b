"""
Test suite for ProviderFactory and the Providers bundle.
"""

import asyncio

import pytest

from framelabel.config.settings import FrameLabelConfig, LeaseStoreConfig, StorageConfig
from framelabel.exceptions import ConfigurationException
from framelabel.providers import ProviderFactory, Providers
from framelabel.providers.custom_providers import (
    InMemoryLeaseStore,
    InMemoryProgressStore,
    LocalStorageProvider,
)


@pytest.fixture
def local_config(tmp_path):
    config = FrameLabelConfig()
    config._storage = StorageConfig(provider="local", base_path=str(tmp_path / "store"))
    config._lease_store = LeaseStoreConfig(provider="memory")
    return config


def test_from_config_builds_local_bundle(local_config):
    providers = Providers.from_config(local_config)

    assert isinstance(providers.storage, LocalStorageProvider)
    assert isinstance(providers.lease_store, InMemoryLeaseStore)
    assert isinstance(providers.progress_store, InMemoryProgressStore)
    asyncio.run(providers.close())


def test_unknown_provider_is_a_configuration_error(local_config):
    with pytest.raises(ConfigurationException) as e:
        ProviderFactory.create_storage_provider("ftp", config=local_config)
    assert "ftp" in str(e.value)

    with pytest.raises(ConfigurationException):
        ProviderFactory.create_lease_store("redis", config=local_config)


def test_classification_needs_endpoint(local_config):
    providers = Providers.from_config(local_config)
    local_config._classification = local_config.classification.model_copy(
        update={"endpoint": None, "prediction_key": None}
    )

    with pytest.raises(ConfigurationException):
        providers.classification


def test_injected_classification_is_closed(providers, oracle):
    assert providers.classification is oracle
    asyncio.run(providers.close())

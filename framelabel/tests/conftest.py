import pytest

from framelabel.config.settings import FrameLabelConfig, PipelineConfig
from framelabel.providers import Providers
from framelabel.providers.custom_providers import (
    InMemoryLeaseStore,
    InMemoryProgressStore,
    LocalStorageProvider,
)
from framelabel.tests.fakes import FakeOracle


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider({"base_path": str(tmp_path / "storage")})


@pytest.fixture
def lease_store():
    return InMemoryLeaseStore()


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def config():
    config = FrameLabelConfig()
    config._pipeline = PipelineConfig(frames_per_slice=10, retry_initial_delay=0)
    return config


@pytest.fixture
def providers(storage, lease_store, progress_store, oracle, config):
    bundle = Providers(
        storage=storage,
        lease_store=lease_store,
        progress_store=progress_store,
        config=config,
    )
    bundle.classification = oracle
    return bundle

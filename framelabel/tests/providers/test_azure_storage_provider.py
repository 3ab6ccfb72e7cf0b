"""
Test suite for AzureStorageProvider writes under throttling, against an in-memory blob double.
"""

import asyncio
import json

import pytest
from azure.core.exceptions import HttpResponseError

from framelabel.exceptions import ProviderException, TransientProviderException
from framelabel.providers.azure_providers import AzureStorageProvider
from framelabel.utils.error_handler import retry_async


def server_busy() -> HttpResponseError:
    error = HttpResponseError(message="Server Busy")
    error.status_code = 503
    error.reason = "Server Busy"
    return error


class BusyBlobs:
    """Container answering 503 to the first ``busy`` uploads."""

    def __init__(self, busy: int):
        self.busy = busy
        self.upload_attempts = 0
        self.blobs = {}


class BusyBlobClient:
    def __init__(self, blobs: BusyBlobs, name: str):
        self.blobs = blobs
        self.name = name

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def upload_blob(self, data, overwrite=False, **kwargs):
        self.blobs.upload_attempts += 1
        if self.blobs.upload_attempts <= self.blobs.busy:
            raise server_busy()
        self.blobs.blobs[self.name] = data


class BusyServiceClient:
    url = "https://account.blob.core.windows.net/"

    def __init__(self, blobs: BusyBlobs):
        self.blobs = blobs

    def get_blob_client(self, container, blob):
        return BusyBlobClient(self.blobs, f"{container}/{blob}")

    async def close(self):
        pass


def make_provider(blobs: BusyBlobs) -> AzureStorageProvider:
    provider = AzureStorageProvider({"account_url": "https://account.blob.core.windows.net"})
    provider.service_client = BusyServiceClient(blobs)
    return provider


def test_put_surfaces_throttling_as_transient():
    provider = make_provider(BusyBlobs(busy=1))

    with pytest.raises(TransientProviderException) as e:
        asyncio.run(provider.put("b", "k.bin", b"body"))

    assert e.value.error_code == "503"


def test_caller_write_budget_outlasts_five_busy_responses():
    blobs = BusyBlobs(busy=5)
    provider = make_provider(blobs)

    url = asyncio.run(retry_async(provider.put_json, "b", "k.json", {"a": 1}, retries=10, initial_delay=0))

    assert url == "https://account.blob.core.windows.net/b/k.json"
    assert blobs.upload_attempts == 6
    assert json.loads(blobs.blobs["b/k.json"]) == {"a": 1}


def test_caller_write_budget_is_the_attempt_limit():
    blobs = BusyBlobs(busy=20)
    provider = make_provider(blobs)

    with pytest.raises(ProviderException) as e:
        asyncio.run(retry_async(provider.put_json, "b", "k.json", {}, retries=10, initial_delay=0))

    assert e.value.error_code == "RETRIES_EXHAUSTED"
    assert blobs.upload_attempts == 10

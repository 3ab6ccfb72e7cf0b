import aiofiles
from pathlib import Path
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError, ServiceRequestError
from azure.storage.blob.aio import BlobServiceClient
from azure.storage.blob import ContentSettings
from loguru import logger
from typing import Dict, Any, List
from framelabel.providers.base import StorageProvider
from framelabel.providers.credentials import AzureCredentials
from framelabel.utils.error_handler import handle_exceptions
from framelabel.exceptions import (
    ConfigurationException,
    FrameLabelException,
    ProviderException,
    ResourceNotFoundException,
    TransientProviderException,
)

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def translate_azure_error(e: Exception, what: str) -> FrameLabelException:
    """Map an azure-core error to the framelabel taxonomy."""
    if isinstance(e, ResourceNotFoundError):
        return ResourceNotFoundException(f"{what}: not found", details={"original_exception": type(e).__name__})
    if isinstance(e, ServiceRequestError):
        return TransientProviderException(f"{what}: {e}", details={"original_exception": type(e).__name__})
    if isinstance(e, HttpResponseError) and e.status_code in RETRYABLE_STATUS:
        return TransientProviderException(
            f"{what}: {e.status_code} {e.reason}",
            error_code=str(e.status_code),
            details={"original_exception": type(e).__name__},
        )
    return ProviderException(f"{what}: {e}", details={"original_exception": type(e).__name__})


def create_blob_service_client(config: Dict[str, Any]):
    """(BlobServiceClient, credential or None) for a storage config dict."""
    if config.get("use_managed_identity", True):
        account_url = config.get("account_url")
        if not account_url:
            raise ConfigurationException("Azure Storage account_url is required")
        credential = AzureCredentials.get_async_credentials()
        return BlobServiceClient(account_url=account_url, credential=credential), credential

    connection_string = config.get("connection_string")
    if not connection_string:
        raise ConfigurationException(
            "Azure Storage connection_string is required when managed identity is disabled"
        )
    return BlobServiceClient.from_connection_string(connection_string), None


class AzureStorageProvider(StorageProvider):
    """Azure Blob Storage provider implementation (bucket = container)."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Azure Storage Provider.

        Args:
            config: Configuration dictionary with:
                - account_url: Azure Storage account URL
                - connection_string: used instead of account_url when managed identity is off
                - use_managed_identity: Whether to use managed identity (default: True)
        """
        self.config = config
        self.credential = None
        self.service_client = None

    def _initialize(self):
        self.service_client, self.credential = create_blob_service_client(self.config)
        logger.info("Successfully initialized Azure Blob Storage client")

    def _ensure_initialized(self):
        """Ensure the client is initialized before operations."""
        if self.service_client is None:
            self._initialize()

    def get_file_url(self, bucket: str, key: str) -> str:
        self._ensure_initialized()
        return f"{self.service_client.url.rstrip('/')}/{bucket}/{key}"

    @handle_exceptions(retries=3)
    async def get(self, bucket: str, key: str) -> bytes:
        self._ensure_initialized()
        try:
            async with self.service_client.get_blob_client(container=bucket, blob=key) as client:
                stream = await client.download_blob()
                data = await stream.readall()
            logger.debug(f"Loaded blob {bucket}/{key} ({len(data)} bytes)")
            return data
        except AzureError as e:
            raise translate_azure_error(e, f"read {bucket}/{key}") from e

    async def put(self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self._ensure_initialized()
        try:
            async with self.service_client.get_blob_client(container=bucket, blob=key) as client:
                await client.upload_blob(
                    data,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=content_type),
                )
            logger.debug(f"Uploaded blob {bucket}/{key} ({content_type})")
            return self.get_file_url(bucket, key)
        except AzureError as e:
            raise translate_azure_error(e, f"write {bucket}/{key}") from e

    @handle_exceptions(retries=3)
    async def list(self, bucket: str, prefix: str = "") -> List[str]:
        self._ensure_initialized()
        try:
            container = self.service_client.get_container_client(bucket)
            return [blob.name async for blob in container.list_blobs(name_starts_with=prefix or None)]
        except AzureError as e:
            raise translate_azure_error(e, f"list {bucket}/{prefix}") from e

    @handle_exceptions(retries=3)
    async def download_to_file(self, bucket: str, key: str, download_path: str) -> str:
        """Download a blob to a local file path."""
        self._ensure_initialized()
        Path(download_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.service_client.get_blob_client(container=bucket, blob=key) as client:
                stream = await client.download_blob()
                async with aiofiles.open(download_path, "wb") as f:
                    async for chunk in stream.chunks():
                        await f.write(chunk)
            logger.info(f"Successfully downloaded {bucket}/{key} to {download_path}")
            return download_path
        except AzureError as e:
            raise translate_azure_error(e, f"download {bucket}/{key}") from e

    async def close(self):
        """Close the underlying service client and cleanup."""
        if self.service_client:
            logger.info("Closing Azure Blob Storage client")
            await self.service_client.close()
            self.service_client = None
        if self.credential:
            await self.credential.close()
            self.credential = None

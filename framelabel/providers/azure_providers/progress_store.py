import json
from typing import Any, Dict
from urllib.parse import quote

from azure.core.exceptions import AzureError, ResourceNotFoundError

from framelabel.providers.base import ProgressStore
from framelabel.utils.error_handler import handle_exceptions
from .storage_provider import create_blob_service_client, translate_azure_error


class AzureBlobProgressStore(ProgressStore):
    """Inference cursors kept as one JSON blob per work unit."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.container_name = config.get("progress_container_name", "inference-progress")
        self.service_client = None
        self.credential = None

    def _blob(self, unit_id: str):
        if self.service_client is None:
            self.service_client, self.credential = create_blob_service_client(self.config)
        return self.service_client.get_blob_client(self.container_name, f"{quote(unit_id, safe='')}.json")

    @handle_exceptions(retries=3)
    async def get(self, unit_id: str) -> int:
        try:
            async with self._blob(unit_id) as blob:
                stream = await blob.download_blob()
                return int(json.loads(await stream.readall())["cursor"])
        except ResourceNotFoundError:
            return 0
        except AzureError as e:
            raise translate_azure_error(e, f"progress {unit_id}") from e

    @handle_exceptions(retries=10)
    async def put(self, unit_id: str, cursor: int):
        try:
            async with self._blob(unit_id) as blob:
                await blob.upload_blob(json.dumps({"unitId": unit_id, "cursor": cursor}), overwrite=True)
        except AzureError as e:
            raise translate_azure_error(e, f"progress {unit_id}") from e

    async def close(self):
        if self.service_client:
            await self.service_client.close()
            self.service_client = None
        if self.credential:
            await self.credential.close()
            self.credential = None

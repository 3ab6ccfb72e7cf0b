import json
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from azure.core import MatchConditions
from azure.core.exceptions import AzureError, ResourceExistsError, ResourceModifiedError, ResourceNotFoundError
from loguru import logger

from framelabel.exceptions import TransientProviderException
from framelabel.providers.base import LeaseStore
from framelabel.utils.error_handler import handle_exceptions
from .storage_provider import create_blob_service_client, translate_azure_error

MAX_CAS_ATTEMPTS = 10


class AzureBlobLeaseStore(LeaseStore):
    """
    Lease table kept as one small JSON blob per resource.

    The compare-and-swap is an ETag-conditioned overwrite (or a create-only
    upload when no record exists); losing the race rereads the record and
    re-evaluates the predicate.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: storage settings (account_url / connection_string /
                use_managed_identity) plus ``container_name``.
        """
        self.config = config
        self.container_name = config.get("container_name", "model-timers")
        self.service_client = None
        self.credential = None

    def _container(self):
        if self.service_client is None:
            self.service_client, self.credential = create_blob_service_client(self.config)
        return self.service_client.get_container_client(self.container_name)

    @staticmethod
    def _blob_name(resource_id: str) -> str:
        return f"{quote(resource_id, safe='')}.json"

    async def _read(self, blob) -> Tuple[Optional[int], Optional[str]]:
        try:
            stream = await blob.download_blob()
            record = json.loads(await stream.readall())
            return int(record["ttl"]), stream.properties.etag
        except ResourceNotFoundError:
            return None, None

    @handle_exceptions(retries=3)
    async def conditional_put(self, resource_id: str, new_expiry: int) -> bool:
        body = json.dumps({"resourceId": resource_id, "ttl": int(new_expiry)})
        try:
            async with self._container().get_blob_client(self._blob_name(resource_id)) as blob:
                for _ in range(MAX_CAS_ATTEMPTS):
                    current, etag = await self._read(blob)
                    if current is not None and current > new_expiry:
                        logger.debug(f"lease {resource_id}: keep {current}, reject {new_expiry}")
                        return False
                    try:
                        if etag is None:
                            await blob.upload_blob(body, overwrite=False)
                        else:
                            await blob.upload_blob(
                                body,
                                overwrite=True,
                                etag=etag,
                                match_condition=MatchConditions.IfNotModified,
                            )
                        return True
                    except (ResourceExistsError, ResourceModifiedError):
                        logger.debug(f"lease {resource_id}: concurrent update, rereading")
        except AzureError as e:
            raise translate_azure_error(e, f"lease {resource_id}") from e

        raise TransientProviderException(f"lease {resource_id}: too much contention")

    @handle_exceptions(retries=3)
    async def get(self, resource_id: str) -> Optional[int]:
        try:
            async with self._container().get_blob_client(self._blob_name(resource_id)) as blob:
                current, _ = await self._read(blob)
                return current
        except AzureError as e:
            raise translate_azure_error(e, f"lease {resource_id}") from e

    async def close(self):
        if self.service_client:
            await self.service_client.close()
            self.service_client = None
        if self.credential:
            await self.credential.close()
            self.credential = None

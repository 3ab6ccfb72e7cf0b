import json
from abc import ABC, abstractmethod
from typing import Any, List


class StorageProvider(ABC):
    """Abstract base class for object storage providers (bucket = container)."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes:
        """Read an object into memory."""
        pass

    @abstractmethod
    async def put(self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Write an object, overwriting any previous version. Returns its URL."""
        pass

    @abstractmethod
    async def list(self, bucket: str, prefix: str = "") -> List[str]:
        """List object keys under a prefix."""
        pass

    @abstractmethod
    async def download_to_file(self, bucket: str, key: str, download_path: str) -> str:
        """Download an object to a local file path."""
        pass

    @abstractmethod
    async def close(self):
        """Close the underlying client and cleanup."""
        pass

    async def get_json(self, bucket: str, key: str) -> Any:
        return json.loads(await self.get(bucket, key))

    async def put_json(self, bucket: str, key: str, data: Any) -> str:
        body = json.dumps(data, indent=2).encode("utf-8")
        return await self.put(bucket, key, body, content_type="application/json")

import aiofiles
from pathlib import Path
from loguru import logger
from typing import Dict, Any, List
from framelabel.providers.base import StorageProvider
from framelabel.utils.error_handler import handle_exceptions, convert_exceptions
from framelabel.exceptions import ProviderException, ResourceNotFoundException, ValidationException


class LocalStorageProvider(StorageProvider):
    """Local filesystem-based storage provider; buckets are sub-directories of ``base_path``."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize Local Storage Provider.

        Args:
            config: {
                        "base_path": str -> Root directory for local storage (default: ./local_storage)
                    }
        """
        self.config = config
        self.base_path = Path(config.get("base_path") or "./local_storage").resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalStorageProvider initialized at {self.base_path}")

    def _get_file_path(self, bucket: str, key: str) -> Path:
        file_path = (self.base_path / bucket / key).resolve()
        if self.base_path not in file_path.parents:
            raise ValidationException(f"Key escapes storage root: {bucket}/{key}")
        return file_path

    def get_file_url(self, bucket: str, key: str) -> str:
        return self._get_file_path(bucket, key).as_uri()

    async def get(self, bucket: str, key: str) -> bytes:
        file_path = self._get_file_path(bucket, key)
        if not file_path.is_file():
            raise ResourceNotFoundException(f"Object not found: {bucket}/{key}")

        async with aiofiles.open(file_path, "rb") as f:
            data = await f.read()

        logger.debug(f"Loaded {bucket}/{key} ({len(data)} bytes)")
        return data

    @handle_exceptions(retries=3, exceptions=(OSError,), initial_delay=0.1)
    async def put(self, bucket: str, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        dest_path = self._get_file_path(bucket, key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(dest_path, "wb") as f:
            await f.write(data)
        logger.debug(f"Saved {bucket}/{key} ({content_type}, {len(data)} bytes)")
        return self.get_file_url(bucket, key)

    async def list(self, bucket: str, prefix: str = "") -> List[str]:
        root = self.base_path / bucket
        if not root.is_dir():
            return []
        keys = (path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file())
        return sorted(key for key in keys if key.startswith(prefix))

    @convert_exceptions({OSError: ProviderException})
    async def download_to_file(self, bucket: str, key: str, download_path: str) -> str:
        """Copy an object from local storage to a specified path."""
        src_path = self._get_file_path(bucket, key)
        if not src_path.is_file():
            raise ResourceNotFoundException(f"Object not found: {bucket}/{key}")

        dst_path = Path(download_path)
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(src_path, "rb") as src, aiofiles.open(dst_path, "wb") as dst:
            while chunk := await src.read(1024 * 1024):
                await dst.write(chunk)

        logger.info(f"Downloaded {src_path} to {dst_path}")
        return str(dst_path)

    async def close(self):
        """No-op for local provider (for interface consistency)."""
        logger.debug("LocalStorageProvider closed (no-op).")

from abc import ABC, abstractmethod


class ProgressStore(ABC):
    """Persisted inference cursors keyed by work unit."""

    @abstractmethod
    async def get(self, unit_id: str) -> int:
        """Cursor of ``unit_id``; 0 when nothing was stored yet."""
        pass

    @abstractmethod
    async def put(self, unit_id: str, cursor: int):
        pass

    async def close(self):
        pass

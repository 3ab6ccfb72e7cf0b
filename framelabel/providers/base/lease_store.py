from abc import ABC, abstractmethod
from typing import Optional


class LeaseStore(ABC):
    """Time-to-live records of remote resources, written with compare-and-swap."""

    @abstractmethod
    async def conditional_put(self, resource_id: str, new_expiry: int) -> bool:
        """
        Store ``new_expiry`` (epoch seconds) for ``resource_id`` only if no record
        exists or the stored expiry is <= ``new_expiry``.

        Returns False when the write was rejected because a longer lease is held.
        """
        pass

    @abstractmethod
    async def get(self, resource_id: str) -> Optional[int]:
        """Current expiry of ``resource_id`` or None."""
        pass

    async def close(self):
        pass

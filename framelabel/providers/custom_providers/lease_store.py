import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from framelabel.providers.base import LeaseStore


class InMemoryLeaseStore(LeaseStore):
    """
    Process-local lease table.

    Suitable for a single worker and for tests; sibling processes do not see
    each other's leases.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._leases: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def conditional_put(self, resource_id: str, new_expiry: int) -> bool:
        async with self._lock:
            current = self._leases.get(resource_id)
            if current is not None and current > new_expiry:
                logger.debug(f"lease {resource_id}: keep {current}, reject {new_expiry}")
                return False
            self._leases[resource_id] = new_expiry
            return True

    async def get(self, resource_id: str) -> Optional[int]:
        return self._leases.get(resource_id)

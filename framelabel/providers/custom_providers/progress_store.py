from typing import Any, Dict, Optional

from framelabel.providers.base import ProgressStore


class InMemoryProgressStore(ProgressStore):
    """Process-local inference cursors."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._cursors: Dict[str, int] = {}

    async def get(self, unit_id: str) -> int:
        return self._cursors.get(unit_id, 0)

    async def put(self, unit_id: str, cursor: int):
        self._cursors[unit_id] = cursor

"""In-process usage store for tests and embedding hosts."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from .base import UsageMetadata, UsageRecord

__all__ = ["InMemoryUsageStore"]


class InMemoryUsageStore:
    """Dictionary-backed :class:`~.base.UsageStore`; insertion ordered, thread safe."""

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], UsageRecord] = {}
        self._lock = threading.RLock()

    def register(self, usage_key: str, asset_id: str, metadata: UsageMetadata) -> None:
        with self._lock:
            self._records[(usage_key, asset_id)] = UsageRecord(usage_key, asset_id, metadata)

    def unregister(self, usage_key: str, asset_id: str) -> None:
        with self._lock:
            self._records.pop((usage_key, asset_id), None)

    def unregister_all_by_asset(self, asset_id: str) -> int:
        with self._lock:
            doomed = [pair for pair in self._records if pair[1] == asset_id]
            for pair in doomed:
                del self._records[pair]
            return len(doomed)

    def list_all(self) -> List[UsageRecord]:
        with self._lock:
            return list(self._records.values())

    def list_by_asset(self, asset_id: str) -> List[UsageRecord]:
        with self._lock:
            return [record for record in self._records.values() if record.asset_id == asset_id]

    def exists(self, usage_key: str, asset_id: str) -> bool:
        with self._lock:
            return (usage_key, asset_id) in self._records

    def count(self, usage_key: Optional[str] = None, asset_id: Optional[str] = None) -> int:
        with self._lock:
            return sum(
                1
                for key, asset in self._records
                if (usage_key is None or key == usage_key) and (asset_id is None or asset == asset_id)
            )

    def pairs(self) -> set:
        """Return the stored ``(usage_key, asset_id)`` pairs."""

        with self._lock:
            return set(self._records)

    def __len__(self) -> int:
        return len(self._records)

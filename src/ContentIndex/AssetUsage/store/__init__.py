"""Usage store implementations."""

from .base import UsageMetadata, UsageRecord, UsageStore
from .memory import InMemoryUsageStore

__all__ = ["UsageMetadata", "UsageRecord", "UsageStore", "InMemoryUsageStore"]

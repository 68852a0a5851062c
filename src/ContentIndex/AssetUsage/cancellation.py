"""Cooperative cancellation for long-running reconciliation passes.

A full reconciliation walks every node of the content tree.  Operators need a
way to stop it without interrupting a store write halfway, so the reconciler
polls a :class:`CancellationToken` between nodes instead of relying on thread
interruption.
"""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        """Initialize a new cancellation token."""
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._is_cancelled.is_set()

    def reset(self) -> None:
        """Reset the token so it can be reused for a fresh run."""
        with self._lock:
            self._is_cancelled.clear()


# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.cancellation",
#   "purpose": "Provide the cooperative cancellation token polled by the reconciler",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

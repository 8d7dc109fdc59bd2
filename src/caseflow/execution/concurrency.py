"""Evidence locks - single-writer guard per evidence item.

WHY
───
Two jobs touching the same evidence item (say an extraction and a
re-extraction triggered by a second upload) would race on the same
output rows. EvidenceLocks lets exactly one holder work on a resource at
a time; a second caller gets ``False`` and skips.

ARCHITECTURE
────────────
::

    EvidenceLocks()
      ├── .acquire(resource_id)   ─ try-lock, never waits
      ├── .release(resource_id)   ─ explicit unlock
      ├── .is_locked(resource_id) ─ check without acquiring
      └── .list_active()          ─ sorted ids currently held

The lock set lives in process memory and is scoped to one JobRunner.
Acquire and release are plain set operations with no ``await`` in
between, so the event loop never interleaves them.

Example::

    locks = EvidenceLocks()
    if locks.acquire("ev-42"):
        try:
            await extract("ev-42")
        finally:
            locks.release("ev-42")
"""

from caseflow.core.logging import get_logger

logger = get_logger(__name__)


class EvidenceLocks:
    """In-memory try-locks keyed by resource id."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def acquire(self, resource_id: str) -> bool:
        """Try to take the lock.

        Returns:
            True if acquired, False if another holder has it.
        """
        if resource_id in self._held:
            logger.debug("evidence_lock.busy", resource_id=resource_id)
            return False
        self._held.add(resource_id)
        return True

    def release(self, resource_id: str) -> bool:
        """Release the lock. Returns False if it was not held."""
        if resource_id not in self._held:
            return False
        self._held.discard(resource_id)
        return True

    def is_locked(self, resource_id: str) -> bool:
        return resource_id in self._held

    def list_active(self) -> list[str]:
        return sorted(self._held)

    def __len__(self) -> int:
        return len(self._held)


__all__ = ["EvidenceLocks"]

"""
In-memory statistics snapshot cache keyed by (owner id, period key).

Writers only ever delete; snapshots are recomputed lazily by readers and
stored whole, never patched in place. Concurrent recomputation of the same
key is tolerated (last writer wins), so the read path takes no lock.
"""

from typing import TYPE_CHECKING, Iterable

from ledgerflow.services.errors import CacheInconsistency

if TYPE_CHECKING:
    from ledgerflow.services.statistics_service import StatisticsSnapshot


class SnapshotCache:
    """Versioned snapshot cache with hit tracking."""

    def __init__(self):
        # (owner_id, period_key) → StatisticsSnapshot
        self._snapshots: dict[tuple[int, str], "StatisticsSnapshot"] = {}
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    def get(self, owner_id: int, period: str) -> "StatisticsSnapshot | None":
        """Return the cached snapshot or None."""
        snapshot = self._snapshots.get((owner_id, period))
        if snapshot is None:
            self._misses += 1
        else:
            self._hits += 1
        return snapshot

    def get_current(
        self, owner_id: int, period: str, version: int
    ) -> "StatisticsSnapshot | None":
        """Return the snapshot only if it was computed at `version`.

        Raises:
            CacheInconsistency: If a snapshot exists but its version differs
        """
        snapshot = self.get(owner_id, period)
        if snapshot is not None and snapshot.version != version:
            raise CacheInconsistency(
                f"Snapshot {owner_id}/{period} at version {snapshot.version}, "
                f"ledger at {version}"
            )
        return snapshot

    # ------------------------------------------------------------------
    def put(self, snapshot: "StatisticsSnapshot") -> None:
        self._snapshots[(snapshot.owner_id, snapshot.period)] = snapshot

    # ------------------------------------------------------------------
    def invalidate(self, owner_id: int, period: str) -> bool:
        """Drop one snapshot. Returns True if something was removed."""
        return self._snapshots.pop((owner_id, period), None) is not None

    def invalidate_many(self, owner_id: int, periods: Iterable[str]) -> int:
        return sum(1 for period in periods if self.invalidate(owner_id, period))

    def invalidate_owner(self, owner_id: int) -> int:
        """Drop every snapshot of an owner."""
        keys = [key for key in list(self._snapshots) if key[0] == owner_id]
        for key in keys:
            self._snapshots.pop(key, None)
        return len(keys)

    def clear(self) -> None:
        self._snapshots.clear()

    # ------------------------------------------------------------------
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "entries": len(self._snapshots),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total else 0.0,
        }

    def __contains__(self, key: tuple[int, str]) -> bool:
        return key in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


__all__ = ["SnapshotCache"]

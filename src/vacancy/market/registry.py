"""Shared directory of resource snapshots used by actors for discovery."""

from typing import Mapping, Optional

from vacancy.concurrency import AsyncReaderWriterLock
from vacancy.config.logging_config import get_logger
from vacancy.market.types import OccupancyStatus, ResourceRecord

log = get_logger(__name__)


class Registry:
    """
    Concurrent store mapping resource id to its latest ``ResourceRecord``.

    The registry holds no business logic: each resource publishes its own
    record on every transition and the registry keeps whatever it was told
    last. Reads share a reader/writer lock so that a listing never observes
    a half-applied write.

    Iteration order is the order in which resource ids were first put;
    re-publishing a record keeps the id's original position. Actors rely on
    this order to break utility ties deterministically.
    """

    def __init__(self) -> None:
        self._records: dict[str, ResourceRecord] = {}
        self._lock = AsyncReaderWriterLock()

    async def put(
        self,
        resource_id: str,
        attributes: Mapping[str, float],
        status: OccupancyStatus,
        occupant_id: Optional[str] = None,
    ) -> ResourceRecord:
        """Insert or overwrite the record for ``resource_id``."""
        record = ResourceRecord(
            resource_id=resource_id,
            attributes=dict(attributes),
            status=status,
            occupant_id=occupant_id,
        )
        async with self._lock.write_lock():
            self._records[resource_id] = record
        log.debug(f"Registry: {resource_id} -> {status.value} ({occupant_id})")
        return record

    async def get(self, resource_id: str) -> Optional[ResourceRecord]:
        """Return the record for ``resource_id``, or None if it was never put."""
        async with self._lock.read_lock():
            return self._records.get(resource_id)

    async def list_vacant(self) -> list[ResourceRecord]:
        """Snapshot of all vacant records in registry order.

        The snapshot may be stale by the time the caller acts on it.
        """
        async with self._lock.read_lock():
            return [record for record in self._records.values() if record.is_vacant]

    async def list_records(self) -> list[ResourceRecord]:
        """Snapshot of every record in registry order."""
        async with self._lock.read_lock():
            return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._records

    def __repr__(self) -> str:
        return f"Registry(records={len(self._records)})"

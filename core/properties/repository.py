"""
Property Repository - Durable Store for Properties and Their Images

In-memory rows with optional JSON file persistence, swappable for a
database. Reads return detached snapshots; writes happen inside an atomic
unit scoped to a single property row.

Atomic units:
    with repo.atomic(property_id) as unit:
        current = unit.current      # fresh read under the row lock
        ...                         # re-check preconditions
        unit.save(updated)          # staged, committed on clean exit

Every wait to start or commit a unit is bounded. A unit that cannot start in
time raises StoreUnavailable instead of waiting forever. A write that cannot
be persisted is undone in memory before StoreUnavailable is raised.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Final, Iterator, Optional

from core.errors import StoreUnavailable
from core.properties.schema import Property


logger = logging.getLogger(__name__)


DEFAULT_STORE_TIMEOUT_SECONDS: Final[float] = 5.0


# =============================================================================
# Atomic Unit
# =============================================================================


class PropertyUnit:
    """One read-modify-write against a single property row."""

    def __init__(self, property_id: str, current: Optional[Property]):
        self.property_id = property_id
        self.current = current
        self._pending: Optional[Property] = None

    def save(self, prop: Property) -> None:
        if prop.id != self.property_id:
            raise ValueError("An atomic unit may only write its own row")
        self._pending = prop

    @property
    def has_changes(self) -> bool:
        return self._pending is not None


class _RowLock:
    """A row lock and the number of units currently using it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


# =============================================================================
# Repository
# =============================================================================


class PropertyRepository:
    """
    Store for property rows.

    Provides snapshot reads, filtered queries and per-row atomic units.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ):
        """
        Initialise repository.

        Args:
            persist_path: Optional path to persist data to JSON file
            timeout_seconds: Upper bound on any wait for a lock
        """
        self._rows: dict[str, Property] = {}
        self._image_index: dict[str, str] = {}  # image_id -> property_id
        self._table_lock = threading.Lock()
        self._row_locks: dict[str, _RowLock] = {}
        self._timeout = timeout_seconds
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _save_to_file(self) -> None:
        """Persist data to file. Caller holds the table lock."""
        if not self._persist_path:
            return

        data = {
            "properties": {pid: p.to_dict() for pid, p in self._rows.items()},
            "saved_at": datetime.utcnow().isoformat(),
        }

        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StoreUnavailable(f"Could not persist properties: {e}")

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            for pid, row in data.get("properties", {}).items():
                prop = Property.from_dict(row)
                self._rows[pid] = prop
                for image in prop.images:
                    self._image_index[image.id] = pid
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load property data from %s: %s", self._persist_path, e)

    # =========================================================================
    # Locking
    # =========================================================================

    def _acquire(self, lock: threading.Lock, what: str) -> None:
        if not lock.acquire(timeout=self._timeout):
            logger.warning("Timed out after %.2fs waiting for %s", self._timeout, what)
            raise StoreUnavailable(f"Timed out waiting for {what}")

    @contextmanager
    def _table(self) -> Iterator[None]:
        self._acquire(self._table_lock, "property table")
        try:
            yield
        finally:
            self._table_lock.release()

    def _checkout_row_lock(self, property_id: str) -> threading.Lock:
        with self._table():
            entry = self._row_locks.get(property_id)
            if entry is None:
                entry = self._row_locks[property_id] = _RowLock()
            entry.holders += 1
            return entry.lock

    def _return_row_lock(self, property_id: str) -> None:
        # Must not time out, or the registry entry would leak
        with self._table_lock:
            entry = self._row_locks[property_id]
            entry.holders -= 1
            if entry.holders == 0:
                del self._row_locks[property_id]

    @property
    def row_lock_count(self) -> int:
        return len(self._row_locks)

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, prop: Property) -> Property:
        """
        Store a new property.

        Raises:
            ValueError: If the id already exists
        """
        with self._table():
            if prop.id in self._rows:
                raise ValueError(f"Property {prop.id} already exists")
            self._write_row(prop.copy())
        return prop.copy()

    @contextmanager
    def atomic(self, property_id: str) -> Iterator[PropertyUnit]:
        """
        Open an atomic unit on one property row.

        The unit's current value is read after the row lock is held, so
        preconditions checked against it cannot be invalidated by another
        writer before commit.

        Raises:
            StoreUnavailable: If the row or table lock cannot be acquired
        """
        lock = self._checkout_row_lock(property_id)
        try:
            self._acquire(lock, f"property {property_id}")
            try:
                with self._table():
                    row = self._rows.get(property_id)
                    current = row.copy() if row else None
                unit = PropertyUnit(property_id, current)
                yield unit
                if unit.has_changes:
                    with self._table():
                        self._write_row(unit._pending.copy())
            finally:
                lock.release()
        finally:
            self._return_row_lock(property_id)

    def _write_row(self, row: Property) -> None:
        """
        Replace a row and persist. Caller holds the table lock.

        If persisting fails the previous row and image index are put back,
        so a retried write sees the store exactly as it was.
        """
        previous = self._rows.get(row.id)
        added_images = [image.id for image in row.images if image.id not in self._image_index]

        self._rows[row.id] = row
        for image_id in added_images:
            self._image_index[image_id] = row.id

        try:
            self._save_to_file()
        except StoreUnavailable:
            if previous is None:
                del self._rows[row.id]
            else:
                self._rows[row.id] = previous
            for image_id in added_images:
                del self._image_index[image_id]
            raise

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, property_id: str) -> Optional[Property]:
        """Snapshot of a property, or None."""
        with self._table():
            row = self._rows.get(property_id)
            return row.copy() if row else None

    def get_by_image(self, image_id: str) -> Optional[Property]:
        """Snapshot of the property owning an image, or None."""
        with self._table():
            property_id = self._image_index.get(image_id)
            row = self._rows.get(property_id) if property_id else None
            return row.copy() if row else None

    def query(self, predicate: Callable[[Property], bool]) -> list[Property]:
        """Snapshots of every property matching the predicate."""
        with self._table():
            return [row.copy() for row in self._rows.values() if predicate(row)]

    def count(self) -> int:
        with self._table():
            return len(self._rows)



from datetime import datetime

import structlog

from ..errors import NotFoundError, StorageError, ValidationError
from ..storage import SNAPSHOT_PREFIX
from ..utils import now_utc, parse_timestamp, to_iso_millis
from .models import Snapshot

log = structlog.get_logger()


def snapshot_key(snapshot_id: str, timestamp: str) -> str:
    """snapshot:<id>-<timestamp with ':' and '.' replaced by '-'>"""
    dt = parse_timestamp(timestamp)
    stamp = to_iso_millis(dt) if dt else str(timestamp)
    return f"{SNAPSHOT_PREFIX}{snapshot_id}-{stamp.replace(':', '-').replace('.', '-')}"


def _sort_key(doc: dict):
    dt = parse_timestamp(doc.get("timestamp"))
    return (dt is not None, dt or datetime.min)


class SnapshotStore:
    """Durable snapshot set on top of the storage facade. Documents are stored raw."""

    def __init__(self, store):
        self.store = store

    def save(self, snapshot: Snapshot) -> str:
        key = snapshot_key(snapshot.id, snapshot.timestamp)
        self.store.set(key, snapshot.to_dict())
        log.info("snapshot_saved", key=key, description=snapshot.description)
        return key

    def save_raw(self, docs) -> int:
        if not isinstance(docs, list):
            raise ValidationError("snapshots must be a list")
        for doc in docs:
            if not isinstance(doc, dict) or not doc.get("id") or not doc.get("timestamp"):
                raise ValidationError("each snapshot needs an id and a timestamp")
        for doc in docs:
            self.store.set(snapshot_key(str(doc["id"]), doc["timestamp"]), doc)
        log.info("snapshots_saved", count=len(docs))
        return len(docs)

    def _keyed_docs(self) -> list[tuple[str, dict]]:
        out = []
        for key in self.store.list_keys(SNAPSHOT_PREFIX):
            doc = self.store.get(key)
            if isinstance(doc, dict):
                out.append((key, doc))
        return out

    def list_raw(self) -> list[dict]:
        """All stored snapshot documents, oldest first."""
        return sorted((doc for _, doc in self._keyed_docs()), key=_sort_key)

    def list_all(self) -> list[Snapshot]:
        return [Snapshot.from_dict(d) for d in self.list_raw()]

    def latest_raw(self) -> dict | None:
        docs = self.list_raw()
        return docs[-1] if docs else None

    def latest(self) -> Snapshot | None:
        doc = self.latest_raw()
        return Snapshot.from_dict(doc) if doc else None

    def latest_total_cost(self):
        doc = self.latest_raw()
        if not doc:
            return None
        return doc.get("totalCost")

    def get(self, snapshot_id: str) -> Snapshot:
        for _, doc in self._keyed_docs():
            if str(doc.get("id")) == str(snapshot_id):
                return Snapshot.from_dict(doc)
        raise NotFoundError(f"Snapshot {snapshot_id} not found")

    def delete(self, snapshot_id: str) -> int:
        removed = 0
        for key, doc in self._keyed_docs():
            if str(doc.get("id")) == str(snapshot_id):
                removed += int(self.store.delete(key))
        if not removed:
            raise NotFoundError(f"Snapshot {snapshot_id} not found")
        log.info("snapshot_deleted", id=snapshot_id)
        return removed

    def delete_all(self) -> int:
        keys = self.store.list_keys(SNAPSHOT_PREFIX)
        for key in keys:
            self.store.delete(key)
        log.info("snapshots_cleared", count=len(keys))
        return len(keys)

    def should_auto_snapshot(self, now: datetime | None = None, min_interval_seconds: float = 3600) -> bool:
        """True when the newest stored snapshot is older than the interval (or none exists)."""
        now = now or now_utc()
        try:
            latest = self.latest_raw()
        except StorageError as e:
            log.warning("auto_snapshot_gate_unreadable", err=str(e))
            return True
        if not latest:
            return True
        dt = parse_timestamp(latest.get("timestamp"))
        if dt is None:
            return True
        return (now - dt).total_seconds() > min_interval_seconds

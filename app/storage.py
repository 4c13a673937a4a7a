import json
from pathlib import Path

import redis
import structlog

from .errors import StorageError

log = structlog.get_logger()

SNAPSHOT_PREFIX = "snapshot:"
_NAMED_FILES = ("portfolio", "transactions", "projects")


class FileStore:
    """
    Key -> JSON document store on the local filesystem.
    - portfolio/transactions/projects and other plain keys live in data_dir/<key>.json
    - snapshot:<rest> lives in snapshot_dir/<rest>.json
    """
    backend = "file"

    def __init__(self, data_dir: str = "./data", snapshot_dir: str = "./snapshot"):
        self.data_dir = Path(data_dir)
        self.snapshot_dir = Path(snapshot_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if key in _NAMED_FILES:
            return self.data_dir / f"{key}.json"
        if key.startswith(SNAPSHOT_PREFIX):
            return self.snapshot_dir / f"{key[len(SNAPSHOT_PREFIX):]}.json"
        return self.data_dir / f"{key}.json"

    def get(self, key: str, default=None):
        path = self._path_for(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("storage_read_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to read {key}: {e}", key=key) from e

    def set(self, key: str, value) -> None:
        path = self._path_for(key)
        try:
            path.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            log.error("storage_write_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to write {key}: {e}", key=key) from e

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            if not path.exists():
                return False
            path.unlink()
            return True
        except OSError as e:
            log.error("storage_delete_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to delete {key}: {e}", key=key) from e

    def list_keys(self, prefix: str) -> list[str]:
        if prefix.startswith(SNAPSHOT_PREFIX):
            rest = prefix[len(SNAPSHOT_PREFIX):]
            keys = [f"{SNAPSHOT_PREFIX}{p.stem}" for p in self.snapshot_dir.glob("*.json")]
            return sorted(k for k in keys if k[len(SNAPSHOT_PREFIX):].startswith(rest))
        keys = [p.stem for p in self.data_dir.glob("*.json")]
        keys += [f"{SNAPSHOT_PREFIX}{p.stem}" for p in self.snapshot_dir.glob("*.json")]
        return sorted(k for k in keys if k.startswith(prefix))

    def ping(self) -> bool:
        return self.data_dir.is_dir() and self.snapshot_dir.is_dir()


class RedisStore:
    """Key -> JSON string store on a Redis-compatible server (Upstash, Vercel KV, plain Redis)."""
    backend = "redis"

    def __init__(self, url: str, prefix: str = "", client=None):
        self._client = client or redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str, default=None):
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as e:
            log.error("storage_read_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to read {key}: {e}", key=key) from e
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            log.error("storage_decode_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"stored value for {key} is not JSON", key=key) from e

    def set(self, key: str, value) -> None:
        try:
            self._client.set(self._key(key), json.dumps(value, ensure_ascii=False))
        except (redis.RedisError, TypeError, ValueError) as e:
            log.error("storage_write_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to write {key}: {e}", key=key) from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(self._key(key)))
        except redis.RedisError as e:
            log.error("storage_delete_failed", backend=self.backend, key=key, err=str(e))
            raise StorageError(f"failed to delete {key}: {e}", key=key) from e

    def list_keys(self, prefix: str) -> list[str]:
        try:
            found = self._client.scan_iter(match=f"{self._key(prefix)}*")
            return sorted(k[len(self._prefix):] for k in found)
        except redis.RedisError as e:
            log.error("storage_list_failed", backend=self.backend, prefix=prefix, err=str(e))
            raise StorageError(f"failed to list keys {prefix}*: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


class MemoryStore:
    """Process-local store; values are JSON round-tripped so callers never share references."""
    backend = "memory"

    def __init__(self, initial: dict | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default=None):
        raw = self._data.get(key)
        return default if raw is None else json.loads(raw)

    def set(self, key: str, value) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"failed to write {key}: {e}", key=key) from e

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def ping(self) -> bool:
        return True


def build_store(settings):
    backend = settings.resolved_backend()
    if backend == "redis":
        if not settings.redis_url:
            raise StorageError("STORAGE_BACKEND=redis requires REDIS_URL")
        store = RedisStore(settings.redis_url, prefix=settings.redis_prefix)
    elif backend == "memory":
        store = MemoryStore()
    else:
        store = FileStore(settings.data_dir, settings.snapshot_dir)
    log.info("storage_ready", backend=store.backend)
    return store

"""
Persisted State

One JSON document per key under STATE_DIR. Writes go to a temporary file
that is fsynced and renamed over the target, under an exclusive flock on
Unix. Reads are cached for a short time.

Devices store their capabilities, values and store under
device_state_key(device_id).
"""

import json
import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

STATE_DIR = Path(os.environ.get("NUT_MONITOR_STATE_DIR", "/var/lib/nut-monitor/state"))

if os.name == "nt":
    STATE_DIR = Path(__file__).parent.parent / "data" / "state"

# Seconds a read result is served from memory
CACHE_TTL_S = 0.1

DEVICE_KEY_PREFIX = "device_"


def device_state_key(device_id: str) -> str:
    """State key holding a device's capabilities, values and store"""
    return f"{DEVICE_KEY_PREFIX}{device_id}"


class SharedState:
    """Key/value JSON documents shared by every device in the process"""

    _cache: dict[str, tuple[dict, float]] = {}
    _lock = threading.Lock()

    @staticmethod
    def _path(key: str) -> Path:
        return STATE_DIR / f"{key}.json"

    @classmethod
    def _remember(cls, key: str, data: dict) -> None:
        with cls._lock:
            cls._cache[key] = (data, time.time())

    @classmethod
    def write(cls, key: str, data: dict) -> None:
        """Replace the document stored under key"""
        STATE_DIR.mkdir(parents=True, exist_ok=True)
        path = cls._path(key)
        tmp_path = path.with_suffix(".tmp")

        document = {**data, "_updated_at": datetime.now(timezone.utc).isoformat()}

        with open(tmp_path, "w", encoding="utf-8") as f:
            if os.name != "nt":
                import fcntl
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            json.dump(document, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)

        cls._remember(key, document)

    @classmethod
    def read(cls, key: str, use_cache: bool = True) -> dict:
        """
        Document stored under key.

        Returns an empty dict when the key does not exist or the file is
        not valid JSON.
        """
        if use_cache:
            with cls._lock:
                cached = cls._cache.get(key)
            if cached and time.time() - cached[1] < CACHE_TTL_S:
                return cached[0]

        path = cls._path(key)
        if not path.exists():
            return {}

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            return {}

        cls._remember(key, data)
        return data

    @classmethod
    def read_fresh(cls, key: str) -> dict:
        return cls.read(key, use_cache=False)

    @classmethod
    def delete(cls, key: str) -> bool:
        """Remove a document. Returns False when it did not exist."""
        with cls._lock:
            cls._cache.pop(key, None)

        path = cls._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    @classmethod
    def list_keys(cls) -> list[str]:
        if not STATE_DIR.exists():
            return []
        return sorted(p.stem for p in STATE_DIR.glob("*.json"))

    @classmethod
    def clear_cache(cls) -> None:
        with cls._lock:
            cls._cache.clear()

"""Durable registry of known labs.

The cache file is the single source of truth for what is expanded and
mounted where. It is always rewritten in full through a temporary file and
``os.replace``, and every load-mutate-write span runs under a file lock.
"""
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import tomli
import tomli_w
from filelock import FileLock, Timeout

from laboratory.config import lock_timeout
from laboratory.errors import (
    DuplicateNameError,
    IOFailureError,
    NotFoundError,
    ParseError,
    VolumeError,
)
from laboratory.labs.lab import Lab
from laboratory.logging import get_logger
from laboratory.services import Services

logger = get_logger(__name__)


class Cache:
    """In-memory view of the cache file."""

    def __init__(self, path, labs: list[Lab] | None = None, services: Services | None = None):
        self.path = Path(path)
        self.services = services
        self._labs: list[Lab] = list(labs or [])

    @classmethod
    def new(cls, path, services: Services | None = None) -> "Cache":
        """Create and persist an empty cache."""
        cache = cls(path, services=services)
        cache.write()
        logger.info({"event": "cache_created", "path": str(cache.path)})
        return cache

    @classmethod
    def load(cls, path, services: Services | None = None) -> "Cache":
        """Load the cache at ``path``, creating an empty one if missing."""
        path = Path(path)
        try:
            with open(path, "rb") as f:
                data = tomli.load(f)
        except FileNotFoundError:
            return cls.new(path, services)
        except tomli.TOMLDecodeError as e:
            raise ParseError(f"Malformed cache {path}: {e}", details={"path": str(path)}) from e
        except OSError as e:
            raise IOFailureError(f"Cannot read cache {path}: {e}", details={"path": str(path)}) from e

        records = data.get("labs", [])
        if not isinstance(records, list):
            raise ParseError(f"Malformed cache {path}: 'labs' must be an array", details={"path": str(path)})

        cache = cls(path, services=services)
        for record in records:
            try:
                cache.add(Lab.from_record(record, services))
            except DuplicateNameError as e:
                raise ParseError(
                    f"Malformed cache {path}: lab {e.details['lab']} is listed twice",
                    details={"path": str(path), "lab": e.details["lab"]},
                ) from e

        logger.debug({"event": "cache_loaded", "path": str(path), "labs": len(cache)})
        return cache

    def to_record(self) -> dict:
        return {"labs": [lab.to_record() for lab in self._labs]}

    def write(self) -> None:
        """Rewrite the whole cache file atomically."""
        try:
            payload = tomli_w.dumps(self.to_record())
        except (TypeError, ValueError) as e:
            raise IOFailureError(f"Cannot serialize cache: {e}", details={"path": str(self.path)}) from e

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        except OSError as e:
            raise IOFailureError(f"Cannot write cache {self.path}: {e}", details={"path": str(self.path)}) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise IOFailureError(f"Cannot write cache {self.path}: {e}", details={"path": str(self.path)}) from e

        logger.debug({"event": "cache_written", "path": str(self.path), "labs": len(self)})

    def add(self, lab: Lab) -> None:
        if lab.name is None:
            raise ParseError("Cannot register a lab without a name")
        if lab.name in self:
            raise DuplicateNameError(lab.name)
        self._labs.append(lab)

    def search(self, name: str) -> Lab:
        for lab in self._labs:
            if lab.name == name:
                return lab
        raise NotFoundError(f"Lab {name} not found", details={"lab": name})

    def remove(self, name: str) -> Lab:
        lab = self.search(name)
        self._labs.remove(lab)
        return lab

    def __contains__(self, name: str) -> bool:
        return any(lab.name == name for lab in self._labs)

    def __iter__(self) -> Iterator[Lab]:
        return iter(list(self._labs))

    def __len__(self) -> int:
        return len(self._labs)


@contextmanager
def cache_session(path, services: Services | None = None, write: bool = True):
    """Hold the cache lock for a load-mutate-write span.

    The cache is written back on normal exit when ``write`` is set. A
    ``VolumeError`` is also written back because the volume state has
    already changed and the in-memory labs mirror it. Any other error
    leaves the file untouched. The lock is released on every path.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailureError(f"Cannot create {path.parent}: {e}", details={"path": str(path)}) from e

    lock = FileLock(str(path) + ".lock", timeout=lock_timeout())
    try:
        lock.acquire()
    except Timeout as e:
        raise IOFailureError(
            f"Cache {path} is locked by another invocation",
            details={"path": str(path), "lock": lock.lock_file},
        ) from e

    try:
        cache = Cache.load(path, services)
        try:
            yield cache
        except VolumeError:
            if write:
                cache.write()
            raise
        if write:
            cache.write()
    finally:
        lock.release()

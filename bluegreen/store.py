import fcntl
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol, Union

from pydantic import ValidationError

from bluegreen.errors import (
    ConfigMissingError,
    MalformedRecordError,
    NotFoundError,
    PersistError,
)
from bluegreen.models import DeploymentConfig, Pool

logger = logging.getLogger(__name__)

QUOTE_CHARS = "\"'"
REQUIRED_KEYS = ("ACTIVE_POOL", "NGINX_PORT", "BLUE_APP_PORT", "GREEN_APP_PORT")


class StorageBackend(Protocol):
    name: str

    def exists(self) -> bool: ...

    def read_text(self) -> str: ...

    def write_text(self, text: str) -> None: ...

    def locked(self): ...


class EnvFileBackend:
    """A KEY=VALUE file on local disk.

    Writes go to a temporary file in the same directory which is then renamed
    over the original, so readers see either the old record or the new one and
    never a partial write. Writers are serialised with an in-process lock plus
    an advisory ``flock`` on ``<path>.lock`` for other processes.
    """

    def __init__(self, path: Union[str, os.PathLike]):
        self.path = Path(path)
        self.name = str(self.path)
        self._lock = threading.RLock()
        self._depth = 0
        self._lock_fd: Optional[int] = None

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigMissingError(self.name, "Environment file") from exc

    def write_text(self, text: str) -> None:
        try:
            mode = self.path.stat().st_mode & 0o777
        except FileNotFoundError as exc:
            raise ConfigMissingError(self.name, "Environment file") from exc

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise PersistError(self.name, exc.strerror or str(exc)) from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            if self._depth == 0:
                self._acquire_file_lock()
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release_file_lock()

    def _acquire_file_lock(self):
        try:
            fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise PersistError(str(self.lock_path), exc.strerror or str(exc)) from exc
        fcntl.flock(fd, fcntl.LOCK_EX)
        self._lock_fd = fd

    def _release_file_lock(self):
        fd, self._lock_fd = self._lock_fd, None
        if fd is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)


class MemoryBackend:
    """Holds the record in memory; for embedding and for tests."""

    def __init__(self, text: str = "", writable: bool = True, name: str = "<memory>"):
        self.text = text
        self.writable = writable
        self.name = name
        self.writes = 0
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return True

    def read_text(self) -> str:
        return self.text

    def write_text(self, text: str) -> None:
        if not self.writable:
            raise PersistError(self.name, "storage is read-only")
        self.text = text
        self.writes += 1

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield


def strip_quotes(value: str) -> str:
    """Drop surrounding whitespace and quote characters; embedded quotes are kept."""
    return value.strip().strip(QUOTE_CHARS)


def parse_record(text: str) -> dict[str, str]:
    record: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep or not key or key in record:
            continue
        record[key] = strip_quotes(value)
    return record


class ConfigStore:
    """Single source of truth for the active pool and the deployment ports.

    Every ``get`` re-reads the backend. ``snapshot`` is the explicit opt-in for
    callers that want one consistent read to reuse within a single operation.
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    @classmethod
    def from_path(cls, path: Union[str, os.PathLike]) -> "ConfigStore":
        return cls(EnvFileBackend(path))

    @property
    def name(self) -> str:
        return self.backend.name

    def exists(self) -> bool:
        return self.backend.exists()

    def write_guard(self):
        """Hold the writer lock across a read-compare-write sequence."""
        return self.backend.locked()

    def get(self, key: str) -> str:
        prefix = f"{key}="
        for line in self.backend.read_text().splitlines():
            if line.startswith(prefix):
                return strip_quotes(line[len(prefix):])
        raise NotFoundError(key, self.name)

    def set(self, key: str, value: str) -> None:
        if "\n" in value or "\r" in value:
            raise PersistError(self.name, f"value for {key} spans multiple lines")

        prefix = f"{key}="
        with self.backend.locked():
            lines = self.backend.read_text().splitlines(keepends=True)
            for i, line in enumerate(lines):
                if line.startswith(prefix):
                    ending = line[len(line.rstrip("\r\n")):] or "\n"
                    lines[i] = f"{key}={value}{ending}"
                    break
            else:
                raise NotFoundError(key, self.name)
            self.backend.write_text("".join(lines))
        logger.debug("Persisted %s=%s to %s", key, value, self.name)

    def active_pool(self) -> Pool:
        value = self.get("ACTIVE_POOL")
        try:
            return Pool(value.lower())
        except ValueError as exc:
            raise MalformedRecordError("ACTIVE_POOL", value, "must be 'blue' or 'green'") from exc

    def get_int(self, key: str) -> int:
        value = self.get(key)
        try:
            return int(value)
        except ValueError as exc:
            raise MalformedRecordError(key, value, "must be an integer") from exc

    def snapshot(self) -> DeploymentConfig:
        record = parse_record(self.backend.read_text())
        for key in REQUIRED_KEYS:
            if key not in record:
                raise NotFoundError(key, self.name)
        try:
            return DeploymentConfig.from_record(record)
        except ValidationError as exc:
            error = exc.errors()[0]
            field = str(error["loc"][0]).upper()
            raise MalformedRecordError(field, record.get(field, ""), error["msg"]) from exc

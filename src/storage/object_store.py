"""Object store capability surface and its pyarrow-backed implementations."""

from __future__ import annotations

import io
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

import pyarrow.fs as pafs

from utils.uri import is_uri


@dataclass(frozen=True)
class ObjectMeta:
    """Metadata describing one stored object."""

    location: str
    size: int
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ListResult:
    """Single-level listing: child prefixes plus objects directly under a prefix."""

    common_prefixes: tuple[str, ...]
    objects: tuple[ObjectMeta, ...]


@runtime_checkable
class ObjectStore(Protocol):
    """Storage capabilities consumed by table registration and export."""

    def get(self, location: str) -> bytes:
        """Return the full contents of an object."""
        ...

    def get_range(self, location: str, start: int, end: int) -> bytes:
        """Return bytes ``[start, end)`` of an object."""
        ...

    def head(self, location: str) -> ObjectMeta:
        """Return metadata for an object."""
        ...

    def put(self, location: str, data: bytes) -> ObjectMeta:
        """Store ``data`` at ``location``, replacing any existing object."""
        ...

    def put_multipart(self, location: str, parts: Iterable[bytes]) -> ObjectMeta:
        """Store an object assembled from sequential parts."""
        ...

    def delete(self, location: str) -> None:
        """Delete the object at ``location``."""
        ...

    def list(self, prefix: str) -> list[ObjectMeta]:
        """Recursively list objects below ``prefix``."""
        ...

    def list_with_delimiter(self, prefix: str) -> ListResult:
        """List child prefixes and objects directly below ``prefix``."""
        ...

    def copy(self, source: str, destination: str) -> None:
        """Copy an object, overwriting the destination."""
        ...

    def copy_if_not_exists(self, source: str, destination: str) -> None:
        """Copy an object only when the destination does not exist."""
        ...


def _mtime(info: pafs.FileInfo) -> datetime | None:
    mtime = info.mtime
    if mtime is None:
        return None
    if mtime.tzinfo is None:
        return mtime.replace(tzinfo=UTC)
    return mtime


def _parent(location: str) -> str:
    head, sep, _ = location.rstrip("/").rpartition("/")
    if not sep:
        return ""
    return head or "/"


class ArrowObjectStore:
    """ObjectStore implementation over a ``pyarrow.fs.FileSystem``.

    Works with local disk as well as S3/GCS/HDFS filesystems that pyarrow
    resolves from a URI. A recursive listing of a missing prefix raises
    ``FileNotFoundError``; a single-level listing yields nothing.
    ``copy_if_not_exists`` is a check-then-copy and is not
    atomic on filesystems without native support.
    """

    def __init__(self, filesystem: pafs.FileSystem) -> None:
        self.filesystem = filesystem

    def __repr__(self) -> str:
        return f"ArrowObjectStore({self.filesystem.type_name})"

    def _meta(self, info: pafs.FileInfo) -> ObjectMeta:
        return ObjectMeta(location=info.path, size=info.size or 0, last_modified=_mtime(info))

    def get(self, location: str) -> bytes:
        with self.filesystem.open_input_file(location) as handle:
            return handle.read()

    def get_range(self, location: str, start: int, end: int) -> bytes:
        if end <= start:
            return b""
        with self.filesystem.open_input_file(location) as handle:
            return handle.read_at(end - start, start)

    def head(self, location: str) -> ObjectMeta:
        info = self.filesystem.get_file_info(location)
        if info.type != pafs.FileType.File:
            raise FileNotFoundError(location)
        return self._meta(info)

    def put(self, location: str, data: bytes) -> ObjectMeta:
        return self.put_multipart(location, (data,))

    def put_multipart(self, location: str, parts: Iterable[bytes]) -> ObjectMeta:
        parent = _parent(location)
        if parent:
            self.filesystem.create_dir(parent, recursive=True)
        with self.filesystem.open_output_stream(location) as stream:
            for part in parts:
                stream.write(part)
        return self.head(location)

    def delete(self, location: str) -> None:
        self.filesystem.delete_file(location)

    def list(self, prefix: str) -> list[ObjectMeta]:
        path = prefix.rstrip("/") or "/"
        if self.filesystem.get_file_info(path).type == pafs.FileType.NotFound:
            raise FileNotFoundError(path)
        selector = pafs.FileSelector(path, recursive=True)
        infos = self.filesystem.get_file_info(selector)
        return sorted(
            (self._meta(info) for info in infos if info.type == pafs.FileType.File),
            key=lambda meta: meta.location,
        )

    def list_with_delimiter(self, prefix: str) -> ListResult:
        selector = pafs.FileSelector(
            prefix.rstrip("/") or "/", allow_not_found=True, recursive=False
        )
        infos = self.filesystem.get_file_info(selector)
        prefixes = sorted(info.path for info in infos if info.type == pafs.FileType.Directory)
        objects = sorted(
            (self._meta(info) for info in infos if info.type == pafs.FileType.File),
            key=lambda meta: meta.location,
        )
        return ListResult(common_prefixes=tuple(prefixes), objects=tuple(objects))

    def copy(self, source: str, destination: str) -> None:
        parent = _parent(destination)
        if parent:
            self.filesystem.create_dir(parent, recursive=True)
        self.filesystem.copy_file(source, destination)

    def copy_if_not_exists(self, source: str, destination: str) -> None:
        if self.filesystem.get_file_info(destination).type != pafs.FileType.NotFound:
            raise FileExistsError(destination)
        self.copy(source, destination)


class InMemoryObjectStore:
    """Dict-backed ObjectStore for tests and dry runs."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, datetime]] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"InMemoryObjectStore({len(self._objects)} objects)"

    def _read(self, location: str) -> tuple[bytes, datetime]:
        with self._lock:
            entry = self._objects.get(location)
        if entry is None:
            raise FileNotFoundError(location)
        return entry

    def get(self, location: str) -> bytes:
        return self._read(location)[0]

    def get_range(self, location: str, start: int, end: int) -> bytes:
        return self._read(location)[0][start:end]

    def head(self, location: str) -> ObjectMeta:
        data, modified = self._read(location)
        return ObjectMeta(location=location, size=len(data), last_modified=modified)

    def put(self, location: str, data: bytes) -> ObjectMeta:
        with self._lock:
            self._objects[location] = (bytes(data), datetime.now(UTC))
        return self.head(location)

    def put_multipart(self, location: str, parts: Iterable[bytes]) -> ObjectMeta:
        return self.put(location, b"".join(parts))

    def delete(self, location: str) -> None:
        with self._lock:
            if self._objects.pop(location, None) is None:
                raise FileNotFoundError(location)

    def list(self, prefix: str) -> list[ObjectMeta]:
        base = prefix.rstrip("/") + "/" if prefix.strip("/") else ""
        with self._lock:
            keys = sorted(key for key in self._objects if key.startswith(base))
        return [self.head(key) for key in keys]

    def list_with_delimiter(self, prefix: str) -> ListResult:
        base = prefix.rstrip("/") + "/" if prefix.strip("/") else ""
        prefixes: set[str] = set()
        objects: list[ObjectMeta] = []
        for meta in self.list(prefix):
            remainder = meta.location[len(base) :]
            child, sep, _ = remainder.partition("/")
            if sep:
                prefixes.add(f"{base}{child}")
            else:
                objects.append(meta)
        return ListResult(common_prefixes=tuple(sorted(prefixes)), objects=tuple(objects))

    def copy(self, source: str, destination: str) -> None:
        self.put(destination, self.get(source))

    def copy_if_not_exists(self, source: str, destination: str) -> None:
        data = self.get(source)
        with self._lock:
            if destination in self._objects:
                raise FileExistsError(destination)
            self._objects[destination] = (data, datetime.now(UTC))


class RangeReadFile(io.RawIOBase):
    """Seekable read-only file whose reads are served by ``get_range``.

    Lets Parquet readers sample footers without fetching whole objects.
    """

    def __init__(self, store: ObjectStore, location: str, size: int) -> None:
        super().__init__()
        self._store = store
        self._location = location
        self._size = size
        self._position = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._position + offset
        elif whence == io.SEEK_END:
            position = self._size + offset
        else:
            msg = f"Invalid whence value: {whence}."
            raise ValueError(msg)
        if position < 0:
            msg = f"Negative seek position {position}."
            raise ValueError(msg)
        self._position = position
        return position

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        end = min(self._position + len(buffer), self._size)
        if end <= self._position:
            return 0
        data = self._store.get_range(self._location, self._position, end)
        count = len(data)
        buffer[:count] = data
        self._position += count
        return count


def store_path(root: str) -> str:
    """Return the path of a normalized root within its store.

    Returns
    -------
    str
        ``bucket/prefix`` for URIs, the absolute path for local roots.
    """
    if is_uri(root):
        parsed = urlparse(root)
        return f"{parsed.netloc}{parsed.path}".rstrip("/") or "/"
    return root.rstrip("/") or "/"


def store_for_uri(root: str) -> tuple[ArrowObjectStore, str]:
    """Resolve a normalized table root to an object store and store path.

    Parameters
    ----------
    root
        Absolute local path or ``scheme://`` URI.

    Returns
    -------
    tuple[ArrowObjectStore, str]
        Store for the root's filesystem and the root's path within it.
    """
    if is_uri(root):
        filesystem, path = pafs.FileSystem.from_uri(root)
        return ArrowObjectStore(filesystem), path
    return ArrowObjectStore(pafs.LocalFileSystem()), store_path(root)


__all__ = [
    "ArrowObjectStore",
    "InMemoryObjectStore",
    "ListResult",
    "ObjectMeta",
    "ObjectStore",
    "RangeReadFile",
    "store_for_uri",
    "store_path",
]

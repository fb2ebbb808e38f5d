"""Storage abstraction for the shared filesystem tree."""
from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable


class StorageError(Exception):
    """Base class for storage failures."""


class StorageNotFound(StorageError):
    """The path does not exist under the storage root."""


class InvalidStoragePath(StorageError):
    """The path escapes the storage root."""


@dataclass(frozen=True, slots=True)
class FileInfo:
    """One entry of a directory listing."""

    name: str
    size: int
    is_dir: bool
    mod_time: datetime
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'size': self.size,
            'isDir': self.is_dir,
            'modTime': self.mod_time.isoformat(),
            'path': self.path,
        }


class FileStorage(ABC):
    """Abstract storage interface.

    All paths are relative to the storage root. ``''``, ``'.'`` and ``'/'``
    all name the root itself.
    """

    @abstractmethod
    def list(self, path: str, exclude: Iterable[str] = ()) -> list[FileInfo]:
        """List directory contents.

        ``exclude`` names are dropped (case-insensitively) from root-level
        listings.

        Raises:
            StorageNotFound: If the directory does not exist.
        """
        ...

    @abstractmethod
    def get_file_path(self, path: str) -> Path:
        """Return the absolute path of an existing entry.

        Raises:
            StorageNotFound: If nothing exists at ``path``.
        """
        ...

    @abstractmethod
    def describe(self, path: str) -> FileInfo:
        """Metadata for one existing entry.

        Raises:
            StorageNotFound: If nothing exists at ``path``.
        """
        ...

    @abstractmethod
    def is_directory(self, path: str) -> bool:
        """Check if path is an existing directory."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if path exists."""
        ...


def is_root(path: str) -> bool:
    return path.strip().strip('/') in ('', '.')


class LocalFileStorage(FileStorage):
    """Local filesystem storage implementation."""

    def __init__(self, root: Path | str):
        """Initialize with the storage root directory.

        Args:
            root: The root directory for all file operations; created if missing.
        """
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _abs(self, path: str) -> Path:
        """Convert relative path to absolute, validating it's within root.

        Raises:
            InvalidStoragePath: If path escapes the root directory
        """
        relative = path.strip().lstrip('/')
        resolved = (self.root / relative).resolve()
        if self.root not in resolved.parents and resolved != self.root:
            raise InvalidStoragePath(f'Path outside of storage root: {path}')
        return resolved

    def _relative(self, absolute: Path) -> str:
        return absolute.relative_to(self.root).as_posix()

    def _info(self, entry: Path, stat: os.stat_result) -> FileInfo:
        is_dir = entry.is_dir()
        return FileInfo(
            name=entry.name,
            size=0 if is_dir else stat.st_size,
            is_dir=is_dir,
            mod_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            path=self._relative(entry),
        )

    def list(self, path: str, exclude: Iterable[str] = ()) -> list[FileInfo]:
        base = self._abs(path)
        if not base.is_dir():
            raise StorageNotFound(f'Directory not found: {path}')

        hidden = {name.lower() for name in exclude} if is_root(path) else set()
        entries = []
        for child in base.iterdir():
            if child.name.lower() in hidden:
                continue
            try:
                stat = child.stat()
            except OSError:
                # Vanished or unreadable between iterdir() and stat().
                continue
            entries.append(self._info(child, stat))
        # Sort: directories first, then alphabetically by name (case-insensitive)
        return sorted(entries, key=lambda e: (not e.is_dir, e.name.lower()))

    def get_file_path(self, path: str) -> Path:
        p = self._abs(path)
        if not p.exists():
            raise StorageNotFound(f'Path not found: {path}')
        return p

    def describe(self, path: str) -> FileInfo:
        p = self.get_file_path(path)
        return self._info(p, p.stat())

    def is_directory(self, path: str) -> bool:
        return self._abs(path).is_dir()

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

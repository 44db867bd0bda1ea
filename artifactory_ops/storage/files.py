from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO


class FileStore(ABC):
    """File access provided by the host for upload sources and download targets."""

    @abstractmethod
    def open_for_read(self, path: str) -> BinaryIO:
        """Open an existing file for binary reading."""

    @abstractmethod
    def open_for_write(self, path: str) -> BinaryIO:
        """Create or truncate a file for binary writing."""

    @abstractmethod
    def size(self, path: str) -> int:
        """Size of an existing file in bytes."""


class LocalFileStore(FileStore):
    """Files on the local disk, relative paths resolved against ``root``."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else Path.cwd()

    def get_full_path(self, path: str) -> Path:
        full_path = Path(path)
        if not full_path.is_absolute():
            full_path = self.root / full_path
        return full_path

    def open_for_read(self, path: str) -> BinaryIO:
        return self.get_full_path(path).open('rb')

    def open_for_write(self, path: str) -> BinaryIO:
        full_path = self.get_full_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path.open('wb')

    def size(self, path: str) -> int:
        return self.get_full_path(path).stat().st_size

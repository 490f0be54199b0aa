from typing import BinaryIO, Iterator, Optional

from storagekit.exceptions import (
    CopyFileError,
    CreateDirectoryError,
    DeleteDirectoryError,
    DeleteFileError,
    MoveFileError,
    SetVisibilityError,
    WriteFileError,
)
from storagekit.finder.attributes import FileAttributes, FinderAttributes
from storagekit.storage.base import Contents, StorageAdapter

READ_ONLY_MESSAGE = 'This is a readonly adapter.'


class ReadOnlyAdapter(StorageAdapter):
    """Wraps another adapter, passing reads through and refusing every write."""

    def __init__(self, inner: StorageAdapter):
        self._inner = inner

    @property
    def inner(self) -> StorageAdapter:
        return self._inner

    def file_exists(self, path: str) -> bool:
        return self._inner.file_exists(path)

    def directory_exists(self, path: str) -> bool:
        return self._inner.directory_exists(path)

    def get(self, path: str) -> bytes:
        return self._inner.get(path)

    def read_stream(self, path: str) -> BinaryIO:
        return self._inner.read_stream(path)

    def last_modified(self, path: str) -> FileAttributes:
        return self._inner.last_modified(path)

    def size(self, path: str) -> FileAttributes:
        return self._inner.size(path)

    def mime_type(self, path: str) -> FileAttributes:
        return self._inner.mime_type(path)

    def get_visibility(self, path: str) -> FileAttributes:
        return self._inner.get_visibility(path)

    def finder(self, path: str, deep: bool = False) -> Iterator[FinderAttributes]:
        return self._inner.finder(path, deep)

    def disconnect(self):
        self._inner.disconnect()

    def set_visibility(self, path: str, visibility: str):
        raise SetVisibilityError.at_location(path, READ_ONLY_MESSAGE)

    def put(self, path: str, contents: Contents, config: Optional[dict] = None):
        raise WriteFileError.at_location(path, READ_ONLY_MESSAGE)

    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None):
        raise WriteFileError.at_location(path, READ_ONLY_MESSAGE)

    def create_directory(self, path: str, config: Optional[dict] = None):
        raise CreateDirectoryError.at_location(path, READ_ONLY_MESSAGE)

    def delete_directory(self, path: str):
        raise DeleteDirectoryError.at_location(path, READ_ONLY_MESSAGE)

    def delete(self, path: str):
        raise DeleteFileError.at_location(path, READ_ONLY_MESSAGE)

    def move(self, source: str, destination: str, config: Optional[dict] = None):
        raise MoveFileError(
            f"Unable to move file from {source} to {destination} as this is a readonly adapter.",
            source, destination, READ_ONLY_MESSAGE,
        )

    def copy(self, source: str, destination: str, config: Optional[dict] = None):
        raise CopyFileError(
            f"Unable to copy file from {source} to {destination} as this is a readonly adapter.",
            source, destination, READ_ONLY_MESSAGE,
        )

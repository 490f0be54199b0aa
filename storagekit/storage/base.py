import posixpath
from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, Optional, Union

from storagekit.finder.attributes import FileAttributes, FinderAttributes
from storagekit.support.path_normalizer import PathNormalizer

OPTION_VISIBILITY = 'visibility'
OPTION_DIRECTORY_VISIBILITY = 'directory_visibility'
OPTION_RETAIN_VISIBILITY = 'retain_visibility'
OPTION_SYSTEM_TYPE = 'system_type'

Contents = Union[bytes, str]


class StorageAdapter(ABC):
    """Uniform contract every backend implements.

    All paths are logical: root-relative and ``/``-separated. Failures are
    raised as typed ``FilesystemError`` subclasses and never swallowed.
    """

    _normalizer = PathNormalizer()

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def directory_exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def get(self, path: str) -> bytes:
        pass

    @abstractmethod
    def read_stream(self, path: str) -> BinaryIO:
        pass

    @abstractmethod
    def put(self, path: str, contents: Contents, config: Optional[dict] = None):
        pass

    @abstractmethod
    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None):
        pass

    @abstractmethod
    def delete(self, path: str):
        pass

    @abstractmethod
    def delete_directory(self, path: str):
        pass

    @abstractmethod
    def create_directory(self, path: str, config: Optional[dict] = None):
        pass

    @abstractmethod
    def move(self, source: str, destination: str, config: Optional[dict] = None):
        pass

    @abstractmethod
    def copy(self, source: str, destination: str, config: Optional[dict] = None):
        pass

    @abstractmethod
    def set_visibility(self, path: str, visibility: str):
        pass

    @abstractmethod
    def get_visibility(self, path: str) -> FileAttributes:
        pass

    @abstractmethod
    def last_modified(self, path: str) -> FileAttributes:
        pass

    @abstractmethod
    def size(self, path: str) -> FileAttributes:
        pass

    @abstractmethod
    def mime_type(self, path: str) -> FileAttributes:
        pass

    @abstractmethod
    def finder(self, path: str, deep: bool = False) -> Iterator[FinderAttributes]:
        pass

    def disconnect(self):
        pass

    def normalize_path(self, path: str) -> str:
        return self._normalizer.normalize_path(path)

    @staticmethod
    def parent_directory(path: str) -> str:
        parent = posixpath.dirname(path)
        return '' if parent in ('', '.', '/') else parent

    @staticmethod
    def as_bytes(contents: Contents) -> bytes:
        if isinstance(contents, str):
            return contents.encode('utf-8')
        return contents

    @staticmethod
    def should_retain_visibility(config: dict) -> bool:
        return (
            config.get(OPTION_VISIBILITY) is None
            and config.get(OPTION_RETAIN_VISIBILITY, True)
            and config.get(OPTION_SYSTEM_TYPE) != 'windows'
        )

from typing import BinaryIO, List, Optional, Union

from storagekit.exceptions import FilesystemError
from storagekit.finder.attributes import FinderAttributes
from storagekit.finder.finder import Finder
from storagekit.logger import fs_log
from storagekit.storage.base import (
    OPTION_DIRECTORY_VISIBILITY,
    OPTION_RETAIN_VISIBILITY,
    OPTION_SYSTEM_TYPE,
    OPTION_VISIBILITY,
    Contents,
    StorageAdapter,
)
from storagekit.support.path_normalizer import PathNormalizer
from storagekit.support.visibility import PRIVATE

ROOT_OPTIONS = (
    OPTION_VISIBILITY,
    OPTION_DIRECTORY_VISIBILITY,
    OPTION_RETAIN_VISIBILITY,
)


class Filesystem:
    """Caller-facing wrapper around one adapter.

    Normalizes paths, merges the disk-level write options into every call
    and, unless ``debug`` is set, turns adapter errors into ``False`` or
    ``None`` results after logging them.
    """

    def __init__(self, adapter: StorageAdapter, config: Optional[dict] = None, debug: bool = False):
        self.adapter = adapter
        self.config = config or {}
        self.debug = debug
        self._normalizer = PathNormalizer()

    def _root_options(self) -> dict:
        return {key: self.config[key] for key in ROOT_OPTIONS if self.config.get(key) is not None}

    def _combine_options(self, config: Optional[Union[dict, str]]) -> dict:
        if isinstance(config, str):
            config = {OPTION_VISIBILITY: config}
        options = self._root_options()
        options.update(config or {})
        return options

    def _move_copy_options(self, config: Optional[dict]) -> dict:
        config = config or {}
        options = self._combine_options(config)

        if config.get(OPTION_RETAIN_VISIBILITY, options.get(OPTION_RETAIN_VISIBILITY, True)) \
                and OPTION_VISIBILITY not in config:
            options.pop(OPTION_VISIBILITY, None)

        system_type = self.config.get(OPTION_SYSTEM_TYPE)
        if system_type:
            options[OPTION_SYSTEM_TYPE] = system_type
        return options

    def _failed(self, error: FilesystemError):
        if self.debug:
            raise error
        fs_log(error.operation, f"path={error.path} reason={error.reason or error}", "WARNING")

    def normalize_path(self, path: str) -> str:
        return self._normalizer.normalize_path(path)

    def exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        return self.adapter.file_exists(path) or self.adapter.directory_exists(path)

    def file_exists(self, path: str) -> bool:
        return self.adapter.file_exists(self.normalize_path(path))

    def directory_exists(self, path: str) -> bool:
        return self.adapter.directory_exists(self.normalize_path(path))

    def get(self, path: str) -> Optional[bytes]:
        try:
            return self.adapter.get(self.normalize_path(path))
        except FilesystemError as e:
            self._failed(e)
        return None

    def read_stream(self, path: str) -> Optional[BinaryIO]:
        try:
            return self.adapter.read_stream(self.normalize_path(path))
        except FilesystemError as e:
            self._failed(e)
        return None

    def last_modified(self, path: str) -> Optional[int]:
        try:
            return self.adapter.last_modified(self.normalize_path(path)).last_modified
        except FilesystemError as e:
            self._failed(e)
        return None

    def size(self, path: str) -> Optional[int]:
        try:
            return self.adapter.size(self.normalize_path(path)).size
        except FilesystemError as e:
            self._failed(e)
        return None

    def mime_type(self, path: str) -> Optional[str]:
        try:
            return self.adapter.mime_type(self.normalize_path(path)).mime_type
        except FilesystemError as e:
            self._failed(e)
        return None

    def get_visibility(self, path: str) -> str:
        try:
            return self.adapter.get_visibility(self.normalize_path(path)).visibility
        except FilesystemError as e:
            self._failed(e)
        return PRIVATE

    def set_visibility(self, path: str, visibility: str) -> bool:
        try:
            self.adapter.set_visibility(self.normalize_path(path), visibility)
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def finder(self, path: str = '', deep: bool = False) -> Finder:
        return Finder(self.adapter.finder(self.normalize_path(path), deep))

    def files(self, directory: Optional[str] = None, recursive: bool = False) -> List[str]:
        try:
            return self.finder(directory or '', recursive) \
                .filter(FinderAttributes.is_file) \
                .sort_by_path() \
                .map(lambda attributes: attributes.path) \
                .to_list()
        except FilesystemError as e:
            self._failed(e)
        return []

    def directories(self, directory: Optional[str] = None, recursive: bool = False) -> List[str]:
        try:
            return self.finder(directory or '', recursive) \
                .filter(FinderAttributes.is_dir) \
                .map(lambda attributes: attributes.path) \
                .to_list()
        except FilesystemError as e:
            self._failed(e)
        return []

    def put(self, path: str, contents: Union[Contents, BinaryIO],
            config: Optional[Union[dict, str]] = None) -> bool:
        options = self._combine_options(config)
        try:
            path = self.normalize_path(path)
            if hasattr(contents, 'read'):
                self.adapter.write_stream(path, contents, options)
            else:
                self.adapter.put(path, contents, options)
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None) -> bool:
        if stream.seekable() and stream.tell() != 0:
            stream.seek(0)
        try:
            self.adapter.write_stream(self.normalize_path(path), stream, self._combine_options(config))
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def create_directory(self, path: str, config: Optional[dict] = None) -> bool:
        try:
            self.adapter.create_directory(self.normalize_path(path), self._combine_options(config))
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def delete_directory(self, directory: str) -> bool:
        try:
            self.adapter.delete_directory(self.normalize_path(directory))
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def delete(self, *paths: Union[str, List[str]]) -> bool:
        if len(paths) == 1 and isinstance(paths[0], (list, tuple)):
            paths = tuple(paths[0])

        success = True
        for path in paths:
            try:
                self.adapter.delete(self.normalize_path(path))
            except FilesystemError as e:
                self._failed(e)
                success = False
        return success

    def move(self, source: str, destination: str, config: Optional[dict] = None) -> bool:
        try:
            self.adapter.move(
                self.normalize_path(source),
                self.normalize_path(destination),
                self._move_copy_options(config),
            )
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def copy(self, source: str, destination: str, config: Optional[dict] = None) -> bool:
        try:
            self.adapter.copy(
                self.normalize_path(source),
                self.normalize_path(destination),
                self._move_copy_options(config),
            )
            return True
        except FilesystemError as e:
            self._failed(e)
        return False

    def disconnect(self):
        self.adapter.disconnect()

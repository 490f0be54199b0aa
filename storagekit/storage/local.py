import os
import stat
import shutil
from typing import BinaryIO, Iterator, Optional

from storagekit.exceptions import (
    CopyFileError,
    CreateDirectoryError,
    DeleteDirectoryError,
    DeleteFileError,
    FilesystemError,
    ListContentsError,
    MoveFileError,
    ReadFileError,
    RetrieveMetadataError,
    SetVisibilityError,
    SymbolicLinkEncounteredError,
    WriteFileError,
)
from storagekit.finder.attributes import DirectoryAttributes, FileAttributes, FinderAttributes
from storagekit.logger import fs_log
from storagekit.storage.base import (
    OPTION_DIRECTORY_VISIBILITY,
    OPTION_VISIBILITY,
    Contents,
    StorageAdapter,
)
from storagekit.support.mime_type import MimeTypeDetector, create_mime_type_detector
from storagekit.support.path_prefixer import PathPrefixer
from storagekit.support.visibility import VisibilityConverter

SKIP_LINKS = 0o001
DISALLOW_LINKS = 0o002

LINK_HANDLING = {
    'skip': SKIP_LINKS,
    'disallow': DISALLOW_LINKS,
}


class LocalAdapter(StorageAdapter):
    def __init__(self, root: Optional[str] = None, visibility: Optional[VisibilityConverter] = None,
                 link_handling: int = DISALLOW_LINKS, mime_type_detector: Optional[MimeTypeDetector] = None,
                 finder_mime_type_detect: bool = False):
        self._root = root or ''
        self._prefixer = PathPrefixer(self._root, os.sep)
        self._visibility = visibility or VisibilityConverter()
        self._link_handling = link_handling
        self._mime_type_detector = mime_type_detector or create_mime_type_detector('content')
        self._finder_mime_type_detect = finder_mime_type_detect

    @classmethod
    def from_config(cls, config: dict) -> 'LocalAdapter':
        return cls(
            root=config.get('root'),
            visibility=VisibilityConverter.from_dict(config.get('permissions'), config.get('directory_visibility')),
            link_handling=LINK_HANDLING.get(config.get('link_handling', 'disallow'), DISALLOW_LINKS),
            mime_type_detector=create_mime_type_detector(config.get('mime_type_detector')),
            finder_mime_type_detect=config.get('finder_mime_type_detect', False),
        )

    def _location(self, path: str) -> str:
        path = self.normalize_path(path)
        return self._prefixer.prefix_path(path.replace('/', os.sep))

    def _ensure_root_directory_exists(self):
        if not self._root:
            return
        self._ensure_directory_exists(self._root, self._visibility.default_for_directories())

    def _ensure_directory_exists(self, dirname: str, mode: int):
        if not dirname or os.path.isdir(dirname):
            return

        missing = []
        current = os.path.abspath(dirname)
        while not os.path.isdir(current):
            missing.append(current)
            parent = os.path.dirname(current)
            if parent == current:
                break
            current = parent

        for directory in reversed(missing):
            try:
                os.mkdir(directory, mode)
                os.chmod(directory, mode)
            except FileExistsError:
                if not os.path.isdir(directory):
                    raise CreateDirectoryError.at_location(dirname, f"{directory} exists and is not a directory")
            except OSError as e:
                raise CreateDirectoryError.at_location(dirname, str(e)) from e

    def _resolve_directory_visibility(self, visibility: Optional[str]) -> int:
        if visibility is None:
            return self._visibility.default_for_directories()
        return self._visibility.for_directory(visibility)

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(self._location(path))

    def directory_exists(self, path: str) -> bool:
        return os.path.isdir(self._location(path))

    def put(self, path: str, contents: Contents, config: Optional[dict] = None):
        self._upload(path, self.as_bytes(contents), config or {})

    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None):
        self._upload(path, stream, config or {})

    def _upload(self, path: str, contents, config: dict):
        location = self._location(path)

        try:
            self._ensure_root_directory_exists()
            self._ensure_directory_exists(
                os.path.dirname(location),
                self._resolve_directory_visibility(config.get(OPTION_DIRECTORY_VISIBILITY)),
            )
        except CreateDirectoryError as e:
            raise WriteFileError.at_location(path, 'creating parent directory failed') from e

        try:
            with open(location, 'wb') as f:
                if isinstance(contents, bytes):
                    f.write(contents)
                else:
                    shutil.copyfileobj(contents, f)
        except OSError as e:
            raise WriteFileError.at_location(path, str(e)) from e

        visibility = config.get(OPTION_VISIBILITY)
        if not visibility:
            return

        try:
            self.set_visibility(path, visibility)
        except FilesystemError as e:
            raise WriteFileError.at_location(path, 'setting visibility failed') from e

    def get(self, path: str) -> bytes:
        location = self._location(path)
        try:
            with open(location, 'rb') as f:
                return f.read()
        except OSError as e:
            raise ReadFileError.from_location(path, str(e)) from e

    def read_stream(self, path: str) -> BinaryIO:
        location = self._location(path)
        try:
            return open(location, 'rb')
        except OSError as e:
            raise ReadFileError.from_location(path, str(e)) from e

    def delete(self, path: str):
        location = self._location(path)
        if not os.path.lexists(location):
            return
        try:
            os.remove(location)
        except OSError as e:
            raise DeleteFileError.at_location(path, str(e)) from e

    def delete_directory(self, path: str):
        location = self._location(path)
        if not os.path.isdir(location):
            return

        entries = self._walk(location, child_first=True)
        try:
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        os.rmdir(entry.path)
                    else:
                        os.unlink(entry.path)
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise DeleteDirectoryError.at_location(path, f"Unable to delete file at {entry.path}") from e
        except OSError as e:
            raise DeleteDirectoryError.at_location(path, f"Unable to read directory: {e}") from e

        try:
            os.rmdir(location)
        except OSError as e:
            raise DeleteDirectoryError.at_location(path, str(e)) from e

        fs_log("DELETE_DIRECTORY", f"path={path}", "DEBUG")

    def _walk(self, location: str, child_first: bool = False) -> Iterator[os.DirEntry]:
        try:
            with os.scandir(location) as it:
                entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            return

        for entry in entries:
            descend = entry.is_dir(follow_symlinks=False)
            if not child_first:
                yield entry
            if descend:
                yield from self._walk(entry.path, child_first)
            if child_first:
                yield entry

    def _list_directory(self, location: str) -> Iterator[os.DirEntry]:
        with os.scandir(location) as it:
            entries = sorted(it, key=lambda e: e.name)
        yield from entries

    def finder(self, path: str, deep: bool = False) -> Iterator[FinderAttributes]:
        location = self._location(path)
        if not os.path.isdir(location):
            return

        entries = self._walk(location) if deep else self._list_directory(location)

        try:
            for entry in entries:
                try:
                    attributes = self._build_attributes(entry)
                except (OSError, SymbolicLinkEncounteredError):
                    if os.path.lexists(entry.path):
                        raise
                    continue
                if attributes is not None:
                    yield attributes
        except OSError as e:
            raise ListContentsError.at_location(path, str(e)) from e

    def _build_attributes(self, entry: os.DirEntry) -> Optional[FinderAttributes]:
        if entry.is_symlink():
            if self._link_handling & SKIP_LINKS:
                return None
            raise SymbolicLinkEncounteredError.at_location(entry.path)

        file_stat = entry.stat(follow_symlinks=False)
        logical_path = self._prefixer.strip_prefix(entry.path).replace('\\', '/')
        permissions = stat.S_IMODE(file_stat.st_mode) & 0o777
        last_modified = int(file_stat.st_mtime)

        if stat.S_ISDIR(file_stat.st_mode):
            return DirectoryAttributes(
                logical_path,
                self._visibility.inverse_for_directory(permissions),
                last_modified,
            )

        return FileAttributes(
            logical_path,
            file_stat.st_size,
            self._visibility.inverse_for_file(permissions),
            last_modified,
            self._mime_type_detector.detect_mime_type_from_path(logical_path)
            if self._finder_mime_type_detect else None,
        )

    def move(self, source: str, destination: str, config: Optional[dict] = None):
        config = config or {}
        source_location = self._location(source)
        destination_location = self._location(destination)

        try:
            self._ensure_root_directory_exists()
            self._ensure_directory_exists(
                os.path.dirname(destination_location),
                self._resolve_directory_visibility(config.get(OPTION_DIRECTORY_VISIBILITY)),
            )
        except CreateDirectoryError as e:
            raise MoveFileError.from_location_to(source, destination, str(e)) from e

        try:
            os.replace(source_location, destination_location)
        except OSError as e:
            raise MoveFileError.because(e.strerror or str(e), source, destination) from e

        visibility = config.get(OPTION_VISIBILITY)
        if not visibility:
            return

        try:
            self.set_visibility(destination, visibility)
        except FilesystemError as e:
            raise MoveFileError.from_location_to(source, destination, str(e)) from e

    def copy(self, source: str, destination: str, config: Optional[dict] = None):
        config = config or {}
        source_location = self._location(source)
        destination_location = self._location(destination)

        try:
            self._ensure_root_directory_exists()
            self._ensure_directory_exists(
                os.path.dirname(destination_location),
                self._resolve_directory_visibility(config.get(OPTION_DIRECTORY_VISIBILITY)),
            )
            if source_location != destination_location:
                shutil.copyfile(source_location, destination_location)
        except (OSError, CreateDirectoryError) as e:
            raise CopyFileError.because(str(e), source, destination) from e

        try:
            visibility = config.get(OPTION_VISIBILITY)
            if self.should_retain_visibility(config):
                visibility = self.get_visibility(source).visibility

            if visibility:
                self.set_visibility(destination, visibility)
        except FilesystemError as e:
            raise CopyFileError.from_location_to(source, destination, str(e)) from e

    def create_directory(self, path: str, config: Optional[dict] = None):
        config = config or {}
        self._ensure_root_directory_exists()
        location = self._location(path)
        visibility = config.get(OPTION_DIRECTORY_VISIBILITY) or config.get(OPTION_VISIBILITY)
        mode = self._resolve_directory_visibility(visibility)

        if os.path.isdir(location):
            self._set_permissions(location, mode)
            return

        self._ensure_directory_exists(location, mode)

    def set_visibility(self, path: str, visibility: str):
        location = self._location(path)
        if os.path.isdir(location):
            mode = self._visibility.for_directory(visibility)
        else:
            mode = self._visibility.for_file(visibility)
        self._set_permissions(location, mode)

    def _set_permissions(self, location: str, mode: int):
        try:
            os.chmod(location, mode)
        except OSError as e:
            raise SetVisibilityError.at_location(self._prefixer.strip_prefix(location), str(e)) from e

    def get_visibility(self, path: str) -> FileAttributes:
        location = self._location(path)
        try:
            permissions = os.stat(location).st_mode & 0o777
        except OSError as e:
            raise RetrieveMetadataError.visibility(path, str(e)) from e
        return FileAttributes(path, visibility=self._visibility.inverse_for_file(permissions))

    def mime_type(self, path: str) -> FileAttributes:
        location = self._location(path)
        if not os.path.isfile(location):
            raise RetrieveMetadataError.mime_type(path, 'No such file exists.')

        mime_type = self._mime_type_detector.detect_mime_type_from_file(location)
        if mime_type is None:
            raise RetrieveMetadataError.mime_type(path, 'Unknown.')

        return FileAttributes(path, mime_type=mime_type)

    def last_modified(self, path: str) -> FileAttributes:
        location = self._location(path)
        try:
            last_modified = int(os.path.getmtime(location))
        except OSError as e:
            raise RetrieveMetadataError.last_modified(path, str(e)) from e
        return FileAttributes(path, last_modified=last_modified)

    def size(self, path: str) -> FileAttributes:
        location = self._location(path)
        try:
            if os.path.isfile(location):
                return FileAttributes(path, os.path.getsize(location))
        except OSError as e:
            raise RetrieveMetadataError.size(path, str(e)) from e
        raise RetrieveMetadataError.size(path, 'No such file exists.')

import io
import stat
import tempfile
from typing import BinaryIO, Iterator, Optional

import paramiko

from storagekit.exceptions import (
    CheckDirectoryExistenceError,
    CheckFileExistenceError,
    CopyFileError,
    CreateDirectoryError,
    DeleteDirectoryError,
    DeleteFileError,
    FilesystemError,
    MoveFileError,
    ReadFileError,
    RetrieveMetadataError,
    SetVisibilityError,
    SftpConnectionError,
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
from storagekit.storage.sftp.connection import SftpConnectionProvider
from storagekit.support.mime_type import MimeTypeDetector, create_mime_type_detector
from storagekit.support.path_prefixer import PathPrefixer
from storagekit.support.visibility import VisibilityConverter

SPOOL_MAX_SIZE = 8 * 1024 * 1024

SFTP_ERRORS = (IOError, paramiko.SSHException, EOFError)


class SftpAdapter(StorageAdapter):
    def __init__(self, connection_provider: SftpConnectionProvider, root: str = '',
                 visibility: Optional[VisibilityConverter] = None,
                 mime_type_detector: Optional[MimeTypeDetector] = None,
                 finder_mime_type_detect: bool = False,
                 detect_mime_type_using_path: bool = False):
        self._connection_provider = connection_provider
        self._prefixer = PathPrefixer(root or '')
        self._visibility = visibility or VisibilityConverter()
        self._mime_type_detector = mime_type_detector or create_mime_type_detector('content')
        self._finder_mime_type_detect = finder_mime_type_detect
        self._detect_mime_type_using_path = detect_mime_type_using_path

    @classmethod
    def from_config(cls, config: dict, connection_provider: Optional[SftpConnectionProvider] = None) -> 'SftpAdapter':
        return cls(
            connection_provider or SftpConnectionProvider.from_config(config),
            root=config.get('root') or '',
            visibility=VisibilityConverter.from_dict(config.get('permissions'), config.get('directory_visibility')),
            mime_type_detector=create_mime_type_detector(config.get('mime_type_detector')),
            finder_mime_type_detect=config.get('finder_mime_type_detect', False),
            detect_mime_type_using_path=config.get('detect_mime_type_using_path', False),
        )

    def _connection(self) -> paramiko.SFTPClient:
        return self._connection_provider.provide_connection()

    def _location(self, path: str) -> str:
        return self._prefixer.prefix_path(path)

    def disconnect(self):
        self._connection_provider.disconnect()

    def _stat(self, location: str) -> Optional[paramiko.SFTPAttributes]:
        try:
            return self._connection().stat(location)
        except FileNotFoundError:
            return None

    def file_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        try:
            attributes = self._stat(self._location(path))
        except SFTP_ERRORS as e:
            raise CheckFileExistenceError.for_location(path, str(e)) from e
        return attributes is not None and stat.S_ISREG(attributes.st_mode or 0)

    def directory_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        try:
            attributes = self._stat(self._location(path))
        except SFTP_ERRORS as e:
            raise CheckDirectoryExistenceError.for_location(path, str(e)) from e
        return attributes is not None and stat.S_ISDIR(attributes.st_mode or 0)

    def put(self, path: str, contents: Contents, config: Optional[dict] = None):
        with io.BytesIO(self.as_bytes(contents)) as stream:
            self._upload(path, stream, config or {})

    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None):
        self._upload(path, stream, config or {})

    def _upload(self, path: str, stream: BinaryIO, config: dict):
        path = self.normalize_path(path)

        try:
            self._ensure_parent_directory_exists(path, config.get(OPTION_DIRECTORY_VISIBILITY))
        except FilesystemError as e:
            raise WriteFileError.at_location(path, 'creating parent directory failed') from e

        try:
            self._connection().putfo(stream, self._location(path))
        except SFTP_ERRORS as e:
            raise WriteFileError.at_location(path, f"not able to write the file: {e}") from e

        visibility = config.get(OPTION_VISIBILITY)
        if not visibility:
            return

        try:
            self.set_visibility(path, visibility)
        except FilesystemError as e:
            raise WriteFileError.at_location(path, 'setting visibility failed') from e

    def _ensure_parent_directory_exists(self, path: str, visibility: Optional[str]):
        parent = self.parent_directory(path)
        if parent == '':
            return
        self._make_directory(parent, visibility)

    def _make_directory(self, directory: str, visibility: Optional[str]):
        connection = self._connection()
        mode = (
            self._visibility.for_directory(visibility) if visibility
            else self._visibility.default_for_directories()
        )
        dir_path = ''

        for part in directory.strip('/').split('/'):
            dir_path = part if dir_path == '' else f"{dir_path}/{part}"
            location = self._location(dir_path)
            try:
                existing = self._stat(location)
            except SFTP_ERRORS as e:
                raise CreateDirectoryError.at_location(directory, str(e)) from e

            if existing is not None:
                if stat.S_ISDIR(existing.st_mode or 0):
                    continue
                raise CreateDirectoryError.at_location(directory, f"{dir_path} exists and is not a directory")

            try:
                connection.mkdir(location, mode)
                connection.chmod(location, mode)
            except SFTP_ERRORS as e:
                raise CreateDirectoryError.at_location(directory, str(e)) from e

    def get(self, path: str) -> bytes:
        with self.read_stream(path) as stream:
            return stream.read()

    def read_stream(self, path: str) -> BinaryIO:
        path = self.normalize_path(path)
        buffer = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)

        try:
            self._connection().getfo(self._location(path), buffer)
        except SFTP_ERRORS as e:
            buffer.close()
            raise ReadFileError.from_location(path, str(e)) from e

        buffer.seek(0)
        return buffer

    def delete(self, path: str):
        path = self.normalize_path(path)
        try:
            self._connection().remove(self._location(path))
        except FileNotFoundError:
            return
        except SFTP_ERRORS as e:
            raise DeleteFileError.at_location(path, str(e)) from e

    def delete_directory(self, path: str):
        path = self.normalize_path(path)
        if not self.directory_exists(path):
            return

        connection = self._connection()
        directories = [path]

        for item in self.finder(path, True):
            if item.is_dir():
                directories.append(item.path)
                continue
            try:
                connection.remove(self._location(item.path))
            except SFTP_ERRORS as e:
                raise DeleteDirectoryError.at_location(path, f"unable to delete child {item.path}") from e

        for directory in sorted(directories, reverse=True):
            try:
                connection.rmdir(self._location(directory))
            except SFTP_ERRORS as e:
                raise DeleteDirectoryError.at_location(path, f"Could not delete directory {directory}") from e

        fs_log("DELETE_DIRECTORY", f"path={path} directories={len(directories)}", "DEBUG")

    def create_directory(self, path: str, config: Optional[dict] = None):
        config = config or {}
        self._make_directory(
            self.normalize_path(path),
            config.get(OPTION_DIRECTORY_VISIBILITY) or config.get(OPTION_VISIBILITY),
        )

    def set_visibility(self, path: str, visibility: str):
        path = self.normalize_path(path)
        mode = self._visibility.for_file(visibility)

        try:
            self._connection().chmod(self._location(path), mode)
        except SFTP_ERRORS as e:
            raise SetVisibilityError.at_location(path, str(e)) from e

    def _fetch_file_metadata(self, path: str, metadata_type: str) -> FileAttributes:
        path = self.normalize_path(path)

        try:
            attributes = self._connection().stat(self._location(path))
        except SFTP_ERRORS as e:
            raise RetrieveMetadataError.create(path, metadata_type, str(e)) from e

        converted = self._convert_to_attributes(path, attributes)

        if not isinstance(converted, FileAttributes):
            raise RetrieveMetadataError.create(path, metadata_type, 'path is not a file')

        return converted

    def last_modified(self, path: str) -> FileAttributes:
        attributes = self._fetch_file_metadata(path, 'last_modified')
        return FileAttributes(attributes.path, last_modified=attributes.last_modified)

    def size(self, path: str) -> FileAttributes:
        attributes = self._fetch_file_metadata(path, 'file_size')
        return FileAttributes(attributes.path, attributes.file_size)

    def get_visibility(self, path: str) -> FileAttributes:
        attributes = self._fetch_file_metadata(path, 'visibility')
        return FileAttributes(attributes.path, visibility=attributes.visibility)

    def mime_type(self, path: str) -> FileAttributes:
        path = self.normalize_path(path)
        try:
            if self._detect_mime_type_using_path:
                mime_type = self._mime_type_detector.detect_mime_type_from_path(path)
            else:
                mime_type = self._mime_type_detector.detect_mime_type(path, self.get(path))
        except FilesystemError as e:
            raise RetrieveMetadataError.mime_type(path, str(e)) from e

        if mime_type is None:
            raise RetrieveMetadataError.mime_type(path, 'Unknown.')

        return FileAttributes(path, mime_type=mime_type)

    def finder(self, path: str, deep: bool = False) -> Iterator[FinderAttributes]:
        path = self.normalize_path(path)
        location = self._prefixer.prefix_directory_path(path)

        try:
            listing = self._connection().listdir_attr(location or '.')
        except FileNotFoundError:
            return
        except SFTP_ERRORS as e:
            raise SftpConnectionError(f"Unable to list directory {path}", path=path, reason=str(e)) from e

        for entry in listing:
            if entry.filename in ('.', '..'):
                continue

            child = entry.filename if path == '' else f"{path}/{entry.filename}"
            attributes = self._convert_to_attributes(child, entry)
            yield attributes

            if deep and attributes.is_dir():
                yield from self.finder(attributes.path, True)

    def _convert_to_attributes(self, path: str, attributes: paramiko.SFTPAttributes) -> FinderAttributes:
        st_mode = attributes.st_mode or 0
        permissions = st_mode & 0o777
        last_modified = attributes.st_mtime

        if stat.S_ISDIR(st_mode):
            return DirectoryAttributes(
                path,
                self._visibility.inverse_for_directory(permissions),
                last_modified,
            )

        return FileAttributes(
            path,
            attributes.st_size,
            self._visibility.inverse_for_file(permissions),
            last_modified,
            self._mime_type_detector.detect_mime_type_from_path(path)
            if self._finder_mime_type_detect else None,
        )

    def move(self, source: str, destination: str, config: Optional[dict] = None):
        config = config or {}
        source = self.normalize_path(source)
        destination = self.normalize_path(destination)
        source_location = self._location(source)
        destination_location = self._location(destination)

        try:
            self._ensure_parent_directory_exists(destination, config.get(OPTION_DIRECTORY_VISIBILITY))
        except FilesystemError as e:
            raise MoveFileError.from_location_to(source, destination, str(e)) from e

        if source_location == destination_location:
            return

        connection = self._connection()
        try:
            connection.rename(source_location, destination_location)
            return
        except SFTP_ERRORS as e:
            try:
                destination_exists = self.file_exists(destination)
            except FilesystemError:
                destination_exists = False
            if not destination_exists:
                raise MoveFileError.because(str(e) or 'reason unknown', source, destination) from e

        try:
            self.delete(destination)
        except FilesystemError as e:
            raise MoveFileError.from_location_to(source, destination, str(e)) from e

        try:
            connection.rename(source_location, destination_location)
        except SFTP_ERRORS as e:
            raise MoveFileError.because(str(e) or 'reason unknown', source, destination) from e

    def copy(self, source: str, destination: str, config: Optional[dict] = None):
        copy_config = dict(config or {})

        try:
            with self.read_stream(source) as stream:
                if self.should_retain_visibility(copy_config):
                    copy_config[OPTION_VISIBILITY] = self.get_visibility(source).visibility
                self.write_stream(destination, stream, copy_config)
        except FilesystemError as e:
            raise CopyFileError.from_location_to(source, destination, str(e)) from e

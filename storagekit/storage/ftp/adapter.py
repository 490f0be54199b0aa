import io
import time
import ftplib
import calendar
import tempfile
from typing import BinaryIO, Iterator, List, Optional

from storagekit.exceptions import (
    CheckDirectoryExistenceError,
    CopyFileError,
    CreateDirectoryError,
    DeleteDirectoryError,
    DeleteFileError,
    FilesystemError,
    FtpConnectionError,
    FtpResolveConnectionRootError,
    MoveFileError,
    ReadFileError,
    RetrieveMetadataError,
    SetVisibilityError,
    WriteFileError,
)
from storagekit.finder.attributes import DirectoryAttributes, FileAttributes, FinderAttributes
from storagekit.logger import fs_log
from storagekit.storage.base import (
    OPTION_DIRECTORY_VISIBILITY,
    OPTION_SYSTEM_TYPE,
    OPTION_VISIBILITY,
    Contents,
    StorageAdapter,
)
from storagekit.storage.ftp.connection import (
    TRANSFER_MODE_ASCII,
    FtpConnectionOptions,
    FtpConnectionProvider,
    FtpConnectivityChecker,
    NoopCommandConnectivityChecker,
    create_connectivity_checker,
)
from storagekit.storage.ftp.listing import FtpListingParser
from storagekit.support.mime_type import MimeTypeDetector, create_mime_type_detector
from storagekit.support.path_prefixer import PathPrefixer
from storagekit.support.visibility import VisibilityConverter

SPOOL_MAX_SIZE = 8 * 1024 * 1024


class FtpAdapter(StorageAdapter):
    def __init__(self, options: FtpConnectionOptions,
                 connection_provider: Optional[FtpConnectionProvider] = None,
                 connectivity_checker: Optional[FtpConnectivityChecker] = None,
                 visibility: Optional[VisibilityConverter] = None,
                 mime_type_detector: Optional[MimeTypeDetector] = None,
                 finder_mime_type_detect: bool = False,
                 detect_mime_type_using_path: bool = False):
        self._options = options
        self._connection_provider = connection_provider or FtpConnectionProvider()
        self._connectivity_checker = connectivity_checker or NoopCommandConnectivityChecker()
        self._visibility = visibility or VisibilityConverter()
        self._mime_type_detector = mime_type_detector or create_mime_type_detector('content')
        self._detect_mime_type_using_path = detect_mime_type_using_path
        self._parser = FtpListingParser(
            self._visibility,
            options.system_type,
            options.timestamps_on_unix_listings_enabled,
            self._mime_type_detector if finder_mime_type_detect else None,
        )

        self._ftp: Optional[ftplib.FTP] = None
        self._root_directory: Optional[str] = None
        self._path_prefixer: Optional[PathPrefixer] = None
        self._is_pure_ftpd: Optional[bool] = None
        self._use_raw_list_options: Optional[bool] = options.use_raw_list_options

    @classmethod
    def from_config(cls, config: dict, connection_provider: Optional[FtpConnectionProvider] = None) -> 'FtpAdapter':
        return cls(
            FtpConnectionOptions.from_config(config),
            connection_provider=connection_provider,
            connectivity_checker=create_connectivity_checker(config.get('connectivity_checker')),
            visibility=VisibilityConverter.from_dict(config.get('permissions'), config.get('directory_visibility')),
            mime_type_detector=create_mime_type_detector(config.get('mime_type_detector')),
            finder_mime_type_detect=config.get('finder_mime_type_detect', False),
            detect_mime_type_using_path=config.get('detect_mime_type_using_path', False),
        )

    def _connection(self) -> ftplib.FTP:
        if self._ftp is None:
            return self._connect()

        if not self._connectivity_checker.is_connected(self._ftp):
            fs_log("RECONNECT", f"host={self._options.host} reason=connectivity_check_failed", "WARNING")
            self._close_connection()
            return self._connect()

        try:
            self._ftp.cwd(self._root_directory)
        except ftplib.all_errors as e:
            raise FtpResolveConnectionRootError.it_does_not_exist(self._root_directory, str(e)) from e

        return self._ftp

    def _connect(self) -> ftplib.FTP:
        connection = self._connection_provider.create_connection(self._options)
        try:
            root_directory = self._resolve_connection_root(connection)
        except FtpResolveConnectionRootError:
            _close_quietly(connection)
            raise

        self._ftp = connection
        self._root_directory = root_directory
        self._path_prefixer = PathPrefixer(root_directory)
        fs_log("ROOT", f"host={self._options.host} root={root_directory}", "DEBUG")
        return connection

    def _resolve_connection_root(self, connection: ftplib.FTP) -> str:
        root = self._options.root

        if root != '':
            try:
                connection.cwd(root)
            except ftplib.all_errors as e:
                raise FtpResolveConnectionRootError.it_does_not_exist(root, str(e)) from e

        try:
            return connection.pwd()
        except ftplib.all_errors as e:
            raise FtpResolveConnectionRootError.could_not_get_current_directory(str(e)) from e

    def disconnect(self):
        if self._ftp is None:
            return
        self._close_connection()
        fs_log("DISCONNECT", f"host={self._options.host}")

    def _close_connection(self):
        _close_quietly(self._ftp)
        self._ftp = None

    def _prefixer(self) -> PathPrefixer:
        if self._root_directory is None:
            self._connection()
        return self._path_prefixer

    def _location(self, path: str) -> str:
        return self._prefixer().prefix_path(path)

    def _is_pure_ftpd_server(self) -> bool:
        if self._is_pure_ftpd is not None:
            return self._is_pure_ftpd

        response = self._raw_command(self._connection(), 'HELP')
        self._is_pure_ftpd = 'pure-ftpd' in response.lower()
        fs_log("PROBE", f"host={self._options.host} pure_ftpd={self._is_pure_ftpd}", "DEBUG")
        return self._is_pure_ftpd

    def _is_server_supporting_list_options(self) -> bool:
        if self._use_raw_list_options is not None:
            return self._use_raw_list_options

        syst = self._raw_command(self._connection(), 'SYST').lower()
        self._use_raw_list_options = 'filezilla' not in syst and 'l8' not in syst
        fs_log("PROBE", f"host={self._options.host} list_options={self._use_raw_list_options}", "DEBUG")
        return self._use_raw_list_options

    def _raw_command(self, connection: ftplib.FTP, command: str) -> str:
        try:
            return connection.sendcmd(command)
        except ftplib.Error as e:
            return str(e)
        except ftplib.all_errors as e:
            raise FtpConnectionError(
                f"Unable to send {command} to {self._options.host}", reason=str(e) or type(e).__name__
            ) from e

    def file_exists(self, path: str) -> bool:
        try:
            self.size(path)
            return True
        except RetrieveMetadataError:
            return False

    def directory_exists(self, path: str) -> bool:
        path = self.normalize_path(path)
        location = self._location(path)
        connection = self._connection()

        try:
            connection.cwd(location)
            return True
        except ftplib.error_perm:
            return False
        except ftplib.all_errors as e:
            raise CheckDirectoryExistenceError.for_location(path, str(e)) from e

    def put(self, path: str, contents: Contents, config: Optional[dict] = None):
        with io.BytesIO(self.as_bytes(contents)) as stream:
            self.write_stream(path, stream, config)

    def write_stream(self, path: str, stream: BinaryIO, config: Optional[dict] = None):
        config = config or {}
        path = self.normalize_path(path)

        try:
            self._ensure_parent_directory_exists(path, config.get(OPTION_DIRECTORY_VISIBILITY))
        except FilesystemError as e:
            raise WriteFileError.at_location(path, 'creating parent directory failed') from e

        location = self._location(path)
        connection = self._connection()

        try:
            if self._options.transfer_mode == TRANSFER_MODE_ASCII:
                connection.storlines(f"STOR {location}", stream)
            else:
                connection.storbinary(f"STOR {location}", stream)
        except ftplib.all_errors as e:
            raise WriteFileError.at_location(path, 'writing the file failed') from e

        visibility = config.get(OPTION_VISIBILITY)
        if not visibility:
            return

        try:
            self.set_visibility(path, visibility)
        except FilesystemError as e:
            raise WriteFileError.at_location(path, 'setting visibility failed') from e

    def get(self, path: str) -> bytes:
        with self.read_stream(path) as stream:
            return stream.read()

    def read_stream(self, path: str) -> BinaryIO:
        path = self.normalize_path(path)
        location = self._location(path)
        connection = self._connection()
        buffer = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)

        try:
            if self._options.transfer_mode == TRANSFER_MODE_ASCII:
                encoding = connection.encoding
                connection.retrlines(f"RETR {location}", lambda line: buffer.write((line + '\n').encode(encoding)))
            else:
                connection.retrbinary(f"RETR {location}", buffer.write)
        except ftplib.all_errors as e:
            buffer.close()
            raise ReadFileError.from_location(path, str(e)) from e

        buffer.seek(0)
        return buffer

    def delete(self, path: str):
        path = self.normalize_path(path)
        connection = self._connection()
        self._delete_file(path, connection)

    def _delete_file(self, path: str, connection: ftplib.FTP):
        location = self._location(path)
        try:
            connection.delete(location)
        except ftplib.all_errors as e:
            if self._remote_size(connection, location) is not None:
                raise DeleteFileError.at_location(path, 'the file still exists') from e

    def delete_directory(self, path: str):
        path = self.normalize_path(path)
        contents = self.finder(path, True)
        connection = self._connection()
        directories = [path]

        for item in contents:
            if item.is_dir():
                directories.append(item.path)
                continue
            try:
                self._delete_file(item.path, connection)
            except FilesystemError as e:
                raise DeleteDirectoryError.at_location(path, f"unable to delete child {item.path}") from e

        for directory in sorted(directories, reverse=True):
            try:
                connection.rmd(self._location(directory))
            except ftplib.all_errors as e:
                raise DeleteDirectoryError.at_location(path, f"Could not delete directory {directory}") from e

        fs_log("DELETE_DIRECTORY", f"path={path} directories={len(directories)}", "DEBUG")

    def create_directory(self, path: str, config: Optional[dict] = None):
        config = config or {}
        self._ensure_directory_exists(
            self.normalize_path(path),
            config.get(OPTION_DIRECTORY_VISIBILITY) or config.get(OPTION_VISIBILITY),
        )

    def _ensure_parent_directory_exists(self, path: str, visibility: Optional[str]):
        dirname = self.parent_directory(path)
        if dirname == '':
            return
        self._ensure_directory_exists(dirname, visibility)

    def _ensure_directory_exists(self, dirname: str, visibility: Optional[str]):
        connection = self._connection()
        mode = self._visibility.for_directory(visibility) if visibility else None
        dir_path = ''

        for part in dirname.strip('/').split('/'):
            dir_path = part if dir_path == '' else f"{dir_path}/{part}"
            location = self._location(dir_path)

            try:
                connection.cwd(location)
                continue
            except ftplib.error_perm:
                pass
            except ftplib.all_errors as e:
                raise CreateDirectoryError.at_location(dir_path, str(e) or 'unable to check the directory') from e

            try:
                connection.mkd(location)
            except ftplib.all_errors as e:
                raise CreateDirectoryError.at_location(dir_path, str(e) or 'unable to create the directory') from e

            if mode is None:
                continue

            try:
                connection.sendcmd(f"SITE CHMOD {mode:o} {location}")
            except ftplib.all_errors as e:
                raise CreateDirectoryError.at_location(dir_path, f"unable to chmod the directory: {e}") from e

    def set_visibility(self, path: str, visibility: str):
        path = self.normalize_path(path)
        location = self._location(path)
        mode = self._visibility.for_file(visibility)

        try:
            self._connection().sendcmd(f"SITE CHMOD {mode:o} {location}")
        except ftplib.all_errors as e:
            raise SetVisibilityError.at_location(path, str(e)) from e

    def _fetch_metadata(self, path: str, metadata_type: str) -> FileAttributes:
        path = self.normalize_path(path)
        location = self._location(path)

        if self._is_pure_ftpd_server():
            location = _escape_path(location)

        try:
            lines = self._connection().sendcmd(f"STAT {location}").splitlines()
        except ftplib.all_errors as e:
            raise RetrieveMetadataError.create(path, metadata_type, str(e)) from e

        if len(lines) < 3 or lines[1].startswith('ftpd:'):
            raise RetrieveMetadataError.create(path, metadata_type, 'unexpected STAT response')

        attributes = self._parser.normalize_object(lines[1], '')

        if not isinstance(attributes, FileAttributes):
            found = 'directory found' if isinstance(attributes, DirectoryAttributes) else 'nothing found'
            raise RetrieveMetadataError.create(path, metadata_type, f"expected file, {found}")

        return attributes.with_path(path)

    def get_visibility(self, path: str) -> FileAttributes:
        attributes = self._fetch_metadata(path, 'visibility')
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

    def last_modified(self, path: str) -> FileAttributes:
        path = self.normalize_path(path)
        location = self._location(path)

        try:
            response = self._connection().voidcmd(f"MDTM {location}")
            timestamp = calendar.timegm(time.strptime(response[4:].strip()[:14], '%Y%m%d%H%M%S'))
        except (ValueError, *ftplib.all_errors) as e:
            raise RetrieveMetadataError.last_modified(path, str(e)) from e

        return FileAttributes(path, last_modified=timestamp)

    def size(self, path: str) -> FileAttributes:
        path = self.normalize_path(path)
        location = self._location(path)
        connection = self._connection()

        try:
            connection.voidcmd('TYPE I')
            file_size = connection.size(location)
        except ftplib.all_errors as e:
            raise RetrieveMetadataError.size(path, str(e)) from e

        if file_size is None or file_size < 0:
            raise RetrieveMetadataError.size(path, 'unexpected SIZE response')

        return FileAttributes(path, file_size)

    @staticmethod
    def _remote_size(connection: ftplib.FTP, location: str) -> Optional[int]:
        try:
            connection.voidcmd('TYPE I')
            return connection.size(location)
        except ftplib.all_errors:
            return None

    def finder(self, path: str, deep: bool = False) -> Iterator[FinderAttributes]:
        path = self.normalize_path(path)
        path = '' if path == '' else path + '/'

        if deep and self._options.recurse_manually:
            yield from self._list_directory_contents_recursive(path)
            return

        location = self._location(path)
        listing = self._raw_list('-alnR' if deep else '-aln', location)
        yield from self._parser.normalize_listing(listing, path, self._logical_base)

    def _list_directory_contents_recursive(self, directory: str) -> Iterator[FinderAttributes]:
        listing = self._raw_list('-aln', self._location(directory))

        for item in self._parser.normalize_listing(listing, directory):
            yield item

            if item.is_dir():
                yield from self._list_directory_contents_recursive(item.path)

    def _logical_base(self, header: str) -> str:
        # -R block headers are server paths, not logical ones
        prefix = self._prefixer().prefix
        if prefix and (header + '/').startswith(prefix):
            return (header + '/')[len(prefix):].rstrip('/')
        return header

    def _raw_list(self, options: str, path: str) -> List[str]:
        path = path.rstrip('/') + '/'
        connection = self._connection()

        if self._is_pure_ftpd_server():
            path = _escape_path(path.replace(' ', '\\ '))

        if not self._is_server_supporting_list_options():
            options = ''

        command = f"LIST {options} {path}" if options else f"LIST {path}"
        lines: List[str] = []

        try:
            connection.retrlines(command, lines.append)
        except ftplib.error_perm:
            # 5xx: missing or empty directory
            return []
        except ftplib.all_errors as e:
            raise FtpConnectionError(f"Unable to list {path}", path=path, reason=str(e)) from e

        return lines

    def move(self, source: str, destination: str, config: Optional[dict] = None):
        config = config or {}
        source = self.normalize_path(source)
        destination = self.normalize_path(destination)

        try:
            self._ensure_parent_directory_exists(destination, config.get(OPTION_DIRECTORY_VISIBILITY))
        except FilesystemError as e:
            raise MoveFileError.from_location_to(source, destination, str(e)) from e

        source_location = self._location(source)
        destination_location = self._location(destination)
        connection = self._connection()

        try:
            connection.rename(source_location, destination_location)
        except ftplib.all_errors as e:
            raise MoveFileError.because(str(e) or 'reason unknown', source, destination) from e

    def copy(self, source: str, destination: str, config: Optional[dict] = None):
        copy_config = {OPTION_SYSTEM_TYPE: self._options.system_type}
        copy_config.update(config or {})

        try:
            with self.read_stream(source) as stream:
                if self.should_retain_visibility(copy_config):
                    copy_config[OPTION_VISIBILITY] = self.get_visibility(source).visibility
                self.write_stream(destination, stream, copy_config)
        except FilesystemError as e:
            raise CopyFileError.from_location_to(source, destination, str(e)) from e


def _escape_path(path: str) -> str:
    return path.replace('*', '\\*').replace('[', '\\[').replace(']', '\\]')


def _close_quietly(connection: Optional[ftplib.FTP]):
    if connection is None:
        return
    try:
        connection.close()
    except ftplib.all_errors:
        pass

from typing import Optional


class FilesystemError(Exception):
    """Base error for every adapter operation."""

    operation = 'UNKNOWN'

    def __init__(self, message: str, path: Optional[str] = None, reason: str = ''):
        super().__init__(message)
        self.path = path
        self.reason = reason


class FilesystemConnectionError(FilesystemError):
    operation = 'CONNECT'


class FtpConnectionError(FilesystemConnectionError):
    pass


class FtpConnectToHostError(FtpConnectionError):
    @classmethod
    def for_host(cls, host: str, port: int, ssl: bool, reason: str = '') -> 'FtpConnectToHostError':
        using_ssl = ', using ssl' if ssl else ''
        return cls(f"Unable to connect to host {host} at port {port}{using_ssl}. {reason}".rstrip(), reason=reason)


class FtpAuthenticateError(FtpConnectionError):
    def __init__(self, message: str = 'Unable to login/authenticate with FTP', reason: str = ''):
        super().__init__(message, reason=reason)


class FtpEnableUtf8ModeError(FtpConnectionError):
    pass


class FtpSetOptionError(FtpConnectionError):
    @classmethod
    def while_setting_option(cls, option: str) -> 'FtpSetOptionError':
        return cls(f"Unable to set FTP option {option}.")


class FtpMakeConnectionPassiveError(FtpConnectionError):
    pass


class FtpResolveConnectionRootError(FtpConnectionError):
    @classmethod
    def it_does_not_exist(cls, root: str, reason: str = '') -> 'FtpResolveConnectionRootError':
        return cls(
            f"Unable to resolve connection root. It does not seem to exist: {root}\nreason: {reason}",
            path=root,
            reason=reason,
        )

    @classmethod
    def could_not_get_current_directory(cls, reason: str = '') -> 'FtpResolveConnectionRootError':
        return cls(
            f"Unable to resolve connection root. Could not resolve the current directory. {reason}".rstrip(),
            reason=reason,
        )


class SftpConnectionError(FilesystemConnectionError):
    pass


class SftpConnectToHostError(SftpConnectionError):
    @classmethod
    def for_host(cls, host: str, reason: str = '') -> 'SftpConnectToHostError':
        return cls(f"Unable to connect to host: {host}", reason=reason)


class SftpAuthenticateError(SftpConnectionError):
    @classmethod
    def using_password(cls, reason: str = '') -> 'SftpAuthenticateError':
        return cls('Unable to authenticate using a password.', reason=reason)

    @classmethod
    def using_private_key(cls, reason: str = '') -> 'SftpAuthenticateError':
        return cls('Unable to authenticate using a private key.', reason=reason)

    @classmethod
    def using_agent(cls, reason: str = '') -> 'SftpAuthenticateError':
        return cls('Unable to authenticate using an SSH agent.', reason=reason)


class SftpEstablishAuthenticityOfHostError(SftpConnectionError):
    @classmethod
    def for_host(cls, host: str) -> 'SftpEstablishAuthenticityOfHostError':
        return cls(f"The authenticity of host {host} can't be established.")


class SftpLoadPrivateKeyError(SftpConnectionError):
    def __init__(self, message: str = 'Unable to load private key.', reason: str = ''):
        super().__init__(message, reason=reason)


class CheckExistenceError(FilesystemError):
    operation = 'EXISTENCE_CHECK'

    @classmethod
    def for_location(cls, path: str, reason: str = '') -> 'CheckExistenceError':
        return cls(f"Unable to check existence for: {path}", path=path, reason=reason)


class CheckFileExistenceError(CheckExistenceError):
    operation = 'FILE_EXISTS'


class CheckDirectoryExistenceError(CheckExistenceError):
    operation = 'DIRECTORY_EXISTS'


class ReadFileError(FilesystemError):
    operation = 'READ'

    @classmethod
    def from_location(cls, path: str, reason: str = '') -> 'ReadFileError':
        return cls(f"Unable to read file from path: {path}. {reason}".rstrip(), path=path, reason=reason)


class WriteFileError(FilesystemError):
    operation = 'WRITE'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'WriteFileError':
        return cls(f"Unable to write file at location: {path}. {reason}".rstrip(), path=path, reason=reason)


class RetrieveMetadataError(FilesystemError):
    operation = 'RETRIEVE_METADATA'

    def __init__(self, message: str, path: Optional[str] = None, reason: str = '',
                 metadata_type: str = ''):
        super().__init__(message, path=path, reason=reason)
        self.metadata_type = metadata_type

    @classmethod
    def create(cls, path: str, metadata_type: str, reason: str = '') -> 'RetrieveMetadataError':
        message = f"Unable to retrieve the {metadata_type} for file at path: {path}. {reason}".rstrip()
        return cls(message, path=path, reason=reason, metadata_type=metadata_type)

    @classmethod
    def size(cls, path: str, reason: str = '') -> 'RetrieveMetadataError':
        return cls.create(path, 'file_size', reason)

    @classmethod
    def visibility(cls, path: str, reason: str = '') -> 'RetrieveMetadataError':
        return cls.create(path, 'visibility', reason)

    @classmethod
    def last_modified(cls, path: str, reason: str = '') -> 'RetrieveMetadataError':
        return cls.create(path, 'last_modified', reason)

    @classmethod
    def mime_type(cls, path: str, reason: str = '') -> 'RetrieveMetadataError':
        return cls.create(path, 'mime_type', reason)


class SetVisibilityError(FilesystemError):
    operation = 'SET_VISIBILITY'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'SetVisibilityError':
        return cls(f"Unable to set visibility for file {path}. {reason}".rstrip(), path=path, reason=reason)


class CreateDirectoryError(FilesystemError):
    operation = 'CREATE_DIRECTORY'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'CreateDirectoryError':
        return cls(f"Unable to create a directory at {path}. {reason}".rstrip(), path=path, reason=reason)


class DeleteFileError(FilesystemError):
    operation = 'DELETE'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'DeleteFileError':
        return cls(f"Unable to delete file located at: {path}. {reason}".rstrip(), path=path, reason=reason)


class DeleteDirectoryError(FilesystemError):
    operation = 'DELETE_DIRECTORY'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'DeleteDirectoryError':
        return cls(f"Unable to delete directory located at: {path}. {reason}".rstrip(), path=path, reason=reason)


class ListContentsError(FilesystemError):
    operation = 'LIST'

    @classmethod
    def at_location(cls, path: str, reason: str = '') -> 'ListContentsError':
        return cls(f"Unable to list contents of directory located at: {path}. {reason}".rstrip(), path=path, reason=reason)


class _TransferError(FilesystemError):
    verb = 'transfer'

    def __init__(self, message: str, source: str, destination: str, reason: str = ''):
        super().__init__(message, path=source, reason=reason)
        self.source = source
        self.destination = destination

    @classmethod
    def from_location_to(cls, source: str, destination: str, reason: str = ''):
        message = reason or f"Unable to {cls.verb} file from {source} to {destination}"
        return cls(message, source, destination, reason)

    @classmethod
    def because(cls, reason: str, source: str, destination: str):
        return cls(
            f"Unable to {cls.verb} file from {source} to {destination}, because {reason}",
            source, destination, reason,
        )


class MoveFileError(_TransferError):
    operation = 'MOVE'
    verb = 'move'


class CopyFileError(_TransferError):
    operation = 'COPY'
    verb = 'copy'


class FtpInvalidListResponseError(FilesystemError):
    operation = 'LIST'


class InvalidVisibilityError(FilesystemError, ValueError):
    operation = 'VISIBILITY'

    @classmethod
    def with_visibility(cls, visibility, expected: str) -> 'InvalidVisibilityError':
        return cls(f"Invalid visibility provided. Expected {expected}, received {visibility!r}")


class PathTraversalError(FilesystemError):
    operation = 'NORMALIZE'

    @classmethod
    def for_path(cls, path: str) -> 'PathTraversalError':
        return cls(f"Path traversal detected: {path}", path=path)


class CorruptedPathError(FilesystemError):
    operation = 'NORMALIZE'

    @classmethod
    def for_path(cls, path: str) -> 'CorruptedPathError':
        return cls(f"Corrupted path detected: {path!r}", path=path)


class SymbolicLinkEncounteredError(FilesystemError):
    operation = 'LIST'

    @classmethod
    def at_location(cls, path: str) -> 'SymbolicLinkEncounteredError':
        return cls(f"Unsupported symbolic link encountered at path {path}", path=path)

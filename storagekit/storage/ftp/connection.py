import ftplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from storagekit.exceptions import (
    FtpAuthenticateError,
    FtpConnectionError,
    FtpConnectToHostError,
    FtpEnableUtf8ModeError,
    FtpMakeConnectionPassiveError,
    FtpSetOptionError,
)
from storagekit.logger import fs_log

TRANSFER_MODE_BINARY = 'binary'
TRANSFER_MODE_ASCII = 'ascii'


@dataclass
class FtpConnectionOptions:
    host: str
    root: str = ''
    username: str = ''
    password: str = ''
    port: int = 21
    ssl: bool = False
    timeout: int = 90
    utf8: bool = False
    passive: bool = True
    transfer_mode: str = TRANSFER_MODE_BINARY
    system_type: Optional[str] = None
    ignore_passive_address: Optional[bool] = None
    timestamps_on_unix_listings_enabled: bool = True
    recurse_manually: bool = True
    use_raw_list_options: Optional[bool] = None

    @classmethod
    def from_config(cls, config: dict) -> 'FtpConnectionOptions':
        return cls(
            host=config.get('host') or '',
            root=config.get('root') or '',
            username=config.get('username') or '',
            password=config.get('password') or '',
            port=int(config.get('port') or 21),
            ssl=bool(config.get('ssl', False)),
            timeout=int(config.get('timeout') or 90),
            utf8=bool(config.get('utf8', False)),
            passive=bool(config.get('passive', True)),
            transfer_mode=config.get('transfer_mode') or TRANSFER_MODE_BINARY,
            system_type=config.get('system_type'),
            ignore_passive_address=config.get('ignore_passive_address'),
            timestamps_on_unix_listings_enabled=bool(config.get('timestamps_on_unix_listings_enabled', True)),
            recurse_manually=bool(config.get('recurse_manually', True)),
            use_raw_list_options=config.get('use_raw_list_options'),
        )


class FtpConnectionProvider:
    """Opens, authenticates and configures a fresh ``ftplib`` connection."""

    def create_connection(self, options: FtpConnectionOptions) -> ftplib.FTP:
        connection = self._connect(options)

        try:
            self._authenticate(options, connection)
            self._enable_utf8_mode(options, connection)
            self._ignore_passive_address(options, connection)
            self._make_connection_passive(options, connection)
        except FtpConnectionError:
            self._close_quietly(connection)
            raise

        fs_log("CONNECT", f"host={options.host} port={options.port} ssl={options.ssl}")
        return connection

    def _connect(self, options: FtpConnectionOptions) -> ftplib.FTP:
        connection = ftplib.FTP_TLS() if options.ssl else ftplib.FTP()
        try:
            connection.connect(options.host, options.port, options.timeout)
        except ftplib.all_errors as e:
            self._close_quietly(connection)
            raise FtpConnectToHostError.for_host(options.host, options.port, options.ssl, str(e)) from e
        return connection

    def _authenticate(self, options: FtpConnectionOptions, connection: ftplib.FTP):
        try:
            connection.login(options.username, options.password)
            if isinstance(connection, ftplib.FTP_TLS):
                connection.prot_p()
        except ftplib.all_errors as e:
            raise FtpAuthenticateError(reason=str(e)) from e

    def _enable_utf8_mode(self, options: FtpConnectionOptions, connection: ftplib.FTP):
        if not options.utf8:
            return

        try:
            response = connection.sendcmd('OPTS UTF8 ON')
        except ftplib.all_errors as e:
            response = str(e)

        if response[:3] not in ('200', '202'):
            raise FtpEnableUtf8ModeError(
                f"Could not set UTF-8 mode for connection: {options.host}::{options.port}",
                reason=response,
            )
        connection.encoding = 'utf-8'

    def _ignore_passive_address(self, options: FtpConnectionOptions, connection: ftplib.FTP):
        if not isinstance(options.ignore_passive_address, bool):
            return

        if not hasattr(connection, 'trust_server_pasv_ipv4_address'):
            raise FtpSetOptionError.while_setting_option('trust_server_pasv_ipv4_address')
        connection.trust_server_pasv_ipv4_address = not options.ignore_passive_address

    def _make_connection_passive(self, options: FtpConnectionOptions, connection: ftplib.FTP):
        try:
            connection.set_pasv(options.passive)
        except (AttributeError, TypeError) as e:
            raise FtpMakeConnectionPassiveError(
                f"Could not set passive mode for connection: {options.host}::{options.port}",
                reason=str(e),
            ) from e

    @staticmethod
    def _close_quietly(connection: ftplib.FTP):
        try:
            connection.close()
        except ftplib.all_errors:
            pass


class FtpConnectivityChecker(ABC):
    @abstractmethod
    def is_connected(self, connection: ftplib.FTP) -> bool:
        pass


class NoopCommandConnectivityChecker(FtpConnectivityChecker):
    def is_connected(self, connection: ftplib.FTP) -> bool:
        try:
            response = connection.sendcmd('NOOP')
        except ftplib.all_errors:
            return False
        return response[:3] == '200'


class RawListFtpConnectivityChecker(FtpConnectivityChecker):
    """Treats a connection as alive when a plain ``LIST`` goes through."""

    def is_connected(self, connection: ftplib.FTP) -> bool:
        try:
            connection.retrlines('LIST ./', lambda line: None)
        except ftplib.all_errors:
            return False
        return True


CONNECTIVITY_CHECKERS = {
    'noop': NoopCommandConnectivityChecker,
    'raw_list': RawListFtpConnectivityChecker,
}


def create_connectivity_checker(name: Optional[str]) -> FtpConnectivityChecker:
    return CONNECTIVITY_CHECKERS.get(name or 'noop', NoopCommandConnectivityChecker)()

import io
import os
import base64
import hashlib
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from storagekit.exceptions import (
    SftpAuthenticateError,
    SftpConnectToHostError,
    SftpEstablishAuthenticityOfHostError,
    SftpLoadPrivateKeyError,
)
from storagekit.logger import fs_log

SUPPORTED_KEY_TYPES = ('rsa', 'ecdsa', 'ed25519')


@dataclass
class SftpConnectionOptions:
    host: str
    username: str = ''
    password: Optional[str] = None
    private_key: Optional[str] = None
    passphrase: Optional[str] = None
    use_agent: bool = False
    port: int = 22
    timeout: int = 30
    max_tries: int = 4
    host_fingerprint: Optional[str] = None
    use_ping: bool = False

    @classmethod
    def from_config(cls, config: dict) -> 'SftpConnectionOptions':
        return cls(
            host=config.get('host') or '',
            username=config.get('username') or '',
            password=config.get('password'),
            private_key=config.get('private_key'),
            passphrase=config.get('passphrase'),
            use_agent=bool(config.get('use_agent', False)),
            port=int(config.get('port') or 22),
            timeout=int(config.get('timeout') or 30),
            max_tries=int(config.get('max_tries') or 4),
            host_fingerprint=config.get('host_fingerprint'),
            use_ping=bool(config.get('use_ping', False)),
        )


def _get_key_class(key_type: str):
    key_type = key_type.lower()
    if key_type == 'rsa':
        return paramiko.RSAKey
    elif key_type == 'ecdsa':
        return paramiko.ECDSAKey
    elif key_type == 'ed25519':
        return paramiko.Ed25519Key
    else:
        raise ValueError(f"Unsupported key type: {key_type}. Supported: {SUPPORTED_KEY_TYPES}")


def load_private_key(private_key: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Loads a key given either as a path to a key file or as PEM text."""
    key_file = os.path.expanduser(private_key)
    if os.path.isfile(key_file):
        with open(key_file, 'r', encoding='utf-8') as f:
            private_key = f.read()

    last_error = ''
    for key_type in SUPPORTED_KEY_TYPES:
        try:
            return _get_key_class(key_type).from_private_key(io.StringIO(private_key), password=passphrase)
        except (paramiko.SSHException, ValueError) as e:
            last_error = str(e)

    raise SftpLoadPrivateKeyError(reason=last_error)


def fingerprint(key: paramiko.PKey, algorithm: str = 'md5') -> str:
    if algorithm == 'sha256':
        digest = hashlib.sha256(key.asbytes()).digest()
        return 'SHA256:' + base64.b64encode(digest).decode('ascii').rstrip('=')
    digest = hashlib.md5(key.asbytes()).digest()
    return ':'.join(f'{b:02x}' for b in digest)


def fingerprint_matches(key: paramiko.PKey, expected: str) -> bool:
    if expected.upper().startswith('SHA256:'):
        return fingerprint(key, 'sha256')[7:] == expected[7:].rstrip('=')
    return fingerprint(key, 'md5') == expected.lower()


class FingerprintPolicy(paramiko.MissingHostKeyPolicy):
    """Accepts the server key only when it matches the configured fingerprint."""

    def __init__(self, expected: str):
        self._expected = expected

    def missing_host_key(self, client, hostname, key):
        if not fingerprint_matches(key, self._expected):
            raise SftpEstablishAuthenticityOfHostError.for_host(hostname)


class SftpConnectivityChecker:
    def __init__(self, use_ping: bool = False):
        self._use_ping = use_ping

    def is_connected(self, connection: paramiko.SFTPClient) -> bool:
        channel = connection.get_channel()
        transport = channel.get_transport() if channel is not None else None

        if transport is None or not transport.is_active():
            return False

        if not self._use_ping:
            return True

        try:
            transport.send_ignore()
            return True
        except (paramiko.SSHException, OSError, EOFError):
            return False


class SftpConnectionProvider:
    """Hands out one live ``SFTPClient``, reconnecting when it went away."""

    def __init__(self, options: SftpConnectionOptions,
                 connectivity_checker: Optional[SftpConnectivityChecker] = None,
                 client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient):
        self._options = options
        self._connectivity_checker = connectivity_checker or SftpConnectivityChecker(options.use_ping)
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    @classmethod
    def from_config(cls, config: dict) -> 'SftpConnectionProvider':
        return cls(SftpConnectionOptions.from_config(config))

    def provide_connection(self) -> paramiko.SFTPClient:
        if self._sftp is not None:
            if self._connectivity_checker.is_connected(self._sftp):
                return self._sftp
            fs_log("RECONNECT", f"host={self._options.host} reason=connectivity_check_failed", "WARNING")
            self.disconnect()

        tries = 0
        while True:
            try:
                return self._connect()
            except SftpConnectToHostError as e:
                tries += 1
                if tries >= self._options.max_tries:
                    raise
                fs_log("CONNECT_RETRY", f"host={self._options.host} try={tries} reason={e.reason}", "WARNING")

    def _connect(self) -> paramiko.SFTPClient:
        options = self._options
        client = self._client_factory()

        if options.host_fingerprint:
            client.set_missing_host_key_policy(FingerprintPolicy(options.host_fingerprint))
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        pkey = load_private_key(options.private_key, options.passphrase) if options.private_key else None

        try:
            client.connect(
                options.host,
                port=options.port,
                username=options.username,
                password=options.password,
                pkey=pkey,
                passphrase=options.passphrase,
                timeout=options.timeout,
                allow_agent=options.use_agent,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
        except paramiko.AuthenticationException as e:
            client.close()
            raise self._authentication_error(str(e)) from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            raise SftpConnectToHostError.for_host(options.host, str(e)) from e
        except SftpEstablishAuthenticityOfHostError:
            client.close()
            raise

        self._client = client
        self._sftp = sftp
        fs_log("CONNECT", f"host={options.host} port={options.port} user={options.username}")
        return sftp

    def _authentication_error(self, reason: str) -> SftpAuthenticateError:
        if self._options.private_key:
            return SftpAuthenticateError.using_private_key(reason)
        if self._options.use_agent and not self._options.password:
            return SftpAuthenticateError.using_agent(reason)
        return SftpAuthenticateError.using_password(reason)

    def disconnect(self):
        if self._sftp is not None:
            try:
                self._sftp.close()
            except (paramiko.SSHException, OSError):
                pass
        if self._client is not None:
            self._client.close()
            fs_log("DISCONNECT", f"host={self._options.host}")
        self._sftp = None
        self._client = None

from typing import Optional, Type

from storagekit.storage.base import StorageAdapter
from storagekit.storage.ftp.adapter import FtpAdapter
from storagekit.storage.local import LocalAdapter
from storagekit.storage.readonly import ReadOnlyAdapter
from storagekit.storage.sftp.adapter import SftpAdapter


ADAPTER_REGISTRY: dict[str, Type[StorageAdapter]] = {
    "local": LocalAdapter,
    "ftp": FtpAdapter,
    "sftp": SftpAdapter,
}


def create_adapter(config: dict) -> StorageAdapter:
    driver = config.get('driver', 'local')
    adapter_class = ADAPTER_REGISTRY.get(driver)
    if adapter_class is None:
        raise ValueError(f"Unknown driver: {driver}")

    adapter = adapter_class.from_config(config)
    if config.get('read_only'):
        return ReadOnlyAdapter(adapter)
    return adapter


def get_adapter(disk: Optional[str] = None) -> StorageAdapter:
    from storagekit.config import get_config
    return create_adapter(get_config().disk(disk))


def get_filesystem(disk: Optional[str] = None):
    from storagekit.config import get_config
    from storagekit.filesystem import Filesystem
    cfg = get_config()
    config = cfg.disk(disk)
    return Filesystem(create_adapter(config), config, debug=cfg.debug)


__all__ = [
    'StorageAdapter',
    'LocalAdapter',
    'FtpAdapter',
    'SftpAdapter',
    'ReadOnlyAdapter',
    'ADAPTER_REGISTRY',
    'create_adapter',
    'get_adapter',
    'get_filesystem',
]

import os
import copy
import yaml
import threading
from typing import Any, Optional

SUPPORTED_DRIVERS = ('local', 'ftp', 'sftp')

DISK_DEFAULTS = {
    'local': {
        'root': './storage',
        'link_handling': 'disallow',
    },
    'ftp': {
        'host': '',
        'username': '',
        'password': '',
        'root': '',
        'port': 21,
        'ssl': False,
        'timeout': 90,
        'utf8': False,
        'passive': True,
        'transfer_mode': 'binary',
        'system_type': None,
        'use_raw_list_options': None,
        'ignore_passive_address': None,
        'timestamps_on_unix_listings_enabled': True,
        'recurse_manually': True,
        'connectivity_checker': 'noop',
    },
    'sftp': {
        'host': None,
        'username': None,
        'password': None,
        'private_key': None,
        'passphrase': None,
        'use_agent': False,
        'root': '',
        'port': 22,
        'timeout': 30,
        'max_tries': 4,
        'host_fingerprint': None,
        'use_ping': False,
    },
}

COMMON_DISK_DEFAULTS = {
    'visibility': None,
    'directory_visibility': None,
    'retain_visibility': True,
    'read_only': False,
    'finder_mime_type_detect': False,
    'detect_mime_type_using_path': False,
    'mime_type_detector': 'content',
    'permissions': {
        'file': {'public': 0o644, 'private': 0o600},
        'dir': {'public': 0o755, 'private': 0o700},
    },
}


class Config:
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._initialized = True
        self._config_file = "./config.yaml"
        self._lock = threading.RLock()

        self.default = "local"
        self.debug = False
        self.disks = {
            "local": {"driver": "local", "root": "./storage"}
        }
        self.log = {
            "level": "INFO",
            "dir": "./logs",
            "format": "%(asctime)s [%(levelname)s] [%(action)s] %(message)s",
            "date_format": "%Y-%m-%d %H:%M:%S"
        }

    def load(self, config_file: str = "./config.yaml") -> 'Config':
        with self._lock:
            self._config_file = config_file
            if os.path.exists(config_file):
                with open(config_file, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
                if data:
                    self._apply_config(data)
            return self

    def reload(self) -> 'Config':
        return self.load(self._config_file)

    def validate(self) -> list[str]:
        """Returns a list of problems; an empty list means the config is usable."""
        errors = []

        if self.default not in self.disks:
            errors.append(f"default disk '{self.default}' is not configured under disks")

        for name, disk in self.disks.items():
            if not isinstance(disk, dict):
                errors.append(f"disks.{name} must be a mapping")
                continue
            driver = disk.get('driver')
            if driver not in SUPPORTED_DRIVERS:
                errors.append(f"disks.{name}.driver must be one of {', '.join(SUPPORTED_DRIVERS)}, got {driver!r}")
                continue
            if driver in ('ftp', 'sftp') and not disk.get('host'):
                errors.append(f"disks.{name}.host is required for the {driver} driver")
            if driver in ('ftp', 'sftp') and not disk.get('username'):
                errors.append(f"disks.{name}.username is required for the {driver} driver")
            for key in ('visibility', 'directory_visibility'):
                if disk.get(key) not in (None, 'public', 'private'):
                    errors.append(f"disks.{name}.{key} must be 'public' or 'private'")
            if driver == 'ftp' and disk.get('system_type') not in (None, 'unix', 'windows'):
                errors.append(f"disks.{name}.system_type must be 'unix', 'windows' or empty")
            if driver == 'ftp' and disk.get('transfer_mode', 'binary') not in ('binary', 'ascii'):
                errors.append(f"disks.{name}.transfer_mode must be 'binary' or 'ascii'")

        return errors

    def _apply_config(self, data: dict):
        if 'default' in data:
            self.default = data['default']
        if 'debug' in data:
            self.debug = bool(data['debug'])
        if 'disks' in data:
            for name, disk in (data['disks'] or {}).items():
                if name in self.disks and isinstance(disk, dict):
                    self.disks[name].update(disk)
                else:
                    self.disks[name] = disk
        if 'log' in data:
            self.log.update(data['log'])

    def disk(self, name: Optional[str] = None) -> dict:
        """Returns the config of a disk with the driver defaults filled in."""
        name = name or self.default
        if name not in self.disks:
            raise ValueError(f"Unknown disk: {name}")
        disk = self.disks[name]
        driver = disk.get('driver', 'local')
        merged = copy.deepcopy(COMMON_DISK_DEFAULTS)
        merged.update(copy.deepcopy(DISK_DEFAULTS.get(driver, {})))
        merged.update(disk)
        merged['driver'] = driver
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        keys = key.split('.')
        value = self.__dict__
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value


_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = Config()
    return _config


def load_config(config_file: str = "./config.yaml") -> Config:
    global _config
    with _config_lock:
        if _config is None:
            _config = Config()
        _config.load(config_file)
    return _config


def reload_config() -> Config:
    from storagekit.logger import reinit_loggers
    cfg = get_config()
    result = cfg.reload()
    reinit_loggers()
    return result

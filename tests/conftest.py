"""Pytest configuration for storagekit tests.

Puts the project root on sys.path and keeps log output on the console only.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
tests_root = Path(__file__).parent
for root in (project_root, tests_root):
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

from storagekit.config import get_config
from storagekit.logger import reinit_loggers
from fakes.ftp import FakeFtpConnectionProvider, FakeFtpServer
from fakes.sftp import FakeSftpClient, FakeSftpConnectionProvider


@pytest.fixture(autouse=True)
def console_only_logging():
    cfg = get_config()
    previous = dict(cfg.log)
    cfg.log['dir'] = ''
    reinit_loggers()
    yield
    cfg.log.clear()
    cfg.log.update(previous)
    reinit_loggers()


@pytest.fixture
def ftp_server():
    return FakeFtpServer()


@pytest.fixture
def ftp_provider(ftp_server):
    return FakeFtpConnectionProvider(ftp_server)


@pytest.fixture
def sftp_client():
    return FakeSftpClient()


@pytest.fixture
def sftp_provider(sftp_client):
    return FakeSftpConnectionProvider(sftp_client)

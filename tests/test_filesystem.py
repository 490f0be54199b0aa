import io
import logging
import os
import stat

import pytest

from storagekit.exceptions import PathTraversalError, ReadFileError
from storagekit.filesystem import Filesystem
from storagekit.storage.local import LocalAdapter


@pytest.fixture
def root(tmp_path):
    return tmp_path / 'disk'


def make_filesystem(root, debug=False, **config):
    return Filesystem(LocalAdapter(str(root)), config, debug=debug)


def mode_of(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def test_put_and_get(root):
    filesystem = make_filesystem(root)

    assert filesystem.put('/docs/./a.txt', 'hello')
    assert filesystem.get('docs/a.txt') == b'hello'
    assert filesystem.exists('docs/a.txt')
    assert filesystem.exists('docs')
    assert not filesystem.exists('nope')


def test_put_accepts_file_objects(root):
    filesystem = make_filesystem(root)

    assert filesystem.put('a.bin', io.BytesIO(b'\x01\x02'))
    assert filesystem.get('a.bin') == b'\x01\x02'


def test_write_stream_rewinds(root):
    filesystem = make_filesystem(root)
    stream = io.BytesIO(b'abcdef')
    stream.read(3)

    assert filesystem.write_stream('a.txt', stream)
    assert filesystem.get('a.txt') == b'abcdef'


def test_disk_options_are_applied_to_writes(root):
    filesystem = make_filesystem(root, visibility='private', directory_visibility='public')

    filesystem.put('dir/a.txt', 'x')
    filesystem.put('dir/b.txt', 'x', 'public')

    assert mode_of(root / 'dir') == 0o755
    assert mode_of(root / 'dir' / 'a.txt') == 0o600
    assert mode_of(root / 'dir' / 'b.txt') == 0o644


def test_copy_keeps_the_source_visibility_over_the_disk_default(root):
    filesystem = make_filesystem(root, visibility='private')
    filesystem.put('a.txt', 'x', 'public')

    assert filesystem.copy('a.txt', 'b.txt')
    assert filesystem.get_visibility('b.txt') == 'public'

    assert filesystem.copy('a.txt', 'c.txt', {'retain_visibility': False})
    assert filesystem.get_visibility('c.txt') == 'private'


def test_metadata(root):
    filesystem = make_filesystem(root)
    filesystem.put('a.txt', 'hello')

    assert filesystem.size('a.txt') == 5
    assert filesystem.mime_type('a.txt') == 'text/plain'
    assert filesystem.last_modified('a.txt') == int(os.path.getmtime(root / 'a.txt'))
    assert filesystem.set_visibility('a.txt', 'private')
    assert filesystem.get_visibility('a.txt') == 'private'


def test_listing(root):
    filesystem = make_filesystem(root)
    filesystem.put('b.txt', 'x')
    filesystem.put('a.txt', 'x')
    filesystem.put('sub/c.txt', 'x')

    assert filesystem.files() == ['a.txt', 'b.txt']
    assert filesystem.files(recursive=True) == ['a.txt', 'b.txt', 'sub/c.txt']
    assert filesystem.directories() == ['sub']
    assert filesystem.finder('sub').map(lambda item: item.path).to_list() == ['sub/c.txt']


def test_delete_many(root):
    filesystem = make_filesystem(root)
    filesystem.put('a.txt', 'x')
    filesystem.put('b.txt', 'x')
    filesystem.put('c.txt', 'x')

    assert filesystem.delete('a.txt', 'b.txt')
    assert filesystem.delete(['c.txt'])
    assert filesystem.files() == []


def test_directories_and_moves(root):
    filesystem = make_filesystem(root)

    assert filesystem.create_directory('x/y')
    assert filesystem.put('x/y/a.txt', 'x')
    assert filesystem.move('x/y/a.txt', 'z/a.txt')
    assert filesystem.delete_directory('x')
    assert not filesystem.exists('x')
    assert filesystem.files('z') == ['z/a.txt']


def test_failures_are_logged_and_reported_outside_debug(root, caplog):
    filesystem = make_filesystem(root)

    with caplog.at_level(logging.WARNING, logger='storagekit'):
        assert filesystem.get('missing.txt') is None
        assert filesystem.size('missing.txt') is None
        assert filesystem.get_visibility('missing.txt') == 'private'
        assert filesystem.move('missing.txt', 'b.txt') is False
        assert filesystem.put('../escape.txt', 'x') is False

    actions = [getattr(record, 'action', None) for record in caplog.records]
    assert actions[:2] == ['READ', 'RETRIEVE_METADATA']
    assert 'MOVE' in actions
    assert 'NORMALIZE' in actions


def test_failures_are_raised_in_debug(root):
    filesystem = make_filesystem(root, debug=True)

    with pytest.raises(ReadFileError):
        filesystem.get('missing.txt')
    with pytest.raises(PathTraversalError):
        filesystem.put('../escape.txt', 'x')


def test_disconnect_is_delegated(sftp_provider):
    from storagekit.storage.sftp.adapter import SftpAdapter

    filesystem = Filesystem(SftpAdapter(sftp_provider))
    filesystem.disconnect()

    assert sftp_provider.disconnected == 1

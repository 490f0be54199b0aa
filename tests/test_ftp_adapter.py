import ftplib
import logging

import pytest

from storagekit.exceptions import (
    CopyFileError,
    DeleteDirectoryError,
    DeleteFileError,
    FtpConnectionError,
    FtpResolveConnectionRootError,
    MoveFileError,
    ReadFileError,
    RetrieveMetadataError,
    WriteFileError,
    CreateDirectoryError,
)
from storagekit.finder.attributes import DirectoryAttributes, FileAttributes
from storagekit.storage.ftp.adapter import FtpAdapter
from storagekit.storage.ftp.connection import FtpConnectionOptions
from fakes.ftp import FakeFtpConnectionProvider, FakeFtpServer

HOME = '/home/user'


def make_adapter(provider, **options):
    return FtpAdapter(FtpConnectionOptions(host='ftp.test', **options), connection_provider=provider)


def commands(server, *verbs):
    return [c for c in server.commands if c.split(' ', 1)[0] in verbs]


def test_put_creates_parents_and_get_reads_back(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider)

    adapter.put('a/b.txt', 'hello')

    assert f'{HOME}/a' in ftp_server.directories
    assert ftp_server.files[f'{HOME}/a/b.txt'].data == b'hello'
    assert adapter.get('a/b.txt') == b'hello'
    assert adapter.file_exists('a/b.txt')
    assert not adapter.file_exists('a')
    assert adapter.directory_exists('a')
    assert not adapter.directory_exists('missing')


def test_read_stream_is_a_readable_file_object(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/big.bin', b'x' * 20000)
    adapter = make_adapter(ftp_provider)

    with adapter.read_stream('big.bin') as stream:
        assert stream.read(5) == b'xxxxx'
        assert len(stream.read()) == 19995


def test_reading_a_missing_file_raises(ftp_provider):
    adapter = make_adapter(ftp_provider)

    with pytest.raises(ReadFileError) as exc:
        adapter.get('nope.txt')

    assert exc.value.path == 'nope.txt'


def test_ascii_transfer_mode_uses_line_transfers(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider, transfer_mode='ascii')

    adapter.put('notes.txt', b'one\r\ntwo\n')

    assert ftp_server.files[f'{HOME}/notes.txt'].data == b'one\ntwo\n'
    assert adapter.get('notes.txt') == b'one\ntwo\n'


def test_write_applies_visibility(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider)

    adapter.put('secret.txt', 'x', {'visibility': 'private'})

    assert ftp_server.files[f'{HOME}/secret.txt'].mode == 0o600
    assert adapter.get_visibility('secret.txt').visibility == 'private'


def test_write_reports_parent_directory_failure(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a', b'i am a file')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(WriteFileError) as exc:
        adapter.put('a/b.txt', 'x')

    assert exc.value.reason == 'creating parent directory failed'
    assert isinstance(exc.value.__cause__, CreateDirectoryError)


def test_create_directory_chmods_only_new_segments(ftp_server, ftp_provider):
    ftp_server.make_directory(f'{HOME}/x')
    adapter = make_adapter(ftp_provider)

    adapter.create_directory('x/y/z', {'visibility': 'private'})

    assert commands(ftp_server, 'MKD') == [f'MKD {HOME}/x/y', f'MKD {HOME}/x/y/z']
    assert commands(ftp_server, 'SITE') == [
        f'SITE CHMOD 700 {HOME}/x/y',
        f'SITE CHMOD 700 {HOME}/x/y/z',
    ]


def test_finder_lists_one_level(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a/b.txt', b'123')
    ftp_server.add_file(f'{HOME}/a/c/d.txt', b'4')
    adapter = make_adapter(ftp_provider)

    items = list(adapter.finder('a'))

    assert [item.path for item in items] == ['a/b.txt', 'a/c']
    assert isinstance(items[0], FileAttributes) and items[0].file_size == 3
    assert isinstance(items[1], DirectoryAttributes)


def test_manual_recursion_is_depth_first(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a/b.txt')
    ftp_server.add_file(f'{HOME}/a/c/d.txt')
    adapter = make_adapter(ftp_provider)

    items = list(adapter.finder('a', True))

    assert [item.path for item in items] == ['a/b.txt', 'a/c', 'a/c/d.txt']
    assert items[1].is_dir()
    assert all('-R' not in c for c in commands(ftp_server, 'LIST'))


def test_native_recursive_listing_maps_block_headers(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a/b.txt')
    ftp_server.add_file(f'{HOME}/a/c/d.txt')
    adapter = make_adapter(ftp_provider, recurse_manually=False)

    paths = [item.path for item in adapter.finder('a', True)]

    assert paths == ['a/b.txt', 'a/c', 'a/c/d.txt']
    assert commands(ftp_server, 'LIST') == [f'LIST -alnR {HOME}/a/']


def test_list_options_are_dropped_for_l8_servers():
    server = FakeFtpServer(syst='215 UNIX Type: L8')
    server.add_file(f'{HOME}/file.txt')
    adapter = make_adapter(FakeFtpConnectionProvider(server))

    assert [item.path for item in adapter.finder('')] == ['file.txt']
    assert commands(server, 'LIST') == [f'LIST {HOME}/']

    list(adapter.finder(''))
    assert commands(server, 'SYST') == ['SYST']


def test_configured_list_options_skip_the_probe():
    server = FakeFtpServer(syst='215 UNIX Type: L8')
    adapter = make_adapter(FakeFtpConnectionProvider(server), use_raw_list_options=True)

    list(adapter.finder(''))

    assert commands(server, 'SYST') == []
    assert commands(server, 'LIST') == [f'LIST -aln {HOME}/']


def test_pure_ftpd_paths_are_escaped():
    server = FakeFtpServer(help_text='214-The following commands are recognized.\n214 Pure-FTPd - http://pureftpd.org/')
    server.add_file(f'{HOME}/we*ird[1].txt', b'abc')
    adapter = make_adapter(FakeFtpConnectionProvider(server))

    assert adapter.get_visibility('we*ird[1].txt').visibility == 'public'
    assert f'STAT {HOME}/we\\*ird\\[1\\].txt' in server.commands


def test_windows_listing():
    server = FakeFtpServer(windows=True)
    server.add_file(f'{HOME}/docs/report.pdf', b'12345')
    adapter = make_adapter(FakeFtpConnectionProvider(server))

    items = list(adapter.finder(''))

    assert len(items) == 1
    assert items[0].path == 'docs'
    assert items[0].is_dir()
    assert [item.file_size for item in adapter.finder('docs')] == [5]


def test_metadata(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/doc.pdf', b'%PDF-1.4 minimal')
    ftp_server.add_file(f'{HOME}/notes.txt', b'hello')
    adapter = make_adapter(ftp_provider)

    assert adapter.size('doc.pdf').file_size == 16
    assert adapter.last_modified('doc.pdf').last_modified == 1704450600
    assert adapter.mime_type('doc.pdf').mime_type == 'application/pdf'
    assert adapter.mime_type('notes.txt').mime_type == 'text/plain'


def test_metadata_failures_carry_the_metadata_type(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/blob', b'just text')
    ftp_server.make_directory(f'{HOME}/dir')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(RetrieveMetadataError) as exc:
        adapter.size('missing')
    assert exc.value.metadata_type == 'file_size'

    with pytest.raises(RetrieveMetadataError) as exc:
        adapter.get_visibility('dir')
    assert exc.value.metadata_type == 'visibility'
    assert 'directory found' in exc.value.reason

    with pytest.raises(RetrieveMetadataError) as exc:
        adapter.last_modified('missing')
    assert exc.value.metadata_type == 'last_modified'

    with pytest.raises(RetrieveMetadataError) as exc:
        adapter.mime_type('blob')
    assert exc.value.reason == 'Unknown.'


def test_delete(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a.txt')
    adapter = make_adapter(ftp_provider)

    adapter.delete('a.txt')
    adapter.delete('never-existed.txt')

    assert f'{HOME}/a.txt' not in ftp_server.files


def test_delete_raises_when_the_file_survives(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/stuck.txt')
    ftp_server.fail_delete.add(f'{HOME}/stuck.txt')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(DeleteFileError):
        adapter.delete('stuck.txt')


def test_delete_directory_removes_children_before_parents(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/dir/file.txt')
    ftp_server.make_directory(f'{HOME}/dir/nested')
    adapter = make_adapter(ftp_provider)

    adapter.delete_directory('dir')

    assert commands(ftp_server, 'DELE', 'RMD') == [
        f'DELE {HOME}/dir/file.txt',
        f'RMD {HOME}/dir/nested',
        f'RMD {HOME}/dir',
    ]
    assert f'{HOME}/dir' not in ftp_server.directories


def test_delete_directory_aborts_when_a_child_cannot_be_deleted(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/dir/file.txt')
    ftp_server.make_directory(f'{HOME}/dir/nested')
    ftp_server.fail_delete.add(f'{HOME}/dir/file.txt')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(DeleteDirectoryError) as exc:
        adapter.delete_directory('dir')

    assert exc.value.path == 'dir'
    assert isinstance(exc.value.__cause__, DeleteFileError)
    assert commands(ftp_server, 'RMD') == []
    assert f'{HOME}/dir/nested' in ftp_server.directories


def test_move(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a.txt', b'data')
    adapter = make_adapter(ftp_provider)

    adapter.move('a.txt', 'sub/b.txt')

    assert f'{HOME}/a.txt' not in ftp_server.files
    assert ftp_server.files[f'{HOME}/sub/b.txt'].data == b'data'


def test_move_failure(ftp_provider):
    adapter = make_adapter(ftp_provider)

    with pytest.raises(MoveFileError) as exc:
        adapter.move('missing.txt', 'b.txt')

    assert exc.value.source == 'missing.txt'
    assert exc.value.destination == 'b.txt'


def test_copy_retains_visibility(ftp_server, ftp_provider):
    ftp_server.add_file(f'{HOME}/a.txt', b'data', mode=0o600)
    adapter = make_adapter(ftp_provider)

    adapter.copy('a.txt', 'copies/a.txt')

    assert ftp_server.files[f'{HOME}/copies/a.txt'].data == b'data'
    assert ftp_server.files[f'{HOME}/copies/a.txt'].mode == 0o600


@pytest.mark.parametrize("config", [
    {'retain_visibility': False},
    {'system_type': 'windows'},
])
def test_copy_without_retaining_visibility(ftp_server, ftp_provider, config):
    ftp_server.add_file(f'{HOME}/a.txt', b'data', mode=0o600)
    adapter = make_adapter(ftp_provider)

    adapter.copy('a.txt', 'b.txt', config)

    assert ftp_server.files[f'{HOME}/b.txt'].mode == 0o644
    assert commands(ftp_server, 'STAT') == []


def test_copy_failure(ftp_provider):
    adapter = make_adapter(ftp_provider)

    with pytest.raises(CopyFileError) as exc:
        adapter.copy('missing.txt', 'b.txt')

    assert isinstance(exc.value.__cause__, ReadFileError)


def test_connection_is_reused_while_healthy(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider)

    adapter.put('a.txt', 'x')
    adapter.get('a.txt')

    assert ftp_provider.created == 1
    assert 'NOOP' in ftp_server.commands
    assert f'CWD {HOME}' in ftp_server.commands


def test_reconnects_once_after_a_failed_probe(ftp_server, ftp_provider, caplog):
    adapter = make_adapter(ftp_provider)
    adapter.put('a.txt', 'x')
    ftp_server.connections[0].healthy = False

    with caplog.at_level(logging.WARNING, logger='storagekit'):
        assert adapter.get('a.txt') == b'x'

    assert ftp_provider.created == 2
    assert ftp_server.connections[0].closed
    assert any(getattr(record, 'action', None) == 'RECONNECT' for record in caplog.records)


def test_disconnect_closes_and_next_call_reconnects(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider)
    adapter.put('a.txt', 'x')

    adapter.disconnect()
    adapter.disconnect()

    assert ftp_server.connections[0].closed
    assert adapter.get('a.txt') == b'x'
    assert ftp_provider.created == 2


def test_configured_root_is_pinned(ftp_server, ftp_provider):
    ftp_server.make_directory(f'{HOME}/data')
    adapter = make_adapter(ftp_provider, root='data')

    adapter.put('a.txt', 'x')

    assert f'{HOME}/data/a.txt' in ftp_server.files
    assert [item.path for item in adapter.finder('')] == ['a.txt']


def test_missing_root_raises_and_closes_the_connection(ftp_server, ftp_provider):
    adapter = make_adapter(ftp_provider, root='/nowhere')

    with pytest.raises(FtpResolveConnectionRootError) as exc:
        adapter.file_exists('a.txt')

    assert exc.value.path == '/nowhere'
    assert ftp_server.connections[0].closed


def test_transient_failure_while_checking_parent_directory(ftp_server, ftp_provider):
    ftp_server.fail_cwd[f'{HOME}/a'] = ftplib.error_temp('421 Service not available')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(WriteFileError) as exc:
        adapter.put('a/b.txt', 'hello')

    assert isinstance(exc.value.__cause__, CreateDirectoryError)
    assert f'{HOME}/a/b.txt' not in ftp_server.files

    with pytest.raises(MoveFileError):
        adapter.move('missing.txt', 'a/b.txt')


def test_socket_error_while_probing_the_server(ftp_server, ftp_provider):
    ftp_server.fail_commands['HELP'] = OSError('Connection reset by peer')
    adapter = make_adapter(ftp_provider)

    with pytest.raises(FtpConnectionError) as exc:
        list(adapter.finder(''))

    assert exc.value.reason == 'Connection reset by peer'


def test_error_reply_to_a_probe_is_read_as_the_response(ftp_server, ftp_provider):
    ftp_server.fail_commands['HELP'] = ftplib.error_perm('502 HELP not implemented')
    ftp_server.add_file(f'{HOME}/a.txt', b'x')
    adapter = make_adapter(ftp_provider)

    assert [item.path for item in adapter.finder('')] == ['a.txt']

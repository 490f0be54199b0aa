import io

import pytest

from storagekit.exceptions import (
    CopyFileError,
    CreateDirectoryError,
    DeleteDirectoryError,
    DeleteFileError,
    MoveFileError,
    SetVisibilityError,
    WriteFileError,
)
from storagekit.storage.local import LocalAdapter
from storagekit.storage.readonly import READ_ONLY_MESSAGE, ReadOnlyAdapter


@pytest.fixture
def inner(tmp_path):
    adapter = LocalAdapter(str(tmp_path))
    adapter.put('dir/a.txt', 'hello', {'visibility': 'public'})
    return adapter


def test_reads_pass_through(inner):
    adapter = ReadOnlyAdapter(inner)

    assert adapter.inner is inner
    assert adapter.file_exists('dir/a.txt')
    assert adapter.directory_exists('dir')
    assert adapter.get('dir/a.txt') == b'hello'
    with adapter.read_stream('dir/a.txt') as stream:
        assert stream.read() == b'hello'
    assert adapter.size('dir/a.txt').file_size == 5
    assert adapter.mime_type('dir/a.txt').mime_type == 'text/plain'
    assert adapter.last_modified('dir/a.txt').last_modified is not None
    assert adapter.get_visibility('dir/a.txt').visibility == 'public'
    assert [item.path for item in adapter.finder('', True)] == ['dir', 'dir/a.txt']


@pytest.mark.parametrize("call,error", [
    (lambda a: a.put('b.txt', 'x'), WriteFileError),
    (lambda a: a.write_stream('b.txt', io.BytesIO(b'x')), WriteFileError),
    (lambda a: a.set_visibility('dir/a.txt', 'private'), SetVisibilityError),
    (lambda a: a.create_directory('new'), CreateDirectoryError),
    (lambda a: a.delete('dir/a.txt'), DeleteFileError),
    (lambda a: a.delete_directory('dir'), DeleteDirectoryError),
])
def test_writes_are_refused(inner, call, error):
    adapter = ReadOnlyAdapter(inner)

    with pytest.raises(error) as exc:
        call(adapter)

    assert exc.value.reason == READ_ONLY_MESSAGE
    assert inner.get('dir/a.txt') == b'hello'
    assert not inner.file_exists('b.txt')


def test_move_and_copy_are_refused(inner):
    adapter = ReadOnlyAdapter(inner)

    with pytest.raises(MoveFileError) as exc:
        adapter.move('dir/a.txt', 'b.txt')
    assert str(exc.value) == 'Unable to move file from dir/a.txt to b.txt as this is a readonly adapter.'

    with pytest.raises(CopyFileError) as exc:
        adapter.copy('dir/a.txt', 'b.txt')
    assert str(exc.value) == 'Unable to copy file from dir/a.txt to b.txt as this is a readonly adapter.'

    assert inner.file_exists('dir/a.txt')
    assert not inner.file_exists('b.txt')

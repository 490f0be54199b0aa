import pytest

from storagekit.exceptions import CorruptedPathError, PathTraversalError
from storagekit.support.path_normalizer import PathNormalizer
from storagekit.support.path_prefixer import PathPrefixer


@pytest.mark.parametrize("path,expected", [
    ("", ""),
    ("/", ""),
    ("./", ""),
    ("a/b/../c", "a/c"),
    ("/a/./b//c/", "a/b/c"),
    ("a\\b\\c", "a/b/c"),
    ("dir/sub/..", "dir"),
    ("a/b/../../c", "c"),
    ("file with spaces.txt", "file with spaces.txt"),
])
def test_normalize_path(path, expected):
    assert PathNormalizer().normalize_path(path) == expected


@pytest.mark.parametrize("path", ["..", "../x", "a/../../b", "/../etc/passwd"])
def test_normalize_path_rejects_traversal(path):
    with pytest.raises(PathTraversalError) as exc:
        PathNormalizer().normalize_path(path)
    assert exc.value.path == path


@pytest.mark.parametrize("path", ["a\x00b", "line\nbreak", "tab\there", "zero\u200bwidth", "bidi\u202e.txt"])
def test_normalize_path_rejects_control_and_format_characters(path):
    with pytest.raises(CorruptedPathError):
        PathNormalizer().normalize_path(path)


def test_normalize_path_is_idempotent():
    normalizer = PathNormalizer()
    for path in ["a/b/../c", "/x/./y/", "deep/er/../../est"]:
        once = normalizer.normalize_path(path)
        assert normalizer.normalize_path(once) == once


def test_prefixer_strips_trailing_separators_from_root():
    prefixer = PathPrefixer("/var/www//")
    assert prefixer.prefix == "/var/www/"
    assert prefixer.prefix_path("/index.html") == "/var/www/index.html"
    assert prefixer.prefix_path("\\index.html") == "/var/www/index.html"


def test_prefixer_with_empty_and_separator_roots():
    assert PathPrefixer("").prefix_path("a/b") == "a/b"
    assert PathPrefixer("/").prefix_path("a/b") == "/a/b"


def test_prefixer_round_trip():
    prefixer = PathPrefixer("/srv/data")
    for path in ["a", "a/b/c.txt", ""]:
        assert prefixer.strip_prefix(prefixer.prefix_path(path)) == path


def test_prefixer_directory_variants():
    prefixer = PathPrefixer("/srv")
    assert prefixer.prefix_directory_path("dir") == "/srv/dir/"
    assert prefixer.prefix_directory_path("dir/") == "/srv/dir/"
    assert prefixer.strip_directory_prefix("/srv/dir/") == "dir"
    assert PathPrefixer("").prefix_directory_path("") == ""


def test_prefixer_uses_custom_separator():
    prefixer = PathPrefixer("C:\\data\\", "\\")
    assert prefixer.prefix == "C:\\data\\"
    assert prefixer.prefix_path("file.txt") == "C:\\data\\file.txt"

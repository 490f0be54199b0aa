import re
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from storagekit.exceptions import FtpInvalidListResponseError
from storagekit.finder.attributes import DirectoryAttributes, FileAttributes, FinderAttributes
from storagekit.logger import fs_log
from storagekit.support.mime_type import MimeTypeDetector
from storagekit.support.visibility import VisibilityConverter

SYSTEM_TYPE_UNIX = 'unix'
SYSTEM_TYPE_WINDOWS = 'windows'

SKIP_LINE = re.compile(r'.* \.(\.)?$|^total')
BLOCK_HEADER = re.compile(r'^.*:$')
BLOCK_HEADER_CLEANUP = re.compile(r'^\./*|:$')
WINDOWS_DATE = re.compile(r'^[0-9]{2,4}-[0-9]{2}-[0-9]{2}')

PERMISSION_DIGITS = str.maketrans({'-': '0', 'r': '4', 'w': '2', 'x': '1'})

WINDOWS_FALLBACK_FORMATS = (
    '%m-%d-%y %I:%M%p',
    '%m-%d-%Y %I:%M%p',
    '%m-%d-%y %H:%M',
    '%m-%d-%Y %H:%M',
    '%Y-%m-%d %I:%M%p',
    '%Y-%m-%d %H:%M:%S',
    '%d-%m-%Y %H:%M',
)


class FtpListingParser:
    """Turns raw ``LIST`` output into finder attributes.

    The listing dialect is either fixed up front or detected from the first
    entry that gets parsed. Once known it is kept for the lifetime of the
    parser, so one parser should be used per adapter.
    """

    def __init__(self, visibility: Optional[VisibilityConverter] = None, system_type: Optional[str] = None,
                 timestamps_on_unix_listings_enabled: bool = True,
                 mime_type_detector: Optional[MimeTypeDetector] = None):
        self._visibility = visibility or VisibilityConverter()
        self._system_type = system_type
        self._timestamps_enabled = timestamps_on_unix_listings_enabled
        self._mime_type_detector = mime_type_detector

    @property
    def system_type(self) -> Optional[str]:
        return self._system_type

    def normalize_listing(self, listing: Iterable[str], base: str = '',
                          map_block_header: Optional[Callable[[str], str]] = None) -> Iterator[FinderAttributes]:
        for item in listing:
            if item == '' or SKIP_LINE.match(item):
                continue

            if BLOCK_HEADER.match(item):
                base = BLOCK_HEADER_CLEANUP.sub('', item)
                if map_block_header is not None:
                    base = map_block_header(base)
                continue

            yield self.normalize_object(item, base)

    def normalize_object(self, item: str, base: str = '') -> FinderAttributes:
        if self._system_type is None:
            self._system_type = self.detect_system_type(item)
            fs_log("LIST_DIALECT", f"detected={self._system_type}", "DEBUG")

        if self._system_type == SYSTEM_TYPE_UNIX:
            return self._normalize_unix_object(item, base)
        return self._normalize_windows_object(item, base)

    @staticmethod
    def detect_system_type(item: str) -> str:
        return SYSTEM_TYPE_WINDOWS if WINDOWS_DATE.match(item) else SYSTEM_TYPE_UNIX

    def _normalize_windows_object(self, item: str, base: str) -> FinderAttributes:
        item = re.sub(r'\s+', ' ', item.strip(), count=3)
        parts = item.split(' ', 3)

        if len(parts) != 4:
            raise FtpInvalidListResponseError(f"Metadata can't be parsed from item '{item}' , not enough parts.")

        date, time, size, name = parts
        path = _join(base, name)

        if size == '<DIR>':
            return DirectoryAttributes(path)

        return FileAttributes(
            path,
            _parse_size(size, item),
            None,
            self._normalize_windows_timestamp(date, time),
            self._detect_mime_type(path),
        )

    def _normalize_unix_object(self, item: str, base: str) -> FinderAttributes:
        item = re.sub(r'\s+', ' ', item.strip(), count=7)
        parts = item.split(' ', 8)

        if len(parts) != 9:
            raise FtpInvalidListResponseError(f"Metadata can't be parsed from item '{item}' , not enough parts.")

        permissions, _, _, _, size, month, day, time_or_year, name = parts
        is_directory = permissions.startswith('d')
        mode = normalize_permissions(permissions)
        path = _join(base, name)
        last_modified = (
            normalize_unix_timestamp(month, day, time_or_year)
            if self._timestamps_enabled else None
        )

        if is_directory:
            return DirectoryAttributes(path, self._visibility.inverse_for_directory(mode), last_modified)

        return FileAttributes(
            path,
            _parse_size(size, item),
            self._visibility.inverse_for_file(mode),
            last_modified,
            self._detect_mime_type(path),
        )

    def _normalize_windows_timestamp(self, date: str, time: str) -> Optional[int]:
        strict_format = '%m-%d-%y%I:%M%p' if len(date) == 8 else '%Y-%m-%d%H:%M'
        try:
            return int(datetime.strptime(date + time, strict_format).timestamp())
        except ValueError:
            pass

        for fmt in WINDOWS_FALLBACK_FORMATS:
            try:
                return int(datetime.strptime(f"{date} {time}", fmt).timestamp())
            except ValueError:
                continue
        return None

    def _detect_mime_type(self, path: str) -> Optional[str]:
        if self._mime_type_detector is None:
            return None
        return self._mime_type_detector.detect_mime_type_from_path(path)


def normalize_permissions(permissions: str) -> int:
    digits = permissions[1:10].translate(PERMISSION_DIGITS)
    groups = [digits[i:i + 3] for i in range(0, len(digits), 3)]
    octal = ''.join(str(sum(int(d) for d in group if d.isdigit())) for group in groups)
    return int(octal, 8) if octal else 0


def normalize_unix_timestamp(month: str, day: str, time_or_year: str) -> int:
    if time_or_year.isdigit():
        year, clock = time_or_year, '00:00'
    else:
        year, clock = str(datetime.now().year), time_or_year

    try:
        parsed = datetime.strptime(f"{year}-{month}-{day} {clock}", '%Y-%b-%d %H:%M')
    except ValueError as e:
        raise FtpInvalidListResponseError(
            f"Timestamp can't be parsed from '{month} {day} {time_or_year}'."
        ) from e
    return int(parsed.timestamp())


def _join(base: str, name: str) -> str:
    return name if base == '' else base.rstrip('/') + '/' + name


def _parse_size(size: str, item: str) -> int:
    try:
        return int(size)
    except ValueError as e:
        raise FtpInvalidListResponseError(f"Metadata can't be parsed from item '{item}' , invalid size '{size}'.") from e

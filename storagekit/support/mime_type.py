import mimetypes
import posixpath
from abc import ABC, abstractmethod
from typing import Optional

import filetype


class MimeTypeDetector(ABC):
    @abstractmethod
    def detect_mime_type(self, path: str, contents: bytes) -> Optional[str]:
        pass

    @abstractmethod
    def detect_mime_type_from_path(self, path: str) -> Optional[str]:
        pass

    @abstractmethod
    def detect_mime_type_from_file(self, path: str) -> Optional[str]:
        pass

    @abstractmethod
    def detect_mime_type_from_buffer(self, contents: bytes) -> Optional[str]:
        pass


class ExtensionMimeTypeDetector(MimeTypeDetector):
    """Looks the mime type up by file extension only."""

    def __init__(self, overrides: Optional[dict] = None):
        self._overrides = {k.lower().lstrip('.'): v for k, v in (overrides or {}).items()}

    def detect_mime_type(self, path: str, contents: bytes) -> Optional[str]:
        return self.detect_mime_type_from_path(path)

    def detect_mime_type_from_path(self, path: str) -> Optional[str]:
        extension = posixpath.splitext(path.replace('\\', '/'))[1].lower().lstrip('.')
        if not extension:
            return None
        if extension in self._overrides:
            return self._overrides[extension]
        mime_type, _ = mimetypes.guess_type(f"file.{extension}", strict=False)
        return mime_type

    def detect_mime_type_from_file(self, path: str) -> Optional[str]:
        return self.detect_mime_type_from_path(path)

    def detect_mime_type_from_buffer(self, contents: bytes) -> Optional[str]:
        return None

    def lookup_extension(self, mime_type: str) -> Optional[str]:
        for extension, overridden in self._overrides.items():
            if overridden == mime_type:
                return extension
        extension = mimetypes.guess_extension(mime_type, strict=False)
        return extension.lstrip('.') if extension else None


class ContentMimeTypeDetector(MimeTypeDetector):
    """Sniffs magic numbers from the content, falling back to the extension.

    Results in ``inconclusive_mime_types`` are treated as unknown and the
    extension lookup decides instead.
    """

    INCONCLUSIVE_MIME_TYPES = (
        'application/x-empty',
        'text/plain',
        'text/x-asm',
        'application/octet-stream',
        'inode/x-empty',
    )

    def __init__(self, extension_detector: Optional[ExtensionMimeTypeDetector] = None,
                 buffer_sample_size: Optional[int] = None,
                 inconclusive_mime_types=INCONCLUSIVE_MIME_TYPES):
        self._extensions = extension_detector or ExtensionMimeTypeDetector()
        self._buffer_sample_size = buffer_sample_size
        self._inconclusive = tuple(inconclusive_mime_types)

    def detect_mime_type(self, path: str, contents: bytes) -> Optional[str]:
        mime_type = self.detect_mime_type_from_buffer(contents) if isinstance(contents, bytes) else None
        if mime_type is not None and mime_type not in self._inconclusive:
            return mime_type
        return self.detect_mime_type_from_path(path)

    def detect_mime_type_from_path(self, path: str) -> Optional[str]:
        return self._extensions.detect_mime_type_from_path(path)

    def detect_mime_type_from_file(self, path: str) -> Optional[str]:
        try:
            mime_type = filetype.guess_mime(path)
        except OSError:
            mime_type = None
        return mime_type or self.detect_mime_type_from_path(path)

    def detect_mime_type_from_buffer(self, contents: bytes) -> Optional[str]:
        if not contents:
            return None
        return filetype.guess_mime(self._take_sample(contents))

    def _take_sample(self, contents: bytes) -> bytes:
        if self._buffer_sample_size is None:
            return contents
        return contents[:self._buffer_sample_size]


def create_mime_type_detector(name: Optional[str]) -> MimeTypeDetector:
    if name == 'extension':
        return ExtensionMimeTypeDetector()
    return ContentMimeTypeDetector()

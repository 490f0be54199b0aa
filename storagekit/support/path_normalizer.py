import unicodedata

from storagekit.exceptions import CorruptedPathError, PathTraversalError


class PathNormalizer:
    """Collapses a logical path without looking at any filesystem."""

    def normalize_path(self, path: str) -> str:
        path = path.replace('\\', '/')
        self._reject_funky_white_space(path)
        return self._normalize_relative_path(path)

    def _reject_funky_white_space(self, path: str):
        for char in path:
            if unicodedata.category(char).startswith('C'):
                raise CorruptedPathError.for_path(path)

    def _normalize_relative_path(self, path: str) -> str:
        parts = []
        for part in path.split('/'):
            if part == '' or part == '.':
                continue
            elif part == '..':
                if not parts:
                    raise PathTraversalError.for_path(path)
                parts.pop()
            else:
                parts.append(part)
        return '/'.join(parts)

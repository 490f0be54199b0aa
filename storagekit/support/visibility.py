from typing import Optional

from storagekit.exceptions import InvalidVisibilityError

PUBLIC = 'public'
PRIVATE = 'private'


def guard_against_invalid_input(visibility):
    if visibility != PUBLIC and visibility != PRIVATE:
        raise InvalidVisibilityError.with_visibility(visibility, f"either '{PUBLIC}' or '{PRIVATE}'")


class VisibilityConverter:
    """Maps public/private onto numeric permission bits and back.

    The inverse lookups never fail: any mode that is not one of the two
    configured values for its kind is reported as public.
    """

    def __init__(self, file_public: int = 0o644, file_private: int = 0o600,
                 directory_public: int = 0o755, directory_private: int = 0o700,
                 default_for_directories: str = PRIVATE):
        self.file_public = file_public
        self.file_private = file_private
        self.directory_public = directory_public
        self.directory_private = directory_private
        self._default_for_directories = default_for_directories

    def for_file(self, visibility: str) -> int:
        guard_against_invalid_input(visibility)
        return self.file_public if visibility == PUBLIC else self.file_private

    def for_directory(self, visibility: str) -> int:
        guard_against_invalid_input(visibility)
        return self.directory_public if visibility == PUBLIC else self.directory_private

    def inverse_for_file(self, mode: int) -> str:
        if mode == self.file_public:
            return PUBLIC
        elif mode == self.file_private:
            return PRIVATE
        return PUBLIC

    def inverse_for_directory(self, mode: int) -> str:
        if mode == self.directory_public:
            return PUBLIC
        elif mode == self.directory_private:
            return PRIVATE
        return PUBLIC

    def default_for_directories(self) -> int:
        if self._default_for_directories == PUBLIC:
            return self.directory_public
        return self.directory_private

    @classmethod
    def from_dict(cls, permission_map: Optional[dict],
                  default_for_directories: Optional[str] = None) -> 'VisibilityConverter':
        permission_map = permission_map or {}
        files = permission_map.get('file', {})
        dirs = permission_map.get('dir', {})
        return cls(
            _mode(files.get('public', 0o644)),
            _mode(files.get('private', 0o600)),
            _mode(dirs.get('public', 0o755)),
            _mode(dirs.get('private', 0o700)),
            default_for_directories or PRIVATE,
        )


def _mode(value) -> int:
    # "0755" strings from YAML are read as octal
    if isinstance(value, str):
        return int(value, 8)
    return int(value)

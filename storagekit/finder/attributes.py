import dataclasses
from dataclasses import dataclass, field
from typing import Optional

TYPE_FILE = 'file'
TYPE_DIRECTORY = 'dir'

ATTRIBUTE_PATH = 'path'
ATTRIBUTE_TYPE = 'type'
ATTRIBUTE_FILE_SIZE = 'file_size'
ATTRIBUTE_VISIBILITY = 'visibility'
ATTRIBUTE_LAST_MODIFIED = 'last_modified'
ATTRIBUTE_MIME_TYPE = 'mime_type'
ATTRIBUTE_EXTRA_METADATA = 'extra_metadata'


class FinderAttributes:
    """Shared behaviour of the two listing entry variants.

    Entries are immutable: ``with_path`` hands back a copy, and item
    assignment is refused.
    """

    type = ''

    def is_file(self) -> bool:
        return self.type == TYPE_FILE

    def is_dir(self) -> bool:
        return self.type == TYPE_DIRECTORY

    def with_path(self, path: str):
        return dataclasses.replace(self, path=path)

    def to_dict(self) -> dict:
        data = {ATTRIBUTE_TYPE: self.type}
        for item in dataclasses.fields(self):
            data[item.name] = getattr(self, item.name)
        return data

    def __contains__(self, key: str) -> bool:
        return key == ATTRIBUTE_TYPE or getattr(self, key, None) is not None

    def __getitem__(self, key: str):
        if key == ATTRIBUTE_TYPE:
            return self.type
        if key not in {f.name for f in dataclasses.fields(self)}:
            raise KeyError(key)
        return getattr(self, key)

    def __setitem__(self, key, value):
        raise TypeError('Properties can not be manipulated')

    def __delitem__(self, key):
        raise TypeError('Properties can not be manipulated')


@dataclass(frozen=True)
class FileAttributes(FinderAttributes):
    path: str
    file_size: Optional[int] = None
    visibility: Optional[str] = None
    last_modified: Optional[int] = None
    mime_type: Optional[str] = None
    extra_metadata: dict = field(default_factory=dict)

    type = TYPE_FILE

    def __post_init__(self):
        object.__setattr__(self, 'path', self.path.lstrip('/'))

    @property
    def size(self) -> int:
        return self.file_size if self.file_size is not None else 0

    @classmethod
    def from_dict(cls, attributes: dict) -> 'FileAttributes':
        return cls(
            attributes[ATTRIBUTE_PATH],
            attributes.get(ATTRIBUTE_FILE_SIZE),
            attributes.get(ATTRIBUTE_VISIBILITY),
            attributes.get(ATTRIBUTE_LAST_MODIFIED),
            attributes.get(ATTRIBUTE_MIME_TYPE),
            attributes.get(ATTRIBUTE_EXTRA_METADATA) or {},
        )


@dataclass(frozen=True)
class DirectoryAttributes(FinderAttributes):
    path: str
    visibility: Optional[str] = None
    last_modified: Optional[int] = None
    extra_metadata: dict = field(default_factory=dict)

    type = TYPE_DIRECTORY

    def __post_init__(self):
        object.__setattr__(self, 'path', self.path.strip('/'))

    @classmethod
    def from_dict(cls, attributes: dict) -> 'DirectoryAttributes':
        return cls(
            attributes[ATTRIBUTE_PATH],
            attributes.get(ATTRIBUTE_VISIBILITY),
            attributes.get(ATTRIBUTE_LAST_MODIFIED),
            attributes.get(ATTRIBUTE_EXTRA_METADATA) or {},
        )


def attributes_from_dict(attributes: dict) -> FinderAttributes:
    if attributes.get(ATTRIBUTE_TYPE) == TYPE_DIRECTORY:
        return DirectoryAttributes.from_dict(attributes)
    return FileAttributes.from_dict(attributes)

class PathPrefixer:
    def __init__(self, prefix: str, separator: str = '/'):
        self._separator = separator
        self._prefix = prefix.rstrip('\\/')
        if self._prefix != '' or prefix == separator:
            self._prefix += separator

    @property
    def prefix(self) -> str:
        return self._prefix

    def prefix_path(self, path: str) -> str:
        return self._prefix + path.lstrip('\\/')

    def strip_prefix(self, path: str) -> str:
        return path[len(self._prefix):]

    def strip_directory_prefix(self, path: str) -> str:
        return self.strip_prefix(path).rstrip('\\/')

    def prefix_directory_path(self, path: str) -> str:
        prefixed = self.prefix_path(path.rstrip('\\/'))
        if prefixed == '' or prefixed.endswith(self._separator):
            return prefixed
        return prefixed + self._separator

from typing import Callable, Iterable, Iterator

from storagekit.finder.attributes import FinderAttributes


class Finder:
    """Lazy, single-pass view over a listing.

    ``filter`` and ``map`` wrap the underlying iterable in new generators;
    nothing is read from the backend until the result is iterated.
    """

    def __init__(self, listing: Iterable):
        self._listing = listing

    def filter(self, predicate: Callable[[FinderAttributes], bool]) -> 'Finder':
        return Finder(item for item in self._listing if predicate(item))

    def map(self, mapper: Callable) -> 'Finder':
        return Finder(mapper(item) for item in self._listing)

    def sort_by_path(self) -> 'Finder':
        def sorted_listing():
            yield from sorted(self._listing, key=lambda item: item.path)

        return Finder(sorted_listing())

    def to_list(self) -> list:
        return list(self._listing)

    def __iter__(self) -> Iterator:
        return iter(self._listing)

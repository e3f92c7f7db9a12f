from typing import List, Optional

from consts import VALUES_SEPARATOR


class CommaSeparated:
    """A set of strings stored as a single comma separated value, e.g. in an annotation.

    The values are kept in the order they were first seen and never duplicated. There is no escaping, the values
    must not contain the separator themselves.
    """

    def __init__(self, value: Optional[str] = None) -> None:
        self._values: List[str] = []
        if value:
            for item in value.split(VALUES_SEPARATOR):
                item = item.strip()
                if item and item not in self._values:
                    self._values.append(item)

    def contains(self, value: str) -> bool:
        return value in self._values

    def add(self, value: str):
        if value not in self._values:
            self._values.append(value)

    def remove(self, value: str):
        if value in self._values:
            self._values.remove(value)

    def values(self) -> List[str]:
        return list(self._values)

    def __contains__(self, value: str) -> bool:
        return self.contains(value)

    def __len__(self) -> int:
        return len(self._values)

    def __str__(self) -> str:
        return VALUES_SEPARATOR.join(self._values)

    def __repr__(self) -> str:
        return f'CommaSeparated({str(self)!r})'

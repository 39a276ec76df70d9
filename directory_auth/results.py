"""
Wrappers around python-ldap search results.

python-ldap hands back ``(dn, {attribute: [bytes, ...]})`` tuples whose
attribute names keep whatever case the server chose.  LDAP attribute names are
case-insensitive, so :py:class:`DirectoryRecord` does explicit case-insensitive
lookups instead of exposing the raw dictionary.
"""

from collections.abc import Iterable, Iterator
from typing import Any

from .typing import AttributeValue, LDAPData


def _decode(value: Any) -> AttributeValue:
    """
    Decode a raw attribute value to ``str``.  Values that are not valid UTF-8
    (``jpegPhoto``, ``objectGUID`` and friends) are left as ``bytes``.
    """
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value
    return value


class DirectoryRecord:
    """
    A single entry returned from a directory search.

    Args:
        dn: The distinguished name of the entry.
        attributes: Mapping of attribute name to one or more values.

    """

    def __init__(self, dn: str, attributes: dict[str, Any] | None = None) -> None:
        self.dn = dn
        #: attribute name (as returned by the server) -> list of values
        self.attributes: dict[str, list[AttributeValue]] = {}
        for name, values in (attributes or {}).items():
            if not isinstance(values, list | tuple):
                values = [values]  # noqa: PLW2901
            self.attributes[name] = [_decode(v) for v in values]

    @classmethod
    def from_ldap(cls, data: LDAPData) -> "DirectoryRecord":
        """
        Build a record from one python-ldap ``(dn, attrs)`` result tuple.
        """
        return cls(data[0], data[1])

    def _key(self, name: str) -> str | None:
        lowered = name.lower()
        for key in self.attributes:
            if key.lower() == lowered:
                return key
        return None

    def has(self, name: str) -> bool:
        """
        Return ``True`` if the entry carries attribute ``name`` (any case).
        """
        return self._key(name) is not None

    def get_values(self, name: str) -> list[AttributeValue]:
        """
        Return every value of attribute ``name``, or an empty list.
        """
        key = self._key(name)
        if key is None:
            return []
        return list(self.attributes[key])

    def get(self, name: str, default: Any = None) -> Any:
        """
        Return the first value of attribute ``name``, or ``default``.
        """
        values = self.get_values(name)
        if not values:
            return default
        return values[0]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __repr__(self) -> str:
        return f"<DirectoryRecord: {self.dn}>"


class SearchResult:
    """
    The ordered list of entries a single directory search produced.

    Truthiness follows the number of records, so an empty result is falsy.

    Args:
        records: The records, in the order the server returned them.

    """

    def __init__(self, records: Iterable[DirectoryRecord] | None = None) -> None:
        self.records: list[DirectoryRecord] = list(records or [])

    @classmethod
    def from_ldap(cls, data: Iterable[Any]) -> "SearchResult":
        """
        Build a result from python-ldap ``search_s`` output.

        Active Directory appends search references whose attribute part is not
        a dictionary; those are dropped.
        """
        return cls(
            DirectoryRecord.from_ldap(obj) for obj in data if isinstance(obj[1], dict)
        )

    def __iter__(self) -> Iterator[DirectoryRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, index: int) -> DirectoryRecord:
        return self.records[index]

    def __repr__(self) -> str:
        return f"<SearchResult: {len(self.records)} record(s)>"

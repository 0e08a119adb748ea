"""
Document entity.

A Document is the in-memory form of one stored document: a mapping of
fields plus identity (``id``), version (``_version``), a "new" flag and the
set of fields modified since the last load or save.
"""

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from bson import ObjectId

from ..constants import ID_FIELD, NEW_FLAG_FIELD, VERSION_FIELD

_MISSING = object()


def to_object_id(id: Any) -> Any:
    """Convert an id to an ObjectId when it looks like one, else leave it alone."""
    if isinstance(id, str) and ObjectId.is_valid(id):
        return ObjectId(id)
    return id


def from_object_id(id: Any) -> Any:
    """Convert a stored ``_id`` to the id exposed on entities."""
    return str(id) if isinstance(id, ObjectId) else id


class Document:
    """
    Base class for stored documents.

    Fields are read and written through attributes, items or ``get``/``set``.
    Every write marks the touched field dirty; the repository clears the
    dirty set once a save succeeds.

    Subclass this for your domain documents and register the subclass so
    repositories can resolve it by name:

    Example:
        @document("Article")
        class Article(Document):
            def summary(self) -> str:
                return self.get("body", "")[:80]

        article = Article({"title": "Hello"})
        article.title = "Hello again"
        article.dirty("title")  # True
    """

    _INTERNAL = frozenset({"_fields", "_dirty", "_new", "_source"})

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        mark_new: bool | None = None,
        mark_clean: bool = True,
        source: str | None = None,
    ) -> None:
        """
        Build a document from raw field data.

        Args:
            fields: Initial field values
            mark_new: Whether the document is new. When None, the document is
                      new unless the data carries ``_new: False``.
            mark_clean: Clear the dirty set after loading the initial fields
            source: Name of the repository the document belongs to
        """
        object.__setattr__(self, "_fields", {})
        object.__setattr__(self, "_dirty", set())
        object.__setattr__(self, "_source", source)

        data = copy.deepcopy(dict(fields or {}))
        new_flag = data.pop(NEW_FLAG_FIELD, None)
        if mark_new is None:
            mark_new = True if new_flag is None else bool(new_flag)
        object.__setattr__(self, "_new", bool(mark_new))

        self.set(data)
        if mark_clean:
            self.clean()

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def id(self) -> Any:
        """Document identifier, None until assigned."""
        return self._fields.get(ID_FIELD)

    @id.setter
    def id(self, value: Any) -> None:
        self.set(ID_FIELD, value)

    @property
    def version(self) -> Any:
        """Version token assigned by the store, None until the first save."""
        return self._fields.get(VERSION_FIELD)

    # ------------------------------------------------------------------
    # Field access
    # ------------------------------------------------------------------

    def get(self, field: str, default: Any = None) -> Any:
        return self._fields.get(field, default)

    def has(self, field: str) -> bool:
        return field in self._fields

    def set(self, field: str | Mapping[str, Any], value: Any = None) -> "Document":
        """
        Set one field, or several from a mapping, marking them dirty.

        Returns:
            The document, for chaining
        """
        values = field if isinstance(field, Mapping) else {field: value}
        for name, val in values.items():
            self._fields[name] = val
            self._dirty.add(name)
        return self

    def unset(self, field: str | Iterable[str]) -> "Document":
        """Remove one or more fields. Removed fields stay dirty until saved."""
        names = [field] if isinstance(field, str) else list(field)
        for name in names:
            if self._fields.pop(name, _MISSING) is not _MISSING:
                self._dirty.add(name)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Return a snapshot of every field, including ``id`` and ``_version``."""
        return copy.deepcopy(self._fields)

    def extract(self, fields: Iterable[str], only_dirty: bool = False) -> dict[str, Any]:
        """Return the named fields that are present (and dirty, if requested)."""
        return {
            name: self._fields[name]
            for name in fields
            if name in self._fields and (not only_dirty or name in self._dirty)
        }

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if name.startswith("__") or name in Document._INTERNAL:
            raise AttributeError(name)
        fields = self.__dict__.get("_fields", {})
        if name in fields:
            return fields[name]
        raise AttributeError(f"'{type(self).__name__}' has no field '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in Document._INTERNAL or isinstance(getattr(type(self), name, None), property):
            object.__setattr__(self, name, value)
        else:
            self.set(name, value)

    def __delattr__(self, name: str) -> None:
        if name not in self._fields:
            raise AttributeError(name)
        self.unset(name)

    def __getitem__(self, field: str) -> Any:
        return self._fields[field]

    def __setitem__(self, field: str, value: Any) -> None:
        self.set(field, value)

    def __delitem__(self, field: str) -> None:
        if field not in self._fields:
            raise KeyError(field)
        self.unset(field)

    def __contains__(self, field: object) -> bool:
        return field in self._fields

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return type(self) is type(other) and self._fields == other._fields

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        state = "new" if self._new else "persisted"
        return f"<{type(self).__name__} id={self.id!r} {state} fields={sorted(self._fields)}>"

    # ------------------------------------------------------------------
    # Lifecycle state
    # ------------------------------------------------------------------

    def is_new(self) -> bool:
        return self._new

    def set_new(self, new: bool) -> "Document":
        object.__setattr__(self, "_new", bool(new))
        return self

    def dirty(self, field: str | None = None) -> bool:
        """Whether the document (or one field) changed since the last sync point."""
        if field is None:
            return bool(self._dirty)
        return field in self._dirty

    def set_dirty(self, field: str, dirty: bool = True) -> "Document":
        if dirty:
            self._dirty.add(field)
        else:
            self._dirty.discard(field)
        return self

    def dirty_fields(self) -> list[str]:
        """Dirty field names: present fields in field order, then removed ones."""
        present = [name for name in self._fields if name in self._dirty]
        removed = sorted(name for name in self._dirty if name not in self._fields)
        return present + removed

    def clean(self) -> "Document":
        self._dirty.clear()
        return self

    def source(self) -> str | None:
        """Name of the repository this document was loaded from or saved to."""
        return self._source

    def set_source(self, source: str | None) -> "Document":
        object.__setattr__(self, "_source", source)
        return self

    def mark_persisted(self, id: Any = _MISSING, version: Any = _MISSING) -> "Document":
        """
        Record a successful save.

        Assigns the store-provided identifier and version without counting
        them as caller changes, then clears the new flag and the dirty set.
        """
        if id is not _MISSING:
            self._fields[ID_FIELD] = id
        if version is not _MISSING:
            self._fields[VERSION_FIELD] = version
        object.__setattr__(self, "_new", False)
        return self.clean()

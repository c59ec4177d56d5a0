# entities/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    Generic,
    List,
    Mapping,
    Optional,
    Set,
    TypeVar,
    TYPE_CHECKING,
)

if TYPE_CHECKING:
    from ..client import Client


T = TypeVar("T")


class Field(Generic[T]):
    """
    Descriptor mapping an attribute to a column in `entity.data`.

    A stored NULL reads back as the default, so counters that were never
    initialised show up as 0 rather than None.

    Example:
        title: str = Field("title", default="")
        like_count: int = Field("like_count", default=0, read_only=True)
    """

    def __init__(
        self,
        key: Optional[str] = None,
        *,
        default: Optional[T] = None,
        default_factory: Optional[Callable[[], T]] = None,
        read_only: bool = False,
    ) -> None:
        self.key = key
        self.default = default
        self.default_factory = default_factory
        self.read_only = read_only
        self.name: Optional[str] = None

    def __set_name__(self, owner, name: str) -> None:
        if self.key is None:
            self.key = name
        self.name = name

    def __get__(self, instance, owner=None) -> T:
        if instance is None:
            return self

        key = self.key
        assert key is not None

        value = instance.data.get(key)
        if value is not None:
            return value

        if self.default_factory is not None:
            value = self.default_factory()
            instance.data[key] = value
            return value

        return self.default

    def __set__(self, instance, value: T) -> None:
        if self.read_only:
            raise AttributeError(f"Field '{self.name}' is read-only")

        key = self.key
        assert key is not None

        instance.data[key] = value

        # Track as dirty if supported
        dirty = getattr(instance, "_dirty_fields", None)
        if isinstance(dirty, set):
            dirty.add(key)

        # Auto-sync on write if enabled
        if getattr(instance, "sync", False):
            instance.save(only_dirty=True)


@dataclass
class BaseEntity:
    """
    Lightweight proxy for a single row of a gateway relation.

    Subclasses must define:
      - TABLE (e.g. "articles")
    """

    client: "Client"
    data: Dict[str, Any] = field(default_factory=dict)

    sync: bool = field(default=True, repr=False, compare=False)

    _dirty_fields: Set[str] = field(default_factory=set, repr=False, compare=False)

    TABLE: ClassVar[str] = ""
    # Columns the gateway owns; never sent back on save
    SERVER_KEYS: ClassVar[FrozenSet[str]] = frozenset({"id", "created_at", "updated_at"})

    @property
    def id(self) -> str:
        """Primary key of the underlying row."""
        return self.data["id"]

    # ------------------------------------------------------------------ #
    # CRUD (class methods)
    # ------------------------------------------------------------------ #

    @classmethod
    def get(cls: type[TEntity], client: "Client", id: str) -> TEntity:
        """Fetch a single row by id and return a proxy."""
        row = client.select_one(cls.TABLE, filters={"id": id})
        return cls(client=client, data=row, sync=False)

    @classmethod
    def create(cls: type[TEntity], client: "Client", **fields: Any) -> TEntity:
        """Insert a new row and return a proxy for it."""
        row = client.insert(cls.TABLE, fields)
        return cls(client=client, data=row, sync=False)

    @classmethod
    def from_rows(cls: type[TEntity], client: "Client", rows: List[Dict[str, Any]]) -> List[TEntity]:
        return [cls(client=client, data=row, sync=False) for row in rows]

    # ------------------------------------------------------------------ #
    # CRUD (instance methods)
    # ------------------------------------------------------------------ #

    def refresh(self) -> None:
        """Reload the row from the gateway."""
        self.data = self.client.select_one(self.TABLE, filters={"id": self.id})
        self._dirty_fields.clear()

    def merge(self, **values: Any) -> None:
        """
        Overlay server-confirmed values without marking anything dirty.

        Used for counters re-read after a mutation.
        """
        self.data.update(values)

    def save(self, *, only_dirty: bool = False) -> None:
        """
        Persist local changes to the gateway using PATCH.

        If only_dirty=True, only fields that have been changed via Field
        descriptors are sent (based on `_dirty_fields`).
        """
        if only_dirty and self._dirty_fields:
            body = {
                k: self.data[k]
                for k in self._dirty_fields
                if k not in self.SERVER_KEYS
            }
        else:
            body = {
                k: v
                for k, v in self.data.items()
                if k not in self.SERVER_KEYS
            }

        if not body:
            return  # nothing to send

        rows = self.client.update_rows(self.TABLE, body, filters={"id": self.id})
        if rows:
            self.data = rows[0]
        self._dirty_fields.clear()

    def delete(self) -> None:
        self.client.delete_rows(self.TABLE, filters={"id": self.id})

    # ------------------------------------------------------------------ #
    # Representation / display helpers
    # ------------------------------------------------------------------ #

    def __repr__(self) -> str:
        """Short, machine-oriented representation."""
        return f"<{self.__class__.__name__} id='{self.data.get('id')}'>"

    def __str__(self) -> str:
        """Compact human-oriented summary."""
        title = self.data.get("title")
        if title:
            return f"{self.__class__.__name__}(id='{self.data.get('id')}', title='{title}')"
        return f"{self.__class__.__name__}(id='{self.data.get('id')}')"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)

    def show(self) -> None:
        """Pretty-print the full row."""
        import json

        print(json.dumps(self.data, indent=2, ensure_ascii=False))


TEntity = TypeVar("TEntity", bound=BaseEntity)


class BaseCollectionProxy:
    """
    Indexable / sliceable view over the rows of one relation.

    An initial page of ids is cached for len()/iteration; slices go to the
    gateway with limit/offset and materialize entities from one response.
    """

    ENTITY_CLS: ClassVar[type[BaseEntity]] = BaseEntity
    TABLE: ClassVar[str] = ""
    DEFAULT_ORDER: ClassVar[str] = "created_at.desc,id.desc"
    DEFAULT_PAGE_SIZE: ClassVar[int] = 100  # used for index/completions

    def __init__(self, client: "Client") -> None:
        self.client = client
        self._ids: Optional[List[str]] = None

    # ------------------------------------------------------------------ #
    # Low-level fetching helpers
    # ------------------------------------------------------------------ #

    def _fetch_rows(
        self,
        *,
        limit: Optional[int],
        offset: int = 0,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        columns: str = "*",
    ) -> List[Dict[str, Any]]:
        return self.client.select(
            self.TABLE,
            columns=columns,
            filters=filters,
            order=order or self.DEFAULT_ORDER,
            limit=limit,
            offset=offset,
        )

    def _fetch_ids(self, *, limit: int, offset: int = 0) -> List[str]:
        """Fetch a page of ids using limit/offset."""
        rows = self._fetch_rows(limit=limit, offset=offset, columns="id")
        return [row["id"] for row in rows]

    def _ensure_index(self) -> None:
        """Populate an initial page of ids for len()/iteration."""
        if self._ids is not None:
            return
        self._ids = self._fetch_ids(limit=self.DEFAULT_PAGE_SIZE, offset=0)

    def _get_entity(self, id: str) -> BaseEntity:
        return self.ENTITY_CLS.get(self.client, id)

    def list(
        self,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        columns: str = "*",
    ) -> List[BaseEntity]:
        """Return entities for matching rows (all of them when `limit` is None)."""
        rows = self._fetch_rows(
            limit=limit,
            offset=offset,
            filters=filters,
            order=order,
            columns=columns,
        )
        return self.ENTITY_CLS.from_rows(self.client, rows)

    def create(self, **fields: Any) -> BaseEntity:
        """Insert a row and keep the cached index in step."""
        entity = self.ENTITY_CLS.create(self.client, **fields)
        if self._ids is not None:
            self._ids.insert(0, entity.id)
        return entity

    # ------------------------------------------------------------------ #
    # Python container protocol
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        self._ensure_index()
        return len(self._ids or [])

    def __iter__(self):
        """Iterate over entity proxies (one gateway call per entity)."""
        self._ensure_index()
        for id in self._ids or []:
            yield self._get_entity(id)

    def __getitem__(self, key):
        """
        Support:
          - proxy[0]       → entity by position in the cached index
          - proxy[1:10]    → list of entities (using limit/offset)
          - proxy["<id>"]  → entity by primary key
        """

        if isinstance(key, int):
            self._ensure_index()
            if self._ids is None:
                raise IndexError("Index not loaded")
            return self._get_entity(self._ids[key])

        if isinstance(key, slice):
            start = key.start or 0
            stop = key.stop
            step = key.step or 1

            if step != 1:
                raise ValueError("Step other than 1 is not supported for slices.")

            if stop is None:
                raise ValueError("Open-ended slices are not supported; specify stop.")

            limit = max(0, stop - start)
            if limit == 0:
                return []

            rows = self._fetch_rows(limit=limit, offset=start)
            return self.ENTITY_CLS.from_rows(self.client, rows)

        if isinstance(key, str):
            return self._get_entity(key)

        raise TypeError(f"Unsupported key type: {type(key)!r}")

    def invalidate(self) -> None:
        """Drop the cached index so the next access refetches it."""
        self._ids = None

"""
PostgREST filter operators.

Filters are passed to the gateway as a mapping of column → value. Plain
values mean equality; wrap a value in one of the helpers below for
anything else:

    >>> client.select("articles", filters={"tags": contains(["python"])})
    >>> client.select("articles", filters={"or": or_(("title", ilike("*orm*")),
    ...                                             ("tags", contains(["orm"])))})
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

# Characters PostgREST treats as syntax inside `or=(...)`, `in.(...)` and
# array literals. Values containing them must be double-quoted there.
_RESERVED = set(',.:()"\\{} ')

# Operators whose value already carries its own quoting
_SELF_QUOTED = {"cs", "cd", "in", "is"}


def _quote(value: str) -> str:
    if not value or any(ch in _RESERVED for ch in value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class Op:
    """A single `operator.value` filter term."""

    __slots__ = ("op", "value")

    def __init__(self, op: str, value: str) -> None:
        self.op = op
        self.value = value

    def render(self, *, nested: bool = False) -> str:
        value = self.value
        if nested and self.op not in _SELF_QUOTED:
            value = _quote(value)
        return f"{self.op}.{value}"

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"Op({self.op!r}, {self.value!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Op) and (self.op, self.value) == (other.op, other.value)

    def __hash__(self) -> int:
        return hash((self.op, self.value))


def eq(value: Any) -> Op:
    return Op("eq", _scalar(value))


def neq(value: Any) -> Op:
    return Op("neq", _scalar(value))


def ilike(pattern: str) -> Op:
    """Case-insensitive match; `*` is the wildcard."""
    return Op("ilike", pattern)


def contains(values: Iterable[Any]) -> Op:
    """Array column contains every one of `values`."""
    items = ",".join(_quote(_scalar(v)) for v in values)
    return Op("cs", "{" + items + "}")


def in_(values: Iterable[Any]) -> Op:
    items = ",".join(_quote(_scalar(v)) for v in values)
    return Op("in", "(" + items + ")")


def is_(value: Optional[bool]) -> Op:
    return Op("is", "null" if value is None else _scalar(value))


def or_(*terms: Tuple[str, Op]) -> str:
    """Combine `(column, Op)` pairs into the value of an `or` filter."""
    if not terms:
        raise ValueError("or_() needs at least one term.")
    rendered = ",".join(f"{column}.{op.render(nested=True)}" for column, op in terms)
    return f"({rendered})"


def encode_filters(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Turn a filter mapping into PostgREST query parameters."""
    params: Dict[str, str] = {}
    for column, value in (filters or {}).items():
        if column in ("or", "and"):
            params[column] = str(value)
        elif isinstance(value, Op):
            params[column] = value.render()
        elif value is None:
            params[column] = "is.null"
        else:
            params[column] = eq(value).render()
    return params

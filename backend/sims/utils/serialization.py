"""ORM rows to plain dicts for JSON responses"""
from datetime import date, datetime
from typing import Any, Dict, Optional, Set
import enum

from sqlalchemy import inspect


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_dict(obj: Any, _seen: Optional[Set[int]] = None) -> Optional[Dict[str, Any]]:
    """
    Column values plus every relationship that is already loaded.

    Unloaded relationships are skipped so this never triggers lazy loads
    on an async session; back-references to an object already being
    serialized are skipped as well.
    """
    if obj is None:
        return None

    seen = set() if _seen is None else _seen
    if id(obj) in seen:
        return None
    seen = seen | {id(obj)}

    state = inspect(obj)
    mapper = state.mapper
    unloaded = state.unloaded

    data: Dict[str, Any] = {}
    for column in mapper.column_attrs:
        if column.key in unloaded:
            continue
        data[column.key] = _plain(getattr(obj, column.key))

    for rel in mapper.relationships:
        if rel.key in unloaded:
            continue
        value = getattr(obj, rel.key)
        if value is None:
            data[rel.key] = None
        elif rel.uselist:
            items = [to_dict(item, seen) for item in value]
            data[rel.key] = [item for item in items if item is not None]
        else:
            nested = to_dict(value, seen)
            if nested is not None:
                data[rel.key] = nested

    return data

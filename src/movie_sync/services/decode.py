"""Response-shape decoding for list endpoints.

Some backend endpoints return a bare JSON array, others wrap the array in an
object under a named field. The shape is classified once here, at the API
boundary, so the rest of the engine only ever sees a plain list.
"""

from typing import Any

from attrs import define, field


@define(frozen=True)
class BareList:
    """The payload was a JSON array."""

    items: list = field(factory=list)


@define(frozen=True)
class WrappedList:
    """The payload was an object with the array under ``field_name``."""

    field_name: str
    items: list = field(factory=list)


@define(frozen=True)
class Unrecognized:
    """The payload had no usable array; decodes to an empty list."""

    kind: str
    keys: tuple[str, ...] = ()


ListShape = BareList | WrappedList | Unrecognized


def classify_list_payload(payload: Any, fields: tuple[str, ...] = ("data",)) -> ListShape:
    """Classify a list-endpoint payload, trying ``fields`` in order when wrapped."""
    if isinstance(payload, list):
        return BareList(items=payload)
    if isinstance(payload, dict):
        for name in fields:
            value = payload.get(name)
            if isinstance(value, list):
                return WrappedList(field_name=name, items=value)
        return Unrecognized(kind="object", keys=tuple(str(k) for k in payload))
    return Unrecognized(kind=type(payload).__name__)


def extract_list(payload: Any, fields: tuple[str, ...] = ("data",)) -> list:
    """Return the array carried by ``payload``, or ``[]`` for an unrecognized shape."""
    shape = classify_list_payload(payload, fields)
    if isinstance(shape, Unrecognized):
        return []
    return shape.items

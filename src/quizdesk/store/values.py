"""Tagged-value decoding for document store documents.

The document store wraps every field value in a type tag:

    {"name": {"stringValue": "Ana"},
     "chapters": {"integerValue": "12"},
     "subjects": {"arrayValue": {"values": [{"stringValue": "Math"}]}},
     "book": {"mapValue": {"fields": {...}}}}

Each decoder returns either Ok(value) or DecodeError(field, reason) and
never raises. Callers compose them with and_then / map_ok and collapse a
result into a plain value with or_default.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")

Fields = dict[str, Any]


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successfully decoded value."""

    value: T


@dataclass(frozen=True)
class DecodeError:
    """Why a field could not be decoded."""

    field: str
    reason: str


Decoded = Union[Ok[T], DecodeError]


def and_then(result: Decoded[T], fn: Callable[[T], Decoded[U]]) -> Decoded[U]:
    """Chain a decoder onto a successful result."""
    if isinstance(result, Ok):
        return fn(result.value)
    return result


def map_ok(result: Decoded[T], fn: Callable[[T], U]) -> Decoded[U]:
    """Transform the value of a successful result."""
    if isinstance(result, Ok):
        return Ok(fn(result.value))
    return result


def or_default(result: Decoded[T], default: T) -> T:
    """Collapse a result, using default for any DecodeError."""
    if isinstance(result, Ok):
        return result.value
    return default


def non_empty(name: str) -> Callable[[str], Decoded[str]]:
    """Reject empty strings (the store writes "" for cleared fields)."""

    def check(value: str) -> Decoded[str]:
        if value:
            return Ok(value)
        return DecodeError(name, "empty string")

    return check


# =============================================================================
# FIELD DECODERS
# =============================================================================


def tagged(fields: Any, name: str) -> Decoded[dict[str, Any]]:
    """Get the raw tag wrapper for a field."""
    if not isinstance(fields, dict):
        return DecodeError(name, "fields is not a map")
    wrapper = fields.get(name)
    if wrapper is None:
        return DecodeError(name, "missing")
    if not isinstance(wrapper, dict):
        return DecodeError(name, "not a tagged value")
    return Ok(wrapper)


def _string_tag(name: str) -> Callable[[dict[str, Any]], Decoded[str]]:
    def decode(wrapper: dict[str, Any]) -> Decoded[str]:
        value = wrapper.get("stringValue")
        if isinstance(value, str):
            return Ok(value)
        return DecodeError(name, "no stringValue tag")

    return decode


def _integer_tag(name: str) -> Callable[[dict[str, Any]], Decoded[int]]:
    def decode(wrapper: dict[str, Any]) -> Decoded[int]:
        value = wrapper.get("integerValue")
        if value is None or isinstance(value, bool):
            return DecodeError(name, "no integerValue tag")
        try:
            # integers travel as decimal strings
            return Ok(int(value))
        except (TypeError, ValueError):
            return DecodeError(name, f"bad integerValue {value!r}")

    return decode


def _array_tag(name: str) -> Callable[[dict[str, Any]], Decoded[list[Any]]]:
    def decode(wrapper: dict[str, Any]) -> Decoded[list[Any]]:
        array = wrapper.get("arrayValue")
        if not isinstance(array, dict):
            return DecodeError(name, "no arrayValue tag")
        # an empty array is sent without "values"
        values = array.get("values", [])
        if not isinstance(values, list):
            return DecodeError(name, "arrayValue.values is not a list")
        return Ok(values)

    return decode


def _map_tag(name: str) -> Callable[[Any], Decoded[Fields]]:
    def decode(wrapper: Any) -> Decoded[Fields]:
        if not isinstance(wrapper, dict):
            return DecodeError(name, "not a tagged value")
        mapping = wrapper.get("mapValue")
        if not isinstance(mapping, dict):
            return DecodeError(name, "no mapValue tag")
        inner = mapping.get("fields", {})
        if not isinstance(inner, dict):
            return DecodeError(name, "mapValue.fields is not a map")
        return Ok(inner)

    return decode


def string_value(fields: Any, name: str) -> Decoded[str]:
    """Decode a stringValue field."""
    return and_then(tagged(fields, name), _string_tag(name))


def integer_value(fields: Any, name: str) -> Decoded[int]:
    """Decode an integerValue field."""
    return and_then(tagged(fields, name), _integer_tag(name))


def array_values(fields: Any, name: str) -> Decoded[list[Any]]:
    """Decode an arrayValue field into its raw tagged elements."""
    return and_then(tagged(fields, name), _array_tag(name))


def map_fields(fields: Any, name: str) -> Decoded[Fields]:
    """Decode a mapValue field into its inner fields."""
    return and_then(tagged(fields, name), _map_tag(name))


def string_list(fields: Any, name: str) -> Decoded[list[str]]:
    """Decode an array of strings, dropping empty or non-string elements."""

    def collect(values: list[Any]) -> Decoded[list[str]]:
        items = []
        for element in values:
            if isinstance(element, dict):
                text = element.get("stringValue")
                if isinstance(text, str) and text:
                    items.append(text)
        return Ok(items)

    return and_then(array_values(fields, name), collect)


def map_list(fields: Any, name: str) -> Decoded[list[Fields]]:
    """Decode an array of maps into a list of inner field dicts.

    Elements that are not maps are skipped.
    """

    def collect(values: list[Any]) -> Decoded[list[Fields]]:
        decode = _map_tag(name)
        return Ok([r.value for r in map(decode, values) if isinstance(r, Ok)])

    return and_then(array_values(fields, name), collect)


# =============================================================================
# ENCODING
# =============================================================================


def encode_value(value: Any) -> dict[str, Any]:
    """Wrap a plain Python value in the store's type tag."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a document value")


def encode_fields(data: dict[str, Any]) -> Fields:
    """Encode a plain dict into a document's tagged fields."""
    return {key: encode_value(value) for key, value in data.items()}

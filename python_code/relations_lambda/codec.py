"""
Attribute codec: typed records <-> DynamoDB attribute maps.

All knowledge of the store's value variants (S, N, B, L, M, ...) is delegated
to boto3's TypeSerializer/TypeDeserializer, so supporting a new variant never
requires changes outside this module. Record schemas are taken from the
record type's dataclass fields and type hints.
"""

import base64
import binascii
import json
from dataclasses import MISSING, fields, is_dataclass
from decimal import Decimal
from typing import (
    Any,
    Dict,
    Iterable,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer

from .errors import MalformedRequest, SchemaMismatch
from .model import AttributeMap

T = TypeVar("T")

_SERIALIZER = TypeSerializer()
_DESERIALIZER = TypeDeserializer()

# Python types produced by TypeDeserializer for hints that don't map one-to-one.
_DESERIALIZED_AS: Dict[type, Tuple[type, ...]] = {
    int: (Decimal,),
    float: (Decimal,),
    bytes: (Binary,),
}


def encode_attribute(name: str, value: Any) -> AttributeMap:
    """
    Builds a single-attribute map, e.g. {"pk": {"S": "c4c"}}.

    Only the variant slot that applies to `value` is present in the result.
    """
    return {name: _SERIALIZER.serialize(value)}  # type: ignore[dict-item]


def encode(record: Any) -> AttributeMap:
    """
    Encodes every field of a dataclass record, skipping optional fields set to None.

    Args:
        record: A dataclass instance, typically a `StoreRecord` subclass.

    Returns:
        An attribute map suitable for put_item or for building keys.
    """
    item: AttributeMap = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if value is None:
            continue
        item.update(encode_attribute(f.name, value))
    return item


def decode(item: AttributeMap, record_type: Type[T]) -> T:
    """
    Builds a `record_type` instance from a stored item.

    Attributes present in the item but not declared on the record are ignored.
    Optional fields (those with a default) may be absent.

    Raises:
        SchemaMismatch: A required field is missing, a value has the wrong
                        type, or a value descriptor is not understood.
    """
    if not is_dataclass(record_type):
        raise TypeError(f"{record_type!r} is not a dataclass record type")

    hints = get_type_hints(record_type)
    values: Dict[str, Any] = {}
    missing = []

    for f in fields(record_type):
        if not f.init:
            continue
        if f.name not in item:
            if f.default is MISSING and f.default_factory is MISSING:
                missing.append(f.name)
            continue

        try:
            value = _DESERIALIZER.deserialize(item[f.name])
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            raise SchemaMismatch(
                f"Attribute '{f.name}' of {record_type.__name__} has an unreadable value: {e}",
                cause=e,
            ) from e

        hint = hints.get(f.name, Any)
        if not _matches(value, hint):
            raise SchemaMismatch(
                f"Attribute '{f.name}' of {record_type.__name__} has type "
                f"{type(value).__name__}, expected {hint}"
            )
        try:
            values[f.name] = _to_declared(value, hint)
        except ValueError as e:
            raise SchemaMismatch(
                f"Attribute '{f.name}' of {record_type.__name__}: {e}", cause=e
            ) from e

    if missing:
        raise SchemaMismatch(
            f"Item is missing required attribute(s) for {record_type.__name__}: {', '.join(missing)}"
        )

    return record_type(**values)


def _matches(value: Any, hint: Any) -> bool:
    if hint is Any:
        return True
    origin = get_origin(hint)
    if origin is Union:
        return any(_matches(value, arg) for arg in get_args(hint))
    if hint is type(None):
        return value is None
    if origin is not None:
        # Parameterized generics (List[str], Dict[str, Any]): check the container only.
        return isinstance(value, origin)
    if isinstance(hint, type):
        return isinstance(value, (hint,) + _DESERIALIZED_AS.get(hint, ()))
    return True


def _to_declared(value: Any, hint: Any) -> Any:
    """
    Converts boto3's deserialized forms into the field's declared type.

    Numbers come back from TypeDeserializer as Decimal and binaries as Binary;
    neither survives JSON serialization of the response, so scalars are turned
    into the int/float/bytes the field declares and any Decimal nested in a
    list, set or map becomes int or float.
    """
    members = get_args(hint) if get_origin(hint) is Union else (hint,)
    if isinstance(value, Decimal):
        if int in members and value == value.to_integral_value():
            return int(value)
        if float in members:
            return float(value)
        if int in members:
            raise ValueError(f"{value} is not a whole number")
    if isinstance(value, Binary) and bytes in members:
        return value.value
    return _plain(value)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, set):
        return {_plain(v) for v in value}
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


# --- Continuation tokens ---

# Only scalar attribute types can form a key.
_KEY_DESCRIPTORS = frozenset({"S", "N", "B"})


def encode_continuation_token(last_evaluated_key: Optional[AttributeMap]) -> Optional[str]:
    """
    Wraps a LastEvaluatedKey into an opaque, URL-safe string.

    Binary key values are base64-encoded so the key can go through JSON.
    """
    if not last_evaluated_key:
        return None
    portable = {}
    for name, value in last_evaluated_key.items():
        if "B" in value:
            raw_bytes = value["B"]
            if isinstance(raw_bytes, Binary):
                raw_bytes = raw_bytes.value
            value = {"B": base64.b64encode(raw_bytes).decode("ascii")}
        portable[name] = value
    raw = json.dumps(portable, sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_continuation_token(token: str, key_attributes: Iterable[str]) -> AttributeMap:
    """
    Reverses `encode_continuation_token`.

    Args:
        token: The token returned in a previous response.
        key_attributes: Attribute names a key of the queried index may use.
                        Every name in the token must be one of these.

    Raises:
        MalformedRequest: The token is not one this service produced.
    """
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        key = json.loads(raw)
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedRequest(f"Invalid continuation token: {e}", cause=e) from e

    if not isinstance(key, dict) or not key:
        raise MalformedRequest("Invalid continuation token: not an attribute map")

    allowed = set(key_attributes)
    unexpected = sorted(set(key) - allowed)
    if unexpected:
        raise MalformedRequest(
            f"Invalid continuation token: unexpected key attribute(s) {', '.join(unexpected)}"
        )

    restored: AttributeMap = {}
    for name, value in key.items():
        if (
            not isinstance(value, dict)
            or len(value) != 1
            or next(iter(value)) not in _KEY_DESCRIPTORS
            or not isinstance(next(iter(value.values())), str)
        ):
            raise MalformedRequest(
                f"Invalid continuation token: '{name}' is not a scalar key value"
            )
        if "B" in value:
            try:
                value = {"B": base64.b64decode(value["B"], validate=True)}
            except binascii.Error as e:
                raise MalformedRequest(f"Invalid continuation token: {e}", cause=e) from e
        restored[name] = value
    return restored

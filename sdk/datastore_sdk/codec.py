"""
JSON codec for keys, values and entities.

Encodes model objects into JSON-compatible dicts for the RPC layer and
decodes them back. The same shapes are stored by the reference server.

Shapes:
    key:    {"dataset": str, "namespace": str | None,
             "path": [{"kind": str, "id": int} | {"kind": str, "name": str} | {"kind": str}]}
    value:  {"type": str, "indexed": bool, "value": ...}
    entity: {"key": key, "complete": bool, "properties": {name: value}}

A partial key is encoded with a final path element that has no identity.

Invariants:
    - decode(encode(x)) == x for every key, value and entity
    - Nested Entity and PartialEntity values keep their class
"""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from .entity import Entity, PartialEntity
from .errors import InvalidArgumentError
from .key import Key, PartialKey, PathElement
from .value import (
    VALUE_TYPES,
    BlobValue,
    KeyValue,
    ListValue,
    PartialEntityValue,
    TimestampValue,
    Value,
)


def encode_path_element(element: PathElement) -> Dict[str, Any]:
    if element.id is not None:
        return {"kind": element.kind, "id": element.id}
    return {"kind": element.kind, "name": element.name}


def encode_key(key: PartialKey) -> Dict[str, Any]:
    """Encode a PartialKey or Key."""
    path = [encode_path_element(a) for a in key.ancestors]
    if isinstance(key, Key):
        path.append(encode_path_element(key.path_element))
    else:
        path.append({"kind": key.kind})
    return {"dataset": key.dataset, "namespace": key.namespace, "path": path}


def decode_key(data: Dict[str, Any]) -> PartialKey:
    """Decode a key; returns Key when the last path element has identity."""
    try:
        path = data["path"]
        dataset = data["dataset"]
        namespace = data.get("namespace")
        last = path[-1]
        kind = last["kind"]
        ancestors = tuple(
            PathElement(p["kind"], id=p.get("id"), name=p.get("name")) for p in path[:-1]
        )
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise InvalidArgumentError(f"Malformed key: {data!r}", field_name="key") from e

    if last.get("id") is None and last.get("name") is None:
        return PartialKey(dataset, kind, namespace, ancestors)
    return Key(dataset, kind, namespace, ancestors, id=last.get("id"), name=last.get("name"))


def _encode_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


_ENCODERS: Dict[type, Callable[[Any], Any]] = {
    TimestampValue: _encode_timestamp,
    BlobValue: lambda b: base64.b64encode(b).decode("ascii"),
    KeyValue: encode_key,
    PartialEntityValue: lambda e: encode_entity(e),
    ListValue: lambda items: [encode_value(v) for v in items],
}

_DECODERS: Dict[type, Callable[[Any], Any]] = {
    TimestampValue: datetime.fromisoformat,
    BlobValue: lambda s: base64.b64decode(s.encode("ascii")),
    KeyValue: decode_key,
    PartialEntityValue: lambda d: decode_entity(d),
    ListValue: lambda items: tuple(decode_value(v) for v in items),
}


def encode_value(value: Value) -> Dict[str, Any]:
    encoder = _ENCODERS.get(type(value))
    payload = encoder(value.value) if encoder else value.value
    return {"type": value.type_name, "indexed": value.indexed, "value": payload}


def decode_value(data: Dict[str, Any]) -> Value:
    """Decode a value dict.

    Raises:
        InvalidArgumentError: If the type tag is unknown
    """
    value_type = VALUE_TYPES.get(data.get("type", ""))
    if value_type is None:
        raise InvalidArgumentError(f"Unknown value type: {data.get('type')!r}", field_name="type")
    decoder = _DECODERS.get(value_type)
    payload = data.get("value")
    if decoder is not None:
        payload = decoder(payload)
    return value_type(payload, data.get("indexed", True))


def encode_entity(entity: PartialEntity) -> Dict[str, Any]:
    return {
        "key": encode_key(entity.key),
        "complete": isinstance(entity, Entity),
        "properties": {name: encode_value(v) for name, v in entity.properties.items()},
    }


def decode_entity(data: Dict[str, Any]) -> PartialEntity:
    key = decode_key(data["key"])
    properties = {name: decode_value(v) for name, v in data.get("properties", {}).items()}
    if data.get("complete", isinstance(key, Key)):
        if not isinstance(key, Key):
            raise InvalidArgumentError("Entity marked complete has a partial key", field_name="key")
        return Entity(key, properties)
    return PartialEntity(key, properties)

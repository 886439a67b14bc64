from __future__ import annotations

import gzip
import struct
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, NamedTuple, Optional, Union

from .errors import FormatError


# Protobuf wire types
_VARINT = 0
_FIXED64 = 1
_LENGTH = 2
_FIXED32 = 5

# Field numbers from the vector tile schema (vector_tile.proto, version 2.1)
_TILE_LAYERS = 3

_LAYER_NAME = 1
_LAYER_FEATURES = 2
_LAYER_KEYS = 3
_LAYER_VALUES = 4
_LAYER_EXTENT = 5
_LAYER_VERSION = 15

_FEATURE_ID = 1
_FEATURE_TAGS = 2
_FEATURE_TYPE = 3
_FEATURE_GEOMETRY = 4

_VALUE_STRING = 1
_VALUE_FLOAT = 2
_VALUE_DOUBLE = 3
_VALUE_INT = 4
_VALUE_UINT = 5
_VALUE_SINT = 6
_VALUE_BOOL = 7

_MAX_VARINT_BYTES = 10
_UINT64_MASK = (1 << 64) - 1
_GZIP_MAGIC = b"\x1f\x8b"

DEFAULT_VERSION = 1
DEFAULT_EXTENT = 4096


class ValueKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Value:
    """A decoded property value; `data` is None for NULL and UNKNOWN."""

    kind: ValueKind
    data: Union[bool, float, str, None] = None


NULL_VALUE = Value(ValueKind.NULL)
UNKNOWN_VALUE = Value(ValueKind.UNKNOWN)


@dataclass
class Feature:
    properties: dict[str, Value] = field(default_factory=dict)
    id: Optional[int] = None
    geom_type: int = 0


@dataclass
class Layer:
    name: str
    version: int = DEFAULT_VERSION
    extent: int = DEFAULT_EXTENT
    features: list[Feature] = field(default_factory=list)


@dataclass
class Tile:
    layers: list[Layer] = field(default_factory=list)


class _Field(NamedTuple):
    number: int
    wire_type: int
    value: Optional[int]
    start: int
    stop: int
    offset: int


def _read_varint(buf: bytes, pos: int, end: int) -> tuple[int, int]:
    start = pos
    result = 0
    shift = 0
    for _ in range(_MAX_VARINT_BYTES):
        if pos >= end:
            raise FormatError("truncated varint", start)
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _UINT64_MASK, pos
        shift += 7
    raise FormatError("malformed varint (more than 10 bytes)", start)


def _iter_fields(buf: bytes, pos: int, end: int) -> Iterator[_Field]:
    """
    Walk the fields of the message stored in buf[pos:end].

    Varint fields carry their decoded value; every field carries the byte
    range of its payload and the offset of its tag.
    """

    while pos < end:
        offset = pos
        tag, pos = _read_varint(buf, pos, end)
        number, wire_type = tag >> 3, tag & 0x07
        if number == 0:
            raise FormatError("invalid field number 0", offset)
        if wire_type == _VARINT:
            start = pos
            value, pos = _read_varint(buf, pos, end)
            yield _Field(number, wire_type, value, start, pos, offset)
        elif wire_type == _LENGTH:
            length, start = _read_varint(buf, pos, end)
            stop = start + length
            if stop > end:
                raise FormatError("truncated message", offset)
            yield _Field(number, wire_type, length, start, stop, offset)
            pos = stop
        elif wire_type in (_FIXED32, _FIXED64):
            size = 4 if wire_type == _FIXED32 else 8
            if pos + size > end:
                raise FormatError("truncated fixed-width field", offset)
            yield _Field(number, wire_type, None, pos, pos + size, offset)
            pos += size
        else:
            raise FormatError(f"unsupported wire type {wire_type}", offset)


def _expect(f: _Field, wire_type: int, name: str) -> None:
    if f.wire_type != wire_type:
        raise FormatError(f"unexpected wire type {f.wire_type} for {name}", f.offset)


def _read_string(buf: bytes, f: _Field) -> str:
    try:
        return buf[f.start:f.stop].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError("invalid UTF-8 in string", f.start + exc.start) from exc


def _read_uint_list(buf: bytes, f: _Field) -> list[tuple[int, int]]:
    """Return (value, offset) pairs for a packed or single repeated uint32 field."""

    if f.wire_type == _VARINT:
        return [(f.value, f.start)]
    _expect(f, _LENGTH, "packed integer list")
    items = []
    pos = f.start
    while pos < f.stop:
        offset = pos
        value, pos = _read_varint(buf, pos, f.stop)
        items.append((value, offset))
    return items


def _decode_value(buf: bytes, start: int, end: int) -> Value:
    value = NULL_VALUE
    for f in _iter_fields(buf, start, end):
        if f.number == _VALUE_STRING:
            _expect(f, _LENGTH, "value.string_value")
            value = Value(ValueKind.STRING, _read_string(buf, f))
        elif f.number == _VALUE_FLOAT:
            _expect(f, _FIXED32, "value.float_value")
            value = Value(ValueKind.NUMBER, struct.unpack_from("<f", buf, f.start)[0])
        elif f.number == _VALUE_DOUBLE:
            _expect(f, _FIXED64, "value.double_value")
            value = Value(ValueKind.NUMBER, struct.unpack_from("<d", buf, f.start)[0])
        elif f.number == _VALUE_INT:
            _expect(f, _VARINT, "value.int_value")
            raw = f.value - (1 << 64) if f.value >> 63 else f.value
            value = Value(ValueKind.NUMBER, float(raw))
        elif f.number == _VALUE_UINT:
            _expect(f, _VARINT, "value.uint_value")
            value = Value(ValueKind.NUMBER, float(f.value))
        elif f.number == _VALUE_SINT:
            _expect(f, _VARINT, "value.sint_value")
            value = Value(ValueKind.NUMBER, float((f.value >> 1) ^ -(f.value & 1)))
        elif f.number == _VALUE_BOOL:
            _expect(f, _VARINT, "value.bool_value")
            value = Value(ValueKind.BOOLEAN, f.value != 0)
        elif value is NULL_VALUE:
            value = UNKNOWN_VALUE
    return value


def _decode_feature(
    buf: bytes,
    start: int,
    end: int,
    keys: list[str],
    values: list[Value],
) -> Feature:
    feature = Feature()
    tags: list[tuple[int, int]] = []
    for f in _iter_fields(buf, start, end):
        if f.number == _FEATURE_ID:
            _expect(f, _VARINT, "feature.id")
            feature.id = f.value
        elif f.number == _FEATURE_TAGS:
            tags.extend(_read_uint_list(buf, f))
        elif f.number == _FEATURE_TYPE:
            _expect(f, _VARINT, "feature.type")
            feature.geom_type = f.value
        elif f.number == _FEATURE_GEOMETRY:
            # geometry is not analysed; only its framing is validated
            _read_uint_list(buf, f)

    for i in range(0, len(tags), 2):
        key_index, key_offset = tags[i]
        if key_index >= len(keys):
            raise FormatError(
                f"key index {key_index} out of range ({len(keys)} keys)", key_offset
            )
        if i + 1 < len(tags):
            value_index, value_offset = tags[i + 1]
            if value_index >= len(values):
                raise FormatError(
                    f"value index {value_index} out of range ({len(values)} values)",
                    value_offset,
                )
            value = values[value_index]
        else:
            value = NULL_VALUE
        feature.properties[keys[key_index]] = value
    return feature


def _decode_layer(buf: bytes, start: int, end: int) -> Layer:
    name: Optional[str] = None
    version = DEFAULT_VERSION
    extent = DEFAULT_EXTENT
    keys: list[str] = []
    values: list[Value] = []
    feature_ranges: list[tuple[int, int]] = []

    # keys and values may follow the features on the wire, so features are
    # resolved once the whole layer has been scanned
    for f in _iter_fields(buf, start, end):
        if f.number == _LAYER_NAME:
            _expect(f, _LENGTH, "layer.name")
            name = _read_string(buf, f)
        elif f.number == _LAYER_FEATURES:
            _expect(f, _LENGTH, "layer.features")
            feature_ranges.append((f.start, f.stop))
        elif f.number == _LAYER_KEYS:
            _expect(f, _LENGTH, "layer.keys")
            keys.append(_read_string(buf, f))
        elif f.number == _LAYER_VALUES:
            _expect(f, _LENGTH, "layer.values")
            values.append(_decode_value(buf, f.start, f.stop))
        elif f.number == _LAYER_EXTENT:
            _expect(f, _VARINT, "layer.extent")
            extent = f.value
        elif f.number == _LAYER_VERSION:
            _expect(f, _VARINT, "layer.version")
            version = f.value

    if name is None:
        raise FormatError("layer has no name", start)

    features = [
        _decode_feature(buf, f_start, f_stop, keys, values)
        for f_start, f_stop in feature_ranges
    ]
    return Layer(name=name, version=version, extent=extent, features=features)


def _maybe_decompress(data: bytes) -> bytes:
    if not data.startswith(_GZIP_MAGIC):
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise FormatError(f"corrupt gzip payload: {exc}", 0) from exc


def decode_tile(data: bytes) -> Tile:
    """
    Decode a vector tile payload into layers, features and property mappings.

    Gzip-compressed payloads are inflated first; error offsets then refer to
    the inflated bytes. Raises FormatError on any malformed input, never
    returning a partially decoded tile.
    """

    buf = _maybe_decompress(bytes(data))
    tile = Tile()
    for f in _iter_fields(buf, 0, len(buf)):
        if f.number == _TILE_LAYERS:
            _expect(f, _LENGTH, "tile.layers")
            tile.layers.append(_decode_layer(buf, f.start, f.stop))
    return tile

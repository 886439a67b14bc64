from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, NamedTuple

from .decoder import Layer, Tile, Value, ValueKind


class ValueCount(NamedTuple):
    value: str
    count: int


@dataclass
class AttributeStat:
    """Aggregated statistics for one property key of a layer."""

    key: str
    types: list[ValueKind]
    count: int
    values: list[ValueCount] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "types": [kind.value for kind in self.types],
            "count": self.count,
            "values": [{"value": item.value, "count": item.count} for item in self.values],
        }


@dataclass
class LayerAnalysis:
    name: str
    feature_count: int
    extent: int
    version: int
    attributes: list[AttributeStat] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "feature_count": self.feature_count,
            "extent": self.extent,
            "version": self.version,
            "attributes": [attr.to_dict() for attr in self.attributes],
        }


TileAnalysis = Dict[str, LayerAnalysis]


def _format_number(number: float) -> str:
    """Render a double the way ECMAScript's Number#toString does."""

    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if number == 0:
        return "0"
    if number < 0:
        return "-" + _format_number(-number)

    # repr() yields the shortest digit string that round-trips
    _, digit_tuple, exponent = Decimal(repr(number)).as_tuple()
    raw = "".join(str(d) for d in digit_tuple)
    digits = raw.rstrip("0")
    exponent += len(raw) - len(digits)
    k = len(digits)
    n = k + exponent

    if k <= n <= 21:
        return digits + "0" * (n - k)
    if 0 < n <= 21:
        return f"{digits[:n]}.{digits[n:]}"
    if -6 < n <= 0:
        return "0." + "0" * -n + digits
    e = n - 1
    mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def stringify_value(value: Value) -> str:
    """Histogram bucket label of a value."""

    if value.kind is ValueKind.NULL:
        return "null"
    if value.kind is ValueKind.BOOLEAN:
        return "true" if value.data else "false"
    if value.kind is ValueKind.NUMBER:
        return _format_number(value.data)
    if value.kind is ValueKind.STRING:
        return value.data
    if value.kind is ValueKind.UNKNOWN:
        return "unknown"
    raise ValueError(f"Unhandled value kind: {value.kind!r}")


def _rank_by_count(items: list, count_of) -> list:
    # decorate with first-observation rank so ties never depend on sort internals
    decorated = sorted(enumerate(items), key=lambda pair: (-count_of(pair[1]), pair[0]))
    return [item for _, item in decorated]


class _KeyAccumulator:
    """Running statistics for one key while a layer is scanned."""

    def __init__(self, key: str):
        self.key = key
        self.count = 0
        self.types: dict[ValueKind, None] = {}
        self.histogram: dict[str, int] = {}

    def update(self, value: Value) -> None:
        self.count += 1
        self.types.setdefault(value.kind)
        label = stringify_value(value)
        self.histogram[label] = self.histogram.get(label, 0) + 1

    def finalize(self) -> AttributeStat:
        buckets = [ValueCount(label, count) for label, count in self.histogram.items()]
        return AttributeStat(
            key=self.key,
            types=list(self.types),
            count=self.count,
            values=_rank_by_count(buckets, lambda bucket: bucket.count),
        )


def analyze_layer(layer: Layer) -> list[AttributeStat]:
    """
    Compute per-key statistics over every feature of a layer.

    Attributes are ordered by occurrence count, descending; keys with equal
    counts keep the order in which they were first seen. The same rule orders
    each attribute's value histogram.
    """

    accumulators: dict[str, _KeyAccumulator] = {}
    for feature in layer.features:
        for key, value in feature.properties.items():
            accumulator = accumulators.get(key)
            if accumulator is None:
                accumulator = accumulators[key] = _KeyAccumulator(key)
            accumulator.update(value)

    stats = [accumulator.finalize() for accumulator in accumulators.values()]
    return _rank_by_count(stats, lambda stat: stat.count)


def analyze_tile(tile: Tile) -> TileAnalysis:
    analysis: TileAnalysis = {}
    for layer in tile.layers:
        analysis[layer.name] = LayerAnalysis(
            name=layer.name,
            feature_count=len(layer.features),
            extent=layer.extent,
            version=layer.version,
            attributes=analyze_layer(layer),
        )
    return analysis


def tile_analysis_to_dict(analysis: TileAnalysis) -> dict:
    return {"layers": {name: layer.to_dict() for name, layer in analysis.items()}}

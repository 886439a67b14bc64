"""
Per-layer attribute aggregation.
"""

import copy
import math
import struct

import pytest

from mvt_attributes.analysis import (
    LayerAnalysis,
    ValueCount,
    analyze_layer,
    analyze_tile,
    stringify_value,
    tile_analysis_to_dict,
)
from mvt_attributes.decoder import Layer, Tile, Value, ValueKind, decode_tile

from tile_builder import make_layer, roads_tile


MIXED_ROWS = [
    {"name": "Main St", "lanes": 2, "oneway": True},
    {"name": "Side St", "lanes": 1, "bridge": None},
    {"lanes": 2, "oneway": "true", "name": "Main St"},
    {"surface": "gravel"},
    {"oneway": False, "lanes": 2.5},
]


class TestRoadsExample:
    def test_single_string_attribute(self):
        roads = decode_tile(roads_tile()).layers[0]
        stats = analyze_layer(roads)
        assert len(stats) == 1
        attr = stats[0]
        assert attr.key == "type"
        assert attr.types == [ValueKind.STRING]
        assert attr.count == 3
        assert attr.values == [ValueCount("primary", 2), ValueCount("secondary", 1)]

    def test_tile_analysis(self):
        analysis = analyze_tile(decode_tile(roads_tile()))
        assert list(analysis) == ["roads"]
        roads = analysis["roads"]
        assert roads.feature_count == 3
        assert roads.version == 2
        assert roads.extent == 4096


class TestInvariants:
    def test_counts_agree(self):
        layer = make_layer("streets", MIXED_ROWS)
        for attr in analyze_layer(layer):
            carrying = sum(1 for f in layer.features if attr.key in f.properties)
            assert sum(item.count for item in attr.values) == attr.count == carrying
            assert attr.types

    def test_idempotent(self):
        layer = make_layer("streets", MIXED_ROWS)
        assert analyze_layer(layer) == analyze_layer(layer)

    def test_input_not_mutated(self):
        tile = Tile(layers=[make_layer("streets", MIXED_ROWS)])
        snapshot = copy.deepcopy(tile)
        analyze_tile(tile)
        assert tile == snapshot

    def test_empty_layer(self):
        layer = Layer(name="empty")
        assert analyze_layer(layer) == []
        analysis = analyze_tile(Tile(layers=[layer]))
        assert analysis["empty"].feature_count == 0
        assert analysis["empty"].attributes == []

    def test_empty_tile(self):
        assert analyze_tile(Tile()) == {}


class TestOrdering:
    def test_attributes_sorted_by_count_then_first_seen(self):
        layer = make_layer("streets", MIXED_ROWS)
        stats = analyze_layer(layer)
        assert [(a.key, a.count) for a in stats] == [
            ("lanes", 4),
            ("name", 3),
            ("oneway", 3),
            ("bridge", 1),
            ("surface", 1),
        ]

    def test_histogram_ties_keep_first_observation(self):
        rows = [{"k": "c"}, {"k": "a"}, {"k": "b"}, {"k": "a"}, {"k": "b"}, {"k": "c"}]
        (attr,) = analyze_layer(make_layer("l", rows))
        assert [item.value for item in attr.values] == ["c", "a", "b"]

    def test_tied_keys_keep_first_observation_across_runs(self):
        rows = [{"z": 1, "y": 1, "x": 1}]
        layer = make_layer("l", rows)
        for _ in range(3):
            assert [a.key for a in analyze_layer(layer)] == ["z", "y", "x"]

    def test_types_in_first_observed_order(self):
        rows = [{"v": "a"}, {"v": 1}, {"v": None}, {"v": "b"}, {"v": True}]
        (attr,) = analyze_layer(make_layer("l", rows))
        assert attr.types == [ValueKind.STRING, ValueKind.NUMBER, ValueKind.NULL, ValueKind.BOOLEAN]


class TestBuckets:
    def test_identical_strings_share_a_bucket(self):
        rows = [{"flag": True}, {"flag": "true"}, {"flag": False}]
        (attr,) = analyze_layer(make_layer("l", rows))
        assert attr.types == [ValueKind.BOOLEAN, ValueKind.STRING]
        assert attr.values == [ValueCount("true", 2), ValueCount("false", 1)]

    def test_integral_number_and_text_merge(self):
        rows = [{"n": 1}, {"n": "1"}, {"n": 1.0}]
        (attr,) = analyze_layer(make_layer("l", rows))
        assert attr.values == [ValueCount("1", 3)]

    def test_null_bucket(self):
        (attr,) = analyze_layer(make_layer("l", [{"b": None}, {"b": None}]))
        assert attr.types == [ValueKind.NULL]
        assert attr.values == [ValueCount("null", 2)]


class TestStringify:
    @pytest.mark.parametrize(
        "number, expected",
        [
            (1.0, "1"),
            (-2.5, "-2.5"),
            (0.1, "0.1"),
            (-0.0, "0"),
            (123456789012.0, "123456789012"),
            (1e20, "100000000000000000000"),
            (1e21, "1e+21"),
            (1.5e300, "1.5e+300"),
            (0.000001, "0.000001"),
            (1e-7, "1e-7"),
            (1.2345e-7, "1.2345e-7"),
            (math.nan, "NaN"),
            (math.inf, "Infinity"),
            (-math.inf, "-Infinity"),
        ],
    )
    def test_numbers(self, number, expected):
        assert stringify_value(Value(ValueKind.NUMBER, number)) == expected

    def test_single_precision_float(self):
        widened = struct.unpack("<f", struct.pack("<f", 0.1))[0]
        assert stringify_value(Value(ValueKind.NUMBER, widened)) == "0.10000000149011612"

    def test_other_kinds(self):
        assert stringify_value(Value(ValueKind.NULL)) == "null"
        assert stringify_value(Value(ValueKind.BOOLEAN, True)) == "true"
        assert stringify_value(Value(ValueKind.BOOLEAN, False)) == "false"
        assert stringify_value(Value(ValueKind.STRING, 'say "hi"\n')) == 'say "hi"\n'
        assert stringify_value(Value(ValueKind.UNKNOWN)) == "unknown"


class TestTileAnalysis:
    def test_layer_order_preserved(self):
        tile = Tile(layers=[make_layer("water", []), make_layer("roads", [{"a": 1}])])
        assert list(analyze_tile(tile)) == ["water", "roads"]

    def test_repeated_layer_name_replaces_in_place(self):
        tile = Tile(
            layers=[
                make_layer("dup", [{"a": 1}]),
                make_layer("other", []),
                make_layer("dup", [{"b": 1}, {"b": 2}]),
            ]
        )
        analysis = analyze_tile(tile)
        assert list(analysis) == ["dup", "other"]
        assert analysis["dup"].feature_count == 2

    def test_to_dict(self):
        analysis = analyze_tile(decode_tile(roads_tile()))
        assert tile_analysis_to_dict(analysis) == {
            "layers": {
                "roads": {
                    "name": "roads",
                    "feature_count": 3,
                    "extent": 4096,
                    "version": 2,
                    "attributes": [
                        {
                            "key": "type",
                            "types": ["string"],
                            "count": 3,
                            "values": [
                                {"value": "primary", "count": 2},
                                {"value": "secondary", "count": 1},
                            ],
                        }
                    ],
                }
            }
        }

    def test_layer_analysis_is_plain_data(self):
        analysis = analyze_tile(decode_tile(roads_tile()))
        assert isinstance(analysis["roads"], LayerAnalysis)

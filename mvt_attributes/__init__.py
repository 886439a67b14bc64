"""
Attribute statistics for Mapbox Vector Tiles.

The package exposes curated helpers so front-ends only have to call
`fetch_and_analyze` and one of the export generators.
"""

from .analysis import AttributeStat, LayerAnalysis, TileAnalysis, ValueCount, analyze_layer, analyze_tile
from .config import APP_CONFIG, CSV_FORMAT, EXPORT_FORMATS, MARKDOWN_FORMAT, ExportFormat
from .decoder import Feature, Layer, Tile, Value, ValueKind, decode_tile
from .errors import FormatError, HttpError, TileAnalysisError, TransportError
from .exporter import export_filename, format_sample_values, generate_csv, generate_markdown
from .fetcher import TileClient, fetch_tile, tile_url
from .pipeline import analyze_bytes, analyze_file, fetch_and_analyze, write_layer_exports

__all__ = [
    "APP_CONFIG",
    "CSV_FORMAT",
    "MARKDOWN_FORMAT",
    "EXPORT_FORMATS",
    "ExportFormat",
    "Value",
    "ValueKind",
    "Feature",
    "Layer",
    "Tile",
    "decode_tile",
    "AttributeStat",
    "ValueCount",
    "LayerAnalysis",
    "TileAnalysis",
    "analyze_layer",
    "analyze_tile",
    "generate_csv",
    "generate_markdown",
    "format_sample_values",
    "export_filename",
    "TileClient",
    "fetch_tile",
    "tile_url",
    "analyze_bytes",
    "analyze_file",
    "fetch_and_analyze",
    "write_layer_exports",
    "TileAnalysisError",
    "TransportError",
    "HttpError",
    "FormatError",
]

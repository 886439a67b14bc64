from __future__ import annotations

import json
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

import requests

from .analysis import TileAnalysis, analyze_tile, tile_analysis_to_dict
from .config import CSV_FORMAT, MARKDOWN_FORMAT, ExportFormat
from .decoder import decode_tile
from .exporter import export_filename, render_export
from .fetcher import fetch_tile


def safe_stem(value: str) -> str:
    stem = re.sub(r"[^\w.-]+", "_", value).strip("._")
    return stem or "layer"


def _unique_stem(layer_name: str, taken: set) -> str:
    base = safe_stem(layer_name)
    stem, n = base, 1
    # case-insensitive filesystems treat Roads and roads as one file
    while stem.casefold() in taken:
        n += 1
        stem = f"{base}_{n}"
    taken.add(stem.casefold())
    return stem


def _write_metadata(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def analyze_bytes(data: bytes) -> TileAnalysis:
    """Decode a raw tile payload and aggregate every layer."""

    return analyze_tile(decode_tile(data))


def analyze_file(path: Path | str) -> TileAnalysis:
    payload = Path(path).read_bytes()
    print(f"[analyze_file] Read {len(payload)} bytes from {path}", file=sys.stderr, flush=True)
    return analyze_bytes(payload)


def fetch_and_analyze(
    url: str,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> TileAnalysis:
    """
    Fetch a tile and return its complete analysis.

    Transport and HTTP failures propagate unchanged; malformed payloads raise
    FormatError. There is no partial result.
    """

    payload = fetch_tile(url, timeout=timeout, session=session)
    analysis = analyze_bytes(payload)
    print(
        f"[fetch_and_analyze] {url}: {len(analysis)} layer(s) analysed",
        file=sys.stderr,
        flush=True,
    )
    return analysis


def write_layer_exports(
    analysis: TileAnalysis,
    outdir: Path | str,
    formats: Iterable[ExportFormat] = (CSV_FORMAT, MARKDOWN_FORMAT),
    sample_limit: Optional[int] = None,
    show_all: bool = False,
    source: Optional[str] = None,
) -> dict[str, list[str]]:
    """Write one export file per layer and format, plus an analysis.json summary."""

    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    formats = list(formats)
    written: dict[str, list[str]] = {}
    taken: set = set()
    for layer_name, layer_analysis in analysis.items():
        stem = _unique_stem(layer_name, taken)
        paths = []
        for fmt in formats:
            out_path = outdir / export_filename(stem, fmt)
            content = render_export(fmt, layer_name, layer_analysis, sample_limit, show_all)
            out_path.write_text(content, encoding="utf-8")
            paths.append(str(out_path))
        written[layer_name] = paths
        print(
            f"[write_layer_exports] {layer_name} -> {', '.join(paths)}",
            file=sys.stderr,
            flush=True,
        )

    summary = tile_analysis_to_dict(analysis)
    summary["source"] = source
    summary["exports"] = written
    summary["timestamp"] = datetime.now(timezone.utc).isoformat()
    _write_metadata(outdir / "analysis.json", summary)
    return written

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from .analysis import TileAnalysis, tile_analysis_to_dict
from .config import APP_CONFIG, CSV_FORMAT, MARKDOWN_FORMAT
from .errors import FormatError, HttpError, TileAnalysisError, TransportError
from .exporter import format_sample_values
from .fetcher import tile_url
from .pipeline import analyze_file, fetch_and_analyze, write_layer_exports


_FORMAT_CHOICES = {
    "csv": (CSV_FORMAT,),
    "markdown": (MARKDOWN_FORMAT,),
    "both": (CSV_FORMAT, MARKDOWN_FORMAT),
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="List the attributes of every layer in a Mapbox Vector Tile."
    )
    # Source
    ap.add_argument("url", nargs="?", help="Tile URL to fetch and analyse.")
    ap.add_argument("--file", help="Analyse a local tile file instead of a URL.")
    ap.add_argument("--template", help='URL template such as "https://host/{z}/{x}/{y}.pbf".')
    ap.add_argument("--lon", type=float, help="Longitude used with --template.")
    ap.add_argument("--lat", type=float, help="Latitude used with --template.")
    ap.add_argument("--zoom", type=int, help="Zoom level used with --template.")
    ap.add_argument("--timeout", type=float, default=None,
                    help=f"Request timeout in seconds (default: {APP_CONFIG['request_timeout']}).")

    # Output
    ap.add_argument("--outdir", nargs="?", const=str(APP_CONFIG["export_dir"]),
                    help="Write per-layer exports into this directory (bare flag: storage/exports).")
    ap.add_argument("--format", choices=sorted(_FORMAT_CHOICES), default="both",
                    help="Export format(s) written to --outdir (default: both).")
    ap.add_argument("--sample-limit", type=int, default=APP_CONFIG["default_sample_limit"],
                    help="Sample values listed per attribute (default: %(default)s).")
    ap.add_argument("--show-all", action="store_true", help="List every observed value.")
    ap.add_argument("--json", action="store_true", help="Print the analysis as JSON.")

    # Service
    ap.add_argument("--serve", action="store_true", help="Run the HTTP analysis service.")
    ap.add_argument("--host", default=APP_CONFIG["server"]["host"])
    ap.add_argument("--port", type=int, default=APP_CONFIG["server"]["port"])
    return ap


def _resolve_source(args: argparse.Namespace, parser: argparse.ArgumentParser) -> str:
    if args.template:
        if args.lon is None or args.lat is None or args.zoom is None:
            parser.error("--template requires --lon, --lat and --zoom")
        return tile_url(args.template, args.lon, args.lat, args.zoom)
    if args.url:
        return args.url
    parser.error("a tile URL, --file or --template is required")


def print_summary(analysis: TileAnalysis, sample_limit: int, show_all: bool) -> None:
    if not analysis:
        print("No layers found.")
        return
    for name, layer in analysis.items():
        print(f"{name}: {layer.feature_count} feature(s), version {layer.version}, extent {layer.extent}")
        if not layer.attributes:
            print("  (no attributes)")
        for attr in layer.attributes:
            types = ", ".join(kind.value for kind in attr.types)
            samples = format_sample_values(attr.values, sample_limit, show_all)
            print(f"  {attr.key} [{types}] x{attr.count}: {samples}")


def _describe_error(exc: TileAnalysisError) -> str:
    if isinstance(exc, HttpError):
        return f"server answered {exc.status} {exc.status_text}".rstrip()
    if isinstance(exc, TransportError):
        return f"could not reach {exc.url}: {exc.reason}"
    if isinstance(exc, FormatError):
        return f"not a valid vector tile: {exc.reason} at byte {exc.offset}"
    return str(exc)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.serve:
        from .server import AnalysisServer

        server = AnalysisServer(port=args.port, host=args.host)
        try:
            server.start(block=True)
        except KeyboardInterrupt:
            server.stop()
        return 0

    try:
        if args.file:
            source = args.file
            analysis = analyze_file(args.file)
        else:
            source = _resolve_source(args, parser)
            analysis = fetch_and_analyze(source, timeout=args.timeout)
    except TileAnalysisError as exc:
        print(f"error: {_describe_error(exc)}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(tile_analysis_to_dict(analysis), indent=2, ensure_ascii=False))
    else:
        print_summary(analysis, args.sample_limit, args.show_all)

    if args.outdir:
        write_layer_exports(
            analysis,
            args.outdir,
            formats=_FORMAT_CHOICES[args.format],
            sample_limit=args.sample_limit,
            show_all=args.show_all,
            source=source,
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

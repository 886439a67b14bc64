from __future__ import annotations

import asyncio
import os
import threading
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .analysis import LayerAnalysis, TileAnalysis, tile_analysis_to_dict
from .config import APP_CONFIG, EXPORT_FORMATS
from .errors import FormatError, HttpError, TransportError
from .exporter import export_filename, render_export
from .pipeline import fetch_and_analyze


def _analyze_or_raise(url: str) -> TileAnalysis:
    try:
        return fetch_and_analyze(url)
    except HttpError as exc:
        raise HTTPException(
            status_code=502,
            detail={"error": "http", "status": exc.status, "status_text": exc.status_text},
        ) from exc
    except TransportError as exc:
        raise HTTPException(status_code=504, detail={"error": "transport", "reason": exc.reason}) from exc
    except FormatError as exc:
        raise HTTPException(
            status_code=422,
            detail={"error": "format", "reason": exc.reason, "offset": exc.offset},
        ) from exc


def _select_layer(analysis: TileAnalysis, layer: str) -> LayerAnalysis:
    layer_analysis = analysis.get(layer)
    if layer_analysis is None:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer}")
    return layer_analysis


def create_app() -> FastAPI:
    app = FastAPI(title="MVT attribute inspector")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/analysis")
    def analysis(url: str = Query(..., min_length=1)):
        return tile_analysis_to_dict(_analyze_or_raise(url))

    @app.get("/export/{fmt}")
    def export(
        fmt: str,
        url: str = Query(..., min_length=1),
        layer: str = Query(..., min_length=1),
        sample_limit: int = Query(APP_CONFIG["default_sample_limit"], ge=0),
        show_all: bool = False,
    ):
        export_format = EXPORT_FORMATS.get(fmt.lower())
        if export_format is None:
            raise HTTPException(status_code=404, detail=f"Unknown export format: {fmt}")
        layer_analysis = _select_layer(_analyze_or_raise(url), layer)
        content = render_export(export_format, layer, layer_analysis, sample_limit, show_all)
        filename = export_filename(layer, export_format)
        return Response(
            content,
            media_type=export_format.media_type,
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
        )

    return app


class AnalysisServer:
    """Serves tile analyses and their exports over HTTP."""

    def __init__(self, port: int | None = None, host: str | None = None):
        server_cfg = APP_CONFIG["server"]
        self.port = server_cfg["port"] if port is None else port
        self.host = host or server_cfg["host"]
        self._app: FastAPI | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            self._app = create_app()
        return self._app

    def start(self, block: bool = False) -> bool:
        self._ensure_event_loop_policy()
        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        self._server = uvicorn.Server(config)

        if block:
            print(f"[AnalysisServer] Serving on http://{self.host}:{self.port}", flush=True)
            self._server.run()
            return True

        if self._thread and self._thread.is_alive():
            return True

        def _runner():
            print(f"[AnalysisServer] Background server running on http://{self.host}:{self.port}", flush=True)
            self._server.run()

        self._thread = threading.Thread(target=_runner, daemon=True)
        self._thread.start()
        return True

    def stop(self):
        if self._server:
            self._server.should_exit = True
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        self._server = None

    def _ensure_event_loop_policy(self):
        if os.name == "nt":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from __future__ import annotations

import sys
from typing import Optional

import mercantile
import requests

from .config import APP_CONFIG
from .errors import HttpError, TransportError


class TileClient:
    """Client that retrieves raw vector tile payloads over HTTP."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ):
        self.timeout = APP_CONFIG["request_timeout"] if timeout is None else timeout
        self.session = session or requests.Session()
        self.headers = {"User-Agent": user_agent or APP_CONFIG["user_agent"]}

    def fetch(self, url: str) -> bytes:
        """Download a tile; no retries are attempted."""

        print(f"[TileClient] GET {url}", file=sys.stderr, flush=True)
        try:
            response = self.session.get(url, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise TransportError(url, f"timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(url, str(exc)) from exc

        if not 200 <= response.status_code < 300:
            print(
                f"[TileClient] {url} answered {response.status_code} {response.reason}",
                file=sys.stderr,
                flush=True,
            )
            raise HttpError(response.status_code, response.reason or "", url=url)
        payload = response.content
        print(f"[TileClient] Received {len(payload)} bytes from {url}", file=sys.stderr, flush=True)
        return payload


def fetch_tile(url: str, timeout: Optional[float] = None, session: Optional[requests.Session] = None) -> bytes:
    if session is not None:
        return TileClient(timeout=timeout, session=session).fetch(url)
    with requests.Session() as owned:
        return TileClient(timeout=timeout, session=owned).fetch(url)


def tile_url(template: str, lon: float, lat: float, zoom: int) -> str:
    """
    Fill a `{z}/{x}/{y}` URL template with the tile covering a WGS84 position.

    Other placeholders, such as a `{s}` subdomain, are left as they are.
    """

    tile = mercantile.tile(lon, lat, zoom)
    return (
        template.replace("{z}", str(tile.z))
        .replace("{x}", str(tile.x))
        .replace("{y}", str(tile.y))
    )

"""HTTP API exposing oracle health, prices and metrics."""

from __future__ import annotations

import abc
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from werkzeug.wrappers import Request, Response

from .httputil import JSON_CONTENT_TYPE, METHOD_GET, respond_with_json, to_json_bytes
from .legacydec import LegacyDec
from .middleware import build

STATUS_AVAILABLE = "available"
FORMAT_PROMETHEUS = "prometheus"


class Oracle(abc.ABC):
    """What the router needs from the oracle."""

    @abc.abstractmethod
    def get_last_price_sync_timestamp(self) -> datetime:
        """Time of the last successful price sync."""

    @abc.abstractmethod
    def get_prices(self) -> Mapping[str, LegacyDec] | Iterable[tuple[str, LegacyDec]]:
        """Latest prices as denom => amount."""


@dataclass(frozen=True)
class GatherResponse:
    """Gathered metrics and the content type to serve them with."""

    metrics: bytes = b""
    content_type: str = ""


class Metrics(abc.ABC):
    """Source of telemetry metrics."""

    @abc.abstractmethod
    def gather(self, format: str) -> GatherResponse:
        """Return metrics rendered in the given format."""


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _write_error(status: int, message: str) -> Response:
    body = to_json_bytes({"error": message})
    return Response(body, status=status, content_type=JSON_CONTENT_TYPE)


class Router:
    """WSGI application serving the v1 API under a path prefix."""

    def __init__(
        self,
        oracle: Oracle,
        metrics: Optional[Metrics] = None,
        logger: Optional[logging.Logger] = None,
        enable_cors: bool = False,
        allowed_origins: Iterable[str] = (),
        telemetry_enabled: bool = False,
        prefix: str = "",
    ) -> None:
        self.oracle = oracle
        self.metrics = metrics
        self.logger = (logger or logging.getLogger(__package__)).getChild("router")
        self.enable_cors = enable_cors
        self.allowed_origins = list(allowed_origins)
        self.telemetry_enabled = telemetry_enabled
        self.prefix = prefix

        handlers: dict[str, Callable[[Request], Response]] = {
            "/healthz": self._healthz,
            "/prices": self._prices,
        }
        if telemetry_enabled:
            handlers["/metrics"] = self._metrics

        self._routes = {
            prefix + path: build(
                Request.application(handler),
                self.logger,
                enable_cors,
                self.allowed_origins,
            )
            for path, handler in handlers.items()
        }
        self._preflight_app = Request.application(self._preflight)

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", METHOD_GET).upper()
        path = environ.get("PATH_INFO", "") or "/"

        if self.enable_cors and method == "OPTIONS" and path.startswith(self.prefix):
            return self._preflight_app(environ, start_response)

        app = self._routes.get(path)
        if app is None:
            return Response("404 page not found\n", status=404, mimetype="text/plain")(
                environ, start_response
            )
        if method != METHOD_GET:
            return Response(b"", status=405)(environ, start_response)
        return app(environ, start_response)

    def _preflight(self, request: Request) -> Response:
        resp = Response(b"", status=200)
        request_origin = request.headers.get("Origin", "")
        for origin in self.allowed_origins:
            if origin == request_origin:
                resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = (
            "Content-Type, Access-Control-Allow-Headers, Authorization, X-Requested-With"
        )
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        return resp

    def _healthz(self, request: Request) -> Response:
        last_sync = _rfc3339(self.oracle.get_last_price_sync_timestamp())
        return respond_with_json(
            200, {"status": STATUS_AVAILABLE, "oracle": {"last_sync": last_sync}}
        )

    def _prices(self, request: Request) -> Response:
        raw = self.oracle.get_prices()
        prices = dict(raw.items() if isinstance(raw, Mapping) else raw)
        return respond_with_json(200, {"prices": dict(sorted(prices.items()))})

    def _metrics(self, request: Request) -> Response:
        fmt = request.values.get("format", "").strip() or FORMAT_PROMETHEUS
        if self.metrics is None:
            return _write_error(400, "failed to gather metrics: no metrics source")
        try:
            gathered = self.metrics.gather(fmt)
        except Exception as exc:
            return _write_error(400, f"failed to gather metrics: {exc}")
        return Response(gathered.metrics, status=200, content_type=gathered.content_type)
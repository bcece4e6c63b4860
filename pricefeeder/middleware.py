"""WSGI middleware: request logging and CORS."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Optional

WSGIApp = Callable[..., Iterable[bytes]]

REQUEST_ID_HEADER = "Request-Id"
CORS_ALLOWED_METHODS = ("GET", "OPTIONS")
CORS_ALLOWED_HEADERS = (
    "Content-Type",
    "Access-Control-Allow-Headers",
    "Authorization",
    "X-Requested-With",
)


def _request_url(environ: dict[str, Any]) -> str:
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    query = environ.get("QUERY_STRING", "")
    return f"{path}?{query}" if query else path


class RequestLoggingMiddleware:
    """Logs each request with its status, size and duration and tags it with an id."""

    def __init__(self, app: WSGIApp, logger: Optional[logging.Logger] = None) -> None:
        self.app = app
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterator[bytes]:
        started = time.monotonic()
        request_id = uuid.uuid4().hex
        environ["pricefeeder.request_id"] = request_id
        status_code = 0

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            nonlocal status_code
            status_code = int(status.split(" ", 1)[0])
            kept = [h for h in headers if h[0].lower() != REQUEST_ID_HEADER.lower()]
            kept.append((REQUEST_ID_HEADER, request_id))
            if exc_info is None:
                return start_response(status, kept)
            return start_response(status, kept, exc_info)

        size = 0
        result = self.app(environ, _start)
        try:
            for chunk in result:
                size += len(chunk)
                yield chunk
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
            method = environ.get("REQUEST_METHOD", "")
            url = _request_url(environ)
            self.logger.info(
                "%s %s %d",
                method,
                url,
                status_code,
                extra={
                    "method": method,
                    "url": url,
                    "status": status_code,
                    "size": size,
                    "duration": time.monotonic() - started,
                    "req": f"{method} {url}",
                    "ip": environ.get("REMOTE_ADDR", ""),
                    "ua": environ.get("HTTP_USER_AGENT", ""),
                    "ref": environ.get("HTTP_REFERER", ""),
                    "req_id": request_id,
                },
            )


class CORSMiddleware:
    """Adds CORS headers and answers preflight requests.

    An empty origin list, or one holding "*", allows every origin. An origin
    may hold a single "*" wildcard, e.g. "https://*.example.com".
    """

    def __init__(
        self,
        app: WSGIApp,
        allowed_origins: Iterable[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.app = app
        self.logger = logger or logging.getLogger(__name__)
        origins = [o.lower() for o in allowed_origins]
        self._allow_all = not origins or "*" in origins
        self._exact = {o for o in origins if "*" not in o}
        self._wildcards = [
            tuple(o.split("*", 1)) for o in origins if "*" in o and o != "*"
        ]
        self._methods = {m.upper() for m in CORS_ALLOWED_METHODS}
        self._headers = {h.lower() for h in CORS_ALLOWED_HEADERS} | {"origin"}

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "").upper()
        if method == "OPTIONS" and environ.get("HTTP_ACCESS_CONTROL_REQUEST_METHOD"):
            start_response("204 No Content", self._preflight_headers(environ))
            return [b""]

        extra = self._actual_headers(environ, method)

        def _start(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            merged = list(headers) + extra
            if exc_info is None:
                return start_response(status, merged)
            return start_response(status, merged, exc_info)

        return self.app(environ, _start)

    def _origin_allowed(self, origin: str) -> bool:
        if self._allow_all:
            return True
        origin = origin.lower()
        if origin in self._exact:
            return True
        return any(
            origin.startswith(prefix)
            and origin.endswith(suffix)
            and len(origin) >= len(prefix) + len(suffix)
            for prefix, suffix in self._wildcards
        )

    def _allow_origin_value(self, origin: str) -> str:
        return "*" if self._allow_all else origin

    def _preflight_headers(self, environ: dict[str, Any]) -> list[tuple[str, str]]:
        headers = [
            ("Vary", "Origin"),
            ("Vary", "Access-Control-Request-Method"),
            ("Vary", "Access-Control-Request-Headers"),
        ]
        origin = environ.get("HTTP_ORIGIN", "")
        requested_method = environ.get("HTTP_ACCESS_CONTROL_REQUEST_METHOD", "").upper()
        requested_headers = [
            h.strip()
            for h in environ.get("HTTP_ACCESS_CONTROL_REQUEST_HEADERS", "").split(",")
            if h.strip()
        ]
        if not origin:
            self.logger.debug("preflight aborted: empty origin")
            return headers
        if not self._origin_allowed(origin):
            self.logger.debug("preflight aborted: origin %r not allowed", origin)
            return headers
        if requested_method != "OPTIONS" and requested_method not in self._methods:
            self.logger.debug("preflight aborted: method %r not allowed", requested_method)
            return headers
        if any(h.lower() not in self._headers for h in requested_headers):
            self.logger.debug("preflight aborted: headers %r not allowed", requested_headers)
            return headers

        headers.append(("Access-Control-Allow-Origin", self._allow_origin_value(origin)))
        headers.append(("Access-Control-Allow-Methods", requested_method))
        if requested_headers:
            headers.append(("Access-Control-Allow-Headers", ", ".join(requested_headers)))
        headers.append(("Access-Control-Allow-Credentials", "true"))
        return headers

    def _actual_headers(self, environ: dict[str, Any], method: str) -> list[tuple[str, str]]:
        headers = [("Vary", "Origin")]
        origin = environ.get("HTTP_ORIGIN", "")
        if not origin:
            return headers
        if not self._origin_allowed(origin):
            self.logger.debug("actual request: origin %r not allowed", origin)
            return headers
        if method != "OPTIONS" and method not in self._methods:
            self.logger.debug("actual request: method %r not allowed", method)
            return headers
        headers.append(("Access-Control-Allow-Origin", self._allow_origin_value(origin)))
        headers.append(("Access-Control-Allow-Credentials", "true"))
        return headers


def build(
    app: WSGIApp,
    logger: Optional[logging.Logger] = None,
    enable_cors: bool = False,
    allowed_origins: Iterable[str] = (),
) -> WSGIApp:
    """Wrap an app in request logging and, when enabled, CORS handling."""
    wrapped: WSGIApp = app
    if enable_cors:
        wrapped = CORSMiddleware(wrapped, allowed_origins, logger)
    return RequestLoggingMiddleware(wrapped, logger)
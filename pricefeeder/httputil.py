"""Helpers for writing JSON HTTP responses."""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from werkzeug.wrappers import Response

from .legacydec import LegacyDec

METHOD_GET = "GET"
JSON_CONTENT_TYPE = "application/json"


def _encode(obj: Any) -> Any:
    if isinstance(obj, LegacyDec):
        return str(obj)
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {field.name: getattr(obj, field.name) for field in dataclasses.fields(obj)}
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    raise TypeError(f"object of type {type(obj).__name__} is not JSON serializable")


def to_json_bytes(payload: Any) -> bytes:
    """Serialise a payload compactly; decimals are written as strings."""
    return json.dumps(
        payload, default=_encode, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def respond_with_json(status: int, payload: Any) -> Response:
    """Return a response holding the payload as JSON with the given status.

    A payload that cannot be serialised yields an empty body.
    """
    try:
        body = to_json_bytes(payload)
    except (TypeError, ValueError):
        body = b""
    return Response(body, status=status, content_type=JSON_CONTENT_TYPE)


def respond_with_error(status: int, error: BaseException | str) -> Response:
    """Return a JSON error response of the form {"error": "<message>"}."""
    return respond_with_json(status, {"error": str(error)})
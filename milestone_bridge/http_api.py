"""
Plain HTTP endpoints served on the websocket port.

Hooked in as ``process_request``: websocket upgrades pass through to the
handshake, any other request is answered here and the connection closed.
"""

import email.utils
import json
from datetime import datetime, timezone
from http import HTTPStatus
from urllib.parse import urlsplit

from websockets.datastructures import Headers
from websockets.http11 import Response

LIVENESS_MESSAGE = "👋 MonaBackend is running!"


def is_websocket_upgrade(request) -> bool:
    return "websocket" in request.headers.get("Upgrade", "").lower()


def make_process_request(store):
    async def process_request(connection, request):
        if is_websocket_upgrade(request):
            return None
        # Older websockets parsers only accept GET and have no method field
        return route(store, getattr(request, "method", "GET"), request.path)
    return process_request


def route(store, method: str, path: str) -> Response:
    path = urlsplit(path).path
    if method != "GET":
        return text_response(LIVENESS_MESSAGE)
    if path == "/api/test":
        return json_response({"status": "success", "timestamp": utc_timestamp()})
    if path == "/api/visibility":
        return json_response(store.visibility())
    return text_response(LIVENESS_MESSAGE)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def json_response(payload, status=HTTPStatus.OK) -> Response:
    return _response(json.dumps(payload).encode(), "application/json", status)


def text_response(text: str, status=HTTPStatus.OK) -> Response:
    return _response(text.encode(), "text/plain; charset=utf-8", status)


def _response(body: bytes, content_type: str, status: HTTPStatus) -> Response:
    headers = Headers()
    headers["Date"] = email.utils.formatdate(usegmt=True)
    headers["Connection"] = "close"
    headers["Content-Length"] = str(len(body))
    headers["Content-Type"] = content_type
    return Response(status.value, status.phrase, headers, body)

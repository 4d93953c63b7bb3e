"""
ASGI middleware for FastAPI / Starlette apps.

Sanitizes JSON request bodies before the route handler sees them:

    app = FastAPI()
    app.add_middleware(PiiSanitizerMiddleware, sanitizer=Sanitizer({"signingSecret": "..."}))

- the route is the URL path, without the query string
- only requests with a JSON content type are read; everything else passes through
- routes outside the sanitizer's scope are not read at all
- an unparseable JSON body is answered with 400, a sanitizer failure with 500
"""

from __future__ import annotations

import json
import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from pii_masking.errors import SanitizerError
from pii_masking.sanitizer import Sanitizer
from utils.log_sanitize import redact_leaves

logger = logging.getLogger(__name__)


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _replay_body(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class PiiSanitizerMiddleware:
    def __init__(self, app: ASGIApp, sanitizer: Sanitizer) -> None:
        self.app = app
        self.sanitizer = sanitizer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        route = request.url.path

        if not is_json_content_type(request.headers.get("content-type", "")):
            await self.app(scope, receive, send)
            return
        if not self.sanitizer.policy.is_route_in_scope(route):
            logger.info("Skipping PII sanitization for route %s", route)
            await self.app(scope, receive, send)
            return

        body = await request.body()
        if not body:
            await self.app(scope, _replay_body(body, receive), send)
            return

        try:
            payload = json.loads(body)
        except ValueError:
            logger.info("Rejected non-JSON body on %s", route)
            response = JSONResponse({"detail": "Request body is not valid JSON"}, status_code=400)
            await response(scope, receive, send)
            return

        try:
            sanitized = self.sanitizer.sanitize_object(payload, route)
        except SanitizerError:
            logger.exception("PII sanitization failed on %s for body %s", route, redact_leaves(payload))
            response = JSONResponse({"detail": "PII sanitization failed"}, status_code=500)
            await response(scope, receive, send)
            return

        new_body = json.dumps(sanitized).encode("utf-8")
        headers = [(k, v) for k, v in scope["headers"] if k.lower() != b"content-length"]
        headers.append((b"content-length", str(len(new_body)).encode("latin-1")))
        scope = dict(scope, headers=headers)

        await self.app(scope, _replay_body(new_body, receive), send)

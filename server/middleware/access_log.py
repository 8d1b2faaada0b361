"""Per-request access logging in Apache common log format.

    127.0.0.1 - ann [19/Oct/2026:10:03:11 +0000] "GET /assets/a.png HTTP/1.1" 200 5120
"""

import base64
import binascii
from datetime import datetime, timezone
from typing import Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging import get_logger

logger = get_logger("server.access")

CLF_DATE = "%d/%b/%Y:%H:%M:%S %z"


def _remote_user(headers: Headers) -> Optional[str]:
    auth = headers.get("authorization", "")
    scheme, _, credentials = auth.partition(" ")
    if scheme.lower() != "basic" or not credentials:
        return None
    try:
        decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    return decoded.partition(":")[0] or None


def format_common(
    scope: Scope,
    status: Optional[int],
    content_length: Optional[str],
    when: Optional[datetime] = None,
) -> str:
    """Render one common-log line for a finished request."""
    when = when or datetime.now(timezone.utc)
    client = scope.get("client")
    url = scope.get("raw_path", scope["path"].encode()).decode("latin-1")
    if scope.get("query_string"):
        url = f"{url}?{scope['query_string'].decode('latin-1')}"
    return '{addr} - {user} [{date}] "{method} {url} HTTP/{version}" {status} {length}'.format(
        addr=client[0] if client else "-",
        user=_remote_user(Headers(scope=scope)) or "-",
        date=when.strftime(CLF_DATE),
        method=scope["method"],
        url=url,
        version=scope.get("http_version", "1.1"),
        status=status if status is not None else "-",
        length=content_length or "-",
    )


class AccessLogMiddleware:
    """Log a common-log line once the response has been sent."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status = None
        length = None

        async def send_and_record(message: Message) -> None:
            nonlocal status, length
            if message["type"] == "http.response.start":
                status = message["status"]
                length = Headers(raw=message.get("headers", [])).get("content-length")
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        finally:
            logger.info(format_common(scope, status, length))

"""Open cross-origin policy.

Starlette's `CORSMiddleware` only answers requests that carry an `Origin`
header. `OpenCORSMiddleware` also stamps `Access-Control-Allow-Origin: *`
on every other response and answers preflights with an empty 204.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import Message, Receive, Scope, Send

# Methods allowed by an unconfigured cors() policy
CORS_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]

_BODY_HEADERS = ("content-length", "content-type")


class OpenCORSMiddleware(CORSMiddleware):
    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or "origin" in Headers(scope=scope):
            await super().__call__(scope, receive, send)
            return

        async def send_with_origin(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.setdefault("Access-Control-Allow-Origin", "*")
            await send(message)

        await self.app(scope, receive, send_with_origin)

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {k: v for k, v in response.headers.items() if k not in _BODY_HEADERS}
        return Response(status_code=204, headers=headers)

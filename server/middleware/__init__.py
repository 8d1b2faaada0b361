"""Request-processing chain applied to every incoming request.

`build_middleware()` returns the chain in execution order; the first entry
is the outermost layer:

1. JSON body parser
2. security headers (+ Cross-Origin-Resource-Policy)
3. access log (common format)
4. JSON / URL-encoded body parser with the body size ceiling
5. CORS (open policy, `Access-Control-Allow-Origin: *` on every response)

Static files under `/assets` are mounted on the app itself and so sit
behind the whole chain.
"""

from typing import List

from starlette.middleware import Middleware

from ..core.config import Settings
from .access_log import AccessLogMiddleware
from .body import JSON, URLENCODED, BodyParserMiddleware
from .cors import CORS_METHODS, OpenCORSMiddleware
from .security import SecurityHeadersMiddleware


def build_middleware(settings: Settings) -> List[Middleware]:
    return [
        Middleware(BodyParserMiddleware, media_types=(JSON,), limit=settings.body_limit),
        Middleware(SecurityHeadersMiddleware, corp_policy=settings.corp_policy),
        Middleware(AccessLogMiddleware),
        Middleware(
            BodyParserMiddleware,
            media_types=(JSON, URLENCODED),
            limit=settings.body_limit,
            extended=True,
        ),
        Middleware(
            OpenCORSMiddleware,
            allow_origins=["*"],
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
        ),
    ]


__all__ = [
    "AccessLogMiddleware",
    "BodyParserMiddleware",
    "OpenCORSMiddleware",
    "SecurityHeadersMiddleware",
    "build_middleware",
]

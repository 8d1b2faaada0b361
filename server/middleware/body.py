"""Request body parsing with a size ceiling.

`BodyParserMiddleware` buffers bodies of the configured media types,
rejects them when they exceed the byte limit, parses them into
`request.state.body` and replays the raw bytes to the wrapped app so route
handlers can still read the body themselves.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.config import DEFAULT_BODY_LIMIT, parse_size
from ..core.errors import (
    BodyParserError,
    MalformedBodyError,
    PayloadTooLargeError,
    UnsupportedCharsetError,
)

JSON = "application/json"
URLENCODED = "application/x-www-form-urlencoded"

# Top-level JSON must be an object or array
_STRICT_JSON_START = ("{", "[")

# Nesting limits of the extended form syntax
MAX_DEPTH = 5
ARRAY_LIMIT = 20
_JSON_WHITESPACE = " \t\n\r"
_KEY_RE = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")


def _content_type(headers: Headers) -> Tuple[str, Dict[str, str]]:
    raw = headers.get("content-type", "")
    parts = [p.strip() for p in raw.split(";")]
    params = {}
    for part in parts[1:]:
        if "=" in part:
            key, _, value = part.partition("=")
            params[key.strip().lower()] = value.strip().strip('"')
    return parts[0].lower(), params


def _decode(body: bytes, charset: str) -> str:
    if charset.lower() not in ("utf-8", "utf8"):
        raise UnsupportedCharsetError(f'unsupported charset "{charset.upper()}"')
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedBodyError(f"invalid utf-8 body: {exc.reason}") from exc


def _reject_constant(name: str) -> Any:
    raise MalformedBodyError(f"Unexpected token {name} in JSON")


def parse_json(text: str) -> Any:
    """Parse a JSON request body; an empty body yields an empty object."""
    stripped = text.strip(_JSON_WHITESPACE)
    if not stripped:
        return {}
    if stripped[0] not in _STRICT_JSON_START:
        raise MalformedBodyError(f"Unexpected token {stripped[0]!r} in JSON at position 0")
    try:
        return json.loads(stripped, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise MalformedBodyError(f"{exc.msg} in JSON at position {exc.pos}") from exc


def _split_key(key: str, extended: bool) -> List[str]:
    match = _KEY_RE.match(key) if extended else None
    if not match:
        return [key]
    segments = re.findall(r"\[([^\[\]]*)\]", match.group(2))
    if len(segments) > MAX_DEPTH:
        # Brackets past the depth limit stay part of one literal key
        rest = "".join(f"[{s}]" for s in segments[MAX_DEPTH:])
        segments = segments[:MAX_DEPTH] + [rest]
    return [match.group(1)] + segments


def _is_index(segment: str) -> bool:
    return segment == "" or (segment.isascii() and segment.isdigit() and int(segment) <= ARRAY_LIMIT)


def _position(node: List[Any], key: str) -> Optional[int]:
    if key.isascii() and key.isdigit() and int(key) < len(node):
        return int(key)
    return None


def _get(node: Union[Dict[str, Any], List[Any]], key: str) -> Any:
    if isinstance(node, dict):
        return node.get(key)
    pos = _position(node, key)
    return None if pos is None else node[pos]


def _set(node: Union[Dict[str, Any], List[Any]], key: str, value: Any) -> None:
    if isinstance(node, dict):
        node[key] = value
        return
    pos = _position(node, key)
    if pos is None:
        # indexes are compacted: `a[5]=x` on an empty list lands at position 0
        node.append(value)
    else:
        node[pos] = value


def _combine(existing: Any, value: str) -> Any:
    if existing is None:
        return value
    if isinstance(existing, list):
        existing.append(value)
        return existing
    return [existing, value]


def _merge(root: Dict[str, Any], keys: List[str], value: str) -> None:
    node: Any = root
    for key, nxt in zip(keys, keys[1:]):
        child = _get(node, key)
        wants_list = _is_index(nxt)
        if isinstance(child, list) and not wants_list:
            child = {str(i): v for i, v in enumerate(child)}
            _set(node, key, child)
        elif not isinstance(child, (dict, list)):
            if wants_list:
                child = [] if child is None else [child]
            else:
                child = {}
            _set(node, key, child)
        node = child

    last = keys[-1]
    if isinstance(node, list) and last == "":
        node.append(value)
    else:
        _set(node, last, _combine(_get(node, last), value))


def parse_urlencoded(text: str, extended: bool = True) -> Dict[str, Any]:
    """Parse a form body.

    With `extended`, bracketed keys build nested structures:
    `user[name]=ann&tags[]=a&tags[]=b` -> `{"user": {"name": "ann"}, "tags": ["a", "b"]}`.
    Repeated plain keys collect into a list in both modes.
    """
    result: Dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _merge(result, _split_key(key, extended), value)
    return result


class BodyParserMiddleware:
    """Buffer, bound and parse request bodies of the given media types."""

    def __init__(
        self,
        app: ASGIApp,
        media_types: Iterable[str] = (JSON,),
        limit: Optional[int] = None,
        extended: bool = True,
    ) -> None:
        self.app = app
        self.media_types = frozenset(m.lower() for m in media_types)
        self.limit = parse_size(DEFAULT_BODY_LIMIT) if limit is None else limit
        self.extended = extended

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        headers = Headers(scope=scope)
        media_type, params = _content_type(headers)
        if media_type not in self.media_types or "body" in state:
            await self.app(scope, receive, send)
            return

        try:
            body = await self._read(headers, receive)
            text = _decode(body, params.get("charset", "utf-8"))
            if media_type == JSON:
                state["body"] = parse_json(text)
            else:
                state["body"] = parse_urlencoded(text, extended=self.extended)
        except BodyParserError as exc:
            response = JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
            await response(scope, receive, send)
            return

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _read(self, headers: Headers, receive: Receive) -> bytes:
        declared = headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.limit:
            raise PayloadTooLargeError("request entity too large")

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                raise PayloadTooLargeError("request entity too large")
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

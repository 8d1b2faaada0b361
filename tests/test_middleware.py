"""
Request-processing chain: body parsing, size ceiling, security headers,
access log and CORS.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone

import pytest
from fastapi import APIRouter, Request
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from server.middleware import build_middleware
from server.middleware.access_log import AccessLogMiddleware, format_common
from server.middleware.body import JSON, URLENCODED, BodyParserMiddleware, parse_json, parse_urlencoded
from server.middleware.cors import OpenCORSMiddleware
from server.middleware.security import SecurityHeadersMiddleware
from server.core.errors import MalformedBodyError

CLF_LINE = re.compile(
    r'^\S+ - \S+ \[\d{2}/[A-Z][a-z]{2}/\d{4}:\d{2}:\d{2}:\d{2} [+-]\d{4}\] '
    r'"[A-Z]+ \S+ HTTP/[\d.]+" \d{3} (\d+|-)$'
)


@pytest.fixture
def echo_calls():
    return []


@pytest.fixture
def echo_client(make_app, echo_calls):
    router = APIRouter()

    @router.post("/echo")
    async def echo(request: Request):
        echo_calls.append(request.url.path)
        raw = await request.body()
        return {"parsed": getattr(request.state, "body", None), "raw": raw.decode()}

    return TestClient(make_app(routers=[router], body_limit=1024))


class TestJsonBody:
    def test_well_formed_body_is_parsed_and_replayed(self, echo_client):
        payload = {"user": {"name": "ann", "tags": ["a", "b"]}, "n": 3}
        resp = echo_client.post("/echo", json=payload)
        assert resp.status_code == 200
        assert resp.json()["parsed"] == payload
        assert json.loads(resp.json()["raw"]) == payload

    def test_malformed_json_is_rejected_before_the_route(self, echo_client, echo_calls):
        resp = echo_client.post(
            "/echo", content=b'{"name": ', headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert "JSON" in resp.json()["detail"]
        assert echo_calls == []

    def test_scalar_top_level_json_is_rejected(self, echo_client):
        resp = echo_client.post("/echo", content=b"42", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    def test_unsupported_charset(self, echo_client):
        resp = echo_client.post(
            "/echo", content=b"{}", headers={"content-type": "application/json; charset=latin-1"}
        )
        assert resp.status_code == 415

    def test_oversized_body_never_reaches_route(self, echo_client, echo_calls):
        payload = {"blob": "x" * 2048}
        resp = echo_client.post("/echo", json=payload)
        assert resp.status_code == 413
        assert echo_calls == []

    def test_body_at_limit_is_accepted(self, echo_client):
        body = json.dumps({"blob": ""}).encode()
        body = json.dumps({"blob": "x" * (1024 - len(body))}).encode()
        assert len(body) == 1024
        resp = echo_client.post("/echo", content=body, headers={"content-type": "application/json"})
        assert resp.status_code == 200

    def test_other_media_types_pass_through(self, echo_client):
        resp = echo_client.post("/echo", content=b"not json", headers={"content-type": "text/plain"})
        assert resp.status_code == 200
        assert resp.json() == {"parsed": None, "raw": "not json"}

    @pytest.mark.parametrize("constant", [b"NaN", b"Infinity", b"-Infinity"])
    def test_non_finite_numbers_are_rejected(self, echo_client, echo_calls, constant):
        resp = echo_client.post(
            "/echo", content=b'{"a": ' + constant + b"}", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert echo_calls == []

    def test_only_json_whitespace_is_skipped(self, echo_client):
        ok = echo_client.post(
            "/echo", content=b" \t\r\n{}\n", headers={"content-type": "application/json"}
        )
        assert ok.status_code == 200
        assert ok.json()["parsed"] == {}
        bad = echo_client.post(
            "/echo", content=b"\x0c{}", headers={"content-type": "application/json"}
        )
        assert bad.status_code == 400


class TestUrlencodedBody:
    def test_nested_form_is_parsed(self, echo_client):
        resp = echo_client.post(
            "/echo",
            content=b"user[name]=ann&user[address][city]=Oslo&tags[]=a&tags[]=b&plain=1",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        assert resp.status_code == 200
        assert resp.json()["parsed"] == {
            "user": {"name": "ann", "address": {"city": "Oslo"}},
            "tags": ["a", "b"],
            "plain": "1",
        }

    def test_oversized_form_rejected(self, echo_client, echo_calls):
        resp = echo_client.post(
            "/echo",
            content=b"a=" + b"x" * 2048,
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        assert resp.status_code == 413
        assert echo_calls == []


def test_parse_urlencoded_repeated_plain_keys():
    assert parse_urlencoded("a=1&a=2&b=") == {"a": ["1", "2"], "b": ""}


def test_parse_urlencoded_not_extended_keeps_brackets():
    assert parse_urlencoded("a[b]=1", extended=False) == {"a[b]": "1"}


def test_parse_urlencoded_indexes_build_lists():
    assert parse_urlencoded("a[0]=x&a[1]=y") == {"a": ["x", "y"]}
    assert parse_urlencoded("a[][b]=1") == {"a": [{"b": "1"}]}
    assert parse_urlencoded("a[0]=x&a[b]=y") == {"a": {"0": "x", "b": "y"}}
    assert parse_urlencoded("a[25]=x") == {"a": {"25": "x"}}


def test_parse_urlencoded_caps_nesting_depth():
    parsed = parse_urlencoded("a[b][c][d][e][f][g][h]=1")
    assert parsed == {"a": {"b": {"c": {"d": {"e": {"f": {"[g][h]": "1"}}}}}}}

    deep = parse_urlencoded("a" + "[x]" * 1500 + "=1")
    assert deep["a"]["x"]["x"]["x"]["x"]["x"] == {"[x]" * 1495: "1"}


def test_deeply_nested_form_is_not_a_server_error(client):
    resp = client.post(
        "/assets",
        content=("a" + "[x]" * 1500 + "=1").encode(),
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 422


def test_parse_json_empty_body():
    assert parse_json("  ") == {}


def test_parse_json_error_reports_position():
    with pytest.raises(MalformedBodyError) as excinfo:
        parse_json('{"a": }')
    assert "position" in excinfo.value.detail


SECURITY_HEADERS = {
    "x-content-type-options": "nosniff",
    "x-frame-options": "SAMEORIGIN",
    "cross-origin-resource-policy": "same-origin",
    "strict-transport-security": "max-age=15552000; includeSubDomains",
    "referrer-policy": "no-referrer",
}


@pytest.mark.parametrize("path", ["/health", "/", "/does-not-exist", "/assets/missing.png"])
def test_security_headers_on_every_response(client, path):
    resp = client.get(path)
    for name, value in SECURITY_HEADERS.items():
        assert resp.headers[name] == value
    assert "content-security-policy" in resp.headers


def test_corp_policy_is_configurable(make_app):
    client = TestClient(make_app(corp_policy="cross-origin"))
    assert client.get("/health").headers["cross-origin-resource-policy"] == "cross-origin"


def test_cors_allows_any_origin(client):
    resp = client.get("/health", headers={"origin": "https://example.org"})
    assert resp.headers["access-control-allow-origin"] == "*"


@pytest.mark.parametrize("path", ["/health", "/assets/missing.png"])
def test_cors_header_without_origin(client, path):
    resp = client.get(path)
    assert resp.headers["access-control-allow-origin"] == "*"


def test_cors_preflight(client):
    resp = client.options(
        "/assets",
        headers={
            "origin": "https://example.org",
            "access-control-request-method": "POST",
            "access-control-request-headers": "content-type",
        },
    )
    assert resp.status_code == 204
    assert resp.content == b""
    assert "POST" in resp.headers["access-control-allow-methods"]
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"


def test_access_log_line_per_request(client):
    with capture_logs() as logs:
        client.get("/health?check=1")
        client.get("/assets/nothing.txt")
    lines = [entry["event"] for entry in logs if CLF_LINE.match(entry["event"])]
    assert len(lines) == 2
    assert '"GET /health?check=1 HTTP/1.1" 200' in lines[0]
    assert '"GET /assets/nothing.txt HTTP/1.1" 404' in lines[1]


def test_format_common():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/assets",
        "raw_path": b"/assets",
        "query_string": b"",
        "http_version": "1.1",
        "client": ("10.0.0.7", 51000),
        # ann:secret
        "headers": [(b"authorization", b"Basic YW5uOnNlY3JldA==")],
    }
    when = datetime(2026, 10, 19, 8, 5, 0, tzinfo=timezone.utc)
    line = format_common(scope, 201, "17", when)
    assert line == '10.0.0.7 - ann [19/Oct/2026:08:05:00 +0000] "POST /assets HTTP/1.1" 201 17'


def test_format_common_without_response():
    scope = {"type": "http", "method": "GET", "path": "/", "headers": []}
    line = format_common(scope, None, None)
    assert line.startswith("- - - [")
    assert line.endswith('"GET / HTTP/1.1" - -')


def test_middleware_order(settings):
    chain = build_middleware(settings)
    assert [m.cls for m in chain] == [
        BodyParserMiddleware,
        SecurityHeadersMiddleware,
        AccessLogMiddleware,
        BodyParserMiddleware,
        OpenCORSMiddleware,
    ]
    assert chain[0].kwargs["media_types"] == (JSON,)
    assert chain[3].kwargs["media_types"] == (JSON, URLENCODED)
    assert chain[3].kwargs["limit"] == settings.body_limit


def test_json_rejected_by_first_parser_skips_inner_layers(echo_client):
    with capture_logs() as logs:
        resp = echo_client.post("/echo", content=b"{oops", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert "x-frame-options" not in resp.headers
    assert not [entry for entry in logs if CLF_LINE.match(entry["event"])]


def test_form_rejected_by_size_ceiling_is_logged_with_headers(echo_client):
    with capture_logs() as logs:
        resp = echo_client.post(
            "/echo",
            content=b"a=" + b"x" * 2048,
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
    assert resp.status_code == 413
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"
    lines = [entry["event"] for entry in logs if CLF_LINE.match(entry["event"])]
    assert len(lines) == 1
    assert '"POST /echo HTTP/1.1" 413' in lines[0]

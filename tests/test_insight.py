"""Tests for the Gemini InsightClient, using httpx.MockTransport."""

import json
import threading

import anyio
import httpx
import pytest

from hostinsight.errors import (
    InsightError,
    RemoteStatusFailure,
    ResponseParseFailure,
    TransportFailure,
)
from hostinsight.insight import InsightClient, build_payload, extract_text
from hostinsight.models import InsightResult


def gemini_body(text):
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def make_client(handler, **kwargs):
    return InsightClient("test-key", transport=httpx.MockTransport(handler), **kwargs)


def test_requires_api_key():
    with pytest.raises(ValueError):
        InsightClient("")


def test_endpoint_uses_model_and_base_url():
    client = InsightClient("k", "gemini-pro", base_url="https://example.test/v1/")
    assert client.endpoint == "https://example.test/v1/models/gemini-pro:generateContent"


def test_build_payload_shape():
    assert build_payload("hi") == {"contents": [{"parts": [{"text": "hi"}]}]}


def test_extract_text_missing_path():
    with pytest.raises(ResponseParseFailure):
        extract_text({"candidates": []})
    with pytest.raises(ResponseParseFailure):
        extract_text({"candidates": [{"content": {}}]})
    with pytest.raises(ResponseParseFailure):
        extract_text(["not", "a", "dict"])


@pytest.mark.asyncio
async def test_success_returns_exact_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["key"] = request.url.params.get("key")
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=gemini_body("## Busy CPU\n* chrome"))

    text = await make_client(handler).request_text("explain please")

    assert text == "## Busy CPU\n* chrome"
    assert seen["method"] == "POST"
    assert seen["key"] == "test-key"
    assert seen["path"].endswith("/models/gemini-1.5-flash:generateContent")
    assert seen["body"] == {"contents": [{"parts": [{"text": "explain please"}]}]}


@pytest.mark.asyncio
async def test_non_200_is_remote_status_failure():
    body = '{"error": {"code": 403, "message": "API key not valid"}}'

    def handler(request):
        return httpx.Response(403, text=body)

    with pytest.raises(RemoteStatusFailure) as excinfo:
        await make_client(handler).request_text("p")

    assert excinfo.value.status_code == 403
    assert excinfo.value.body == body


@pytest.mark.asyncio
async def test_missing_text_is_parse_failure():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(ResponseParseFailure):
        await make_client(handler).request_text("p")


@pytest.mark.asyncio
async def test_non_json_body_is_parse_failure():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(ResponseParseFailure):
        await make_client(handler).request_text("p")


@pytest.mark.asyncio
async def test_connection_error_is_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportFailure):
        await make_client(handler).request_text("p")


@pytest.mark.asyncio
async def test_deadline_is_transport_failure():
    async def handler(request):
        await anyio.sleep(5)
        return httpx.Response(200, json=gemini_body("late"))

    with pytest.raises(TransportFailure):
        await make_client(handler, deadline=0.2).request_text("p")


@pytest.mark.asyncio
async def test_single_attempt_only():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    result = await make_client(handler).aexplain("p")

    assert len(calls) == 1
    assert isinstance(result.error, RemoteStatusFailure)


@pytest.mark.asyncio
async def test_aexplain_wraps_errors():
    def handler(request):
        return httpx.Response(200, json={})

    result = await make_client(handler).aexplain("p")

    assert not result.ok
    assert isinstance(result.error, ResponseParseFailure)
    assert isinstance(result.error, InsightError)


def test_explain_runs_in_background_and_calls_back():
    callback_threads = []
    results = []
    done = threading.Event()

    def handler(request):
        return httpx.Response(200, json=gemini_body("all fine"))

    def on_insight(result: InsightResult) -> None:
        callback_threads.append(threading.current_thread())
        results.append(result)
        done.set()

    client = make_client(handler)
    try:
        future = client.explain("p", on_insight=on_insight)
        result = future.result(timeout=5.0)
        assert done.wait(timeout=5.0)
    finally:
        client.close()

    assert result.ok
    assert result.text == "all fine"
    assert results == [result]
    assert callback_threads[0] is not threading.main_thread()


def test_explain_reports_failures_in_result():
    def handler(request):
        return httpx.Response(403, text="denied")

    client = make_client(handler)
    try:
        result = client.explain("p").result(timeout=5.0)
    finally:
        client.close()

    assert isinstance(result.error, RemoteStatusFailure)
    assert result.error.body == "denied"


@pytest.mark.asyncio
async def test_malformed_base_url_is_transport_failure():
    client = InsightClient("k", base_url="http://[::1/v1")
    with pytest.raises(TransportFailure):
        await client.request_text("hi")


def test_explain_calls_back_on_malformed_base_url():
    got = []
    client = InsightClient("k", base_url="http://[::1/v1")
    try:
        result = client.explain("hi", on_insight=got.append).result(timeout=5.0)
    finally:
        client.close()

    assert got == [result]
    assert isinstance(result.error, TransportFailure)


def test_explain_calls_back_on_unexpected_error(monkeypatch):
    got = []
    client = make_client(lambda request: httpx.Response(200, json=gemini_body("x")))

    async def broken(prompt):
        raise RuntimeError("boom")

    monkeypatch.setattr(client, "aexplain", broken)
    try:
        result = client.explain("hi", on_insight=got.append).result(timeout=5.0)
    finally:
        client.close()

    assert got == [result]
    assert isinstance(result.error, InsightError)
    assert "boom" in str(result.error)

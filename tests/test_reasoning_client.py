from __future__ import annotations

import pytest
import requests

from ops_agent.adapters import reasoning_client
from ops_agent.adapters.reasoning_client import (
    PaymentRequiredError,
    RateLimitedError,
    ReasoningClient,
    ReasoningEngineError,
)


class FakeResponse:
    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


def _client():
    return ReasoningClient(base_url="https://gateway.test/v1/", api_key="secret", model="test-model")


def _patch_post(monkeypatch, response):
    captured = {}

    def fake_post(url, headers, json, timeout):
        captured.update({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(reasoning_client.requests, "post", fake_post)
    return captured


def test_complete_sends_tools_and_returns_message(monkeypatch):
    message = {"role": "assistant", "content": None, "tool_calls": [{"id": "c1"}]}
    captured = _patch_post(monkeypatch, FakeResponse(200, {"choices": [{"message": message}]}))

    result = _client().complete([{"role": "user", "content": "hi"}], tools=[{"type": "function"}])

    assert result == message
    assert captured["url"] == "https://gateway.test/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["json"]["tool_choice"] == "auto"
    assert captured["json"]["model"] == "test-model"


def test_complete_without_tools_omits_tool_choice(monkeypatch):
    captured = _patch_post(monkeypatch, FakeResponse(200, {"choices": [{"message": {"content": "ok"}}]}))

    _client().complete([{"role": "user", "content": "hi"}])

    assert "tools" not in captured["json"]
    assert "tool_choice" not in captured["json"]


@pytest.mark.parametrize(
    "status, error",
    [(429, RateLimitedError), (402, PaymentRequiredError), (500, ReasoningEngineError)],
)
def test_gateway_statuses_map_to_typed_errors(monkeypatch, status, error):
    _patch_post(monkeypatch, FakeResponse(status, text="nope"))

    with pytest.raises(error):
        _client().complete([])


def test_network_and_payload_failures(monkeypatch):
    _patch_post(monkeypatch, requests.ConnectionError("down"))
    with pytest.raises(ReasoningEngineError):
        _client().complete([])

    _patch_post(monkeypatch, FakeResponse(200, {"choices": []}))
    with pytest.raises(ReasoningEngineError):
        _client().complete([])


def test_missing_api_key():
    client = ReasoningClient(base_url="https://gateway.test/v1", api_key="", model="m")

    with pytest.raises(RuntimeError):
        client.complete([])

from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from rakune.models import (
    OllamaClient,
    OracleEnvelopeError,
    OracleTransportError,
    ResponsesClient,
)


class _RecordingTransport:
    def __init__(self, body: str) -> None:
        self.body = body
        self.payloads: List[Dict[str, Any]] = []

    def __call__(self, payload: Dict[str, Any]) -> str:
        self.payloads.append(payload)
        return self.body


def test_ollama_client_sends_non_streaming_request() -> None:
    transport = _RecordingTransport(
        json.dumps({"model": "codellama", "response": "UpdateFragment: ...", "done": True, "eval_count": 3})
    )
    client = OllamaClient(model="codellama", transport=transport)

    assert client.prompt("hello") == "UpdateFragment: ..."
    assert transport.payloads == [{"model": "codellama", "prompt": "hello", "stream": False, "context": []}]


def test_ollama_client_rejects_bad_envelopes() -> None:
    partial = OllamaClient(transport=_RecordingTransport(json.dumps({"model": "m", "response": "x", "done": False})))
    garbage = OllamaClient(transport=_RecordingTransport("<html>502</html>"))
    empty = OllamaClient(transport=_RecordingTransport(""))

    for client in (partial, garbage, empty):
        with pytest.raises(OracleEnvelopeError):
            client.prompt("hello")


def test_transport_exceptions_are_wrapped() -> None:
    def failing(payload: Dict[str, Any]) -> str:
        raise ConnectionError("refused")

    with pytest.raises(OracleTransportError, match="refused"):
        OllamaClient(transport=failing).prompt("hello")


def test_ollama_endpoint_can_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAKUNE_OLLAMA_ENDPOINT", "http://gpu-box:11434/api/generate")

    assert OllamaClient().endpoint == "http://gpu-box:11434/api/generate"


def test_responses_client_reads_output_text() -> None:
    transport = _RecordingTransport(json.dumps({"status": "completed", "output_text": "answer"}))
    client = ResponsesClient(model="gpt-5-mini", transport=transport)

    assert client.prompt("question") == "answer"
    assert transport.payloads[0]["input"][0]["content"][0] == {"type": "input_text", "text": "question"}


def test_responses_client_falls_back_to_message_content() -> None:
    body = {
        "status": "completed",
        "output": [
            {"type": "reasoning", "summary": []},
            {"type": "message", "content": [{"type": "output_text", "text": "from content"}]},
        ],
    }
    client = ResponsesClient(transport=_RecordingTransport(json.dumps(body)))

    assert client.prompt("question") == "from content"


def test_responses_client_rejects_incomplete_responses() -> None:
    incomplete = ResponsesClient(transport=_RecordingTransport(json.dumps({"status": "incomplete", "output_text": "x"})))
    textless = ResponsesClient(transport=_RecordingTransport(json.dumps({"status": "completed", "output": []})))

    with pytest.raises(OracleEnvelopeError):
        incomplete.prompt("question")
    with pytest.raises(OracleEnvelopeError):
        textless.prompt("question")


def test_responses_client_requires_a_key_for_http(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError):
        ResponsesClient()
    assert ResponsesClient(api_key="sk-test").model == "gpt-5-mini"

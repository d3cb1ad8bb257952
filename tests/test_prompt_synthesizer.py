"""Tests for the chat client and prompt synthesizer."""

import json

import httpx
import pytest

from app.services.llm_client import LLMClient, LLMResponseError
from app.services.prompt_synthesizer import FALLBACK_PROMPT, PromptSynthesizer, build_user_prompt


def _client(transport):
    return LLMClient(
        endpoint="https://azure.example/",
        api_key="secret",
        deployment="gpt-test",
        api_version="2024-08-01-preview",
        transport=transport,
    )


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_chat_completion_request_shape(mock_transport_factory):
    """The request targets the deployment and carries the contract fields."""
    requests = []
    transport = mock_transport_factory(json_body=_completion("  A prompt.  "), requests=requests)

    content = _client(transport).chat_completion([{"role": "user", "content": "hi"}], temperature=0.5, max_tokens=100)

    assert content == "A prompt."
    request = requests[0]
    assert request.url.path == "/openai/deployments/gpt-test/chat/completions"
    assert request.url.params["api-version"] == "2024-08-01-preview"
    assert request.headers["api-key"] == "secret"
    body = json.loads(request.content)
    assert body == {"messages": [{"role": "user", "content": "hi"}], "max_tokens": 100, "temperature": 0.5}


def test_chat_completion_raises_on_server_error(mock_transport_factory):
    transport = mock_transport_factory(status_code=500, json_body={"error": "boom"})

    with pytest.raises(httpx.HTTPStatusError):
        _client(transport).chat_completion([{"role": "user", "content": "hi"}])


@pytest.mark.parametrize("body", [{}, {"choices": []}, _completion(""), _completion(None)])
def test_chat_completion_rejects_unusable_body(mock_transport_factory, body):
    transport = mock_transport_factory(json_body=body)

    with pytest.raises(LLMResponseError):
        _client(transport).chat_completion([{"role": "user", "content": "hi"}])


def test_synthesize_returns_model_prompt(mock_transport_factory):
    requests = []
    transport = mock_transport_factory(json_body=_completion("Headshot at a glass desk."), requests=requests)

    prompt = PromptSynthesizer(_client(transport)).synthesize(4, 2)

    assert prompt == "Headshot at a glass desk."
    body = json.loads(requests[0].content)
    assert [m["role"] for m in body["messages"]] == ["system", "user"]
    assert body["messages"][1]["content"] == build_user_prompt(4, 2)
    assert body["max_tokens"] == 300
    assert body["temperature"] == 0.7


def test_user_prompt_depends_only_on_counts():
    assert build_user_prompt(3, 1) == build_user_prompt(3, 1)
    assert "3 face reference" in build_user_prompt(3, 1)
    assert "1 photo(s) of their office" in build_user_prompt(3, 1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"status_code": 500, "json_body": {"error": "boom"}},
        {"status_code": 401, "json_body": {"error": "denied"}},
        {"json_body": {"unexpected": True}},
        {"json_body": _completion("   ")},
        {"error": httpx.ConnectTimeout("timed out")},
        {"error": httpx.ConnectError("refused")},
    ],
)
def test_synthesize_falls_back(mock_transport_factory, kwargs):
    """Prompt synthesis never fails the step."""
    transport = mock_transport_factory(**kwargs)

    assert PromptSynthesizer(_client(transport)).synthesize(4, 2) == FALLBACK_PROMPT

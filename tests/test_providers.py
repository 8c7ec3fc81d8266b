#!/usr/bin/env python3
"""Wire-level tests for the Ollama, Gemini and Grok clients."""
import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest
import requests

from cloud_agent.providers import (
    NO_RESPONSE,
    ONLINE_PERSONA,
    ConfigurationError,
    GeminiClient,
    GrokClient,
    OllamaClient,
    ProviderError,
    ProviderNetworkError,
    _base_url,
    parse_chat_completion,
    parse_gemini_response,
    parse_ollama_response,
)
from config import AIConfig


def response(status=200, body=""):
    return MagicMock(status_code=status, text=body)


@pytest.fixture
def session():
    return MagicMock()


class TestOllamaClient:
    def test_payload_shape(self, session):
        payload = OllamaClient(AIConfig(), session).build_payload("hello")
        assert set(payload) == {"model", "prompt", "stream"}
        assert payload["model"] == "llama2"
        assert payload["stream"] is False
        assert payload["prompt"].endswith("User query: hello")

    def test_success(self, session):
        session.post.return_value = response(body=json.dumps({"response": " hi there "}))
        client = OllamaClient(AIConfig(), session)
        assert client.generate("hello") == "hi there"
        args, kwargs = session.post.call_args
        assert args[0] == "http://localhost:11434/api/generate"
        assert kwargs["timeout"] == (15.0, 120.0)
        assert kwargs["json"] == client.build_payload("hello")

    @pytest.mark.parametrize("status,fragment", [
        (404, "ollama pull llama2"),
        (500, "restart Ollama"),
        (403, "error 403"),
    ])
    def test_status_codes(self, session, status, fragment):
        session.post.return_value = response(status)
        assert fragment in OllamaClient(AIConfig(), session).generate("hello")

    def test_empty_body(self, session):
        session.post.return_value = response(body="")
        assert "empty response" in OllamaClient(AIConfig(), session).generate("hello")

    def test_timeout(self, session):
        session.post.side_effect = requests.Timeout("read timed out")
        assert "taking too long" in OllamaClient(AIConfig(), session).generate("hello")

    def test_connection_refused(self, session):
        session.post.side_effect = requests.ConnectionError("refused")
        assert "ollama serve" in OllamaClient(AIConfig(), session).generate("hello")

    def test_other_io_error(self, session):
        session.post.side_effect = requests.RequestException("weird")
        assert "ollama.com/install.sh" in OllamaClient(AIConfig(), session).generate("hello")

    def test_blank_query(self, session):
        assert "valid query" in OllamaClient(AIConfig(), session).generate("  ")

    def test_is_available(self, session):
        session.get.return_value = MagicMock(status_code=200)
        session.get.return_value.json.return_value = {"models": [{"name": "llama2:latest"}]}
        assert OllamaClient(AIConfig(), session).is_available()
        assert session.get.call_args[0][0] == "http://localhost:11434/api/tags"

    def test_not_available(self, session):
        session.get.return_value = MagicMock(status_code=200)
        session.get.return_value.json.return_value = {"models": [{"name": "mistral"}]}
        assert not OllamaClient(AIConfig(), session).is_available()
        session.get.side_effect = requests.ConnectionError("refused")
        assert not OllamaClient(AIConfig(), session).is_available()
        session.post.assert_not_called()


class TestGeminiClient:
    def test_missing_key(self, session):
        reply = GeminiClient(AIConfig(), "", session).generate("hello")
        assert "need a Gemini API key" in reply
        session.post.assert_not_called()

    def test_payload_and_key_param(self, session):
        session.post.return_value = response(body=json.dumps(
            {"candidates": [{"content": {"parts": [{"text": "answer"}]}}]}))
        client = GeminiClient(AIConfig(), "k123", session)
        assert client.generate("hello") == "answer"
        kwargs = session.post.call_args.kwargs
        assert kwargs["params"] == {"key": "k123"}
        assert kwargs["timeout"] == (15.0, 30.0)
        assert kwargs["json"] == {"contents": [{"parts": [{"text": ONLINE_PERSONA + " User query: hello"}]}]}

    def test_non_2xx(self, session):
        session.post.return_value = response(400, "{}")
        assert "check your API key" in GeminiClient(AIConfig(), "k", session).generate("hello")

    def test_io_error(self, session):
        session.post.side_effect = requests.ConnectionError("dns")
        assert "trouble connecting" in GeminiClient(AIConfig(), "k", session).generate("hello")

    def test_missing_candidates(self, session):
        session.post.return_value = response(body=json.dumps({"candidates": []}))
        assert GeminiClient(AIConfig(), "k", session).generate("hello") == NO_RESPONSE


class TestGrokClient:
    def fake_sdk(self, result=None, error=None):
        sdk = MagicMock()
        if error is not None:
            sdk.chat.completions.create.side_effect = error
        else:
            sdk.chat.completions.create.return_value = result
        return sdk

    def test_empty_key_raises_configuration_error(self):
        with pytest.raises(ConfigurationError):
            GrokClient(AIConfig(), "").generate("hello")

    def test_request_shape(self):
        sdk = self.fake_sdk({"choices": [{"message": {"content": "grok says hi"}}]})
        client = GrokClient(AIConfig(), "xai-key", client=sdk)
        assert client.generate("hello") == "grok says hi"
        sdk.chat.completions.create.assert_called_once_with(
            model="grok-beta",
            messages=[{"role": "system", "content": ONLINE_PERSONA},
                      {"role": "user", "content": "hello"}],
            stream=False,
            temperature=0.7,
        )

    def test_connection_error(self):
        request = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")
        sdk = self.fake_sdk(error=openai.APIConnectionError(request=request))
        with pytest.raises(ProviderNetworkError):
            GrokClient(AIConfig(), "xai-key", client=sdk).generate("hello")

    def test_status_error(self):
        request = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")
        resp = httpx.Response(401, request=request)
        sdk = self.fake_sdk(error=openai.AuthenticationError("bad key", response=resp, body=None))
        with pytest.raises(ProviderError):
            GrokClient(AIConfig(), "xai-key", client=sdk).generate("hello")

    def test_sdk_client_uses_base_url(self):
        client = GrokClient(AIConfig(), "xai-key")
        sdk = client._get_client()
        assert str(sdk.base_url).rstrip("/") == "https://api.x.ai/v1"
        assert sdk.max_retries == 0


class TestParsers:
    def test_ollama_bad_json(self):
        assert "trouble understanding" in parse_ollama_response("not json")

    def test_ollama_missing_field(self):
        assert parse_ollama_response("{}") == NO_RESPONSE

    def test_gemini_wrong_shape(self):
        assert parse_gemini_response('{"candidates": [{"content": {}}]}') == NO_RESPONSE

    def test_chat_completion_missing(self):
        assert parse_chat_completion({}) == NO_RESPONSE
        assert parse_chat_completion({"choices": [{"message": {"content": None}}]}) == NO_RESPONSE

    def test_base_url(self):
        assert _base_url("https://api.x.ai/v1/chat/completions") == "https://api.x.ai/v1"
        assert _base_url("https://api.x.ai/v1/") == "https://api.x.ai/v1"

#!/usr/bin/env python3
"""
Wire clients for the three AI backends.

Ollama and Gemini are plain JSON-over-HTTP via ``requests`` and always return a
user-facing string. Grok speaks the OpenAI chat-completions protocol through the
``openai`` SDK and raises :class:`ProviderError` subclasses so the selector can
fall back to Gemini.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
import openai
import requests

from config import AIConfig

logger = logging.getLogger(__name__)

NO_RESPONSE = "I couldn't generate a proper response."

OLLAMA_PERSONA = (
    "You are I.R.I.S (Intelligent Responsive Integrated System), an AI assistant. "
    "Respond in a helpful, intelligent, and slightly witty manner. Keep responses concise. "
)
ONLINE_PERSONA = (
    "You are I.R.I.S (Intelligent Responsive Integrated System), "
    "an advanced AI assistant for penetration testing and security analysis. "
    "Respond in a helpful, intelligent, and professional manner."
)
USER_QUERY_PREFIX = "User query: "

# ---- Errors ------------------------------------------------------------------
class ProviderError(RuntimeError):
    """A provider call failed (non-2xx, unusable reply)."""


class ConfigurationError(ProviderError):
    """Provider is not configured (missing API key)."""


class ProviderNetworkError(ProviderError):
    """Timeout, refused connection or DNS failure."""


# ---- Response parsing (never raises) -----------------------------------------
def parse_ollama_response(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError as e:
        logger.error(f"Error parsing Ollama response: {e}")
        return "I had trouble understanding the response from my AI system."
    if isinstance(data, dict) and isinstance(data.get("response"), str):
        return data["response"].strip()
    return NO_RESPONSE


def parse_gemini_response(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError as e:
        logger.error(f"Error parsing Gemini response: {e}")
        return "I had trouble understanding the response from my AI systems."
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return NO_RESPONSE
    return text if isinstance(text, str) else NO_RESPONSE


def parse_chat_completion(resp: Any) -> str:
    """Extract choices[0].message.content from an SDK object or a plain dict."""
    try:
        if isinstance(resp, dict):
            content = resp["choices"][0]["message"]["content"]
        else:
            content = resp.choices[0].message.content
    except (KeyError, IndexError, TypeError, AttributeError):
        return NO_RESPONSE
    return content if isinstance(content, str) else NO_RESPONSE


# ---- Ollama ------------------------------------------------------------------
class OllamaClient:
    """Local model server, ``/api/generate`` with streaming off."""

    def __init__(self, config: AIConfig, session: Optional[requests.Session] = None):
        self.url = config.ollama_url
        self.model = config.ollama_model
        self.timeout = (config.connect_timeout, config.read_timeout_ollama)
        self.session = session or requests.Session()

    def build_payload(self, query: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": OLLAMA_PERSONA + USER_QUERY_PREFIX + query,
            "stream": False,
        }

    def generate(self, query: str) -> str:
        if not query or not query.strip():
            return "I didn't receive a valid query. Please try again."
        logger.info(f"Sending query to Ollama model {self.model}")
        try:
            resp = self.session.post(self.url, json=self.build_payload(query), timeout=self.timeout)
        except requests.Timeout as e:
            logger.error(f"Ollama timeout: {e}")
            return ("The AI is taking too long to respond. The model might be loading. "
                    "Please try again in a moment.")
        except requests.ConnectionError as e:
            logger.error(f"Cannot connect to Ollama: {e}")
            return "Cannot connect to Ollama. Please start it with: ollama serve"
        except requests.RequestException as e:
            logger.error(f"Error calling Ollama: {e}")
            return ("I'm having trouble with my offline AI system. "
                    "Please ensure Ollama is installed and running. "
                    "Install: curl -fsSL https://ollama.com/install.sh | sh")

        code = resp.status_code
        if not 200 <= code < 300:
            logger.warning(f"Ollama returned HTTP {code}")
            if code == 404:
                return f"Ollama model '{self.model}' not found. Try: ollama pull {self.model}"
            if code >= 500:
                return "Ollama server error. Please restart Ollama: ollama serve"
            return (f"I'm having trouble connecting to Ollama (error {code}). "
                    "Make sure Ollama is running: ollama serve")
        if not resp.text:
            return "I received an empty response from Ollama. Please try again."
        return parse_ollama_response(resp.text)

    def is_available(self) -> bool:
        """True when the server answers and the configured model is pulled."""
        base = self.url.split("/api/")[0]
        try:
            r = self.session.get(f"{base}/api/tags", timeout=3)
        except requests.RequestException:
            return False
        if r.status_code != 200:
            return False
        try:
            models = [m.get("name", "") for m in r.json().get("models", [])]
        except (ValueError, AttributeError):
            return False
        return any(self.model in m for m in models)


# ---- Gemini ------------------------------------------------------------------
class GeminiClient:
    def __init__(self, config: AIConfig, api_key: str, session: Optional[requests.Session] = None):
        self.url = config.gemini_url
        self.api_key = api_key or ""
        self.timeout = (config.connect_timeout, config.read_timeout_online)
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, query: str) -> Dict[str, Any]:
        text = ONLINE_PERSONA + " " + USER_QUERY_PREFIX + query
        return {"contents": [{"parts": [{"text": text}]}]}

    def generate(self, query: str) -> str:
        if not self.api_key:
            return ("I'm sorry, but I need a Gemini API key to answer that question. "
                    "Please configure your API key in the .env file, or enable offline mode.")
        logger.info("Sending query to Gemini")
        try:
            resp = self.session.post(
                self.url,
                params={"key": self.api_key},
                json=self.build_payload(query),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Error calling Gemini API: {e}")
            return "I'm having trouble connecting to my AI systems right now."
        if not 200 <= resp.status_code < 300:
            logger.warning(f"Gemini returned HTTP {resp.status_code}")
            return "I encountered an error while processing your request. Please check your API key."
        return parse_gemini_response(resp.text)


# ---- Grok (OpenAI-compatible) -------------------------------------------------
def _base_url(api_url: str) -> str:
    url = api_url.rstrip("/")
    suffix = "/chat/completions"
    if url.endswith(suffix):
        url = url[: -len(suffix)]
    return url


class GrokClient:
    def __init__(self, config: AIConfig, api_key: str, client: Any = None):
        self.model = config.grok_model
        self.temperature = config.temperature
        self.api_key = api_key or ""
        self._config = config
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-init the SDK client (no client without a key)."""
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=_base_url(self._config.grok_api_url),
                timeout=httpx.Timeout(self._config.read_timeout_online,
                                       connect=self._config.connect_timeout),
                max_retries=0,
            )
        return self._client

    def build_messages(self, query: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": ONLINE_PERSONA},
            {"role": "user", "content": query},
        ]

    def generate(self, query: str) -> str:
        if not self.api_key:
            raise ConfigurationError("Grok API key not configured")
        logger.info(f"Sending query to Grok model {self.model}")
        try:
            resp = self._get_client().chat.completions.create(
                model=self.model,
                messages=self.build_messages(query),
                stream=False,
                temperature=self.temperature,
            )
        except openai.APIConnectionError as e:
            raise ProviderNetworkError(f"Error calling Grok API: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"Grok API error: {e.status_code}") from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Grok API error: {e}") from e
        return parse_chat_completion(resp)

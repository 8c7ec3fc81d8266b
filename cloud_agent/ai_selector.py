#!/usr/bin/env python3
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from cloud_agent.providers import (
    ConfigurationError,
    GeminiClient,
    GrokClient,
    OllamaClient,
    ProviderError,
)
from config import AssistantConfig, load_api_key
from utils.network_monitor import NetworkStatusMonitor

logger = logging.getLogger(__name__)

GROK = "grok"
GEMINI = "gemini"
OLLAMA = "ollama"
AUTO = "auto"

PROVIDERS = (GROK, GEMINI, OLLAMA)
ONLINE_PROVIDERS = (GROK, GEMINI)


@dataclass(frozen=True)
class AIMode:
    manual_enabled: bool = False
    manual_selection: str = AUTO
    current_online_provider: str = GEMINI


def select_mode(mode: AIMode, online: bool, fast: bool) -> str:
    """Manual selection wins; otherwise the round-robin provider when online and fast, else ollama."""
    if mode.manual_enabled:
        return mode.manual_selection
    if online and fast:
        return mode.current_online_provider
    return OLLAMA


def advance_round_robin(mode: AIMode, used: str, grok_configured: bool) -> AIMode:
    if used == GEMINI and grok_configured:
        return replace(mode, current_online_provider=GROK)
    if used == GROK:
        return replace(mode, current_online_provider=GEMINI)
    return mode


def initial_mode(config: AssistantConfig) -> AIMode:
    if config.ai.offline_mode:
        return AIMode(manual_enabled=True, manual_selection=OLLAMA)
    default = (config.ai.default_mode or AUTO).lower()
    if default in PROVIDERS:
        return AIMode(manual_enabled=True, manual_selection=default)
    return AIMode()


class AIBackendSelector:
    """
    Picks a backend per query and calls it.

    Mode state is an immutable :class:`AIMode` swapped under one lock, so a
    query resolves its provider and advances the round-robin pointer atomically
    even when several front ends share the selector. The provider call itself
    runs outside the lock.
    """

    def __init__(
        self,
        config: AssistantConfig,
        monitor: NetworkStatusMonitor,
        *,
        ollama: Optional[OllamaClient] = None,
        gemini: Optional[GeminiClient] = None,
        grok: Optional[GrokClient] = None,
    ):
        self.config = config
        self.monitor = monitor
        self.ollama = ollama or OllamaClient(config.ai)
        self.gemini = gemini or GeminiClient(config.ai, load_api_key("gemini", config))
        self.grok = grok or GrokClient(config.ai, load_api_key("grok", config))
        self._lock = threading.Lock()
        self._mode = initial_mode(config)
        self._history: deque[str] = deque(maxlen=max(1, config.ai.history_size))
        logger.info(f"AI selector ready: {self._describe(self._mode)}")

    # ---- mode ----------------------------------------------------------------
    @property
    def mode(self) -> AIMode:
        with self._lock:
            return self._mode

    def set_manual_mode(self, manual: bool, mode: str = AUTO) -> None:
        mode = (mode or AUTO).lower()
        if manual and mode not in PROVIDERS and mode != AUTO:
            raise ValueError(f"Unknown AI mode: {mode!r} (expected one of {', '.join(PROVIDERS)} or auto)")
        with self._lock:
            if manual and mode in PROVIDERS:
                self._mode = replace(self._mode, manual_enabled=True, manual_selection=mode)
            else:
                self._mode = replace(self._mode, manual_enabled=False, manual_selection=AUTO)
            logger.info(f"AI mode set: {self._describe(self._mode)}")

    def is_manual_mode(self) -> bool:
        return self.mode.manual_enabled

    def current_mode(self) -> str:
        """Provider the next query would use, without advancing the pointer."""
        snap = self.mode
        if snap.manual_enabled:
            return snap.manual_selection
        online, fast = self._network_readings()
        return select_mode(snap, online, fast)

    def is_offline_mode(self) -> bool:
        return self.current_mode() == OLLAMA

    def network_status(self) -> str:
        return self.monitor.network_status()

    def refresh_network_status(self) -> None:
        self.monitor.refresh()

    # ---- history -------------------------------------------------------------
    def add_to_history(self, message: str) -> None:
        with self._lock:
            self._history.append(message)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    @property
    def history(self) -> List[str]:
        with self._lock:
            return list(self._history)

    # ---- queries -------------------------------------------------------------
    def process_query(self, text: str, *, mode: Optional[str] = None) -> str:
        """
        Answer ``text`` with the resolved provider. ``mode`` forces a provider
        for this call only and leaves the shared state untouched.
        """
        self.add_to_history(text)
        provider, via_round_robin = self._resolve(mode)
        logger.info(f"Routing query to {provider}{' (auto)' if via_round_robin else ''}")
        return self._dispatch(provider, text)

    def _network_readings(self) -> Tuple[bool, bool]:
        online = self.monitor.is_online()
        fast = online and self.monitor.is_fast_network()
        return online, fast

    def _resolve(self, explicit: Optional[str]) -> Tuple[str, bool]:
        if explicit is not None:
            explicit = explicit.lower()
            if explicit not in PROVIDERS:
                raise ValueError(f"Unknown AI mode: {explicit!r}")
            return explicit, False

        online = fast = False
        if not self.mode.manual_enabled:
            online, fast = self._network_readings()

        with self._lock:
            snap = self._mode
            if snap.manual_enabled:
                return snap.manual_selection, False
            provider = select_mode(snap, online, fast)
            if provider in ONLINE_PROVIDERS:
                self._mode = advance_round_robin(snap, provider, self.grok.configured)
                return provider, True
            return provider, False

    def _dispatch(self, provider: str, text: str) -> str:
        if provider == OLLAMA:
            return self.ollama.generate(text)
        if provider == GROK:
            return self._grok_with_fallback(text)
        return self.gemini.generate(text)

    def _grok_with_fallback(self, text: str) -> str:
        try:
            return self.grok.generate(text)
        except ConfigurationError:
            logger.info("Grok API key not configured, falling back to Gemini")
        except ProviderError as e:
            logger.warning(f"{e}; falling back to Gemini")
        return self.gemini.generate(text)

    @staticmethod
    def _describe(mode: AIMode) -> str:
        if mode.manual_enabled:
            return f"MANUAL - {mode.manual_selection.upper()}"
        return f"AUTO (next online provider: {mode.current_online_provider.upper()})"

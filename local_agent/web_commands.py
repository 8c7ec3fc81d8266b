from __future__ import annotations

import logging
from urllib.parse import quote_plus

from local_agent.automation import ensure_scheme
from utils.runner import spawn_cmd

logger = logging.getLogger(__name__)

GOOGLE_SEARCH = "https://www.google.com/search?q="
YOUTUBE_SEARCH = "https://www.youtube.com/results?search_query="
WIKIPEDIA_ARTICLE = "https://en.wikipedia.org/wiki/"


class WebCommands:
    """Opens search pages and sites in the configured browser."""

    def __init__(self, browser: str = "firefox"):
        self.browser = browser or "firefox"

    def _open_url(self, url: str) -> None:
        logger.info(f"Opening {url} in {self.browser}")
        if spawn_cmd([self.browser, url]) != 0:
            raise RuntimeError(f"{self.browser} is not available")

    def search_google(self, query: str) -> str:
        try:
            self._open_url(GOOGLE_SEARCH + quote_plus(query))
            return f"Searching Google for {query}"
        except Exception as e:
            return f"I couldn't perform the Google search: {e}"

    def play_youtube(self, query: str) -> str:
        try:
            self._open_url(YOUTUBE_SEARCH + quote_plus(query))
            return f"Searching YouTube for {query}"
        except Exception as e:
            return f"I couldn't open YouTube: {e}"

    def search_wikipedia(self, query: str) -> str:
        try:
            self._open_url(WIKIPEDIA_ARTICLE + quote_plus(query).replace("+", "_"))
            return f"Opening Wikipedia article for {query}"
        except Exception as e:
            return f"I couldn't open Wikipedia: {e}"

    def open_website(self, url: str) -> str:
        url = ensure_scheme(url)
        try:
            self._open_url(url)
            return f"Opening {url}"
        except Exception as e:
            return f"I couldn't open that website: {e}"

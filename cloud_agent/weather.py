from __future__ import annotations

import json
import logging
from typing import Optional

import requests

from config import WeatherConfig

logger = logging.getLogger(__name__)


class WeatherService:
    """Current conditions from OpenWeatherMap, metric units."""

    def __init__(self, config: WeatherConfig, api_key: str, session: Optional[requests.Session] = None):
        self.config = config
        self.api_key = api_key or ""
        self.session = session or requests.Session()

    def current_weather(self) -> str:
        return self.get_weather(self.config.default_city)

    def get_weather(self, city: str) -> str:
        if not self.api_key:
            return ("I need an OpenWeatherMap API key to check the weather. "
                    "Please configure it in your .env file.")
        try:
            resp = self.session.get(
                self.config.api_url,
                params={"q": city, "appid": self.api_key, "units": "metric"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Weather request failed: {e}")
            return f"I encountered an error while fetching weather data: {e}"
        if not resp.ok:
            logger.info(f"Weather lookup for {city!r} returned HTTP {resp.status_code}")
            return f"I couldn't find weather information for {city}"
        return self.format_report(resp.text, city)

    @staticmethod
    def format_report(body: str, city: str) -> str:
        try:
            data = json.loads(body)
            main = data["main"]
            description = data["weather"][0]["description"]
            return (
                f"The weather in {city} is {description} with a temperature of "
                f"{float(main['temp']):.1f} degrees Celsius. It feels like "
                f"{float(main['feels_like']):.1f} degrees with {int(main['humidity'])} percent humidity."
            )
        except (ValueError, KeyError, IndexError, TypeError):
            return "I had trouble parsing the weather data."

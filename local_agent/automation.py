from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from utils.runner import failure_reason, run_cmd

logger = logging.getLogger(__name__)

TYPE_DELAY_MS = "50"


class StepFailed(RuntimeError):
    pass


def ensure_scheme(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        return "https://" + url
    return url


class AppAutomation:
    """Keyboard/window automation for the focused X11 window via xdotool."""

    def __init__(self, screenshot_dir: str = "", sleep: Callable[[float], None] = time.sleep):
        self.screenshot_dir = screenshot_dir
        self._sleep = sleep

    def _xdotool(self, *args: str) -> None:
        res = run_cmd(["xdotool", *args], mode="write", confirm=False, timeout=30)
        if res["rc"] != 0:
            raise StepFailed(failure_reason(res))

    def _type(self, text: str) -> None:
        self._xdotool("type", "--delay", TYPE_DELAY_MS, text)

    def type_text(self, text: str) -> str:
        try:
            self._type(text)
            return f"Typing: {text}"
        except Exception as e:
            return f"Failed to type text: {e}"

    def press_key(self, key: str) -> str:
        try:
            self._xdotool("key", key)
            return f"Pressed: {key}"
        except Exception as e:
            return f"Failed to press key: {e}"

    def execute_in_terminal(self, command: str) -> str:
        try:
            self._type(command)
            self._sleep(0.1)
            self._xdotool("key", "Return")
            return f"Executed in terminal: {command}"
        except Exception as e:
            return f"Failed to execute in terminal: {e}"

    def _address_bar(self, text: str) -> None:
        self._sleep(0.5)
        self._xdotool("key", "ctrl+l")
        self._sleep(0.2)
        self._type(text)
        self._sleep(0.2)
        self._xdotool("key", "Return")

    def navigate_to_url(self, url: str) -> str:
        url = ensure_scheme(url)
        try:
            self._address_bar(url)
            return f"Navigating to: {url}"
        except Exception as e:
            return f"Failed to navigate: {e}"

    def search_in_browser(self, query: str) -> str:
        try:
            self._address_bar(query)
            return f"Searching for: {query}"
        except Exception as e:
            return f"Failed to search: {e}"

    def click_at(self, x: int, y: int) -> str:
        try:
            self._xdotool("mousemove", str(x), str(y), "click", "1")
            return f"Clicked at position: {x}, {y}"
        except Exception as e:
            return f"Failed to click: {e}"

    def switch_to_window(self, name: str) -> str:
        try:
            self._xdotool("search", "--name", name, "windowactivate")
            return f"Switched to: {name}"
        except Exception as e:
            return f"Failed to switch window: {e}"

    def minimize_window(self) -> str:
        try:
            self._xdotool("getactivewindow", "windowminimize")
            return "Window minimized"
        except Exception as e:
            return f"Failed to minimize: {e}"

    def maximize_window(self) -> str:
        try:
            # xdotool has no maximize verb; toggle the EWMH state instead
            self._xdotool("getactivewindow", "windowstate", "--add", "MAXIMIZED_VERT,MAXIMIZED_HORZ")
            return "Window maximized"
        except Exception as e:
            return f"Failed to maximize: {e}"

    def close_window(self) -> str:
        try:
            self._xdotool("key", "alt+F4")
            return "Window closed"
        except Exception as e:
            return f"Failed to close window: {e}"

    def take_screenshot(self, filename: Optional[str] = None) -> str:
        if not filename:
            filename = f"screenshot_{int(time.time() * 1000)}.png"
        target = Path(filename)
        if self.screenshot_dir and not target.is_absolute():
            target = Path(self.screenshot_dir).expanduser() / target
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            res = run_cmd(["scrot", str(target)], mode="write", confirm=False, timeout=15)
            if res["rc"] != 0:
                raise StepFailed(failure_reason(res))
            return f"Screenshot saved as: {target}"
        except Exception as e:
            return f"Failed to take screenshot: {e}"


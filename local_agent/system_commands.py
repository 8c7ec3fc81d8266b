from __future__ import annotations

import logging
from typing import NamedTuple, Optional

from config import SystemConfig
from local_agent.system_state import get_system_info
from utils.fuzzy import smart_match
from utils.runner import failure_reason, have, run_cmd, spawn_cmd

logger = logging.getLogger(__name__)


class AppEntry(NamedTuple):
    key: str
    command: str
    display: str
    aliases: tuple


# Canonical key, binary, display name, spoken variants (key first)
APP_MAPPINGS = (
    AppEntry("firefox", "firefox", "Firefox", ("firefox", "fire fox", "mozilla", "fox")),
    AppEntry("chrome", "google-chrome", "Chrome", ("chrome", "google chrome", "google-chrome")),
    AppEntry("brave", "brave-browser", "Brave", ("brave", "brave browser")),
    AppEntry("wireshark", "wireshark", "Wireshark", ("wireshark", "wire shark", "shark")),
    AppEntry("burpsuite", "burpsuite", "Burp Suite", ("burpsuite", "burp suite", "burp")),
    AppEntry("metasploit", "msfconsole", "Metasploit", ("metasploit", "meta sploit", "msfconsole", "msf")),
    AppEntry("terminal", "gnome-terminal", "Terminal", ("terminal", "gnome-terminal", "console")),
    AppEntry("calculator", "gnome-calculator", "Calculator", ("calculator", "calc", "gnome-calculator")),
    AppEntry("nautilus", "nautilus", "File Manager", ("nautilus", "files", "file manager", "folders")),
    AppEntry("gedit", "gedit", "Text Editor", ("gedit", "text editor", "editor")),
    AppEntry("code", "code", "VS Code", ("code", "vs code", "visual studio code", "vscode")),
    AppEntry("spotify", "spotify", "Spotify", ("spotify", "music")),
    AppEntry("gnome-control-center", "gnome-control-center", "System Settings",
             ("gnome-control-center", "settings", "system settings")),
    AppEntry("hydra-gtk", "hydra-gtk", "Hydra", ("hydra-gtk", "hydra", "brute force", "bruteforce")),
    AppEntry("aircrack-ng", "aircrack-ng", "Aircrack-ng", ("aircrack-ng", "aircrack", "air crack")),
    AppEntry("sqlmap", "sqlmap", "SQLMap", ("sqlmap", "sql map")),
    AppEntry("john", "john", "John the Ripper", ("john", "john the ripper")),
    AppEntry("maltego", "maltego", "Maltego", ("maltego",)),
    AppEntry("beef-xss", "beef-xss", "BeEF", ("beef-xss", "beef")),
    AppEntry("ettercap", "ettercap", "Ettercap", ("ettercap",)),
    AppEntry("armitage", "armitage", "Armitage", ("armitage",)),
    AppEntry("ghidra", "ghidra", "Ghidra", ("ghidra",)),
    AppEntry("zenmap", "zenmap", "Nmap", ("zenmap", "nmap")),
    AppEntry("ida", "ida", "IDA Pro", ("ida", "ida pro")),
    AppEntry("gdb", "gdb", "GDB", ("gdb", "debugger")),
)

# Filler words removed from a spoken application name, in order
APP_NAME_FILLERS = ("the ", " web", " browser", " application", " app")

VOLUME_ACTIONS = {
    "pactl": {
        "up": ["pactl", "set-sink-volume", "@DEFAULT_SINK@", "+10%"],
        "down": ["pactl", "set-sink-volume", "@DEFAULT_SINK@", "-10%"],
        "mute": ["pactl", "set-sink-mute", "@DEFAULT_SINK@", "toggle"],
    },
    "amixer": {
        "up": ["amixer", "set", "Master", "10%+"],
        "down": ["amixer", "set", "Master", "10%-"],
        "mute": ["amixer", "set", "Master", "toggle"],
    },
}

POWER_MESSAGES = {
    "shutdown": "Shutting down the system. Goodbye!",
    "power off": "Shutting down the system. Goodbye!",
    "restart": "Restarting the system.",
    "reboot": "Restarting the system.",
    "sleep": "Putting the system to sleep.",
    "suspend": "Putting the system to sleep.",
}
POWER_DISABLED_NOTE = " (Note: Power commands require administrator privileges and are currently disabled for safety)"


def clean_app_name(name: str) -> str:
    name = name.lower().strip()
    for filler in APP_NAME_FILLERS:
        name = name.replace(filler, "")
    return name.strip()


def find_matching_app(name: str) -> Optional[AppEntry]:
    """Exact or containment match over all aliases first, then fuzzy/phonetic."""
    if not name:
        return None
    for entry in APP_MAPPINGS:
        for alias in entry.aliases:
            if name == alias or alias in name:
                return entry
    for entry in APP_MAPPINGS:
        for alias in entry.aliases:
            if smart_match(name, alias):
                return entry
    return None


class SystemCommands:
    def __init__(self, config: Optional[SystemConfig] = None):
        self.config = config or SystemConfig()

    def open_application(self, name: str) -> str:
        original = name.strip()
        try:
            cleaned = clean_app_name(name)
            if not cleaned:
                return "Which application should I open?"

            entry = find_matching_app(cleaned)
            if entry is not None:
                logger.info(f"Opening {entry.display} via {entry.command}")
                if spawn_cmd([entry.command]) != 0:
                    return f"I couldn't open {entry.display}: {entry.command} is not installed"
                return f"Opening {entry.display}"

            for candidate in (cleaned.replace(" ", "-"), cleaned.replace(" ", "").replace("-", "")):
                if candidate and have(candidate) and spawn_cmd([candidate]) == 0:
                    logger.info(f"Opening {candidate} found on PATH")
                    return f"Opening {original}"

            return f"I don't know how to open {original}. Make sure it's installed."
        except Exception as e:
            return f"I couldn't open {original}: {e}"

    def set_volume(self, action: str) -> str:
        action = action.lower().strip()
        action = {"increase": "up", "decrease": "down"}.get(action, action)
        backend = "pactl" if self.config.volume_command == "pactl" else "amixer"
        argv = VOLUME_ACTIONS[backend].get(action)
        if argv is None:
            return "I don't understand that volume command"
        res = run_cmd(argv, mode="write", confirm=False, timeout=5)
        if res["rc"] != 0:
            return f"I couldn't change the volume: {failure_reason(res)}"
        return f"Volume {action}"

    def power_command(self, action: str) -> str:
        message = POWER_MESSAGES.get(action.lower().strip())
        if message is None:
            return "I don't understand that power command"
        logger.info(f"Power command '{action}' requested (not executed)")
        return message + POWER_DISABLED_NOTE

    def get_system_info(self, kind: str) -> str:
        return get_system_info(kind)

#!/usr/bin/env python3
"""
Utterance classification and dispatch.

``ROUTES`` is an ordered table of ``(Category, predicate, handler)`` entries.
The router walks it once per utterance and the first matching predicate wins,
so the order of the table is part of the behaviour: later categories that an
earlier predicate shadows ("check open ports" contains "open") are never
reached for those utterances.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Tuple

from local_agent import security_tools
from local_agent.automation import ensure_scheme

logger = logging.getLogger(__name__)

EXIT = "exit"
NOT_HEARD = "I didn't catch that. Could you please repeat?"
SECURITY_BANNER = "🔐 SECURITY COMMANDS:\n\n"
WORDLIST_DIR = "/usr/share/wordlists"
DEFAULT_CAPTURE_SECONDS = 15

IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
SITE_RE = re.compile(r"^(https?://)?[\w-]+(\.[\w-]+)+(/\S*)?$")

SECURITY_KEYWORDS = (
    "hack", "crack", "exploit", "penetration", "pentest",
    "wifi password", "network scan", "port scan", "vulnerability",
    "sql injection", "xss", "brute force", "password crack",
    "metasploit", "nmap", "wireshark", "burp", "hydra",
    "aircrack", "sqlmap", "john", "ettercap",
)

NETWORK_ANALYSIS_KEYWORDS = (
    "capture packets", "unwanted packets", "packet analysis", "wire shark",
    "network report", "analyze network", "check network", "unauthorized access",
    "network security", "scan my network", "http traffic", "analyze http",
    "extract credentials", "find credentials", "analyze dns", "dns analysis",
    "follow tcp", "tcp stream", "sensitive data", "data leak",
    "ssl certificate", "tls certificate", "extract files", "http objects",
    "bug bounty", "bugbounty", "pentest network", "network pentest",
)

# Spoken key name -> xdotool keysym, first containment match wins
KEY_NAMES = (
    (("enter", "return"), "Return"),
    (("escape", "esc"), "Escape"),
    (("tab",), "Tab"),
    (("space",), "space"),
    (("backspace",), "BackSpace"),
    (("delete",), "Delete"),
)

# Network-analysis sub-commands: trigger phrases, TRAFFIC_ANALYSES kind, reply
TRAFFIC_COMMANDS = (
    (("http traffic", "analyze http", "http analysis"), "http",
     "🌐 HTTP traffic analysis complete. Check console for details."),
    (("extract credentials", "find credentials", "capture credentials", "sniff password"), "credentials",
     "🔑 Credential scan complete. Check console for findings."),
    (("analyze dns", "dns analysis", "dns traffic", "check dns"), "dns",
     "🔍 DNS analysis complete. Check console for details."),
    (("follow tcp", "tcp stream", "follow stream"), "tcp_stream",
     "📡 TCP stream capture complete. Check console for data."),
    (("sensitive data", "data leak", "api key", "find secret"), "sensitive",
     "🔐 Sensitive data scan complete. Check console for findings."),
    (("ssl certificate", "tls certificate", "analyze ssl", "check certificate"), "ssl",
     "🔒 SSL/TLS certificate analysis complete. Check console."),
)


class Category(str, Enum):
    COMPLEX = "complex"
    TIME = "time"
    DATE = "date"
    OPEN_APP = "open_app"
    VOLUME = "volume"
    POWER = "power"
    GOOGLE = "google"
    YOUTUBE = "youtube"
    WIKIPEDIA = "wikipedia"
    WEATHER = "weather"
    NAVIGATE = "navigate"
    TYPE = "type"
    PRESS = "press"
    TERMINAL = "terminal"
    SECURITY_QUERY = "security_query"
    WINDOW = "window"
    SCREENSHOT = "screenshot"
    FILE_ANALYSIS = "file_analysis"
    LINK_CHECK = "link_check"
    NMAP = "nmap"
    PAYLOAD = "payload"
    PASSWORD_CRACK = "password_crack"
    NETWORK_ANALYSIS = "network_analysis"
    DIRECTORY_ENUM = "directory_enum"
    SQL_INJECTION = "sql_injection"
    BRUTE_FORCE = "brute_force"
    EXIT = "exit"
    DEFAULT_AI = "default_ai"


class Route(NamedTuple):
    category: Category
    matches: Callable[[str], bool]
    handler: str


# ---- helpers -------------------------------------------------------------------
def contains_any(*phrases: str) -> Callable[[str], bool]:
    return lambda u: any(p in u for p in phrases)


def contains_all(*phrases: str) -> Callable[[str], bool]:
    return lambda u: all(p in u for p in phrases)


def is_complex(utterance: str) -> bool:
    """Crude multi-step test: open ... in/on, or any ' and ' / ' then '."""
    u = utterance
    return (("open" in u and " in " in u)
            or ("open" in u and " on " in u)
            or " and " in u
            or " then " in u)


def strip_phrases(text: str, phrases: Iterable[str]) -> str:
    """Remove every occurrence of each phrase, in order, then trim."""
    for phrase in phrases:
        text = text.replace(phrase, "")
    return text.strip()


def normalize(utterance: Optional[str]) -> str:
    return (utterance or "").lower().strip()


def key_name(spoken: str) -> str:
    for words, keysym in KEY_NAMES:
        if any(w in spoken for w in words):
            return keysym
    return spoken


def _word_after(tokens: List[str], marker: str) -> Optional[str]:
    found = None
    for i, tok in enumerate(tokens[:-1]):
        if tok == marker:
            found = tokens[i + 1]
    return found


def _wordlist(name: Optional[str]) -> Optional[str]:
    return f"{WORDLIST_DIR}/{name}.txt" if name else None


ROUTES: Tuple[Route, ...] = (
    Route(Category.COMPLEX, is_complex, "_complex"),
    Route(Category.TIME, contains_any("time"), "_time"),
    Route(Category.DATE, contains_any("date"), "_date"),
    Route(Category.OPEN_APP, contains_any("open"), "_open_app"),
    Route(Category.VOLUME, contains_any("volume"), "_volume"),
    Route(Category.POWER, contains_any("shutdown", "restart", "sleep"), "_power"),
    Route(Category.GOOGLE, contains_any("search google", "google"), "_google"),
    Route(Category.YOUTUBE, contains_any("youtube", "play"), "_youtube"),
    Route(Category.WIKIPEDIA, contains_any("wikipedia"), "_wikipedia"),
    Route(Category.WEATHER, contains_any("weather"), "_weather"),
    Route(Category.NAVIGATE, contains_any("go to", "navigate to"), "_navigate"),
    Route(Category.TYPE, contains_any("type"), "_type"),
    Route(Category.PRESS, contains_any("press"), "_press"),
    Route(Category.TERMINAL, contains_all("run", "terminal"), "_terminal"),
    Route(Category.SECURITY_QUERY, contains_any(*SECURITY_KEYWORDS), "_security_query"),
    Route(Category.WINDOW, contains_any("minimize", "maximize", "close window", "close this"), "_window"),
    Route(Category.SCREENSHOT, contains_any("screenshot", "take a picture"), "_screenshot"),
    Route(Category.FILE_ANALYSIS, contains_any("analyze file", "scan file"), "_file_analysis"),
    Route(Category.LINK_CHECK, contains_any("check link", "check url"), "_link_check"),
    Route(Category.NMAP, contains_any("scan network", "nmap scan", "check open ports", "check ports"), "_nmap"),
    Route(Category.PAYLOAD, contains_any("create payload", "generate payload"), "_payload"),
    Route(Category.PASSWORD_CRACK, contains_any("crack password"), "_password_crack"),
    Route(Category.NETWORK_ANALYSIS, contains_any(*NETWORK_ANALYSIS_KEYWORDS), "_network_analysis"),
    Route(Category.DIRECTORY_ENUM, contains_any("enumerate directories", "directory scan"), "_directory_enum"),
    Route(Category.SQL_INJECTION, contains_any("test sql injection", "sqlmap"), "_sql_injection"),
    Route(Category.BRUTE_FORCE, contains_any("brute force"), "_brute_force"),
    Route(Category.EXIT, contains_any("exit", "quit", "goodbye", "bye"), "_exit"),
    Route(Category.DEFAULT_AI, lambda u: True, "_default_ai"),
)


def classify(utterance: str, routes: Iterable[Route] = ROUTES) -> Route:
    """First route whose predicate accepts the normalized utterance."""
    u = normalize(utterance)
    for route in routes:
        if route.matches(u):
            return route
    raise LookupError(f"No route for {u!r}")


class CommandRouter:
    """
    Maps an utterance to an actuator call or an AI answer.

    Collaborators are plain objects; only the methods the handlers call are
    required. ``planner`` is attached after construction because the planner
    re-enters the router for generic steps.
    """

    def __init__(
        self,
        *,
        ai: Any,
        system: Any,
        web: Any,
        automation: Any,
        weather: Any,
        file_analyzer: Any = None,
        link_checker: Any = None,
        security: Any = security_tools,
        planner: Any = None,
        clock: Callable[[], datetime] = datetime.now,
        routes: Tuple[Route, ...] = ROUTES,
    ):
        self.ai = ai
        self.system = system
        self.web = web
        self.automation = automation
        self.weather = weather
        self.file_analyzer = file_analyzer
        self.link_checker = link_checker
        self.security = security
        self.planner = planner
        self.clock = clock
        self.routes = routes

    def route(self, utterance: Optional[str]) -> str:
        u = normalize(utterance)
        if not u:
            return NOT_HEARD
        entry = classify(u, self.routes)
        logger.debug(f"Routing {u!r} -> {entry.category.value}")
        return getattr(self, entry.handler)(u)

    # ---- core ------------------------------------------------------------------
    def _complex(self, u: str) -> str:
        if self.planner is None:
            return self.ai.process_query(u)
        return self.planner.handle(u)

    def _time(self, u: str) -> str:
        now = self.clock()
        return f"The time is {now.strftime('%I').lstrip('0')}:{now.strftime('%M %p')}"

    def _date(self, u: str) -> str:
        now = self.clock()
        return f"Today is {now.strftime('%A, %B')} {now.day}, {now.year}"

    def _default_ai(self, u: str) -> str:
        return self.ai.process_query(u)

    def _exit(self, u: str) -> str:
        return EXIT

    # ---- system ----------------------------------------------------------------
    def _open_app(self, u: str) -> str:
        target = strip_phrases(u, ["open"])
        if SITE_RE.match(target):
            return self.web.open_website(target)
        return self.system.open_application(target)

    def _volume(self, u: str) -> str:
        if "up" in u or "increase" in u:
            return self.system.set_volume("up")
        if "down" in u or "decrease" in u:
            return self.system.set_volume("down")
        if "mute" in u:
            return self.system.set_volume("mute")
        return "I didn't understand that volume command"

    def _power(self, u: str) -> str:
        if "shutdown" in u:
            return self.system.power_command("shutdown")
        if "restart" in u or "reboot" in u:
            return self.system.power_command("restart")
        if "sleep" in u or "suspend" in u:
            return self.system.power_command("sleep")
        return "I didn't understand that power command"

    # ---- web -------------------------------------------------------------------
    def _google(self, u: str) -> str:
        return self.web.search_google(strip_phrases(u, ["search google for", "google", "search for"]))

    def _youtube(self, u: str) -> str:
        return self.web.play_youtube(strip_phrases(u, ["youtube", "play", "on youtube"]))

    def _wikipedia(self, u: str) -> str:
        return self.web.search_wikipedia(strip_phrases(u, ["wikipedia", "search wikipedia for", "on wikipedia"]))

    def _weather(self, u: str) -> str:
        city = strip_phrases(u, ["weather"])
        # whole word only, so "berlin" keeps its letters
        city = re.sub(r"\bin\b", "", city)
        city = strip_phrases(city, ["what's the", "what is the"])
        city = " ".join(city.split())
        if not city:
            return self.weather.current_weather()
        return self.weather.get_weather(city)

    # ---- automation ------------------------------------------------------------
    def _navigate(self, u: str) -> str:
        return self.automation.navigate_to_url(strip_phrases(u, ["go to", "navigate to", "open"]))

    def _type(self, u: str) -> str:
        return self.automation.type_text(strip_phrases(u, ["type"]))

    def _press(self, u: str) -> str:
        return self.automation.press_key(key_name(strip_phrases(u, ["press", "key"])))

    def _terminal(self, u: str) -> str:
        return self.automation.execute_in_terminal(strip_phrases(u, ["run", "in terminal", "terminal"]))

    def _window(self, u: str) -> str:
        if "minimize" in u:
            return self.automation.minimize_window()
        if "maximize" in u:
            return self.automation.maximize_window()
        return self.automation.close_window()

    def _screenshot(self, u: str) -> str:
        return self.automation.take_screenshot(None)

    # ---- security --------------------------------------------------------------
    def _security_query(self, u: str) -> str:
        prompt = (f"You are a Kali Linux security expert. The user asked: '{u}'. "
                  "Provide the terminal command(s) to accomplish this task with brief explanations. "
                  "Format: Command followed by brief explanation. "
                  "Keep it concise and practical for Kali Linux.")
        return SECURITY_BANNER + self.ai.process_query(prompt)

    def _file_analysis(self, u: str) -> str:
        path = strip_phrases(u, ["analyze file", "scan file"])
        if not path:
            return "Please specify a file path. Example: analyze file /path/to/file"
        print(f"\n🔍 Analyzing file: {path}")
        report = self.file_analyzer.analyze_file(path)
        print(report.to_formatted_string())
        return report.summary("File analysis")

    def _link_check(self, u: str) -> str:
        url = strip_phrases(u, ["check link", "check url"])
        if not url:
            return "Please specify a URL. Example: check link https://example.com"
        url = ensure_scheme(url)
        print(f"\n🔍 Checking link: {url}")
        report = self.link_checker.check_link(url)
        print(report.to_formatted_string())
        return report.summary("Link check")

    def _nmap(self, u: str) -> str:
        rest = strip_phrases(u, ["scan network", "nmap scan", "check open ports", "check ports"])
        if not rest:
            return "Please specify a target. Example: scan network 192.168.1.0/24"
        target = rest.split()[-1]
        if "full" in u:
            return self.security.nmap_full_scan(target)
        if "os" in u:
            return self.security.nmap_os_detection(target)
        return self.security.nmap_quick_scan(target)

    def _payload(self, u: str) -> str:
        platform, kind, lhost, lport = "windows", "reverse shell", "127.0.0.1", "4444"
        if "linux" in u:
            platform = "linux"
        elif "android" in u:
            platform = "android"
        if "reverse" in u:
            kind = "reverse"
        elif "bind" in u:
            kind = "bind"
        for tok in reversed(u.split()):
            if tok.isdigit() and lport == "4444":
                lport = tok
            elif IPV4_RE.match(tok):
                lhost = tok
        return self.security.generate_payload(platform, kind, lhost, lport)

    def _password_crack(self, u: str) -> str:
        tokens = u.split()
        hash_file = None
        for tok in tokens:
            if ".txt" in tok or "/" in tok:
                hash_file = tok
        if hash_file is None:
            return "Please specify a hash file. Example: crack password /tmp/hashes.txt with rockyou"
        return self.security.crack_password(hash_file, _wordlist(_word_after(tokens, "with")))

    def _network_analysis(self, u: str) -> str:
        if "open wireshark" in u or "open wire shark" in u or ("gui" in u and "wireshark" in u):
            return self.system.open_application("wireshark")

        tokens = u.split()
        iface = _word_after(tokens, "on")
        duration = DEFAULT_CAPTURE_SECONDS
        seconds = _word_after(tokens, "for")
        if seconds and seconds.isdigit():
            duration = int(seconds)
        target_ip = next((t for t in reversed(tokens) if IPV4_RE.match(t)), None)

        if "network report" in u or "network status" in u:
            print(self.security.network_report(iface))
            return "📊 Network report generated. Check console for details."
        if any(p in u for p in ("bug bounty", "bugbounty", "pentest network", "network pentest")):
            print(self.security.bug_bounty_scan(iface, duration))
            return "🎯 Bug bounty scan complete! Check console for detailed report."
        for phrases, kind, reply in TRAFFIC_COMMANDS:
            if any(p in u for p in phrases):
                print(self.security.analyze_traffic(kind, iface, duration, target_ip))
                return reply
        if any(p in u for p in ("extract files", "http objects", "extract objects", "download files")):
            print(self.security.extract_http_objects(iface, duration))
            return "📦 HTTP object extraction complete. Check console for saved files."

        if any(p in u for p in ("unauthorized", "security", "suspicious", "intrusion")):
            print("\n🔒 Scanning for unauthorized access and suspicious activity...")
            report = self.security.detect_unauthorized_access(iface, duration)
            print(report.to_formatted_string())
            if report.has_error:
                return f"❌ {report.error}"
            if not report.suspicious_findings:
                return ("✅ Security scan complete. No unauthorized access or suspicious activity detected. "
                        f"Analyzed {report.total_packets} packets.")
            return (f"⚠️ Security scan complete. Found {len(report.suspicious_findings)} potential issue(s). "
                    "Check console for detailed report.")

        print("\n📡 Starting network scan and analysis...")
        report = self.security.capture_and_analyze(iface, duration)
        print(report.to_formatted_string())
        if report.has_error:
            return f"❌ {report.error}"
        summary = (f"📡 Network scan complete! Captured {report.total_packets} packets. "
                   f"Found {len(report.active_ips)} active IPs. ")
        if report.suspicious_findings:
            summary += f"⚠️ {len(report.suspicious_findings)} finding(s) detected. "
        else:
            summary += "✅ No suspicious activity. "
        return summary + "Check console for full report."

    def _directory_enum(self, u: str) -> str:
        url = strip_phrases(u, ["enumerate directories on", "directory scan"])
        if not url:
            return "Please specify a URL. Example: enumerate directories on https://example.com"
        return self.security.dir_buster(ensure_scheme(url), None)

    def _sql_injection(self, u: str) -> str:
        url = strip_phrases(u, ["test sql injection on", "sqlmap"])
        if not url:
            return "Please specify a URL. Example: test sql injection on https://example.com/login?id=1"
        return self.security.sqlmap(ensure_scheme(url))

    def _brute_force(self, u: str) -> str:
        tokens = u.split()
        service = _word_after(tokens, "force") or "ssh"
        target = _word_after(tokens, "on") or "127.0.0.1"
        return self.security.hydra(target, service, _wordlist(_word_after(tokens, "with")))

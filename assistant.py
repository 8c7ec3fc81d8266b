#!/usr/bin/env python3
# I.R.I.S assistant, text front end:
# - Reads commands (CLI args > piped stdin > interactive "You: " loop)
# - Strips a leading wake word ("jarvis", "hey jarvis")
# - Routes through runtime.command_router (complex requests go to the planner)
# - Slash commands manage the AI mode, network cache and conversation history
# - "exit" from the router ends the session

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from cloud_agent.ai_selector import AUTO, PROVIDERS, AIBackendSelector
from cloud_agent.weather import WeatherService
from config import AssistantConfig, ConfigManager, load_api_key
from local_agent import context_log, security_tools
from local_agent.analyzers import FileAnalyzer, LinkChecker
from local_agent.automation import AppAutomation
from local_agent.system_commands import SystemCommands
from local_agent.system_state import get_state
from local_agent.web_commands import WebCommands
from runtime.command_router import EXIT, CommandRouter
from runtime.plan_runner import ComplexCommandPlanner
from utils.network_monitor import NetworkStatusMonitor
from utils.runner import set_log_file

logger = logging.getLogger(__name__)

BANNER = r"""
██╗   ██████╗    ██╗   ███████╗
██║   ██╔══██╗   ██║   ██╔════╝
██║   ██████╔╝   ██║   ███████╗
██║   ██╔══██╗   ██║   ╚════██║
██║██╗██║  ██║██╗██║██╗███████║
╚═╝╚═╝╚═╝  ╚═╝╚═╝╚═╝╚═╝╚══════╝

I.R.I.S voice/text assistant (text mode)
"""

RULE = "=" * 60
GOODBYE = "Goodbye! Shutting down I.R.I.S."


def strip_wake_word(text: str, wake_words: List[str]) -> str:
    """Drop a leading wake word, longest first, plus any separator after it."""
    stripped = text.strip()
    lowered = stripped.lower()
    for word in sorted(wake_words, key=len, reverse=True):
        w = word.lower()
        if lowered == w:
            return ""
        if lowered.startswith(w) and not lowered[len(w)].isalnum():
            return stripped[len(w):].lstrip(" ,.:;!-")
    return stripped


class Assistant:
    def __init__(
        self,
        config: AssistantConfig,
        *,
        router: CommandRouter,
        selector: AIBackendSelector,
        monitor: NetworkStatusMonitor,
        planner: ComplexCommandPlanner,
    ):
        self.config = config
        self.router = router
        self.selector = selector
        self.monitor = monitor
        self.planner = planner

    def process_command(self, text: str) -> str:
        """One utterance in, one reply (or the ``"exit"`` sentinel) out."""
        command = strip_wake_word(text, self.config.system.wake_words)
        return self.router.route(command)

    def cancel_plan(self) -> None:
        self.planner.cancel.set()


def build_assistant(config: AssistantConfig, *, cancel: Optional[threading.Event] = None) -> Assistant:
    monitor = NetworkStatusMonitor(config.network)
    selector = AIBackendSelector(config, monitor)
    system = SystemCommands(config.system)
    automation = AppAutomation(config.system.screenshot_dir)
    router = CommandRouter(
        ai=selector,
        system=system,
        web=WebCommands(config.system.browser),
        automation=automation,
        weather=WeatherService(config.weather, load_api_key("openweather", config)),
        file_analyzer=FileAnalyzer(ai=selector),
        link_checker=LinkChecker(),
        security=security_tools,
    )
    planner = ComplexCommandPlanner(config.planner, selector, router, system, automation, cancel=cancel)
    router.planner = planner
    return Assistant(config, router=router, selector=selector, monitor=monitor, planner=planner)


# ---------- slash commands ----------
def print_help() -> None:
    print("Commands:")
    print("    /help               Show this help")
    print("    /mode [MODE]        Show or set AI mode (auto, grok, gemini, ollama)")
    print("    /status             AI mode, network status and system state")
    print("    /refresh            Re-check network connectivity")
    print("    /info KIND          battery, disk, memory or cpu")
    print("    /history            Show conversation history")
    print("    /clear              Clear conversation history")
    print("    /quit               Exit")
    print("Anything else is a command, e.g. 'what time is it', 'open firefox', 'weather in paris'.")


def _mode_label(selector: AIBackendSelector) -> str:
    if selector.is_manual_mode():
        return f"MANUAL - {selector.current_mode().upper()}"
    return f"AUTO ({selector.current_mode().upper()})"


def handle_slash(assistant: Assistant, line: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    parts = line.split()
    cmd, args = parts[0].lower(), parts[1:]
    selector = assistant.selector

    if cmd in {"/quit", "/exit"}:
        return False
    if cmd == "/help":
        print_help()
    elif cmd == "/mode":
        if args:
            mode = args[0].lower()
            try:
                selector.set_manual_mode(mode != AUTO, mode)
            except ValueError as e:
                print(f"❌ {e}")
                return True
        print(f"🤖 AI mode: {_mode_label(selector)}")
    elif cmd == "/status":
        state = get_state()
        context_log.update_state(state)
        print(f"🤖 AI mode: {_mode_label(selector)}")
        print(f"🌐 Network: {selector.network_status()} (recommended: {assistant.monitor.recommended_mode()})")
        ollama = "ready" if selector.ollama.is_available() else "not available"
        print(f"🦙 Ollama: {ollama}")
        print(f"💻 CPU {state['cpu_percent']}%  RAM {state['memory_percent']}%  Disk {state['disk_percent']}%"
              + (f"  Battery {state['battery_percent']:.0f}%" if state["battery_percent"] is not None else ""))
    elif cmd == "/refresh":
        selector.refresh_network_status()
        print(f"🌐 Network: {selector.network_status()}")
    elif cmd == "/history":
        history = selector.history
        if not history:
            print("No conversation history.")
        for i, entry in enumerate(history, 1):
            print(f"  {i:2d}. {entry}")
    elif cmd == "/info":
        if not args:
            print("Usage: /info battery|disk|memory|cpu")
        else:
            print(f"💻 {assistant.router.system.get_system_info(args[0])}")
    elif cmd == "/clear":
        selector.clear_history()
        print("History cleared.")
    else:
        print("Unknown command. Type /help.")
    return True


def respond(assistant: Assistant, command: str) -> bool:
    """Process one command and print the reply. Returns False on exit."""
    print(f"Processing: {command}")
    response = assistant.process_command(command)
    if response == EXIT:
        print(GOODBYE)
        print("\nShutting down...")
        print("I.R.I.S has been shut down.")
        return False
    print(f"I.R.I.S: {response}\n")
    return True


def run_text_mode(assistant: Assistant) -> None:
    print("\n" + RULE)
    print("TEXT INPUT MODE")
    print(RULE)
    print("Type your commands (or 'exit' to quit). Type /help for commands.\n")
    while True:
        try:
            line = input("You: ").strip()
        except EOFError:
            print()
            break
        if not line:
            continue
        if line.startswith("/"):
            if not handle_slash(assistant, line):
                break
            continue
        if not respond(assistant, line):
            break


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="iris", description="I.R.I.S text assistant")
    parser.add_argument("command", nargs="*", help="run a single command and exit")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--mode", choices=[AUTO, *PROVIDERS], default=None, help="initial AI mode")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    config = ConfigManager(args.config).config

    level = logging.DEBUG if args.verbose else getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')
    set_log_file(config.log_dir / "command_log.jsonl")
    context_log.set_log_file(config.log_dir / "context_log.json")

    assistant = build_assistant(config)
    if args.mode:
        assistant.selector.set_manual_mode(args.mode != AUTO, args.mode)

    # Arguments or piped stdin: one-shot
    if args.command:
        respond(assistant, " ".join(args.command))
        return
    if not sys.stdin.isatty():
        for line in sys.stdin.read().splitlines():
            if line.strip() and not respond(assistant, line.strip()):
                break
        return

    print(BANNER)
    print(RULE)
    print("I.R.I.S Assistant - Initializing...")
    print(RULE)
    print(f"🤖 AI mode: {_mode_label(assistant.selector)}")
    run_text_mode(assistant)


def main(argv: Optional[List[str]] = None) -> None:
    try:
        run(argv)
    except KeyboardInterrupt:
        print("\nAborted.")
        raise SystemExit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Interactive helper that stores provider API keys outside config.json."""
from __future__ import annotations

import getpass
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from config import API_KEY_ENV, ConfigManager, load_api_key, store_api_key  # noqa: E402

PROVIDER_NOTES = {
    "grok": "xAI Grok (online chat, round-robin partner of Gemini)",
    "gemini": "Google Gemini (online chat, fallback for Grok)",
    "openweather": "OpenWeatherMap (weather reports)",
}


def configure(provider: str, config) -> None:
    print(f"\n{provider.upper()}: {PROVIDER_NOTES[provider]}")
    if load_api_key(provider, config):
        again = input("A key is already configured. Replace it? [y/N]: ").strip().lower()
        if again not in ("y", "yes"):
            print("Keeping existing key.")
            return
    print(f"Leave empty to skip. You can also export {API_KEY_ENV[provider]} or put it in .env")
    key = getpass.getpass(f"Enter {provider} API key: ").strip()
    if not key:
        print("No key entered.")
        return
    try:
        where = store_api_key(provider, key, config)
    except RuntimeError as e:
        print(f"❌ {e}")
        return
    if where == "keyring":
        print("✓ API key saved to system keyring.")
    else:
        print(f"⚠️  API key saved to: {where} (plaintext, mode 600)")


def main() -> None:
    print("=== I.R.I.S API key configuration ===")
    config = ConfigManager().config
    wanted = sys.argv[1:] or list(PROVIDER_NOTES)
    for provider in wanted:
        if provider not in PROVIDER_NOTES:
            print(f"Unknown provider: {provider} (choose from {', '.join(PROVIDER_NOTES)})")
            continue
        configure(provider, config)
    print("\n=== Done ===")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nSetup cancelled.")

#!/usr/bin/env python3
from __future__ import annotations

import json
import os
import shlex
import shutil
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

# Default log location; the assistant points this at config.log_dir on startup
BASE_DIR = Path(__file__).resolve().parents[1]
LOG_FILE = BASE_DIR / "runtime" / "command_log.jsonl"

MAX_CAPTURE = 8192  # chars per stream to keep in log


def set_log_file(path: str | Path) -> Path:
    global LOG_FILE
    LOG_FILE = Path(path)
    return LOG_FILE


def have(cmd: str) -> bool:
    return shutil.which(cmd) is not None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _ensure_list(cmd: Sequence[str] | str) -> list[str]:
    if isinstance(cmd, str):
        return ["/bin/sh", "-c", cmd]
    return list(cmd)


def _prompt_confirm(cmd_str: str) -> bool:
    if not sys.stdin.isatty():
        # Non-interactive: default deny
        return False
    try:
        ans = input(f"Allow command?\n  {cmd_str}\n[y/N]: ").strip().lower()
    except EOFError:
        ans = ""
    return ans in {"y", "yes"}


def _truncate(s: str | bytes | None, limit: int = MAX_CAPTURE) -> str:
    if s is None:
        return ""
    if isinstance(s, bytes):
        s = s.decode("utf-8", errors="replace")
    s = str(s)
    if len(s) <= limit:
        return s
    return s[:limit] + f"\n… [truncated {len(s) - limit} chars]"


def _write_log(entry: dict[str, Any]) -> None:
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except Exception:
        # Best-effort logging; never raise
        pass


def run_cmd(
    cmd: Sequence[str] | str,
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    mode: str = "read",  # "read" auto-runs, "write" prompts
    confirm: bool | None = None,
    timeout: float | None = None,
    input_text: str | None = None,
) -> dict[str, Any]:
    """
    Execute a command, capture stdout/stderr, log JSONL, and return a result dict:
    { 'rc': int, 'stdout': str, 'stderr': str, 'cmd': [...], 'cwd': str }

    rc 124 = timed out, 126 = denied at the confirmation prompt, 127 = not found.
    """
    argv = _ensure_list(cmd)
    cmd_str = " ".join(shlex.quote(x) for x in argv)
    workdir = str(cwd or os.getcwd())

    need_confirm = (mode == "write") if confirm is None else bool(confirm)
    if need_confirm and not _prompt_confirm(cmd_str):
        _write_log({
            "ts": _now_iso(),
            "cmd": argv,
            "cwd": workdir,
            "env_keys": sorted((env or {}).keys()),
            "mode": mode,
            "rc": None,
            "denied": True,
        })
        return {"rc": 126, "stdout": "", "stderr": "Denied by user", "cmd": argv, "cwd": workdir}

    try:
        p = subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **(env or {})},
            stdin=subprocess.PIPE if input_text is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        try:
            out, err = p.communicate(input=input_text, timeout=timeout)
        except subprocess.TimeoutExpired:
            p.kill()
            out, err = p.communicate()
            rc = 124
        else:
            rc = p.returncode
    except FileNotFoundError as e:
        out, err, rc = "", str(e), 127
    except Exception as e:
        out, err, rc = "", str(e), 1

    _write_log({
        "ts": _now_iso(),
        "cmd": argv,
        "cwd": workdir,
        "env_keys": sorted((env or {}).keys()),
        "mode": mode,
        "rc": rc,
        "stdout": _truncate(out),
        "stderr": _truncate(err),
    })

    return {"rc": rc, "stdout": out or "", "stderr": err or "", "cmd": argv, "cwd": workdir}


def spawn_cmd(
    cmd: Sequence[str] | str,
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """Spawn a detached process (no capture); still logs the intent."""
    argv = _ensure_list(cmd)
    try:
        subprocess.Popen(
            argv,
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **(env or {})},
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        rc = 0
    except FileNotFoundError:
        rc = 127
    except Exception:
        rc = 1
    _write_log({
        "ts": _now_iso(),
        "cmd": argv,
        "cwd": str(cwd or os.getcwd()),
        "env_keys": sorted((env or {}).keys()),
        "mode": "spawn",
        "rc": rc,
    })
    return rc


def failure_reason(result: Mapping[str, Any]) -> str:
    """Short human-readable reason for a failed run_cmd result."""
    rc = result.get("rc")
    if rc == 127:
        return f"{result.get('cmd', ['?'])[0]} is not installed"
    if rc == 126:
        return "denied by user"
    if rc == 124:
        return "timed out"
    err = (result.get("stderr") or "").strip().splitlines()
    return err[-1] if err else f"exit code {rc}"

"""
Local file and link safety checks.

Both analyzers produce a report whose threat level only ever rises while the
checks run; the router prints the formatted report and speaks a summary.
"""
from __future__ import annotations

import hashlib
import ipaddress
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import urljoin, urlparse

import requests

from utils.runner import have, run_cmd

logger = logging.getLogger(__name__)


class ThreatLevel(IntEnum):
    SAFE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


RULE = "═" * 55


@dataclass
class _Report:
    threat_level: ThreatLevel = ThreatLevel.SAFE
    threats: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    info: List[str] = field(default_factory=list)

    def raise_level(self, level: ThreatLevel) -> None:
        if level > self.threat_level:
            self.threat_level = level

    def summary(self, kind: str) -> str:
        text = f"{kind} complete. Threat level: {self.threat_level.name}"
        if self.threats:
            text += f". Found {len(self.threats)} threat(s)."
        return text + " Check console for full report."

    def _sections(self) -> List[str]:
        lines: List[str] = [f"\nTHREAT LEVEL: {self.threat_level.name}\n"]
        for title, items, marker in (("THREATS", self.threats, "⚠️ "),
                                     ("WARNINGS", self.warnings, "⚡"),
                                     ("INFO", self.info, "ℹ️ ")):
            if items:
                lines.append(f"{title}:")
                lines.extend(f"  {marker} {item}" for item in items)
                lines.append("")
        return lines


# ---- Files -------------------------------------------------------------------
SUSPICIOUS_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"eval\s*\(",
        r"exec\s*\(",
        r"system\s*\(",
        r"shell_exec",
        r"base64_decode",
        r"rm\s+-rf\s+/",
        r"chmod\s+777",
        r"wget.*\|.*sh",
        r"curl.*\|.*bash",
        r"nc\s+-e",
        r"/bin/sh",
        r"password\s*=",
        r"api[_-]?key\s*=",
    )
]

EXECUTABLE_SIGNATURES = {
    b"MZ": "PE Executable (Windows)",
    b"\x7fELF": "ELF Executable (Linux)",
}

TEXT_EXTENSIONS = {".txt", ".log", ".sh", ".py", ".java", ".js", ".php", ".html", ".xml", ".json"}

AI_SUMMARY_MAX_BYTES = 100_000
AI_SUMMARY_MAX_CHARS = 5000


@dataclass
class FileAnalysisReport(_Report):
    path: str = ""
    file_type: str = "Unknown"
    size: int = 0
    modified: Optional[datetime] = None
    executable: bool = False
    md5: str = ""
    sha1: str = ""
    sha256: str = ""
    ai_summary: str = ""
    errors: List[str] = field(default_factory=list)

    def to_formatted_string(self) -> str:
        lines = [RULE, "FILE ANALYSIS REPORT", RULE, "",
                 f"File: {self.path}"]
        if self.errors:
            lines.extend(f"ERROR: {e}" for e in self.errors)
            lines.append(RULE)
            return "\n".join(lines)
        lines += [
            f"Type: {self.file_type}",
            f"Size: {self.size} bytes",
            f"Modified: {self.modified:%Y-%m-%d %H:%M:%S}" if self.modified else "Modified: N/A",
            f"Executable: {'yes' if self.executable else 'no'}",
            "",
            f"MD5:    {self.md5}",
            f"SHA1:   {self.sha1}",
            f"SHA256: {self.sha256}",
        ]
        lines += self._sections()
        if self.ai_summary:
            lines += ["AI ASSESSMENT:", self.ai_summary, ""]
        lines.append(RULE)
        return "\n".join(lines)


def is_text_file(path: Path) -> bool:
    mime, _ = mimetypes.guess_type(str(path))
    if mime:
        return mime.startswith("text/") or mime in ("application/json", "application/xml",
                                                    "application/javascript")
    return path.suffix.lower() in TEXT_EXTENSIONS


class FileAnalyzer:
    def __init__(self, ai: Any = None):
        # ``ai`` needs only process_query(str) -> str
        self.ai = ai

    def analyze_file(self, file_path: str) -> FileAnalysisReport:
        path = Path(os.path.expanduser(file_path))
        report = FileAnalysisReport(path=str(path))
        if not path.exists():
            report.errors.append("File does not exist")
            return report
        if not os.access(path, os.R_OK):
            report.errors.append("File is not readable")
            return report
        try:
            st = path.stat()
            report.size = st.st_size
            report.modified = datetime.fromtimestamp(st.st_mtime)
            report.executable = path.is_file() and os.access(path, os.X_OK)
            report.file_type = self._detect_type(path)
            self._hashes(path, report)
            if have("clamscan"):
                self._clamscan(path, report)
            else:
                report.warnings.append("ClamAV not available - using pattern-based scanning")
                self._signature_scan(path, report)
            if is_text_file(path):
                self._scan_text(path, report)
            if report.threat_level != ThreatLevel.CRITICAL:
                self._ai_summary(path, report)
        except Exception as e:
            logger.warning(f"File analysis failed for {path}: {e}")
            report.errors.append(f"Analysis failed: {e}")
        return report

    def _detect_type(self, path: Path) -> str:
        if have("file"):
            res = run_cmd(["file", "-b", str(path)], timeout=10)
            first = res["stdout"].strip().splitlines()
            if res["rc"] == 0 and first:
                return first[0]
        if path.suffix:
            return f"{path.suffix} file"
        return "Unknown"

    def _hashes(self, path: Path, report: FileAnalysisReport) -> None:
        md5, sha1, sha256 = hashlib.md5(), hashlib.sha1(), hashlib.sha256()
        try:
            with path.open("rb") as f:
                for chunk in iter(lambda: f.read(65536), b""):
                    md5.update(chunk)
                    sha1.update(chunk)
                    sha256.update(chunk)
        except OSError as e:
            report.warnings.append(f"Could not calculate hashes: {e}")
            return
        report.md5, report.sha1, report.sha256 = md5.hexdigest(), sha1.hexdigest(), sha256.hexdigest()

    def _clamscan(self, path: Path, report: FileAnalysisReport) -> None:
        res = run_cmd(["clamscan", "--no-summary", str(path)], timeout=300)
        for line in res["stdout"].splitlines():
            if "FOUND" in line:
                report.raise_level(ThreatLevel.CRITICAL)
                report.threats.append(f"ClamAV detected malware: {line}")
        if res["rc"] == 0:
            report.info.append("ClamAV scan: Clean")
        elif res["rc"] == 1:
            report.raise_level(ThreatLevel.CRITICAL)
        else:
            report.warnings.append(f"ClamAV scan failed: {res['stderr'].strip()}")

    def _signature_scan(self, path: Path, report: FileAnalysisReport) -> None:
        if is_text_file(path):
            return
        try:
            with path.open("rb") as f:
                header = f.read(4)
        except OSError:
            return
        for magic, label in EXECUTABLE_SIGNATURES.items():
            if header.startswith(magic):
                report.raise_level(ThreatLevel.HIGH)
                report.threats.append(f"Executable file detected: {label}")

    def _scan_text(self, path: Path, report: FileAnalysisReport) -> None:
        try:
            content = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            report.warnings.append(f"Could not analyze text content: {e}")
            return
        for pattern in SUSPICIOUS_PATTERNS:
            if pattern.search(content):
                report.raise_level(ThreatLevel.MEDIUM)
                report.threats.append(f"Suspicious pattern found: {pattern.pattern}")
        if "password" in content or "api_key" in content or "secret" in content:
            report.warnings.append("Possible hardcoded credentials detected")

    def _ai_summary(self, path: Path, report: FileAnalysisReport) -> None:
        if self.ai is None or not is_text_file(path) or report.size > AI_SUMMARY_MAX_BYTES:
            return
        content = path.read_text(encoding="utf-8", errors="ignore")
        if len(content) > AI_SUMMARY_MAX_CHARS:
            content = content[:AI_SUMMARY_MAX_CHARS] + "\n... (truncated)"
        prompt = ("Analyze this file and provide a brief security assessment (2-3 sentences):\n\n"
                  f"File: {path.name}\nType: {report.file_type}\nContent:\n{content}")
        try:
            report.ai_summary = self.ai.process_query(prompt)
        except Exception as e:
            report.warnings.append(f"AI summary generation failed: {e}")


# ---- Links -------------------------------------------------------------------
SUSPICIOUS_TLDS = (".tk", ".ml", ".ga", ".cf", ".gq", ".xyz", ".top", ".work", ".click")

PHISHING_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"paypal.*verify",
        r"amazon.*account.*suspend",
        r"bank.*urgent",
        r"password.*expire",
        r"click.*here.*now",
        r"verify.*identity",
        r"suspended.*account",
    )
]

MAX_REDIRECTS = 10
EXCESSIVE_REDIRECTS = 3


@dataclass
class LinkAnalysisReport(_Report):
    url: str = ""
    domain: str = ""
    protocol: str = ""
    ssl_valid: Optional[bool] = None
    redirect_chain: List[str] = field(default_factory=list)

    @property
    def redirect_count(self) -> int:
        return max(0, len(self.redirect_chain) - 1)

    def to_formatted_string(self) -> str:
        lines = [RULE, "LINK SAFETY REPORT", RULE, "",
                 f"URL: {self.url}",
                 f"Domain: {self.domain or 'N/A'}",
                 f"Protocol: {(self.protocol or 'N/A').upper()}"]
        if self.protocol == "https" and self.ssl_valid is not None:
            lines.append(f"SSL Valid: {'✓ Yes' if self.ssl_valid else '✗ No'}")
        if self.redirect_count:
            lines.append(f"Redirects: {self.redirect_count}")
        lines += self._sections()
        if self.redirect_count:
            lines.append("REDIRECT CHAIN:")
            lines.extend(f"  {i}. {u}" for i, u in enumerate(self.redirect_chain, 1))
            lines.append("")
        lines.append(RULE)
        return "\n".join(lines)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


class LinkChecker:
    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 5.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def check_link(self, url: str) -> LinkAnalysisReport:
        report = LinkAnalysisReport(url=url)
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            report.raise_level(ThreatLevel.HIGH)
            report.threats.append("Invalid URL format")
            return report
        try:
            self._analyze_url(url, parsed.hostname, parsed.scheme, report)
            if parsed.scheme == "https":
                self._check_certificate(url, report)
            else:
                report.warnings.append("Not using HTTPS - connection is not encrypted")
            self._check_redirects(url, report)
            self._detect_phishing(url, report)
        except Exception as e:
            logger.warning(f"Link analysis failed for {url}: {e}")
            report.warnings.append(f"Analysis failed: {e}")
        return report

    def _analyze_url(self, url: str, host: str, scheme: str, report: LinkAnalysisReport) -> None:
        report.domain, report.protocol = host, scheme
        if _is_ip(host):
            report.raise_level(ThreatLevel.MEDIUM)
            report.threats.append("URL uses IP address instead of domain name")
        for tld in SUSPICIOUS_TLDS:
            if host.endswith(tld):
                report.raise_level(ThreatLevel.MEDIUM)
                report.warnings.append(f"Suspicious top-level domain: {tld}")
        labels = host.split(".")
        if len(labels) > 4:
            report.raise_level(ThreatLevel.LOW)
            report.warnings.append(f"URL has many subdomains ({len(labels)})")
        if "@" in url:
            report.raise_level(ThreatLevel.HIGH)
            report.threats.append("URL contains @ symbol - possible credential phishing")

    def _check_certificate(self, url: str, report: LinkAnalysisReport) -> None:
        try:
            self.session.head(url, timeout=self.timeout, allow_redirects=False)
        except requests.exceptions.SSLError as e:
            report.raise_level(ThreatLevel.HIGH)
            report.threats.append(f"SSL certificate error: {e}")
            report.ssl_valid = False
            return
        except requests.RequestException as e:
            report.warnings.append(f"Could not verify SSL certificate: {e}")
            return
        report.ssl_valid = True
        report.info.append("SSL certificate is valid")

    def _check_redirects(self, url: str, report: LinkAnalysisReport) -> None:
        chain = [url]
        current = url
        try:
            for _ in range(MAX_REDIRECTS):
                resp = self.session.head(current, timeout=self.timeout, allow_redirects=False)
                location = resp.headers.get("Location")
                if not (300 <= resp.status_code < 400) or not location:
                    break
                current = urljoin(current, location)
                chain.append(current)
        except requests.RequestException as e:
            report.warnings.append(f"Could not check redirects: {e}")
        report.redirect_chain = chain
        hops = len(chain) - 1
        if hops > EXCESSIVE_REDIRECTS:
            report.raise_level(ThreatLevel.MEDIUM)
            report.warnings.append(f"Excessive redirects ({hops})")
        elif hops:
            report.info.append(f"URL redirects {hops} time(s)")

    def _detect_phishing(self, url: str, report: LinkAnalysisReport) -> None:
        for pattern in PHISHING_PATTERNS:
            if pattern.search(url):
                report.raise_level(ThreatLevel.HIGH)
                report.threats.append(f"Possible phishing: matches pattern '{pattern.pattern}'")

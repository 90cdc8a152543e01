#!/usr/bin/env python3

"""
healthcheck.py

Liveness ping to the monitoring service after a completed run.
The service must answer with the literal body "OK".
"""

from __future__ import annotations

import requests

from systembackup.config import Settings
from systembackup.errors import HealthCheckFailed
from systembackup.logger import get_logger

EXPECTED_BODY = "OK"


class HealthCheckNotifier:

    def __init__(self, settings: Settings, session: requests.Session | None = None):
        self.uuid = settings.hchk_uuid
        self.url = settings.healthcheck_endpoint
        self.retries = max(1, settings.hchk_retries)
        self.timeout = settings.hchk_timeout
        self.session = session or requests.Session()
        self.logger = get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return bool(self.uuid)

    def ping(self) -> bool:
        """
        Send one GET (retried only on transport errors).
        Returns False when no monitoring identifier is configured.
        """
        if not self.enabled:
            self.logger.debug("No monitoring identifier configured, health check skipped")
            return False

        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                response = self.session.get(self.url, timeout=self.timeout)
                break
            except requests.RequestException as e:
                last_error = e
                self.logger.warning(f"Health check attempt {attempt}/{self.retries} failed: {e}")
        else:
            raise HealthCheckFailed(operation=f"GET {self.url}: {last_error}")

        body = response.text.strip()
        if response.status_code != 200 or body != EXPECTED_BODY:
            raise HealthCheckFailed(operation=f"GET {self.url} -> {response.status_code} {body[:80]!r}")

        self.logger.info("Health check OK")
        return True

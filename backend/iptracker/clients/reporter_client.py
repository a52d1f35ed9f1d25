# iptracker/clients/reporter_client.py

import logging
import os
import sys
from typing import Optional

import requests

logger = logging.getLogger(__name__)

# =========================
# CONFIGURATION
# =========================

SERVER_URL = os.getenv("IPTRACKER_SERVER_URL", "http://127.0.0.1:1234")
CREDENTIAL = os.getenv("IPTRACKER_CREDENTIAL", "")
REQUEST_TIMEOUT = 10  # seconds

# =========================
# REPORTER CLIENT
# =========================


class ReporterClient:
    """Runs on the VPN host and reports its address to the tracker."""

    def __init__(self, credential: str, server_url: str = SERVER_URL,
                 session: Optional[requests.Session] = None):
        self.credential = credential
        self.server_url = server_url.rstrip("/")
        self.session = session or requests.Session()

    def report(self, address: str) -> bool:
        """POST the address; True when the tracker accepted it."""
        try:
            resp = self.session.post(
                f"{self.server_url}/app",
                data=address.encode("utf-8"),
                headers={"Credential": self.credential, "Content-Type": "text/plain"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("Report failed: %s", e)
            return False

        if resp.status_code == 200:
            logger.info("Reported %s", address)
            return True
        if resp.status_code == 406:
            logger.error("Tracker only accepts IPv4 addresses, got %s", address)
        else:
            logger.error("Report rejected with status %d", resp.status_code)
        return False


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1 or not CREDENTIAL:
        print("usage: IPTRACKER_CREDENTIAL=<token> python -m iptracker.clients.reporter_client <address>")
        return 2

    logging.basicConfig(level=logging.INFO)
    client = ReporterClient(CREDENTIAL)
    return 0 if client.report(argv[0]) else 1


if __name__ == "__main__":
    sys.exit(main())

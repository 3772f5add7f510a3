"""HTTP transport bound to the backend session."""
import logging
from typing import Any, Dict

import requests

from scraper.session import SessionState

logger = logging.getLogger(__name__)


class Transport:
    """Issues requests carrying the session cookie and token."""

    def __init__(self, state: SessionState, timeout: int = 30):
        """
        Initialize the transport.

        Args:
            state: Shared session state, updated in place
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.state = state
        self.timeout = timeout

    def get(self, url: str) -> requests.Response:
        """Send a GET request within the session."""
        response = requests.get(
            url,
            headers=self._headers(),
            timeout=self.timeout
        )
        self._store_cookie(response)
        return response

    def post(self, url: str, fields: Dict[str, Any]) -> requests.Response:
        """
        Send a form-encoded POST request within the session.

        Args:
            url: Target endpoint
            fields: Form fields, encoded as application/x-www-form-urlencoded

        Returns:
            Raw response; the status code is not interpreted here
        """
        response = requests.post(
            url,
            data=fields,
            headers=self._headers(),
            timeout=self.timeout
        )
        self._store_cookie(response)
        return response

    def _headers(self) -> Dict[str, str]:
        return {
            'Cookie': self.state.cookie,
            'X-CSRF-Token': self.state.token or ''
        }

    def _store_cookie(self, response: requests.Response) -> None:
        # Single-cookie session: replace, never merge
        received = response.headers.get('Set-Cookie')
        if received:
            logger.debug(f"Received cookies: {received}")
            self.state.cookie = received

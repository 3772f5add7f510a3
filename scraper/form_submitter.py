"""Form submission with the stale-token retry protocol."""
import logging
from typing import Any, Dict, Optional

import requests

from scraper.session import TOKEN_FIELD, extract_csrf_token, mask
from scraper.transport import Transport

logger = logging.getLogger(__name__)


class StaleTokenError(RuntimeError):
    """Backend kept rejecting the token beyond the configured attempts."""


class FormSubmitter:
    """
    Drives the transport and keeps the anti-forgery token current.

    Every response body passes through the token extractor, and the
    result overwrites the stored token, None included. The backend
    answers a stale token with HTTP 400 and a page carrying a fresh one,
    so a submission is repeated until a non-400 status comes back.
    """

    STALE_TOKEN_STATUS = 400

    def __init__(self, transport: Transport, max_attempts: Optional[int] = None):
        """
        Initialize the form submitter.

        Args:
            transport: Session-bound transport
            max_attempts: Submission attempts before giving up (default: None,
                retry for as long as the backend answers 400)
        """
        self.transport = transport
        self.max_attempts = max_attempts

    @property
    def state(self):
        return self.transport.state

    def fetch(self, url: str) -> str:
        """
        Load a page and take over its token.

        Args:
            url: Page URL

        Returns:
            Response body

        Raises:
            requests.HTTPError: If the backend answers with a server error
        """
        response = self.transport.get(url)
        self._rotate_token(response.text)
        self._check_server_error(response)
        return response.text

    def submit(self, url: str, fields: Dict[str, Any]) -> str:
        """
        Post form fields, retrying while the token is rejected.

        The current token is placed under the backend's field name on
        every attempt, so a retry always carries the refreshed token.

        Args:
            url: Form endpoint
            fields: Form fields without the token

        Returns:
            Body of the first non-400 response

        Raises:
            StaleTokenError: If max_attempts is set and exhausted
            requests.HTTPError: If the backend answers with a server error
        """
        attempt = 0

        while True:
            attempt += 1
            payload = {TOKEN_FIELD: self.state.token or ''}
            payload.update(fields)

            response = self.transport.post(url, payload)
            self._rotate_token(response.text)

            if response.status_code != self.STALE_TOKEN_STATUS:
                self._check_server_error(response)
                return response.text

            logger.warning(
                f"Got {response.status_code} on attempt {attempt}, "
                f"token updated to {mask(self.state.token)}"
            )

            if self.max_attempts is not None and attempt >= self.max_attempts:
                raise StaleTokenError(
                    f"Form rejected {attempt} times in a row by {url}"
                )

    def _rotate_token(self, html: str) -> None:
        self.state.token = extract_csrf_token(html)
        logger.debug(f"CSRF token is now {mask(self.state.token)}")

    def _check_server_error(self, response: requests.Response) -> None:
        if response.status_code >= 500:
            logger.error(f"Backend error {response.status_code} for {response.url}")
            response.raise_for_status()

"""Session state and anti-forgery token extraction."""
from dataclasses import dataclass
from typing import Optional, Union

from bs4 import BeautifulSoup

# Name of the form field the backend expects the token in
TOKEN_FIELD = '_csrf-frontend'


@dataclass
class SessionState:
    """Anti-forgery token and session cookie of the single backend session."""
    token: Optional[str] = None
    cookie: str = ''

    def reset(self) -> None:
        self.token = None
        self.cookie = ''


def extract_csrf_token(document: Union[str, BeautifulSoup]) -> Optional[str]:
    """
    Read the anti-forgery token from a page's csrf-token meta element.

    Args:
        document: HTML text or an already parsed document

    Returns:
        Token string, or None if the page carries no token
    """
    if isinstance(document, str):
        document = BeautifulSoup(document, 'html.parser')

    meta = document.select_one('meta[name="csrf-token"]')
    return meta.get('content') if meta else None


def mask(token: Optional[str]) -> str:
    """Shorten a token for log output."""
    if not token:
        return '<none>'
    return f"{token[:6]}..."

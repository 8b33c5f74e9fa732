"""
Auth providers. Token acquisition (the OAuth login flow) happens elsewhere;
these only report whether a usable token is available.
"""

import json
import logging
import time
from pathlib import Path

from mindflow.domain.ports import AuthProvider

logger = logging.getLogger(__name__)


class StaticTokenAuthProvider(AuthProvider):
    """Token supplied directly, e.g. from MINDFLOW_ACCESS_TOKEN."""

    def __init__(self, token: str | None):
        self._token = token or None

    def is_authenticated(self) -> bool:
        return self._token is not None

    def access_token(self) -> str | None:
        return self._token


class SessionFileAuthProvider(AuthProvider):
    """
    Reads the session file written by the login flow.

    Expected shape: ``{"access_token": "...", "expires_at": 1735689600}`` with
    ``expires_at`` (epoch seconds) optional. The file is re-read on every call
    so a fresh login is picked up without restarting.
    """

    def __init__(self, path: Path):
        self.path = path

    def _load(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read session file {self.path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def access_token(self) -> str | None:
        data = self._load()
        if not data or not data.get("access_token"):
            return None
        expires_at = data.get("expires_at")
        if expires_at is not None:
            try:
                expired = float(expires_at) <= time.time()
            except (TypeError, ValueError):
                logger.warning(f"Ignoring session with malformed expires_at: {expires_at!r}")
                return None
            if expired:
                logger.debug("Session token expired")
                return None
        return str(data["access_token"])

    def is_authenticated(self) -> bool:
        return self.access_token() is not None

"""
Credential vault for per-user code-host tokens.

Tokens are held in memory by the instance that the application wires into
the orchestrator; there is no module-level state. They do not persist
across server restarts.
"""

import threading
from typing import Dict

from archlog.errors import AccessRevokedError


class CredentialVault:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: Dict[str, str] = {}

    def set_token(self, user_id: str, token: str) -> None:
        with self._lock:
            self._tokens[user_id] = token

    def get_token(self, user_id: str) -> str:
        """Return the user's token, or raise AccessRevokedError if none is stored."""
        with self._lock:
            token = self._tokens.get(user_id)
        if not token:
            raise AccessRevokedError(f"No code-host token stored for user {user_id}")
        return token

    def remove_token(self, user_id: str) -> None:
        with self._lock:
            self._tokens.pop(user_id, None)

    def has_token(self, user_id: str) -> bool:
        with self._lock:
            return bool(self._tokens.get(user_id))

"""
Authentication module for Room Sync

The chat server authenticates with a bearer token: as an ``Authorization``
header for REST calls and as a ``token`` parameter on the websocket
endpoint. Obtaining the token (login forms) is outside this package.
"""

from typing import Dict, Optional


class TokenAuth:
    """Bearer token authentication"""

    def __init__(self, token: Optional[str]):
        self.token = token
        self.is_authenticated = bool(token)

    def get_token(self) -> Optional[str]:
        """Get the bearer token"""
        return self.token

    def headers(self) -> Dict[str, str]:
        """Headers for an authenticated REST request"""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

__all__ = ['TokenAuth']

"""Bearer-token authentication for user-facing endpoints."""

from __future__ import annotations

from typing import Mapping, Optional

from kartqueue.enterprise.core import Unauthenticated


class TokenVerifier:
    """Resolves opaque bearer tokens to user ids from a static table."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise Unauthenticated("Missing bearer token")
        user_id = self._tokens.get(token)
        if user_id is None:
            raise Unauthenticated("Invalid bearer token")
        return user_id

    def register(self, token: str, user_id: str) -> None:
        self._tokens[token] = user_id

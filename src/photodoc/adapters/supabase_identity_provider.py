"""Supabase Auth-backed identity resolution."""

import logging
from dataclasses import dataclass
from typing import Protocol

from supabase import Client

from photodoc.domain.sessions import Identity

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Resolves access tokens into authenticated identities."""

    def resolve(self, access_token: str | None) -> Identity | None:
        """Return the identity for a token, or None when it is not valid."""


@dataclass
class SupabaseIdentityProvider(IdentityProvider):
    """Validate access tokens against Supabase Auth."""

    client: Client

    def resolve(self, access_token: str | None) -> Identity | None:
        """Look up the user owning the token."""
        if not access_token:
            return None
        try:
            response = self.client.auth.get_user(access_token)
        except Exception:
            logger.warning("Access token rejected by Supabase Auth", exc_info=True)
            return None
        user = getattr(response, "user", None) if response else None
        if user is None or not getattr(user, "id", None):
            return None
        return Identity(user_id=str(user.id), access_token=access_token)

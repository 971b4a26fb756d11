"""Supabase-backed access token provider."""

import logging
from dataclasses import dataclass

from supabase import Client

from parkiq.adapters.parking_api_client import TokenProvider

_logger = logging.getLogger(__name__)


@dataclass
class SupabaseTokenProvider(TokenProvider):
    """Reads and refreshes the signed-in user's Supabase session."""

    client: Client

    def access_token(self) -> str | None:
        """Return the current session's access token, if signed in."""
        session = self.client.auth.get_session()
        if session is None:
            return None
        return session.access_token

    def refresh(self) -> str | None:
        """Refresh the session; None when there is nothing to refresh."""
        try:
            response = self.client.auth.refresh_session()
        except Exception:
            _logger.exception("Supabase session refresh failed")
            return None
        if response.session is None:
            return None
        return response.session.access_token

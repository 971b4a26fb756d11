"""Tests for the Supabase token provider."""

from dataclasses import dataclass

from parkiq.adapters.supabase_auth import SupabaseTokenProvider


@dataclass
class FakeSession:
    access_token: str


@dataclass
class FakeAuthResponse:
    session: FakeSession | None


class FakeAuth:
    def __init__(
        self,
        session: FakeSession | None = None,
        refreshed: FakeSession | None = None,
        error: Exception | None = None,
    ) -> None:
        self.session = session
        self.refreshed = refreshed
        self.error = error
        self.refresh_calls = 0

    def get_session(self) -> FakeSession | None:
        return self.session

    def refresh_session(self) -> FakeAuthResponse:
        self.refresh_calls += 1
        if self.error is not None:
            raise self.error
        self.session = self.refreshed
        return FakeAuthResponse(session=self.refreshed)


class FakeClient:
    def __init__(self, auth: FakeAuth) -> None:
        self.auth = auth


def test_access_token_reads_current_session() -> None:
    provider = SupabaseTokenProvider(FakeClient(FakeAuth(FakeSession("jwt-1"))))

    assert provider.access_token() == "jwt-1"


def test_access_token_is_none_when_signed_out() -> None:
    provider = SupabaseTokenProvider(FakeClient(FakeAuth()))

    assert provider.access_token() is None


def test_refresh_returns_new_token() -> None:
    auth = FakeAuth(FakeSession("jwt-1"), refreshed=FakeSession("jwt-2"))
    provider = SupabaseTokenProvider(FakeClient(auth))

    assert provider.refresh() == "jwt-2"
    assert provider.access_token() == "jwt-2"
    assert auth.refresh_calls == 1


def test_refresh_without_session_returns_none() -> None:
    provider = SupabaseTokenProvider(FakeClient(FakeAuth(FakeSession("jwt-1"))))

    assert provider.refresh() is None


def test_refresh_failure_returns_none() -> None:
    auth = FakeAuth(FakeSession("jwt-1"), error=RuntimeError("refresh token revoked"))
    provider = SupabaseTokenProvider(FakeClient(auth))

    assert provider.refresh() is None
    assert auth.refresh_calls == 1

from __future__ import annotations

import pytest

from label_migrator import auth
from label_migrator.auth import GRAPH_DEFAULT_SCOPE, AuthManager
from label_migrator.errors import ConfigurationError


class _FakeApp:
    def __init__(self, client_id, client_credential=None, authority=None, token_cache=None):
        self.client_id = client_id
        self.client_credential = client_credential
        self.authority = authority
        self.accounts = []
        self.silent = None
        self.client_result = {"access_token": "app-token"}
        self.interactive_result = {"access_token": "user-token"}
        self.calls = []

    def acquire_token_silent(self, scopes, account=None):
        self.calls.append(("silent", tuple(scopes)))
        return self.silent

    def acquire_token_for_client(self, scopes):
        self.calls.append(("client", tuple(scopes)))
        return self.client_result

    def get_accounts(self):
        return self.accounts

    def acquire_token_interactive(self, scopes):
        self.calls.append(("interactive", tuple(scopes)))
        return self.interactive_result


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    for name in ("CLIENT_ID", "CLIENT_SECRET", "TENANT_ID", "AUTHORITY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(auth.msal, "ConfidentialClientApplication", _FakeApp)
    monkeypatch.setattr(auth.msal, "PublicClientApplication", _FakeApp)


def test_client_id_is_required(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="CLIENT_ID"):
        AuthManager({}, cache_path=str(tmp_path / "cache.bin"))


def test_secret_selects_confidential_client_with_tenant_authority(tmp_path) -> None:
    manager = AuthManager({"client_id": "app", "client_secret": "s", "tenant_id": "t1"},
                          cache_path=str(tmp_path / "cache.bin"))

    assert manager.client_mode == "confidential"
    assert manager.app.authority == "https://login.microsoftonline.com/t1"
    assert manager.get_token() == "app-token"
    assert manager.app.calls == [("silent", tuple(GRAPH_DEFAULT_SCOPE)), ("client", tuple(GRAPH_DEFAULT_SCOPE))]


def test_environment_overrides_settings(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CLIENT_ID", "env-app")
    manager = AuthManager({"client_id": "file-app"}, cache_path=str(tmp_path / "cache.bin"))

    assert manager.app.client_id == "env-app"
    assert manager.client_mode == "public"
    assert manager.app.authority == "https://login.microsoftonline.com/common"


def test_public_client_prefers_cached_account(tmp_path) -> None:
    manager = AuthManager({"client_id": "app"}, cache_path=str(tmp_path / "cache.bin"))
    manager.app.accounts = [{"username": "ann"}]
    manager.app.silent = {"access_token": "cached"}

    assert manager.get_token() == "cached"
    assert all(kind != "interactive" for kind, _ in manager.app.calls)


def test_public_client_falls_back_to_interactive(tmp_path) -> None:
    manager = AuthManager({"client_id": "app"}, cache_path=str(tmp_path / "cache.bin"))

    assert manager.get_token() == "user-token"
    assert manager.app.calls[-1][0] == "interactive"


def test_no_token_raises(tmp_path) -> None:
    manager = AuthManager({"client_id": "app"}, cache_path=str(tmp_path / "cache.bin"), interactive=False)

    with pytest.raises(RuntimeError, match="No access token"):
        manager.get_token()


def test_failed_client_credentials_raise(tmp_path) -> None:
    manager = AuthManager({"client_id": "app", "client_secret": "s"}, cache_path=str(tmp_path / "cache.bin"))
    manager.app.client_result = {"error": "invalid_client", "error_description": "bad secret"}

    with pytest.raises(RuntimeError, match="confidential"):
        manager.get_token()

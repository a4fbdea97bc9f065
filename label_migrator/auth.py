"""
Authentication module using Microsoft Identity (MSAL).
Provides bearer tokens for the Microsoft Graph calls that read and assign labels.
"""
import json
import logging
import os
from typing import List, Optional

import msal

from label_migrator.errors import ConfigurationError

GRAPH_DEFAULT_SCOPE = ["https://graph.microsoft.com/.default"]
DELEGATED_SCOPES = ["Files.ReadWrite.All", "Sites.ReadWrite.All"]

logger = logging.getLogger(__name__)


class AuthManager:
    """Manage authentication for both confidential (client credentials) and public (interactive) flows.

    Behavior:
    - If a client secret is configured, uses ConfidentialClientApplication and
      the client credentials flow (app-only tokens). Assigning labels with
      assignmentMethod "privileged" normally needs this.
    - Otherwise, uses PublicClientApplication with silent token acquisition and,
      when allowed, an interactive browser login.

    The MSAL SerializableTokenCache is persisted to `cache_path`.
    """

    def __init__(self, settings: Optional[dict] = None, cache_path: str = "token_cache.bin",
                 interactive: bool = True):
        settings = settings or {}
        # Environment variables win over config.json values
        client_id = os.getenv("CLIENT_ID") or settings.get("client_id")
        client_secret = os.getenv("CLIENT_SECRET") or settings.get("client_secret")
        tenant_id = os.getenv("TENANT_ID") or settings.get("tenant_id")
        authority = os.getenv("AUTHORITY") or settings.get("authority")
        if not authority:
            if tenant_id:
                authority = f"https://login.microsoftonline.com/{tenant_id}"
            else:
                authority = "https://login.microsoftonline.com/common"

        if not client_id:
            raise ConfigurationError("CLIENT_ID must be set via environment or config.json")

        self.cache_path = cache_path
        self.interactive = interactive
        self.token_cache = msal.SerializableTokenCache()
        if os.path.exists(self.cache_path):
            try:
                with open(self.cache_path, "r", encoding="utf-8") as f:
                    data = f.read()
                if data:
                    self.token_cache.deserialize(data)
            except (OSError, ValueError) as exc:
                logger.warning("Ignoring unreadable token cache %s: %s", self.cache_path, exc)

        if client_secret:
            self.app = msal.ConfidentialClientApplication(
                client_id,
                client_credential=client_secret,
                authority=authority,
                token_cache=self.token_cache,
            )
            self.client_mode = "confidential"
        else:
            self.app = msal.PublicClientApplication(
                client_id,
                authority=authority,
                token_cache=self.token_cache,
            )
            self.client_mode = "public"

        self.access_token: Optional[str] = None

    def _save_cache(self) -> None:
        if not self.token_cache.has_state_changed:
            return
        try:
            with open(self.cache_path, "w", encoding="utf-8") as f:
                f.write(self.token_cache.serialize())
        except OSError as exc:
            logger.warning("Could not persist token cache to %s: %s", self.cache_path, exc)

    @staticmethod
    def _describe(result) -> str:
        try:
            return json.dumps(result, indent=2)
        except (TypeError, ValueError):
            return str(result)

    def acquire_token_for_client(self, scopes: Optional[List[str]] = None) -> dict:
        """Acquire an app-only token using the client credentials flow.

        Default scope is Graph's /.default, i.e. the application's assigned app roles.
        """
        if self.client_mode != "confidential":
            raise RuntimeError("Client credentials flow requires CLIENT_SECRET (confidential client)")

        scopes = scopes or GRAPH_DEFAULT_SCOPE
        result = self.app.acquire_token_silent(scopes, account=None)
        if not result or "access_token" not in result:
            result = self.app.acquire_token_for_client(scopes=scopes)

        if not result or "access_token" not in result:
            logger.error("acquire_token_for_client failed, MSAL result: %s", self._describe(result))
        else:
            self.access_token = result["access_token"]
            self._save_cache()
        return result

    def acquire_token_interactive(self, scopes: Optional[List[str]] = None) -> dict:
        """Delegated login for public clients. Tries silent first, then the browser."""
        scopes = scopes or DELEGATED_SCOPES
        if self.client_mode != "public":
            raise RuntimeError("Interactive flow requires a public client (no CLIENT_SECRET)")

        accounts = self.app.get_accounts()
        if accounts:
            result = self.app.acquire_token_silent(scopes, account=accounts[0])
            if result and "access_token" in result:
                self.access_token = result["access_token"]
                return result
            logger.debug("acquire_token_silent (interactive path) returned: %s", self._describe(result))

        result = self.app.acquire_token_interactive(scopes=scopes)
        if result and "access_token" in result:
            self.access_token = result["access_token"]
            self._save_cache()
            return result
        logger.error("acquire_token_interactive failed, MSAL result: %s", self._describe(result))
        raise RuntimeError(f"Interactive login failed: {result.get('error_description') if result else 'no result'}")

    def get_token(self, scopes: Optional[List[str]] = None) -> str:
        """Return a Graph access token, raising RuntimeError when none can be obtained.

        Used as the token provider of GraphLabelClient, so it is called before every request;
        MSAL serves repeated calls from its cache.
        """
        if self.client_mode == "confidential":
            res = self.acquire_token_for_client(scopes)
            token = res.get("access_token") if res else None
        else:
            scopes = scopes or DELEGATED_SCOPES
            token = None
            accounts = self.app.get_accounts()
            if accounts:
                res = self.app.acquire_token_silent(scopes, account=accounts[0])
                token = res.get("access_token") if res else None
            if not token and self.interactive:
                token = self.acquire_token_interactive(scopes).get("access_token")
        if not token:
            raise RuntimeError(f"No access token obtained ({self.client_mode} client)")
        self.access_token = token
        return token

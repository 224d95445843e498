import time
import urllib.parse
from typing import Any, Dict, Iterable

import requests


class OAuthConfigurationError(RuntimeError):
    pass


class GoogleOAuthClient:
    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(self, settings):
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.redirect_uri = settings.google_redirect_uri
        self.timeout = settings.http_timeout_seconds

    def _require_config(self):
        if not self.client_id or not self.client_secret or not self.redirect_uri:
            raise OAuthConfigurationError("Google OAuth not configured")

    def authorization_url(self, state: str, scopes: Iterable[str]) -> str:
        self._require_config()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(sorted(scopes)),
            "access_type": "offline",
            "include_granted_scopes": "true",
            "state": state,
            "prompt": "consent",
        }
        return f"{self.AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Trade an authorization code for tokens; `expires_at` is added for refresh checks."""
        self._require_config()
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        resp = requests.post(
            self.TOKEN_URL,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        tok = resp.json()
        tok["expires_at"] = int(time.time()) + tok.get("expires_in", 3600)
        return tok

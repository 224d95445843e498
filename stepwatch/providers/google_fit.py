import time
from typing import Dict, Any, Optional
import requests


class GoogleFitClient:
    BASE = "https://www.googleapis.com/fitness/v1"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        tokens: Dict[str, Any],
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        user_id: Optional[str] = None,
        token_store=None,
        provider: str = "google_fit",
        timeout: float = 15.0,
    ):
        self.tokens = tokens
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_id = user_id
        self.token_store = token_store
        self.provider = provider
        self.timeout = timeout

    def _headers(self):
        return {"Authorization": f"Bearer {self.tokens['access_token']}", "Content-Type": "application/json"}

    def _refresh_if_needed(self):
        expires_at = self.tokens.get("expires_at")
        if expires_at and time.time() > expires_at - 60:
            self._refresh_token()

    def _refresh_token(self):
        if not self.tokens.get("refresh_token"):
            raise RuntimeError("No refresh token available")
        data = {
            "grant_type": "refresh_token",
            "refresh_token": self.tokens["refresh_token"],
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        resp = requests.post(
            self.TOKEN_URL,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        tok = resp.json()
        # Google does not rotate the refresh token or repeat the scope on refresh
        self.tokens.update({
            "access_token": tok["access_token"],
            "refresh_token": tok.get("refresh_token", self.tokens.get("refresh_token")),
            "scope": tok.get("scope", self.tokens.get("scope")),
            "expires_at": int(time.time()) + tok.get("expires_in", 3600),
        })
        if self.token_store is not None and self.user_id:
            self.token_store.save_tokens(self.provider, self.user_id, self.tokens)

    def fetch_aggregated(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self._refresh_if_needed()
        url = f"{self.BASE}/users/me/dataset:aggregate"
        resp = requests.post(url, headers=self._headers(), json=body, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def aggregate_by_duration(self, data_type: str, start_ms: int, end_ms: int, bucket_ms: int) -> Dict[str, Any]:
        """Aggregate `data_type` over [start_ms, end_ms) in buckets of `bucket_ms`."""
        body = {
            "aggregateBy": [{"dataTypeName": data_type}],
            "bucketByTime": {"durationMillis": bucket_ms},
            "startTimeMillis": start_ms,
            "endTimeMillis": end_ms,
        }
        return self.fetch_aggregated(body)

    def fetch_dataset(self, data_source_id: str, start_ns: int, end_ns: int) -> Dict[str, Any]:
        """Fetch the raw points of one data source between two nanosecond timestamps."""
        self._refresh_if_needed()
        url = f"{self.BASE}/users/me/dataSources/{data_source_id}/datasets/{start_ns}-{end_ns}"
        resp = requests.get(url, headers=self._headers(), timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

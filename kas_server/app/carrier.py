# kas_server/app/carrier.py
"""
FedEx Track API client.

Bearer tokens are cached per process in a TokenCache; the TTL comes from
the token's `exp` claim. Every failure (credentials, network, timeout,
non-2xx, non-JSON body) surfaces as CarrierFetchFailed.
"""
import logging
import re
import threading
import time
from typing import Callable, Optional

import jwt
import requests

from .config import Settings, get_settings
from .errors import CarrierFetchFailed

logger = logging.getLogger(__name__)

CARRIER_PATTERNS = [
    ("FEDEX", re.compile(r"(\b96\d{20}\b)|(\b\d{15}\b)|(\b\d{12}\b)")),
    ("UPS", re.compile(r"\b1Z[a-zA-Z0-9]{16}\b")),
    ("USPS", re.compile(r"(\b(94|93|92|91|95|70|14|23|03)\d{20}\b)|(\b\d{26}\b)|(\b\d{30}\b)")),
    ("DHL", re.compile(r"(\b\d{10}\b)|(\b\d{9}\b)")),
]


def identify_carrier(tracking_number: str) -> str:
    for carrier, pattern in CARRIER_PATTERNS:
        if pattern.search(tracking_number):
            return carrier
    return "UNKNOWN"


class TokenCache:
    """In-process bearer token store with expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> Optional[str]:
        with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token
            return None

    def set(self, token: str, ttl: float) -> None:
        with self._lock:
            self._token = token
            self._expires_at = self._clock() + ttl

    def clear(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0


def token_ttl(token: str, now: float, fallback: int) -> float:
    """Seconds until the token's exp claim, or `fallback` when it has none."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
        exp = float(claims["exp"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        return fallback
    return max(0.0, exp - now)


class FedexClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.token_cache = token_cache or TokenCache()

    @property
    def base_url(self) -> str:
        return self.settings.FEDEX_API_URL.rstrip("/")

    def _access_token(self) -> str:
        token = self.token_cache.get()
        if token:
            return token

        s = self.settings
        if not (s.FEDEX_API_KEY and s.FEDEX_SECRET_KEY):
            raise CarrierFetchFailed("Missing API credentials")

        try:
            resp = self.session.post(
                f"{self.base_url}/oauth/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": s.FEDEX_API_KEY,
                    "client_secret": s.FEDEX_SECRET_KEY,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=s.FEDEX_TIMEOUT,
            )
        except requests.RequestException as e:
            raise CarrierFetchFailed(f"Auth request failed: {e}") from e
        if not resp.ok:
            raise CarrierFetchFailed(f"Auth request failed: {resp.status_code} {resp.reason}", resp.status_code)

        try:
            token = resp.json()["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise CarrierFetchFailed("Auth response carried no access_token") from e

        ttl = token_ttl(token, time.time(), s.FEDEX_TOKEN_TTL_FALLBACK)
        self.token_cache.set(token, ttl)
        logger.info("fedex token refreshed, ttl=%ds", int(ttl))
        return token

    def track(self, tracking_number: str) -> dict:
        """POST /track/v1/trackingnumbers and return the decoded body."""
        token = self._access_token()
        body = {
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
            "includeDetailedScans": True,
        }
        try:
            resp = self.session.post(
                f"{self.base_url}/track/v1/trackingnumbers",
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "X-locale": "en_US",
                },
                timeout=self.settings.FEDEX_TIMEOUT,
            )
        except requests.RequestException as e:
            raise CarrierFetchFailed(f"Tracking request failed: {e}") from e

        if resp.status_code == 401:
            # token revoked before its exp claim; next call fetches a new one
            self.token_cache.clear()
        if not resp.ok:
            raise CarrierFetchFailed(f"Tracking request failed: {resp.status_code} {resp.reason}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise CarrierFetchFailed("Tracking response was not JSON") from e
        if not isinstance(data, dict):
            raise CarrierFetchFailed("Tracking response was not a JSON object")
        return data

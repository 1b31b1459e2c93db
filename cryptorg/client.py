"""
Low-level Cryptorg REST client.

Handles authentication (HMAC-SHA256 signing over a base64 canonical
string), request dispatch, and delivery of the raw response body.  Every
public endpoint method returns an awaitable resolving to the body text
exactly as the service sent it, or raising ``TransportError`` when the
HTTP exchange could not be completed.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import http.cookiejar
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Mapping, Optional, Union
from urllib.parse import urlencode

import requests

logger = logging.getLogger("cryptorg")

BASE_URL = "https://api.cryptorg.net/"

HEADER_SIGNATURE = "CTG-API-SIGNATURE"
HEADER_KEY = "CTG-API-KEY"
HEADER_NONCE = "CTG-API-NONCE"

# ── Custom exceptions ──────────────────────────────────────────────────────


class CryptorgError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(CryptorgError, ValueError):
    """Raised when the client is given missing or malformed credentials."""


class UnsupportedMethodError(CryptorgError, ValueError):
    """Raised when a request is dispatched with a verb other than GET/POST."""

    def __init__(self, method: Any):
        self.method = method
        super().__init__(f"Unsupported HTTP method {method!r}; expected GET or POST")


class TransportError(CryptorgError):
    """Raised when the HTTP exchange fails below the HTTP layer (DNS, TLS, timeout...)."""

    def __init__(self, method: str, url: str, reason: str):
        self.method = method
        self.url = url
        self.reason = reason
        super().__init__(f"{method} {url} failed: {reason}")


# ── Request model ──────────────────────────────────────────────────────────


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"

    @classmethod
    def coerce(cls, value: Union["HttpMethod", str]) -> "HttpMethod":
        """Return the member for *value* (case-insensitive) or raise ``UnsupportedMethodError``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise UnsupportedMethodError(value)


@dataclass(frozen=True)
class Credentials:
    """API key pair issued by Cryptorg.  Immutable once built."""

    api_key: str
    api_secret: str = field(repr=False)

    def __post_init__(self) -> None:
        for name in ("api_key", "api_secret"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"{name} must be a non-empty string")

    @classmethod
    def from_env(
        cls,
        key_var: str = "CRYPTORG_API_KEY",
        secret_var: str = "CRYPTORG_API_SECRET",
    ) -> "Credentials":
        """
        Build credentials from environment variables.

        Raises
        ------
        ConfigurationError
            If either variable is unset or empty.
        """
        api_key = os.getenv(key_var)
        api_secret = os.getenv(secret_var)
        if not api_key or not api_secret:
            raise ConfigurationError(
                f"Missing API credentials. Set {key_var} and {secret_var} "
                "in a .env file or as environment variables."
            )
        return cls(api_key, api_secret)


# ── Signing ────────────────────────────────────────────────────────────────


def generate_signature(secret: str, path: str, query: Optional[str], nonce: int) -> str:
    """
    Compute the ``CTG-API-SIGNATURE`` value for one request.

    The canonical string ``path/nonce/query`` is base64-encoded and the
    encoded text is signed with HMAC-SHA256 keyed by *secret*.

    Parameters
    ----------
    secret : str
        API secret.
    path : str
        Endpoint path without a leading slash, e.g. ``bot/info``.
    query : str or None
        Raw query string; ``None`` is signed as the empty string.
    nonce : int
        Milliseconds since the Unix epoch.

    Returns
    -------
    str
        Lowercase hex digest.
    """
    if not secret:
        raise ConfigurationError("api_secret must be a non-empty string")
    if not path or path.startswith("/"):
        raise ValueError(f"Invalid path {path!r}; expected e.g. 'bot/info'")
    if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce <= 0:
        raise ValueError(f"Nonce must be a positive integer, got {nonce!r}")

    canonical = f"{path}/{nonce}/{query or ''}"
    encoded = base64.b64encode(canonical.encode("utf-8"))
    return hmac.new(secret.encode("utf-8"), encoded, hashlib.sha256).hexdigest()


def current_nonce() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def build_query(**params: Any) -> str:
    """URL-encode *params* in the order given, skipping ``None`` values."""
    return urlencode({k: v for k, v in params.items() if v is not None})


# ── Client ─────────────────────────────────────────────────────────────────


class CryptorgClient:
    """Authenticated wrapper around the Cryptorg bot-management API."""

    def __init__(
        self,
        credentials: Credentials,
        base_url: str = BASE_URL,
        timeout: float = 10,
    ):
        if not isinstance(credentials, Credentials):
            raise ConfigurationError("credentials must be a Credentials instance")
        self._credentials = credentials
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = requests.Session()
        # Calls share only the connection pool; no cookie ever carries over.
        self._session.cookies.set_policy(http.cookiejar.DefaultCookiePolicy(allowed_domains=[]))

    @classmethod
    def from_keys(cls, api_key: str, api_secret: str, **kwargs: Any) -> "CryptorgClient":
        return cls(Credentials(api_key, api_secret), **kwargs)

    @property
    def api_key(self) -> str:
        return self._credentials.api_key

    # ── context-manager support ────────────────────────────────────────

    def __enter__(self) -> "CryptorgClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    # ── internal helpers ───────────────────────────────────────────────

    def sign(self, path: str, query: Optional[str], nonce: int) -> str:
        """Signature for *path*/*query* at *nonce* using this client's secret."""
        return generate_signature(self._credentials.api_secret, path, query, nonce)

    def send(
        self,
        method: Union[HttpMethod, str],
        path: str,
        query: Optional[str] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Awaitable[str]:
        """
        Dispatch one authenticated request.

        The method is checked immediately; the nonce and signature are
        computed when the returned awaitable runs, so each await gets its
        own fresh pair.

        Parameters
        ----------
        method : HttpMethod or str
            ``GET`` or ``POST``.
        path : str
            Endpoint path, e.g. ``bot/info``.
        query : str, optional
            Already-encoded query string.
        body : mapping, optional
            Form fields for POST requests.  Ignored for GET.

        Returns
        -------
        Awaitable[str]
            Resolves to the raw response body, whatever the status code.

        Raises
        ------
        UnsupportedMethodError
            Synchronously, for any verb other than GET/POST.
        TransportError
            When awaited, on network-level failures.
        """
        verb = HttpMethod.coerce(method)
        return self._dispatch(verb, path, query or "", body)

    async def _dispatch(
        self,
        method: HttpMethod,
        path: str,
        query: str,
        body: Optional[Mapping[str, Any]],
    ) -> str:
        nonce = current_nonce()
        headers = {
            HEADER_SIGNATURE: self.sign(path, query, nonce),
            HEADER_KEY: self._credentials.api_key,
            HEADER_NONCE: str(nonce),
        }
        url = f"{self.base_url}{path}?{query}"

        kwargs: dict = {"headers": headers, "timeout": self.timeout}
        if method is HttpMethod.POST:
            kwargs["data"] = dict(body or {})

        logger.debug("API request  -> %s %s nonce=%s", method.value, url, nonce)

        try:
            response = await asyncio.to_thread(
                self._session.request, method.value, url, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(method.value, url, str(exc)) from exc

        logger.debug(
            "API response <- %s (%.1f KB)",
            response.status_code,
            len(response.content) / 1024,
        )
        return response.text

    # ── public API methods ─────────────────────────────────────────────

    def status(self) -> Awaitable[str]:
        """Check service status (``GET api/status``)."""
        return self.send(HttpMethod.GET, "api/status")

    def bot_list(self) -> Awaitable[str]:
        """List every bot on the account (``GET bot/all``)."""
        return self.send(HttpMethod.GET, "bot/all")

    def bot_info(self, bot_id: int) -> Awaitable[str]:
        """Get bot details (``GET bot/info``)."""
        return self.send(HttpMethod.GET, "bot/info", build_query(botId=bot_id))

    def delete_bot(self, bot_id: int) -> Awaitable[str]:
        """Delete a bot (``GET bot/delete``)."""
        return self.send(HttpMethod.GET, "bot/delete", build_query(botId=bot_id))

    def create_bot(
        self, pair: str, exchange: str, attributes: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[str]:
        """
        Create a bot (``POST bot/create``).

        *attributes* are the bot settings, sent as form fields.
        """
        query = build_query(pair=pair, exchange=exchange)
        return self.send(HttpMethod.POST, "bot/create", query, attributes)

    def create_preset(
        self, pair: str, exchange: str, attributes: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[str]:
        """Create a bot from a fixed preset (``POST bot/create-preset``)."""
        query = build_query(pair=pair, exchange=exchange)
        return self.send(HttpMethod.POST, "bot/create-preset", query, attributes)

    def update_bot(
        self, bot_id: int, pair: str, attributes: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[str]:
        """Reconfigure a bot (``POST bot/configure``)."""
        query = build_query(botId=bot_id, pair=pair)
        return self.send(HttpMethod.POST, "bot/configure", query, attributes)

    def activate_bot(self, bot_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "bot/activate", build_query(botId=bot_id))

    def deactivate_bot(self, bot_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "bot/deactivate", build_query(botId=bot_id))

    def start_bot_force(self, bot_id: int) -> Awaitable[str]:
        """Start a bot immediately, skipping its entry conditions."""
        return self.send(HttpMethod.GET, "bot/start-force", build_query(botId=bot_id))

    def get_bot_logs(self, bot_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "bot/logs", build_query(botId=bot_id))

    def freeze_deal(self, deal_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "deal/freeze", build_query(dealId=deal_id))

    def unfreeze_deal(self, deal_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "deal/unfreeze", build_query(dealId=deal_id))

    def update_take_profit(self, deal_id: int) -> Awaitable[str]:
        """Recalculate the take-profit of an open deal (``GET deal/update-take-profit``)."""
        return self.send(
            HttpMethod.GET, "deal/update-take-profit", build_query(dealId=deal_id)
        )

    def cancel_deal(self, deal_id: int) -> Awaitable[str]:
        return self.send(HttpMethod.GET, "deal/cancel", build_query(dealId=deal_id))

    def deal_info(self, deal_id: int) -> Awaitable[str]:
        """Get deal details (``GET deal/info``)."""
        return self.send(HttpMethod.GET, "deal/info", build_query(dealId=deal_id))

    def get_analytics(
        self, start: str, end: str, attributes: Optional[Mapping[str, Any]] = None
    ) -> Awaitable[str]:
        """Trading analytics for the period *start* .. *end* (``POST analytics/get``)."""
        query = build_query(start=start, end=end)
        return self.send(HttpMethod.POST, "analytics/get", query, attributes)

"""Credential and bearer-token management for the remote channels.

The push channel authenticates with short-lived OAuth2 bearer tokens
obtained by exchanging a service-account-signed JWT assertion. Tokens are
cached until shortly before they expire, and dropped as soon as the push
channel rejects one.

The secondary store uses a long-lived shared secret that is fetched once,
lazily, from a remote JSON config document.
"""

import base64
import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import requests
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from common.constants import (
    CONTROL_TIMEOUT,
    JWT_BEARER_GRANT,
    PUSH_SCOPE,
    TOKEN_EARLY_EXPIRY_SECONDS,
    TOKEN_LIFETIME_SECONDS,
)
from common.logger import get_logger

from .clients.base import USER_AGENT, AuthError, CredentialsError

logger = get_logger(__name__)

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"


def base64url(data: bytes) -> str:
    """Base64url-encode data without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class ServiceAccount:
    """Identity used to sign token assertions."""

    client_email: str
    private_key_pem: str
    token_uri: str = DEFAULT_TOKEN_URI
    project_id: str = ""

    @classmethod
    def from_file(cls, path: Path) -> "ServiceAccount":
        """Load a service account JSON key file.

        Raises:
            CredentialsError: If the file is unreadable or incomplete
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialsError(f"Cannot read service account file {path}: {e}") from e

        if not isinstance(data, dict) or not data.get("client_email") or not data.get("private_key"):
            raise CredentialsError(f"Service account file {path} lacks client_email/private_key")

        return cls(
            client_email=data["client_email"],
            private_key_pem=data["private_key"],
            token_uri=data.get("token_uri") or DEFAULT_TOKEN_URI,
            project_id=data.get("project_id", ""),
        )


def create_assertion(account: ServiceAccount, issued_at: int, scope: str = PUSH_SCOPE) -> str:
    """Build an RS256-signed JWT assertion for the token exchange.

    Args:
        account: Signing identity
        issued_at: POSIX seconds used for "iat"; "exp" is one hour later
        scope: OAuth2 scope requested

    Returns:
        "<header>.<claims>.<signature>", each part base64url without padding
    """
    header = {"alg": "RS256", "typ": "JWT"}
    claims = {
        "iss": account.client_email,
        "scope": scope,
        "aud": account.token_uri,
        "iat": issued_at,
        "exp": issued_at + TOKEN_LIFETIME_SECONDS,
    }
    signing_input = ".".join(
        base64url(json.dumps(part, separators=(",", ":")).encode("utf-8"))
        for part in (header, claims)
    )

    try:
        private_key = serialization.load_pem_private_key(
            account.private_key_pem.encode("utf-8"), password=None
        )
    except (ValueError, TypeError) as e:
        raise CredentialsError(f"Invalid service account private key: {e}") from e

    signature = private_key.sign(signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
    return f"{signing_input}.{base64url(signature)}"


@dataclass(frozen=True)
class CachedToken:
    """Bearer token with its (early) expiry time."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TokenManager:
    """Obtain and cache bearer tokens for the push channel."""

    def __init__(
        self,
        account: ServiceAccount,
        session: requests.Session | None = None,
        scope: str = PUSH_SCOPE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize token manager.

        Args:
            account: Service account signing the assertions
            session: HTTP session for the token endpoint
            scope: OAuth2 scope requested
            clock: Source of POSIX timestamps
        """
        self.account = account
        self.scope = scope
        self.clock = clock
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self._lock = threading.Lock()
        self._cached: CachedToken | None = None

    @property
    def cached(self) -> CachedToken | None:
        with self._lock:
            return self._cached

    def get_token(self) -> str:
        """Return a valid bearer token, exchanging a new assertion if needed.

        Raises:
            AuthError: If the token endpoint rejects the assertion
            CredentialsError: If the private key cannot sign
        """
        with self._lock:
            now = self.clock()
            if self._cached is not None and self._cached.is_valid(now):
                return self._cached.value

            self._cached = self._exchange(now)
            return self._cached.value

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-acquires one."""
        with self._lock:
            if self._cached is not None:
                logger.info("Push token invalidated")
            self._cached = None

    def _exchange(self, now: float) -> CachedToken:
        assertion = create_assertion(self.account, int(now), self.scope)
        try:
            response = self.session.post(
                self.account.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=CONTROL_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Token exchange error: {e}") from e

        if response.status_code != 200:
            raise AuthError(f"Token exchange failed: HTTP {response.status_code}", response.status_code)

        try:
            data = response.json()
            value = data["access_token"]
            expires_in = int(data.get("expires_in", TOKEN_LIFETIME_SECONDS))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(f"Malformed token response: {e}") from e

        logger.debug(f"Push token acquired (expires in {expires_in}s)")
        return CachedToken(value=value, expires_at=now + expires_in - TOKEN_EARLY_EXPIRY_SECONDS)


@dataclass(frozen=True)
class RemoteCredentials:
    """Shared-secret credentials of the secondary store."""

    secondary_store_id: str
    secondary_store_token: str


class RemoteCredentialsLoader:
    """Lazily fetch the secondary store credentials from a remote config document.

    The document is fetched at most once per process. An incomplete or
    malformed document disables the secondary store until the next start;
    a transport failure is retried on the next call.

    Expected document: {"gist_id": "...", "github_token": "..."}
    """

    def __init__(self, config_url: str, session: requests.Session | None = None):
        self.config_url = config_url
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self._lock = threading.Lock()
        self._loaded = False
        self._credentials: RemoteCredentials | None = None

    def get(self) -> RemoteCredentials | None:
        """Return the credentials, or None while they are unavailable."""
        with self._lock:
            if not self._loaded:
                self._load()
            return self._credentials

    def _load(self) -> None:
        if not self.config_url:
            self._loaded = True
            logger.info("Secondary store not configured")
            return

        try:
            response = self.session.get(self.config_url, timeout=CONTROL_TIMEOUT)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning(f"Secondary store config fetch failed: {e}")
            return

        self._loaded = True
        try:
            data = response.json()
        except ValueError:
            logger.warning("Secondary store config is not valid JSON, channel disabled")
            return

        store_id = data.get("gist_id") if isinstance(data, dict) else None
        token = data.get("github_token") if isinstance(data, dict) else None
        if not store_id or not token:
            logger.warning("Secondary store config incomplete (token or id missing), channel disabled")
            return

        self._credentials = RemoteCredentials(secondary_store_id=store_id, secondary_store_token=token)
        logger.info("Secondary store credentials loaded")

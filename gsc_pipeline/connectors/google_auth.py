"""
Service-account authentication for Google APIs

Builds an RS256-signed JWT from a service-account key and exchanges it for a
short-lived OAuth2 bearer token with the JWT-bearer grant. Only the RSA
signature itself comes from a library (``cryptography``); no OAuth client is
involved. Tokens are minted per invocation and never cached across runs.
"""
import base64
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from gsc_pipeline.errors import AuthError, ConfigurationError
from gsc_pipeline.utils.helpers import utcnow
from gsc_pipeline.utils.logger import log

TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600

# Scopes
SCOPE_WEBMASTERS_READONLY = "https://www.googleapis.com/auth/webmasters.readonly"
SCOPE_WEBMASTERS = "https://www.googleapis.com/auth/webmasters"
SCOPE_INDEXING = "https://www.googleapis.com/auth/indexing"

_PEM_ARMOR = re.compile(r"-----(BEGIN|END)[A-Z ]*PRIVATE KEY-----")


@dataclass(frozen=True)
class ServiceAccountCredential:
    """Service-account identity plus the Search Console property it is bound to"""
    client_email: str
    private_key: str
    site_url: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any], site_url: Optional[str] = None) -> "ServiceAccountCredential":
        """Build from a downloaded service-account key file (dict form)"""
        client_email = (data or {}).get("client_email")
        private_key = (data or {}).get("private_key")
        if not client_email or not private_key:
            raise ConfigurationError("Invalid credentials: client_email and private_key are required")
        return cls(client_email=client_email, private_key=private_key, site_url=site_url)


@dataclass(frozen=True)
class BearerToken:
    value: str
    expires_at: datetime

    def is_expired(self, skew_seconds: int = 300, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return now >= self.expires_at - timedelta(seconds=skew_seconds)

    @property
    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.value}"}


def base64url_encode(data: bytes) -> str:
    """URL-safe base64 without '=' padding (RFC 7515 §2)"""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(segment: str) -> bytes:
    padding_needed = -len(segment) % 4
    return base64.urlsafe_b64decode(segment + "=" * padding_needed)


def _encode_segment(obj: Dict[str, Any]) -> str:
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def load_private_key(pem: str) -> rsa.RSAPrivateKey:
    """
    Strip PEM armor, base64-decode to DER and load as a PKCS8 RSA key.

    Service-account JSON stored as text often has literal '\\n' sequences
    instead of newlines; both forms are accepted.
    """
    if not pem:
        raise ConfigurationError("Service account private_key is empty")
    body = _PEM_ARMOR.sub("", pem.replace("\\n", "\n"))
    body = "".join(body.split())
    try:
        der = base64.b64decode(body, validate=True)
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError(f"Invalid service account private key: {e}")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Service account private key is not an RSA key")
    return key


def build_claims(client_email: str, scope: str, issued_at: Optional[int] = None) -> Dict[str, Any]:
    iat = int(issued_at if issued_at is not None else time.time())
    return {
        "iss": client_email,
        "scope": scope,
        "aud": TOKEN_ENDPOINT,
        "iat": iat,
        "exp": iat + TOKEN_LIFETIME_SECONDS,
    }


def create_signed_jwt(
    credential: ServiceAccountCredential,
    scope: str,
    issued_at: Optional[int] = None
) -> str:
    """
    Build ``header.claims.signature`` signed with RSASSA-PKCS1-v1_5 / SHA-256.

    Args:
        credential: Service account identity and PEM key
        scope: Space-delimited OAuth scope(s) to request
        issued_at: Override for the ``iat`` claim (epoch seconds)

    Returns:
        Compact-serialized JWT
    """
    header = {"alg": "RS256", "typ": "JWT"}
    claims = build_claims(credential.client_email, scope, issued_at)
    signing_input = f"{_encode_segment(header)}.{_encode_segment(claims)}"

    key = load_private_key(credential.private_key)
    signature = key.sign(signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())

    return f"{signing_input}.{base64url_encode(signature)}"


class TokenIssuer:
    """Exchanges signed service-account JWTs for OAuth2 bearer tokens"""

    def __init__(self, client: httpx.AsyncClient, token_endpoint: str = TOKEN_ENDPOINT):
        self.client = client
        self.token_endpoint = token_endpoint

    async def get_token(self, credential: ServiceAccountCredential, scope: str) -> BearerToken:
        """
        Mint a fresh bearer token for ``scope``.

        Raises:
            ConfigurationError: private key cannot be loaded
            AuthError: token endpoint returned non-2xx or no access_token
        """
        assertion = create_signed_jwt(credential, scope)

        try:
            response = await self.client.post(
                self.token_endpoint,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Failed to reach token endpoint: {e}")

        if not response.is_success:
            log.error(
                f"Token exchange rejected for {credential.client_email}: "
                f"{response.status_code} - {response.text}"
            )
            raise AuthError(
                f"Failed to get access token: {response.text}",
                status=response.status_code,
                body=response.text,
            )

        payload = response.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise AuthError("Token endpoint response did not include access_token", body=response.text)

        expires_in = int(payload.get("expires_in", TOKEN_LIFETIME_SECONDS))
        log.debug(f"Minted token for {credential.client_email} (scope={scope}, expires_in={expires_in}s)")
        return BearerToken(value=access_token, expires_at=utcnow() + timedelta(seconds=expires_in))
